from __future__ import annotations

from dataclasses import dataclass, replace
import os
import re

from ci_rbac.services.errors import ConfigException

DNS_LABEL_RE = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")

DEFAULT_NAMESPACE = "default"
DEFAULT_SERVICE_ACCOUNT = "github-actions-sa"
DEFAULT_ROLE = "github-actions-role"

DEFAULT_VERBS = ("get", "list", "watch", "create", "update", "patch", "delete")
DEFAULT_RESOURCES = (
    "pods",
    "deployments",
    "services",
    "configmaps",
    "secrets",
    "ingresses",
    "persistentvolumeclaims",
    "persistentvolumes",
)


@dataclass(frozen=True)
class RoleRule:
    verbs: tuple[str, ...]
    resources: tuple[str, ...]


DEFAULT_RULE = RoleRule(verbs=DEFAULT_VERBS, resources=DEFAULT_RESOURCES)


def secret_name_for(service_account_name: str) -> str:
    return f"{service_account_name}-token"


def is_valid_dns_label(value: str) -> bool:
    return bool(DNS_LABEL_RE.fullmatch(value))


@dataclass(frozen=True)
class ProvisionConfig:
    """Names and permissions for one provisioning run."""

    namespace: str = DEFAULT_NAMESPACE
    service_account_name: str = DEFAULT_SERVICE_ACCOUNT
    role_name: str = DEFAULT_ROLE
    secret_name: str | None = None
    rule: RoleRule = DEFAULT_RULE
    kubeconfig: str | None = None
    context: str | None = None

    @property
    def token_secret_name(self) -> str:
        # An unset secret name follows the service account name.
        return self.secret_name or secret_name_for(self.service_account_name)

    @property
    def role_binding_name(self) -> str:
        return self.role_name

    @classmethod
    def from_env(cls, namespace: str = DEFAULT_NAMESPACE) -> ProvisionConfig:
        return cls(
            namespace=namespace,
            service_account_name=os.getenv("CI_RBAC_SERVICE_ACCOUNT") or DEFAULT_SERVICE_ACCOUNT,
            role_name=os.getenv("CI_RBAC_ROLE") or DEFAULT_ROLE,
            secret_name=os.getenv("CI_RBAC_SECRET") or None,
            kubeconfig=os.getenv("CI_RBAC_KUBECONFIG") or None,
            context=os.getenv("CI_RBAC_CONTEXT") or None,
        )

    def with_overrides(self, **overrides: str | None) -> ProvisionConfig:
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)

    def validate(self) -> ProvisionConfig:
        for label, value in (
            ("namespace", self.namespace),
            ("service account", self.service_account_name),
            ("role", self.role_name),
            ("secret", self.token_secret_name),
        ):
            if not value or not is_valid_dns_label(value):
                raise ConfigException(f"Invalid {label} name {value!r}: must be a DNS-1123 label")
        if not self.rule.verbs or not self.rule.resources:
            raise ConfigException("Role rule requires at least one verb and one resource")
        return self
