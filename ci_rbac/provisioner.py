from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
import logging
from typing import Callable

from ci_rbac.config import ProvisionConfig
from ci_rbac.proc import AdapterCommandError
from ci_rbac.services.errors import CiRbacException, TokenException
from ci_rbac.services.kube_adapter import KubeAdapter, ResourceResult

logger = logging.getLogger(__name__)

STEP_PREFLIGHT = "kubectl"
STEP_NAMESPACE = "namespace"
STEP_SERVICE_ACCOUNT = "service-account"
STEP_SECRET = "secret"
STEP_ROLE = "role"
STEP_ROLE_BINDING = "role-binding"
STEP_TOKEN = "token"


@dataclass(frozen=True)
class ProvisionStep:
    name: str
    action: Callable[[], ResourceResult | str | None]


@dataclass(frozen=True)
class StepOutcome:
    step: str
    result: ResourceResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ProvisionReport:
    namespace: str
    outcomes: list[StepOutcome] = field(default_factory=list)
    token: str | None = None

    @property
    def failed(self) -> StepOutcome | None:
        return next((outcome for outcome in self.outcomes if not outcome.ok), None)

    @property
    def ok(self) -> bool:
        return self.failed is None and self.token is not None

    @property
    def created(self) -> list[ResourceResult]:
        return [o.result for o in self.outcomes if o.result is not None and o.result.changed]


def decode_token(encoded: str | None, *, secret_name: str) -> str:
    if not encoded:
        raise TokenException(f"Failed to retrieve token from secret '{secret_name}'")
    try:
        token = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise TokenException(f"Token in secret '{secret_name}' is not valid base64 text") from exc
    if not token.strip():
        raise TokenException(f"Failed to retrieve token from secret '{secret_name}'")
    return token


class Provisioner:
    """Run the ordered ensure steps for a CI service account and read back its token."""

    def __init__(self, *, kube: KubeAdapter | None = None) -> None:
        self.kube = kube or KubeAdapter()

    @classmethod
    def for_config(cls, config: ProvisionConfig) -> Provisioner:
        return cls(kube=KubeAdapter(kubeconfig=config.kubeconfig, context=config.context))

    def fetch_token(self, config: ProvisionConfig) -> str:
        encoded = self.kube.get_secret_field(config.token_secret_name, "token", namespace=config.namespace)
        if encoded is None:
            raise TokenException(f"Token secret '{config.token_secret_name}' does not exist")
        token = decode_token(encoded, secret_name=config.token_secret_name)
        logger.info("Successfully retrieved token.")
        return token

    def steps(self, config: ProvisionConfig) -> list[ProvisionStep]:
        kube = self.kube
        ns = config.namespace
        return [
            ProvisionStep(STEP_PREFLIGHT, kube.check_available),
            ProvisionStep(STEP_NAMESPACE, lambda: kube.ensure_namespace(ns)),
            ProvisionStep(
                STEP_SERVICE_ACCOUNT,
                lambda: kube.ensure_service_account(config.service_account_name, namespace=ns),
            ),
            ProvisionStep(
                STEP_SECRET,
                lambda: kube.ensure_token_secret(
                    config.token_secret_name,
                    namespace=ns,
                    service_account_name=config.service_account_name,
                ),
            ),
            ProvisionStep(STEP_ROLE, lambda: kube.ensure_role(config.role_name, namespace=ns, rule=config.rule)),
            ProvisionStep(
                STEP_ROLE_BINDING,
                lambda: kube.ensure_role_binding(
                    config.role_binding_name,
                    namespace=ns,
                    role_name=config.role_name,
                    service_account_name=config.service_account_name,
                ),
            ),
            ProvisionStep(STEP_TOKEN, lambda: self.fetch_token(config)),
        ]

    @staticmethod
    def run_step(step: ProvisionStep) -> tuple[StepOutcome, object]:
        try:
            value = step.action()
        except (CiRbacException, AdapterCommandError) as exc:
            logger.warning("Step %s failed: %s", step.name, exc)
            return StepOutcome(step=step.name, error=str(exc)), None
        result = value if isinstance(value, ResourceResult) else None
        return StepOutcome(step=step.name, result=result), value

    def run(self, config: ProvisionConfig) -> ProvisionReport:
        logger.info("Provisioning CI service account in namespace: %s", config.namespace)
        report = ProvisionReport(namespace=config.namespace)
        for step in self.steps(config):
            outcome, value = self.run_step(step)
            report.outcomes.append(outcome)
            if not outcome.ok:
                # No rollback: resources created by earlier steps stay in place.
                logger.error("Aborting provisioning at step %s", step.name)
                return report
            if step.name == STEP_TOKEN:
                report.token = value
        logger.info(
            "Service account, role, role binding, and token secret ready in namespace '%s'.",
            config.namespace,
        )
        return report
