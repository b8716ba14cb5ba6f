from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable

from ci_rbac.config import RoleRule
from ci_rbac.proc import AdapterCommandError, CommandResult, CommandRunner, run_command, which
from ci_rbac.services.errors import ResourceCreateException, ToolNotFoundException
from ci_rbac.services.manifests import manifest_file, token_secret_manifest

logger = logging.getLogger(__name__)

KUBECTL = "kubectl"


@dataclass(frozen=True)
class ResourceResult:
    kind: str
    name: str
    namespace: str | None
    exists: bool
    changed: bool


class KubeAdapter:
    """Adapter for the kubectl calls a provisioning run needs."""

    def __init__(
        self,
        *,
        runner: CommandRunner | None = None,
        kubeconfig: str | None = None,
        context: str | None = None,
    ) -> None:
        self._runner = runner
        self._global_flags: list[str] = []
        if kubeconfig:
            self._global_flags += ["--kubeconfig", kubeconfig]
        if context:
            self._global_flags += ["--context", context]

    def _kubectl(self, *args: str) -> list[str]:
        return [KUBECTL, *self._global_flags, *args]

    def _run(self, cmd: list[str], *, error_message: str) -> CommandResult:
        return run_command(cmd, runner=self._runner, error_message=error_message)

    def check_available(self) -> str:
        path = which(KUBECTL)
        if path is None:
            raise ToolNotFoundException(KUBECTL)
        logger.debug("Using kubectl at %s", path)
        return path

    def resource_exists(self, kind: str, name: str, *, namespace: str | None = None) -> bool:
        cmd = self._kubectl("get", kind, name)
        if namespace is not None:
            cmd += ["-n", namespace]
        cmd += ["-o", "name"]
        try:
            self._run(cmd, error_message=f"Failed to check {kind} {name}")
        except AdapterCommandError as exc:
            if exc.not_found:
                logger.debug("%s not found: %s", kind, name)
                return False
            raise
        logger.debug("%s exists: %s", kind, name)
        return True

    def _ensure(
        self,
        kind: str,
        name: str,
        *,
        namespace: str | None,
        create: Callable[[], CommandResult],
        label: str,
    ) -> ResourceResult:
        where = f" in namespace '{namespace}'" if namespace else ""
        if self.resource_exists(kind, name, namespace=namespace):
            logger.info("%s '%s' already exists%s.", label, name, where)
            return ResourceResult(kind=kind, name=name, namespace=namespace, exists=True, changed=False)

        logger.info("Creating %s: %s%s", label, name, where)
        try:
            create()
        except AdapterCommandError as exc:
            logger.error("%s", exc)
            raise ResourceCreateException(kind=label, name=name, namespace=namespace) from exc
        return ResourceResult(kind=kind, name=name, namespace=namespace, exists=True, changed=True)

    def ensure_namespace(self, name: str) -> ResourceResult:
        cmd = self._kubectl("create", "namespace", name)
        return self._ensure(
            "namespace",
            name,
            namespace=None,
            create=lambda: self._run(cmd, error_message=f"Failed to create namespace {name}"),
            label="Namespace",
        )

    def ensure_service_account(self, name: str, *, namespace: str) -> ResourceResult:
        cmd = self._kubectl("create", "serviceaccount", name, "-n", namespace)
        return self._ensure(
            "serviceaccount",
            name,
            namespace=namespace,
            create=lambda: self._run(cmd, error_message=f"Failed to create serviceaccount {name}"),
            label="Service Account",
        )

    def ensure_token_secret(self, name: str, *, namespace: str, service_account_name: str) -> ResourceResult:
        def apply_manifest() -> CommandResult:
            manifest = token_secret_manifest(
                name=name, namespace=namespace, service_account_name=service_account_name
            )
            with manifest_file(manifest) as path:
                return self._run(
                    self._kubectl("apply", "-f", str(path)),
                    error_message=f"Failed to create secret {name}",
                )

        return self._ensure("secret", name, namespace=namespace, create=apply_manifest, label="Token secret")

    def ensure_role(self, name: str, *, namespace: str, rule: RoleRule) -> ResourceResult:
        cmd = self._kubectl(
            "create",
            "role",
            name,
            "-n",
            namespace,
            f"--verb={','.join(rule.verbs)}",
            f"--resource={','.join(rule.resources)}",
        )
        return self._ensure(
            "role",
            name,
            namespace=namespace,
            create=lambda: self._run(cmd, error_message=f"Failed to create role {name}"),
            label="Role",
        )

    def ensure_role_binding(
        self,
        name: str,
        *,
        namespace: str,
        role_name: str,
        service_account_name: str,
    ) -> ResourceResult:
        cmd = self._kubectl(
            "create",
            "rolebinding",
            name,
            "-n",
            namespace,
            f"--role={role_name}",
            f"--serviceaccount={namespace}:{service_account_name}",
        )
        return self._ensure(
            "rolebinding",
            name,
            namespace=namespace,
            create=lambda: self._run(cmd, error_message=f"Failed to create rolebinding {name}"),
            label="Role Binding",
        )

    def get_secret_field(self, name: str, field: str, *, namespace: str) -> str | None:
        """Return the raw (still base64-encoded) data field, or None if the secret is absent."""
        try:
            result = self._run(
                self._kubectl("get", "secret", name, "-n", namespace, "-o", f"jsonpath={{.data.{field}}}"),
                error_message=f"Failed to read secret {name}",
            )
        except AdapterCommandError as exc:
            if exc.not_found:
                return None
            raise
        return result.stdout.strip()
