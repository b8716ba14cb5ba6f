from __future__ import annotations

from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

import yaml

SERVICE_ACCOUNT_TOKEN_TYPE = "kubernetes.io/service-account-token"
SERVICE_ACCOUNT_NAME_ANNOTATION = "kubernetes.io/service-account.name"


def token_secret_manifest(*, name: str, namespace: str, service_account_name: str) -> dict[str, Any]:
    # Some distributions (k3s among them) never auto-create this secret.
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "annotations": {SERVICE_ACCOUNT_NAME_ANNOTATION: service_account_name},
        },
        "type": SERVICE_ACCOUNT_TOKEN_TYPE,
    }


def render_manifest(manifest: dict[str, Any]) -> str:
    return yaml.safe_dump(manifest, sort_keys=False)


class manifest_file:
    """Write a manifest to a temporary YAML file for ``kubectl apply -f``."""

    def __init__(self, manifest: dict[str, Any]) -> None:
        self._manifest = manifest
        self.path: Path | None = None

    def __enter__(self) -> Path:
        tmp = NamedTemporaryFile(mode="w", encoding="utf-8", suffix=".yaml", delete=False)
        tmp.write(render_manifest(self._manifest))
        tmp.flush()
        tmp.close()
        self.path = Path(tmp.name)
        return self.path

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.path and self.path.exists():
            self.path.unlink()
