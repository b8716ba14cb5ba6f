from __future__ import annotations

from pathlib import Path
import subprocess

import pytest
import yaml

from ci_rbac.config import DEFAULT_RULE
from ci_rbac.proc import AdapterCommandError
from ci_rbac.services.errors import ResourceCreateException, ToolNotFoundException
from ci_rbac.services.kube_adapter import KubeAdapter


def _result(*, args: list[str], returncode: int, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=args, returncode=returncode, stdout=stdout, stderr=stderr)


def test_ensure_namespace_creates_when_missing() -> None:
    calls: list[list[str]] = []

    def runner(cmd: list[str]) -> subprocess.CompletedProcess[str]:
        calls.append(cmd)
        if cmd[:4] == ["kubectl", "get", "namespace", "ns-a"]:
            return _result(args=cmd, returncode=1, stderr="Error from server (NotFound): namespaces \"ns-a\" not found")
        if cmd[:4] == ["kubectl", "create", "namespace", "ns-a"]:
            return _result(args=cmd, returncode=0, stdout="namespace/ns-a created")
        raise AssertionError(f"unexpected command: {cmd}")

    out = KubeAdapter(runner=runner).ensure_namespace("ns-a")

    assert out.exists is True
    assert out.changed is True
    assert out.namespace is None
    assert calls[0] == ["kubectl", "get", "namespace", "ns-a", "-o", "name"]
    assert calls[1] == ["kubectl", "create", "namespace", "ns-a"]


def test_ensure_namespace_skips_create_when_present(cluster) -> None:
    cluster.add("namespace", "ns-a")

    out = KubeAdapter(runner=cluster).ensure_namespace("ns-a")

    assert out.changed is False
    assert cluster.creates() == []


def test_resource_exists_bubbles_non_not_found_errors() -> None:
    def runner(cmd: list[str]) -> subprocess.CompletedProcess[str]:
        return _result(args=cmd, returncode=1, stderr="Unable to connect to the server: i/o timeout")

    with pytest.raises(AdapterCommandError) as exc_info:
        KubeAdapter(runner=runner).resource_exists("serviceaccount", "sa", namespace="ns-a")
    assert "i/o timeout" in str(exc_info.value).lower()
    assert exc_info.value.not_found is False


def test_ensure_service_account_creates_in_namespace(cluster) -> None:
    cluster.add("namespace", "ns-a")

    out = KubeAdapter(runner=cluster).ensure_service_account("bot", namespace="ns-a")

    assert out.changed is True
    assert cluster.creates() == [["kubectl", "create", "serviceaccount", "bot", "-n", "ns-a"]]
    assert cluster.get("serviceaccount", "bot", "ns-a") is not None


def test_ensure_token_secret_applies_annotated_manifest() -> None:
    seen_manifest: dict | None = None
    applied_path: Path | None = None

    def runner(cmd: list[str]) -> subprocess.CompletedProcess[str]:
        nonlocal seen_manifest, applied_path
        if cmd[:3] == ["kubectl", "get", "secret"]:
            return _result(args=cmd, returncode=1, stderr='Error from server (NotFound): secrets "bot-token" not found')
        if cmd[:3] == ["kubectl", "apply", "-f"]:
            applied_path = Path(cmd[3])
            seen_manifest = yaml.safe_load(applied_path.read_text())
            return _result(args=cmd, returncode=0, stdout="secret/bot-token created")
        raise AssertionError(f"unexpected command: {cmd}")

    out = KubeAdapter(runner=runner).ensure_token_secret("bot-token", namespace="ns-a", service_account_name="bot")

    assert out.changed is True
    assert seen_manifest == {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": "bot-token",
            "namespace": "ns-a",
            "annotations": {"kubernetes.io/service-account.name": "bot"},
        },
        "type": "kubernetes.io/service-account-token",
    }
    assert applied_path is not None
    assert not applied_path.exists()


def test_ensure_token_secret_writes_no_manifest_when_present(cluster, monkeypatch) -> None:
    import ci_rbac.services.kube_adapter as kube_adapter

    def no_manifest(manifest):
        raise AssertionError("manifest file written for an existing secret")

    monkeypatch.setattr(kube_adapter, "manifest_file", no_manifest)
    cluster.add("namespace", "ns-a")
    cluster.add("secret", "bot-token", "ns-a")

    out = KubeAdapter(runner=cluster).ensure_token_secret("bot-token", namespace="ns-a", service_account_name="bot")

    assert out.changed is False
    assert cluster.creates() == []


def test_ensure_role_passes_verbs_and_resources(cluster) -> None:
    cluster.add("namespace", "ns-a")

    KubeAdapter(runner=cluster).ensure_role("deployer", namespace="ns-a", rule=DEFAULT_RULE)

    assert cluster.creates() == [
        [
            "kubectl",
            "create",
            "role",
            "deployer",
            "-n",
            "ns-a",
            "--verb=get,list,watch,create,update,patch,delete",
            "--resource=pods,deployments,services,configmaps,secrets,ingresses,"
            "persistentvolumeclaims,persistentvolumes",
        ]
    ]


def test_ensure_role_binding_binds_service_account(cluster) -> None:
    cluster.add("namespace", "ns-a")

    KubeAdapter(runner=cluster).ensure_role_binding(
        "deployer", namespace="ns-a", role_name="deployer", service_account_name="bot"
    )

    binding = cluster.get("rolebinding", "deployer", "ns-a")
    assert binding == {"role": "deployer", "serviceaccount": "ns-a:bot"}


def test_create_failure_raises_resource_create_exception(cluster) -> None:
    cluster.add("namespace", "ns-a")
    cluster.fail_create.add("role")

    with pytest.raises(ResourceCreateException) as exc_info:
        KubeAdapter(runner=cluster).ensure_role("deployer", namespace="ns-a", rule=DEFAULT_RULE)

    assert str(exc_info.value) == "Failed to create Role 'deployer' in namespace 'ns-a'"
    assert isinstance(exc_info.value.__cause__, AdapterCommandError)


def test_global_flags_are_passed_to_every_call(cluster) -> None:
    adapter = KubeAdapter(runner=cluster, kubeconfig="/tmp/kc", context="k3s")

    adapter.ensure_namespace("ns-a")

    assert all(call[:5] == ["kubectl", "--kubeconfig", "/tmp/kc", "--context", "k3s"] for call in cluster.calls)
    assert cluster.count("namespace") == 1


def test_get_secret_field_returns_none_when_secret_absent(cluster) -> None:
    assert KubeAdapter(runner=cluster).get_secret_field("missing", "token", namespace="ns-a") is None


def test_check_available_raises_when_kubectl_missing(monkeypatch) -> None:
    import ci_rbac.services.kube_adapter as kube_adapter

    monkeypatch.setattr(kube_adapter, "which", lambda binary: None)

    with pytest.raises(ToolNotFoundException) as exc_info:
        KubeAdapter().check_available()
    assert "kubectl is not installed" in str(exc_info.value)
