import pytest
from typer.testing import CliRunner

from tests.fake_cluster import FakeCluster


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def kubectl_installed(monkeypatch):
    import ci_rbac.services.kube_adapter as kube_adapter

    monkeypatch.setattr(kube_adapter, "which", lambda binary: f"/usr/local/bin/{binary}")


@pytest.fixture()
def cli_runner(cluster, kubectl_installed, monkeypatch):
    import ci_rbac.proc as proc
    import ci_rbac.cli as cli

    for var in ("CI_RBAC_SERVICE_ACCOUNT", "CI_RBAC_ROLE", "CI_RBAC_SECRET", "CI_RBAC_CONTEXT", "CI_RBAC_KUBECONFIG"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(proc, "default_runner", cluster)

    return CliRunner(), cli.app
