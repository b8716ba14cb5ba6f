from __future__ import annotations

from dataclasses import asdict
from enum import Enum
import logging

import typer
import yaml

from ci_rbac.config import DEFAULT_NAMESPACE, ProvisionConfig
from ci_rbac.logging_config import configure_logging
from ci_rbac.provisioner import Provisioner, ProvisionReport
from ci_rbac.services.errors import CiRbacException

configure_logging()
logger = logging.getLogger(__name__)
app = typer.Typer(
    help="Create a service account, role, role binding and token secret for CI, then print the token.",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


class OutputFormat(str, Enum):
    text = "text"
    yaml = "yaml"


def _exit_for_domain_error(exc: CiRbacException) -> None:
    logger.warning("CLI command failed with domain error: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _echo_text_report(report: ProvisionReport) -> None:
    typer.echo("Successfully retrieved token.")
    typer.echo(f"TOKEN: {report.token}")
    typer.echo("Copy and store this token securely. It will be used in your GitHub Actions workflow.")
    typer.echo(
        "Remember to configure your GitHub Actions workflow with the retrieved token "
        "and Kubernetes cluster details."
    )


def _echo_yaml_report(report: ProvisionReport, config: ProvisionConfig) -> None:
    payload = {
        "namespace": config.namespace,
        "serviceAccount": config.service_account_name,
        "role": config.role_name,
        "roleBinding": config.role_binding_name,
        "secret": config.token_secret_name,
        "steps": [
            {"step": o.step, **({"result": asdict(o.result)} if o.result else {})} for o in report.outcomes
        ],
        "token": report.token,
    }
    typer.echo(yaml.safe_dump(payload, sort_keys=False), nl=False)


@app.command()
def provision(
    namespace: str = typer.Argument(DEFAULT_NAMESPACE, help="Namespace to provision into."),
    service_account: str | None = typer.Option(None, "--service-account", help="Service account name."),
    role: str | None = typer.Option(None, "--role", help="Role and role binding name."),
    secret: str | None = typer.Option(
        None, "--secret", help="Token secret name (defaults to '<service-account>-token')."
    ),
    kubeconfig: str | None = typer.Option(None, "--kubeconfig", help="Path to the kubeconfig file to use."),
    context: str | None = typer.Option(None, "--context", help="kubeconfig context to use."),
    output: OutputFormat = typer.Option(OutputFormat.text, "--output", "-o", help="Output format."),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level (default from CI_RBAC_LOG_LEVEL)."),
) -> None:
    if log_level is not None:
        configure_logging(level=log_level)

    try:
        config = (
            ProvisionConfig.from_env(namespace)
            .with_overrides(
                service_account_name=service_account,
                role_name=role,
                secret_name=secret,
                kubeconfig=kubeconfig,
                context=context,
            )
            .validate()
        )
    except CiRbacException as e:
        _exit_for_domain_error(e)

    report = Provisioner.for_config(config).run(config)
    if not report.ok:
        failed = report.failed
        detail = failed.error if failed else "no token was retrieved"
        step = failed.step if failed else "token"
        typer.echo(f"Error: provisioning failed at step '{step}': {detail}", err=True)
        raise typer.Exit(code=1)

    if output is OutputFormat.yaml:
        _echo_yaml_report(report, config)
    else:
        _echo_text_report(report)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
