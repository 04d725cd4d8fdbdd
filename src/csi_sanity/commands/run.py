"""Run and list commands.

``csi-sanity run`` connects to the plugin endpoint, runs the selected
scenarios, and prints a result table (or JSON). Exits 1 when any scenario
failed and 2 when the run could not start.
"""

import sys

import click

from ..client import DEFAULT_TIMEOUT, GrpcTransport, PluginClient
from ..config import ENV_VARS, load_config
from ..errors import ConfigError, TransportFailure
from ..formatters import print_progress, print_report, print_report_json, print_scenario_list
from ..runner import run_suite, select_scenarios
from ..shared.logging import configure_logging

DEFAULT_LOG_LEVEL = "warning"

EXIT_FAILED = 1
EXIT_STARTUP = 2


@click.command("run")
@click.option("--endpoint", envvar=ENV_VARS["endpoint"], help="Plugin endpoint (unix socket path or host:port)")
@click.option("--staging-path", envvar=ENV_VARS["staging_path"], help="Staging mount directory")
@click.option("--target-path", envvar=ENV_VARS["target_path"], help="Target mount directory")
@click.option(
    "--secrets-file",
    envvar=ENV_VARS["secrets_file"],
    type=click.Path(),
    help="YAML file with per-call secrets",
)
@click.option(
    "--test-volume-parameters",
    "test_volume_parameters_file",
    envvar=ENV_VARS["test_volume_parameters_file"],
    type=click.Path(),
    help="YAML file with CreateVolume parameters",
)
@click.option(
    "--timeout",
    envvar=ENV_VARS["timeout"],
    type=float,
    help=f"Per-call timeout in seconds (default: {DEFAULT_TIMEOUT})",
)
@click.option("--proto-module", envvar=ENV_VARS["proto_module"], help="Generated CSI message module")
@click.option(
    "--create-mount-dirs/--no-create-mount-dirs",
    default=None,
    help="Create the mount directories before each scenario (default: on)",
)
@click.option("-k", "patterns", multiple=True, help="Only run scenarios matching this glob (repeatable)")
@click.option("--json", "json_output", is_flag=True, help="Output results as JSON")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=DEFAULT_LOG_LEVEL,
    help=f"Log level (default: {DEFAULT_LOG_LEVEL})",
)
@click.option("--log-file", type=click.Path(), help="Write logs to this file instead of stderr")
@click.pass_context
def run_command(
    ctx: click.Context,
    endpoint: str | None,
    staging_path: str | None,
    target_path: str | None,
    secrets_file: str | None,
    test_volume_parameters_file: str | None,
    timeout: float | None,
    proto_module: str | None,
    create_mount_dirs: bool | None,
    patterns: tuple[str, ...],
    json_output: bool,
    log_level: str,
    log_file: str | None,
) -> None:
    """Run sanity scenarios against a CSI plugin.

    \b
    Example usage:
      csi-sanity run --endpoint /var/lib/csi/csi.sock
      csi-sanity run --endpoint localhost:10000 -k 'node.stats.*'

    \b
    Environment variables:
      CSI_ENDPOINT               - Plugin endpoint
      CSI_STAGING_PATH           - Staging mount directory
      CSI_TARGET_PATH            - Target mount directory
      CSI_TIMEOUT                - Per-call timeout
      CSI_SECRETS_FILE           - Secrets YAML file
      CSI_TEST_VOLUME_PARAMETERS - CreateVolume parameters YAML file
    """
    obj = ctx.obj or {}
    configure_logging(log_level, log_file, json_output=obj.get("json_logs", False))

    try:
        config = load_config(
            obj.get("config_path"),
            endpoint=endpoint,
            staging_path=staging_path,
            target_path=target_path,
            secrets_file=secrets_file,
            test_volume_parameters_file=test_volume_parameters_file,
            timeout=timeout,
            proto_module=proto_module,
            create_mount_dirs=create_mount_dirs,
        )
        config.validate()
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_STARTUP)

    try:
        transport = GrpcTransport.dial(config.endpoint, config.proto_module, config.timeout)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_STARTUP)
    except TransportFailure as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(EXIT_STARTUP)

    client = PluginClient(transport)
    try:
        if not json_output:
            click.echo(f"Running CSI sanity against {config.endpoint}\n")
        report = run_suite(
            client,
            config,
            filter_patterns=patterns,
            on_progress=None if json_output else print_progress,
        )
    finally:
        client.close()

    if json_output:
        print_report_json(report)
    else:
        click.echo()
        print_report(report)

    if not report.success:
        sys.exit(EXIT_FAILED)


@click.command("list")
@click.option("-k", "patterns", multiple=True, help="Only list scenarios matching this glob")
def list_command(patterns: tuple[str, ...]) -> None:
    """List registered scenario ids."""
    print_scenario_list(select_scenarios(patterns))
