"""CLI main entry point."""

import click

from . import __version__
from .commands import list_command, run_command


@click.group()
@click.option("-c", "--config", type=click.Path(), help="Config file path")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config: str | None, json_logs: bool) -> None:
    """Sanity checks for CSI storage plugins."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["json_logs"] = json_logs


cli.add_command(run_command)
cli.add_command(list_command)


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"csi-sanity version {__version__}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
