"""
x402 facilitator CLI.

Usage:
    x402-facilitator [OPTIONS] COMMAND [ARGS]...
"""
from __future__ import annotations

import asyncio
import json

import click
from rich.console import Console
from rich.table import Table

from .config import get_settings
from .dispatcher import X402Facilitator
from .errors import FacilitatorError
from .logging_utils import setup_logging
from .models import ValidationStatus
from .schemas import FacilitatorResponse

console = Console()

EXIT_CODES = {
    ValidationStatus.SUCCESS: 0,
    ValidationStatus.FAILURE: 1,
    ValidationStatus.PAYMENT_REQUIRED: 2,
}

STATUS_STYLES = {
    ValidationStatus.SUCCESS: "green",
    ValidationStatus.PAYMENT_REQUIRED: "yellow",
    ValidationStatus.FAILURE: "red",
}


@click.group()
@click.version_option(package_name="x402-facilitator", message="%(prog)s %(version)s")
@click.option("--log-level", envvar="X402_FACILITATOR_LOG_LEVEL", help="Log level")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, log_level: str | None, verbose: bool):
    """x402 facilitator - settle pay-per-request payments on Solana and Base."""
    ctx.ensure_object(dict)
    setup_logging(level="DEBUG" if verbose else (log_level or get_settings().log_level))
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("request_file", type=click.File("r"))
@click.option("--json", "as_json", is_flag=True, help="Print the response body as JSON")
@click.pass_context
def validate(ctx, request_file, as_json: bool):
    """Validate and settle a payment request read from REQUEST_FILE ('-' for stdin)."""
    try:
        body = json.load(request_file)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="REQUEST_FILE")
    if not isinstance(body, dict):
        raise click.BadParameter("request must be a JSON object", param_hint="REQUEST_FILE")

    async def run() -> FacilitatorResponse:
        async with X402Facilitator() as facilitator:
            outcome = await facilitator.validate(body)
        return FacilitatorResponse.from_outcome(outcome)

    response = asyncio.run(run())

    if as_json:
        click.echo(json.dumps(response.to_wire(), indent=2))
    else:
        style = STATUS_STYLES[response.status]
        console.print(f"\n[bold {style}]{response.status.value}[/bold {style}] (HTTP {response.http_status})\n")

        table = Table(show_header=False)
        table.add_column("Field", style="dim")
        table.add_column("Value")
        for label, value in (
            ("Settlement", response.settlement_id),
            ("Submitter", response.submitter_identity),
            ("Asset", response.asset_label),
            ("Asset kind", response.asset_kind.value if response.asset_kind else None),
            ("Error", response.error),
        ):
            if value:
                table.add_row(label, value)
        console.print(table)

        if ctx.obj["verbose"] or response.status != ValidationStatus.SUCCESS:
            console.print("\n[bold]Trace[/bold]")
            for note in response.trace:
                console.print(f"  {note}")
        console.print()

    ctx.exit(EXIT_CODES[response.status])


@cli.command("payer-address")
@click.option("--chain", default="solana", show_default=True, help="Chain")
def payer_address(chain: str):
    """Print the fee-payer address clients must name in their transactions."""
    facilitator = X402Facilitator()
    try:
        address = facilitator.fee_payer_address(chain)
    except FacilitatorError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    click.echo(address)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
