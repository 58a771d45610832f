#!/usr/bin/env python3
"""Yield rebalancer CLI.

Runs rebalance cycles against the simulated settlement layer and reports
positions and risk.

Examples:
    # Run one cycle with the default configuration
    python scripts/rebalance.py run

    # Run with a different risk tolerance and verbose logs
    python scripts/rebalance.py run --risk-tolerance conservative --log-level DEBUG

    # Show current positions and portfolio risk
    python scripts/rebalance.py positions
    python scripts/rebalance.py risk

    # Run cycles every 6 hours until interrupted
    python scripts/rebalance.py schedule --interval-hours 6
"""

import time
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich.text import Text

from yield_rebalancer.api.rebalance_api import RebalanceAPI
from yield_rebalancer.data.static_source import StaticMarketDataSource
from yield_rebalancer.execution.simulated import SimulatedSettlement
from yield_rebalancer.orchestration.cycle import RebalanceCycle
from yield_rebalancer.orchestration.scheduler import RebalanceScheduler
from yield_rebalancer.utils.config import Config, load_rebalancer_config
from yield_rebalancer.utils.event_log import RebalanceEventLogger
from yield_rebalancer.utils.logging import setup_logging

console = Console()

WEI_PER_ETH = 10**18


def format_amount(amount: int) -> str:
    return f"{amount / WEI_PER_ETH:,.4f}"


def build_api(
    config_file: Optional[str],
    risk_tolerance: Optional[str] = None,
    log_level: Optional[str] = None,
) -> RebalanceAPI:
    """Load configuration and wire a cycle against the simulated settlement."""
    config = load_rebalancer_config(config_file)
    if risk_tolerance:
        config.set("strategy.risk_tolerance", risk_tolerance)

    setup_logging(
        level=log_level or config.get("logging.level", "INFO"),
        log_file=config.get("logging.file"),
    )

    cycle = _build_cycle(config)
    cycle.initialize_positions()
    return RebalanceAPI(cycle, config.get("reporting"))


def _build_cycle(config: Config) -> RebalanceCycle:
    event_logger = RebalanceEventLogger(config.get("logging.event_log_dir", "logs"))
    return RebalanceCycle(
        data_source=StaticMarketDataSource(config.section("market_data")),
        settlement=SimulatedSettlement(config.get("settlement")),
        config=config.to_dict(),
        event_logger=event_logger,
    )


def create_positions_table(api: RebalanceAPI) -> Table:
    table = Table(title="Current Positions", show_header=True, header_style="bold magenta")
    table.add_column("Protocol", style="cyan", no_wrap=True)
    table.add_column("Amount (ETH)", justify="right")
    table.add_column("Current %", justify="right")
    table.add_column("Target %", justify="right")
    table.add_column("Drift", justify="right")
    table.add_column("Yield %", justify="right")

    positions = api.get_positions()
    if positions.empty:
        table.add_row("No positions", "", "", "", "", "")
        return table

    for protocol, row in positions.iterrows():
        drift = row["current_percentage"] - row["target_percentage"]
        drift_color = "green" if abs(drift) < 1 else "yellow" if abs(drift) < 5 else "red"
        table.add_row(
            protocol,
            format_amount(row["current_amount"]),
            f"{row['current_percentage']:.2f}",
            f"{row['target_percentage']:.2f}",
            Text(f"{drift:+.2f}", style=drift_color),
            f"{row['yield_rate']:.2f}",
        )

    metrics = api.get_performance_metrics()
    table.add_row("", "", "", "", "", "", end_section=True)
    table.add_row(
        "TOTAL",
        format_amount(metrics["total_value"]),
        "",
        "",
        "",
        f"{metrics['current_yield']:.2f}",
        style="bold",
    )
    return table


def create_transactions_table(transactions: list) -> Table:
    table = Table(title="Movements", show_header=True, header_style="bold magenta")
    table.add_column("Source", style="cyan")
    table.add_column("Destination", style="cyan")
    table.add_column("Amount (ETH)", justify="right")
    table.add_column("Status")
    table.add_column("Detail")

    for tx in transactions:
        status_color = "green" if tx["status"] == "completed" else "red"
        detail = tx["failure_reason"] or ""
        if tx["funds_in_transit"]:
            detail = f"FUNDS IN TRANSIT ({detail})"
        table.add_row(
            tx["source"],
            tx["destination"],
            format_amount(tx["amount"]),
            Text(tx["status"], style=status_color),
            detail,
        )
    return table


def create_risk_table(report: dict) -> Table:
    table = Table(title="Portfolio Risk", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Score", justify="right")

    table.add_row("Overall", f"{report['overall_risk']:.2f}")
    table.add_row("Concentration", f"{report['concentration_risk']:.2f}")
    table.add_row("Liquidity", f"{report['liquidity_risk']:.2f}")
    table.add_row("Smart contract", f"{report['smart_contract_risk']:.2f}")

    table.add_row("", "", end_section=True)
    for protocol, risk in report["protocol_risks"].items():
        table.add_row(f"  {protocol}", f"{risk:.2f}")

    table.add_row("", "", end_section=True)
    for scenario, impact in report["stress_tests"].items():
        table.add_row(f"Stress: {scenario}", f"{impact:+.2%}")

    return table


@click.group()
def cli():
    """Yield Rebalancer CLI"""
    pass


@cli.command()
@click.option("--config", "config_file", type=click.Path(exists=True), help="YAML config file")
@click.option(
    "--risk-tolerance",
    type=click.Choice(["conservative", "moderate", "aggressive"]),
    help="Override strategy risk tolerance",
)
@click.option("--log-level", default=None, help="Logging level")
def run(config_file: Optional[str], risk_tolerance: Optional[str], log_level: Optional[str]):
    """Run one rebalance cycle."""
    api = build_api(config_file, risk_tolerance, log_level)

    console.print(create_positions_table(api))
    summary = api.run_cycle()

    if summary["error"]:
        console.print(f"[red]Strategy rejected:[/red] {summary['error']}")
    elif not summary["executed"]:
        console.print(f"[yellow]No rebalance:[/yellow] {summary['reason']}")
    else:
        console.print(f"[green]Rebalanced:[/green] {summary['reason']}")
        console.print(create_transactions_table(summary["transactions"]))
        console.print(create_positions_table(api))

    if summary["funds_in_transit"]:
        console.print("[bold red]ALERT: funds withdrawn but not redeposited[/bold red]")


@cli.command()
@click.option("--config", "config_file", type=click.Path(exists=True), help="YAML config file")
def positions(config_file: Optional[str]):
    """Show current positions."""
    api = build_api(config_file, log_level="WARNING")
    console.print(create_positions_table(api))


@cli.command()
@click.option("--config", "config_file", type=click.Path(exists=True), help="YAML config file")
def risk(config_file: Optional[str]):
    """Assess current portfolio risk."""
    api = build_api(config_file, log_level="WARNING")
    report = api.assess_risk()

    console.print(create_risk_table(report))
    for recommendation in report["recommendations"]:
        console.print(f"• {recommendation}")


@cli.command()
@click.option("--config", "config_file", type=click.Path(exists=True), help="YAML config file")
@click.option("--interval-hours", type=float, default=None, help="Hours between cycles")
def schedule(config_file: Optional[str], interval_hours: Optional[float]):
    """Run rebalance cycles periodically until interrupted."""
    api = build_api(config_file)
    scheduler = RebalanceScheduler(
        load_rebalancer_config(config_file).get("scheduler"),
        event_logger=api.cycle.event_logger,
    )
    scheduler.schedule_cycle(api.cycle, interval_hours)
    scheduler.start()

    console.print("[green]Scheduler running. Press Ctrl+C to stop.[/green]")
    try:
        while True:
            time.sleep(1)
            if scheduler.circuit_breaker_active:
                console.print(
                    f"[bold red]Circuit breaker active:[/bold red] {scheduler.circuit_breaker_reason}"
                )
                break
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()


if __name__ == "__main__":
    cli()
