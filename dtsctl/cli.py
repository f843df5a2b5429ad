"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from enum import Enum

import typer

from dtsctl.api import Client
from dtsctl.core.errors import DtsctlError
from dtsctl.core.model import CommandResult, Peripheral

app = typer.Typer(help="Scan for and control BLE devices exposing the data transfer service")


class Toggle(str, Enum):
    on = "on"
    off = "off"


def _build_client() -> Client:
    client = Client()
    for warning in getattr(client, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return client


def _format_peripheral(peripheral: Peripheral) -> str:
    address = peripheral.hardware_address_suffix or "----"
    count = "?" if peripheral.sub_device_count is None else str(peripheral.sub_device_count)
    flags = []
    if peripheral.attention_active:
        flags.append("attention")
    if peripheral.commissioning_indicator_active:
        flags.append("commissioning")
    line = (
        f"{peripheral.id} {peripheral.advertised_name} rssi={peripheral.rssi} "
        f"max={peripheral.highest_rssi} addr={address} "
        f"commissioning={peripheral.commissioning_enabled.value} devices={count}"
    )
    if flags:
        line += f" [{', '.join(flags)}]"
    return line


def _echo_result(result: CommandResult) -> None:
    typer.echo(f"Sent {result.command.value} to {result.peripheral.id} frame={result.frame_hex}")
    typer.echo(_format_peripheral(result.peripheral))


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("scan")
def scan(
    duration: float | None = typer.Option(None, "--duration", help="Scan time in seconds"),
    by_service: bool | None = typer.Option(
        None, "--by-service/--no-by-service", help="Only list devices advertising known services"
    ),
    by_rssi: bool | None = typer.Option(
        None, "--by-rssi/--no-by-rssi", help="Only list devices seen at -50 dBm or stronger"
    ),
) -> None:
    """Scan, probe matching devices, and list the ones that speak the protocol."""
    try:
        client = _build_client()
        peripherals = client.scan(duration_s=duration, by_service=by_service, by_rssi=by_rssi)
        if not peripherals:
            typer.echo("No matching devices found")
            return
        for peripheral in peripherals:
            typer.echo(_format_peripheral(peripheral))
    except DtsctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("address")
def read_address(device: str = typer.Argument(..., help="Device id or partial name")) -> None:
    """Read the hardware address suffix of a device."""
    try:
        _echo_result(_build_client().read_address(device))
    except DtsctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("commissioning")
def commissioning(
    device: str = typer.Argument(..., help="Device id or partial name"),
    state: Toggle = typer.Argument(..., help="on or off"),
) -> None:
    """Enable or disable EnOcean radio-based commissioning."""
    try:
        _echo_result(_build_client().set_commissioning(device, state is Toggle.on))
    except DtsctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("decommission")
def decommission(device: str = typer.Argument(..., help="Device id or partial name")) -> None:
    """Remove all commissioned EnOcean devices."""
    try:
        _echo_result(_build_client().decommission(device))
    except DtsctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("attention")
def attention(device: str = typer.Argument(..., help="Device id or partial name")) -> None:
    """Trigger the attention indicator and wait until it expires."""
    try:
        _echo_result(_build_client().trigger_attention(device))
    except DtsctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("filters")
def filters(
    by_service: bool | None = typer.Option(None, "--by-service/--no-by-service"),
    by_rssi: bool | None = typer.Option(None, "--by-rssi/--no-by-rssi"),
) -> None:
    """Show or persist the default scan filters."""
    try:
        client = _build_client()
        settings = client.filter_settings
        if by_service is not None or by_rssi is not None:
            settings = client.set_filters(
                settings.by_service if by_service is None else by_service,
                settings.by_rssi if by_rssi is None else by_rssi,
            )
        typer.echo(f"by_service={str(settings.by_service).lower()} by_rssi={str(settings.by_rssi).lower()}")
    except DtsctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
