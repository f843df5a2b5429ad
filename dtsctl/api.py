"""Stable public API for building tooling on top of dtsctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from dtsctl.core.config import load_config, save_filter_settings
from dtsctl.core.errors import (
    CommandRejectedError,
    ConfigLoadError,
    ConfigValidationError,
    DeviceSelectionError,
    DtsctlError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
)
from dtsctl.core.model import (
    Command,
    CommandResult,
    CommissioningState,
    Event,
    FilterSettings,
    Peripheral,
    ScannerConfig,
)
from dtsctl.core.service import ScannerService
from dtsctl.runtime import run_command, scan
from dtsctl.transports.base import RadioTransport

__all__ = [
    "DtsctlError",
    "CommandRejectedError",
    "ConfigLoadError",
    "ConfigValidationError",
    "DeviceSelectionError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "Command",
    "CommandResult",
    "CommissioningState",
    "FilterSettings",
    "Peripheral",
    "ScannerConfig",
    "RadioTransport",
    "EventSource",
    "Client",
]


class EventSource(RadioTransport, Protocol):
    """A transport that also exposes its event queue."""

    events: asyncio.Queue[Event]


TransportFactory = Callable[[ScannerConfig], EventSource]


def _bleak_transport(config: ScannerConfig) -> EventSource:
    from dtsctl.transports.ble_gatt import BleakRadioTransport

    return BleakRadioTransport(
        connection_timeout_s=config.connection_timeout_s,
        max_retries=config.max_retries,
    )


class Client:
    """Public client for scanning and driving DTS peripherals.

    Each call runs its own event loop and a fresh service, so nothing
    discovered by one call is remembered by the next. ``transport_factory`` is
    called inside the running loop to build the radio transport.
    """

    def __init__(
        self,
        *,
        config_path: Path | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        loaded = load_config(config_path)
        self.config = loaded.config
        self.config_path = loaded.path
        self.load_warnings = loaded.warnings
        self._transport_factory = transport_factory or _bleak_transport

    @property
    def filter_settings(self) -> FilterSettings:
        return self.config.filters

    def set_filters(self, by_service: bool, by_rssi: bool) -> FilterSettings:
        settings = FilterSettings(by_service=by_service, by_rssi=by_rssi)
        save_filter_settings(settings, self.config_path)
        self.config = load_config(self.config_path).config
        return settings

    def scan(
        self,
        *,
        duration_s: float | None = None,
        by_service: bool | None = None,
        by_rssi: bool | None = None,
    ) -> list[Peripheral]:
        filters = FilterSettings(
            by_service=self.config.filters.by_service if by_service is None else by_service,
            by_rssi=self.config.filters.by_rssi if by_rssi is None else by_rssi,
        )

        async def _run() -> list[Peripheral]:
            service, transport = self._build_service()
            service.filter_settings = filters
            try:
                return await scan(service, transport.events, duration_s or self.config.scan_duration_s)
            finally:
                await _close(transport)

        return asyncio.run(_run())

    def run_command(self, device_hint: str, command: Command) -> CommandResult:
        async def _run() -> CommandResult:
            service, transport = self._build_service()
            try:
                return await run_command(service, transport.events, device_hint, command)
            finally:
                await _close(transport)

        return asyncio.run(_run())

    def read_address(self, device_hint: str) -> CommandResult:
        return self.run_command(device_hint, Command.READ_ADDRESS)

    def set_commissioning(self, device_hint: str, enabled: bool) -> CommandResult:
        command = Command.ENABLE_COMMISSIONING if enabled else Command.DISABLE_COMMISSIONING
        return self.run_command(device_hint, command)

    def decommission(self, device_hint: str) -> CommandResult:
        return self.run_command(device_hint, Command.DECOMMISSION)

    def trigger_attention(self, device_hint: str) -> CommandResult:
        return self.run_command(device_hint, Command.TRIGGER_ATTENTION)

    def _build_service(self) -> tuple[ScannerService, EventSource]:
        transport = self._transport_factory(self.config)
        service = ScannerService(
            transport=transport,
            config=self.config,
            config_path=self.config_path,
        )
        return service, transport


async def _close(transport: EventSource) -> None:
    aclose = getattr(transport, "aclose", None)
    if aclose is not None:
        await aclose()
