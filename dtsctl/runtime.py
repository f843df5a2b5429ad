"""asyncio drivers that feed transport events into a ScannerService."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from dtsctl.core.codec import encode_command
from dtsctl.core.errors import (
    CommandRejectedError,
    DeviceSelectionError,
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)
from dtsctl.core.model import Command, CommandResult, Event, Peripheral, SessionState
from dtsctl.core.service import TRANSACTION_TIMEOUT_REASON, ScannerService

LOGGER = logging.getLogger(__name__)

# Upper bound on a single wait so timeouts are checked regularly.
_TICK_S = 0.1


async def pump(
    service: ScannerService,
    events: asyncio.Queue[Event],
    *,
    deadline: float,
    until: Callable[[], bool] | None = None,
) -> bool:
    """Dispatch events serially until ``until()`` holds or ``deadline`` passes.

    Returns True if the condition was met, False on deadline.
    """
    while True:
        if until is not None and until():
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        try:
            event = await asyncio.wait_for(events.get(), timeout=min(_TICK_S, remaining))
        except asyncio.TimeoutError:
            pass
        else:
            service.dispatch(event)
        service.check_timeouts()


async def scan(service: ScannerService, events: asyncio.Queue[Event], duration_s: float) -> list[Peripheral]:
    """Scan for ``duration_s`` seconds, probing matching peripherals as they appear."""
    service.transport.start_scan()
    try:
        await pump(service, events, deadline=time.monotonic() + duration_s)
    finally:
        service.transport.stop_scan()

    if not service.is_idle:
        LOGGER.debug("Waiting for in-flight probe to finish")
        await pump(
            service,
            events,
            deadline=time.monotonic() + service.config.transaction_timeout_s + _TICK_S,
            until=lambda: service.is_idle,
        )
    return service.get_filtered_view()


async def run_command(
    service: ScannerService,
    events: asyncio.Queue[Event],
    device_hint: str,
    command: Command,
    *,
    discovery_timeout_s: float | None = None,
) -> CommandResult:
    """Discover ``device_hint``, run one command against it, and wait for the response."""
    discovery_timeout_s = discovery_timeout_s or service.config.scan_duration_s
    found: list[Peripheral] = []

    def _target_ready() -> bool:
        if not found:
            peripheral = service.resolve(device_hint)
            if peripheral is not None:
                found.append(peripheral)
        # An automatic probe may already be running against the target.
        return bool(found) and service.is_idle

    service.transport.start_scan()
    try:
        ready = await pump(
            service,
            events,
            deadline=time.monotonic() + discovery_timeout_s,
            until=_target_ready,
        )
    finally:
        service.transport.stop_scan()

    if not found:
        raise DeviceSelectionError(f"No peripheral found matching '{device_hint}'")
    target = found[0]
    if not ready or not service.issue_command(target.id, command):
        raise CommandRejectedError(
            f"Could not issue {command.value} to {target.id}: another command is in flight"
        )

    await pump(
        service,
        events,
        deadline=time.monotonic() + service.config.transaction_timeout_s + _TICK_S,
        until=lambda: service.is_idle,
    )
    if not service.is_idle or service.last_error == TRANSACTION_TIMEOUT_REASON:
        raise TransportTimeoutError(f"{command.value} on {target.id} timed out")
    if service.last_error is not None and service.last_error_state is SessionState.CONNECTING:
        raise TransportConnectError(f"Could not connect to {target.id}: {service.last_error}")
    if service.last_error is not None:
        raise TransportSendError(f"{command.value} on {target.id} failed: {service.last_error}")

    peripheral = service.registry.lookup(target.id) or target
    return CommandResult(
        peripheral=peripheral,
        command=command,
        frame_hex=encode_command(command).hex(),
    )
