from __future__ import annotations

import asyncio

import pytest

from dtsctl.core.errors import DeviceSelectionError, TransportConnectError, TransportTimeoutError
from dtsctl.core.model import Command, CommissioningState, ScannerConfig
from dtsctl.core.service import ScannerService
from dtsctl.runtime import run_command, scan
from sim_transport import DEVICE_ID, SimulatedTransport


def _run(coro_factory, config: ScannerConfig | None = None, **transport_kwargs):
    async def _main():
        transport = SimulatedTransport(**transport_kwargs)
        service = ScannerService(transport=transport, config=config or ScannerConfig())
        return await coro_factory(service, transport), transport

    return asyncio.run(_main())


def test_scan_probes_and_lists_device() -> None:
    peripherals, transport = _run(lambda service, t: scan(service, t.events, 0.2))

    assert [p.id for p in peripherals] == [DEVICE_ID]
    assert peripherals[0].hardware_address_suffix == "1234"
    assert peripherals[0].sub_device_count == 1
    assert transport.names()[0] == "start_scan"
    assert "stop_scan" in transport.names()


def test_run_command_reads_address() -> None:
    result, transport = _run(
        lambda service, t: run_command(service, t.events, "gateway", Command.READ_ADDRESS)
    )

    assert result.peripheral.id == DEVICE_ID
    assert result.peripheral.hardware_address_suffix == "1234"
    assert result.frame_hex == "010101"
    writes = [call[3] for call in transport.calls if call[0] == "write"]
    assert writes == [bytes.fromhex("010103"), bytes.fromhex("010101")]


def test_run_command_disable_commissioning() -> None:
    result, _ = _run(
        lambda service, t: run_command(service, t.events, DEVICE_ID, Command.DISABLE_COMMISSIONING)
    )
    assert result.peripheral.commissioning_enabled is CommissioningState.OFF
    assert result.peripheral.has_commissioned_sub_devices is False


def test_run_command_attention_waits_for_expiry() -> None:
    result, _ = _run(
        lambda service, t: run_command(service, t.events, "gateway", Command.TRIGGER_ATTENTION)
    )
    assert result.peripheral.attention_active is False


def test_run_command_unknown_device() -> None:
    with pytest.raises(DeviceSelectionError):
        _run(
            lambda service, t: run_command(
                service, t.events, "garage", Command.READ_ADDRESS, discovery_timeout_s=0.2
            )
        )


def test_run_command_times_out_on_silent_device() -> None:
    with pytest.raises(TransportTimeoutError):
        _run(
            lambda service, t: run_command(service, t.events, "gateway", Command.DECOMMISSION),
            config=ScannerConfig(transaction_timeout_s=0.2),
            silent=True,
        )


def test_run_command_reports_connect_failure() -> None:
    with pytest.raises(TransportConnectError) as exc:
        _run(
            lambda service, t: run_command(service, t.events, "gateway", Command.READ_ADDRESS),
            connect_error="BLE connect failed for C0:FF:EE:00:12:34",
        )
    assert "Could not connect to C0:FF:EE:00:12:34" in str(exc.value)
