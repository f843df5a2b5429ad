from __future__ import annotations

from pathlib import Path

import pytest

from dtsctl.api import Client, CommissioningState, ScannerConfig
from dtsctl.core.errors import DeviceSelectionError
from sim_transport import DEVICE_ID, SimulatedTransport


def _client(tmp_path: Path) -> Client:
    return Client(
        config_path=tmp_path / "config.yaml",
        transport_factory=lambda config: SimulatedTransport(),
    )


def test_public_client_scan(tmp_path: Path) -> None:
    client = _client(tmp_path)
    peripherals = client.scan(duration_s=0.2)
    assert [p.id for p in peripherals] == [DEVICE_ID]
    assert peripherals[0].advertised_name == "LCC Gateway"


def test_public_client_scan_with_filters(tmp_path: Path) -> None:
    client = _client(tmp_path)
    peripherals = client.scan(duration_s=0.2, by_service=True, by_rssi=True)
    assert [p.id for p in peripherals] == [DEVICE_ID]


def test_public_client_commands(tmp_path: Path) -> None:
    client = _client(tmp_path)

    result = client.read_address("gateway")
    assert result.peripheral.hardware_address_suffix == "1234"

    result = client.set_commissioning(DEVICE_ID, True)
    assert result.frame_hex == "020101"
    assert result.peripheral.commissioning_enabled is CommissioningState.ON
    assert result.peripheral.commissioning_indicator_active is True

    result = client.decommission("gateway")
    assert result.frame_hex == "020105"
    assert result.peripheral.sub_device_count == 0


def test_public_client_unknown_device(tmp_path: Path) -> None:
    client = _client(tmp_path)
    client.config = ScannerConfig(scan_duration_s=0.2)
    with pytest.raises(DeviceSelectionError):
        client.trigger_attention("garage")


def test_public_client_set_filters_persists(tmp_path: Path) -> None:
    client = _client(tmp_path)
    settings = client.set_filters(True, False)
    assert settings.by_service is True
    assert client.filter_settings.by_service is True
    assert (tmp_path / "config.yaml").exists()
