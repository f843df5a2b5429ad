from __future__ import annotations

import asyncio
from types import SimpleNamespace

from bleak.exc import BleakError

from dtsctl.core.model import AdvertisementReceived, Disconnected, TransportFailed, WriteCompleted
from dtsctl.transports.ble_gatt import BleakRadioTransport


def _drain(queue: asyncio.Queue) -> list[object]:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


def test_detection_is_posted_as_advertisement() -> None:
    transport = BleakRadioTransport()
    device = SimpleNamespace(address="C0:FF:EE:00:12:34")
    advertisement = SimpleNamespace(
        rssi=-61,
        local_name=None,
        service_uuids=["09def0c1-7b06-4f33-8a82-7cb03e25e7f7"],
    )

    transport._on_detection(device, advertisement)
    transport._on_detection(device, SimpleNamespace(rssi=-58, local_name="LCC", service_uuids=[]))

    assert _drain(transport.events) == [
        AdvertisementReceived(
            "C0:FF:EE:00:12:34",
            rssi=-61,
            name=None,
            service_ids=("09def0c1-7b06-4f33-8a82-7cb03e25e7f7",),
        ),
        AdvertisementReceived("C0:FF:EE:00:12:34", rssi=-58, name="LCC", service_ids=None),
    ]


def test_stale_client_disconnect_is_dropped() -> None:
    transport = BleakRadioTransport()
    old_client = SimpleNamespace(is_connected=False)
    new_client = SimpleNamespace(is_connected=True)
    transport._clients["dev"] = new_client

    transport._on_disconnected("dev", old_client)
    assert _drain(transport.events) == []

    transport._on_disconnected("dev", new_client)
    assert _drain(transport.events) == [Disconnected("dev")]
    assert "dev" not in transport._clients


def test_operations_without_connection_fail_cleanly() -> None:
    transport = BleakRadioTransport()
    transport.discover_services("dev", ())
    transport.write("dev", "09def0c2-7b06-4f33-8a82-7cb03e25e7f7", b"\x01\x01\x01", with_response=False)
    transport.disconnect("dev")

    assert _drain(transport.events) == [
        TransportFailed("dev", "not connected"),
        TransportFailed("dev", "not connected"),
    ]


class FakeClient:
    def __init__(self, *, notify_error: Exception | None = None) -> None:
        self.is_connected = True
        self.calls: list[str] = []
        self.notify_error = notify_error

    async def start_notify(self, characteristic_id, handler) -> None:
        # Yield so a racing write would get in first.
        await asyncio.sleep(0.01)
        if self.notify_error is not None:
            raise self.notify_error
        self.calls.append("start_notify")

    async def write_gatt_char(self, characteristic_id, data, response=False) -> None:
        self.calls.append("write_gatt_char")

    async def disconnect(self) -> None:
        self.calls.append("disconnect")


def test_write_waits_for_notification_subscription() -> None:
    async def _main() -> tuple[FakeClient, object]:
        transport = BleakRadioTransport()
        client = FakeClient()
        transport._clients["dev"] = client
        transport.enable_notifications("dev", "09def0c3-7b06-4f33-8a82-7cb03e25e7f7")
        transport.write("dev", "09def0c2-7b06-4f33-8a82-7cb03e25e7f7", b"\x01\x01\x01", with_response=False)
        event = await asyncio.wait_for(transport.events.get(), timeout=1.0)
        return client, event

    client, event = asyncio.run(_main())
    assert client.calls == ["start_notify", "write_gatt_char"]
    assert event == WriteCompleted("dev")


def test_failed_subscription_skips_write() -> None:
    async def _main() -> tuple[FakeClient, list[object]]:
        transport = BleakRadioTransport()
        client = FakeClient(notify_error=BleakError("notify refused"))
        transport._clients["dev"] = client
        transport.enable_notifications("dev", "09def0c3-7b06-4f33-8a82-7cb03e25e7f7")
        transport.write("dev", "09def0c2-7b06-4f33-8a82-7cb03e25e7f7", b"\x01\x01\x01", with_response=False)
        await asyncio.gather(*transport._tasks)
        return client, _drain(transport.events)

    client, events = asyncio.run(_main())
    assert client.calls == []
    assert events == [TransportFailed("dev", "notify refused")]


def test_local_disconnect_is_not_reported() -> None:
    async def _main() -> tuple[FakeClient, list[object]]:
        transport = BleakRadioTransport()
        client = FakeClient()
        transport._clients["dev"] = client
        transport.disconnect("dev")
        # bleak fires the callback once the link is down.
        transport._on_disconnected("dev", client)
        await asyncio.gather(*transport._tasks)
        return client, _drain(transport.events)

    client, events = asyncio.run(_main())
    assert client.calls == ["disconnect"]
    assert events == []
