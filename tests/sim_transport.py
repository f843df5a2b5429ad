"""In-memory radio transports shared by the service, runtime and API tests."""

from __future__ import annotations

import asyncio

from dtsctl.core.constants import (
    DTS_INBOUND_CHAR_UUID,
    DTS_OUTBOUND_CHAR_UUID,
    DTS_SERVICE_UUID,
)
from dtsctl.core.model import (
    AdvertisementReceived,
    CharacteristicsDiscovered,
    Connected,
    NotificationReceived,
    ServicesDiscovered,
    TransportFailed,
    WriteCompleted,
)

DEVICE_ID = "C0:FF:EE:00:12:34"

RESPONSES = {
    bytes.fromhex("010103"): [bytes.fromhex("040403123401")],
    bytes.fromhex("010101"): [bytes.fromhex("04070112340000")],
    bytes.fromhex("020101"): [bytes.fromhex("050101")],
    bytes.fromhex("020102"): [bytes.fromhex("05010200")],
    bytes.fromhex("020103"): [bytes.fromhex("050103"), bytes.fromhex("050104")],
    bytes.fromhex("020105"): [bytes.fromhex("04020200")],
}


class RecordingTransport:
    """Records every call; the test feeds events by hand."""

    def __init__(self) -> None:
        self.calls: list[tuple[object, ...]] = []

    def start_scan(self) -> None:
        self.calls.append(("start_scan",))

    def stop_scan(self) -> None:
        self.calls.append(("stop_scan",))

    def connect(self, peripheral_id: str) -> None:
        self.calls.append(("connect", peripheral_id))

    def disconnect(self, peripheral_id: str) -> None:
        self.calls.append(("disconnect", peripheral_id))

    def discover_services(self, peripheral_id: str, service_ids: tuple[str, ...]) -> None:
        self.calls.append(("discover_services", peripheral_id))

    def discover_characteristics(
        self,
        peripheral_id: str,
        service_id: str,
        characteristic_ids: tuple[str, ...],
    ) -> None:
        self.calls.append(("discover_characteristics", peripheral_id))

    def enable_notifications(self, peripheral_id: str, characteristic_id: str) -> None:
        self.calls.append(("enable_notifications", peripheral_id, characteristic_id))

    def write(self, peripheral_id: str, characteristic_id: str, data: bytes, *, with_response: bool) -> None:
        self.calls.append(("write", peripheral_id, characteristic_id, data, with_response))

    def names(self) -> list[object]:
        return [call[0] for call in self.calls]


class SimulatedTransport(RecordingTransport):
    """Answers like a well-behaved device; must be built inside a running loop.

    Local disconnects are not echoed back as events, matching the bleak adapter.
    """

    def __init__(
        self,
        *,
        name: str = "LCC Gateway",
        silent: bool = False,
        connect_error: str | None = None,
    ) -> None:
        super().__init__()
        self.name = name
        self.silent = silent
        self.connect_error = connect_error
        self.events: asyncio.Queue[object] = asyncio.Queue()
        self.closed = False

    def start_scan(self) -> None:
        super().start_scan()
        self.events.put_nowait(
            AdvertisementReceived(DEVICE_ID, rssi=-45, name=self.name, service_ids=(DTS_SERVICE_UUID,))
        )

    def connect(self, peripheral_id: str) -> None:
        super().connect(peripheral_id)
        if self.connect_error is not None:
            self.events.put_nowait(TransportFailed(peripheral_id, self.connect_error))
            return
        self.events.put_nowait(Connected(peripheral_id))

    def discover_services(self, peripheral_id: str, service_ids: tuple[str, ...]) -> None:
        super().discover_services(peripheral_id, service_ids)
        self.events.put_nowait(ServicesDiscovered(peripheral_id, (DTS_SERVICE_UUID,)))

    def discover_characteristics(
        self,
        peripheral_id: str,
        service_id: str,
        characteristic_ids: tuple[str, ...],
    ) -> None:
        super().discover_characteristics(peripheral_id, service_id, characteristic_ids)
        self.events.put_nowait(
            CharacteristicsDiscovered(peripheral_id, (DTS_INBOUND_CHAR_UUID, DTS_OUTBOUND_CHAR_UUID))
        )

    def write(self, peripheral_id: str, characteristic_id: str, data: bytes, *, with_response: bool) -> None:
        super().write(peripheral_id, characteristic_id, data, with_response=with_response)
        self.events.put_nowait(WriteCompleted(peripheral_id))
        if self.silent:
            return
        for frame in RESPONSES.get(data, []):
            self.events.put_nowait(NotificationReceived(peripheral_id, frame))

    async def aclose(self) -> None:
        self.closed = True
