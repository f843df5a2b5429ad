"""BLE GATT transport implementation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from dtsctl.core.model import (
    AdvertisementReceived,
    CharacteristicsDiscovered,
    Connected,
    Disconnected,
    Event,
    NotificationReceived,
    ServicesDiscovered,
    TransportFailed,
    WriteCompleted,
)

LOGGER = logging.getLogger(__name__)

_USABLE_PROPERTIES = frozenset({"notify", "indicate", "write", "write-without-response"})


class BleakRadioTransport:
    """``RadioTransport`` backed by bleak.

    Must be created and driven from inside a running event loop. Every bleak
    callback and every completed operation is posted to :attr:`events`, so the
    consumer sees them serially and in arrival order.
    """

    def __init__(self, *, connection_timeout_s: float = 20.0, max_retries: int = 3) -> None:
        self.connection_timeout_s = connection_timeout_s
        self.max_retries = max_retries
        self.events: asyncio.Queue[Event] = asyncio.Queue()
        self._scanner: BleakScanner | None = None
        self._devices: dict[str, BLEDevice] = {}
        self._clients: dict[str, BleakClient] = {}
        self._tasks: set[asyncio.Task[bool]] = set()
        # Pending start_notify per peripheral; writes wait on it.
        self._subscriptions: dict[str, asyncio.Task[bool]] = {}

    def start_scan(self) -> None:
        if self._scanner is None:
            self._scanner = BleakScanner(detection_callback=self._on_detection)
        self._spawn(None, self._scanner.start)

    def stop_scan(self) -> None:
        if self._scanner is not None:
            self._spawn(None, self._scanner.stop)

    def connect(self, peripheral_id: str) -> None:
        self._spawn(peripheral_id, lambda: self._connect(peripheral_id))

    def disconnect(self, peripheral_id: str) -> None:
        # Only links dropped by the peripheral are reported as Disconnected.
        client = self._clients.pop(peripheral_id, None)
        self._subscriptions.pop(peripheral_id, None)
        if client is None:
            return
        self._spawn(peripheral_id, client.disconnect)

    def discover_services(self, peripheral_id: str, service_ids: tuple[str, ...]) -> None:
        # bleak resolves the whole GATT table while connecting.
        client = self._client_or_fail(peripheral_id)
        if client is None:
            return
        found = tuple(service.uuid for service in client.services)
        self._post(ServicesDiscovered(peripheral_id, found))

    def discover_characteristics(
        self,
        peripheral_id: str,
        service_id: str,
        characteristic_ids: tuple[str, ...],
    ) -> None:
        client = self._client_or_fail(peripheral_id)
        if client is None:
            return
        service = client.services.get_service(service_id)
        if service is None:
            self._post(CharacteristicsDiscovered(peripheral_id, ()))
            return
        found = tuple(
            char.uuid
            for char in service.characteristics
            if _USABLE_PROPERTIES.intersection(char.properties)
        )
        self._post(CharacteristicsDiscovered(peripheral_id, found))

    def enable_notifications(self, peripheral_id: str, characteristic_id: str) -> None:
        client = self._client_or_fail(peripheral_id)
        if client is None:
            return

        def _handler(_: BleakGATTCharacteristic, data: bytearray) -> None:
            self._post(NotificationReceived(peripheral_id, bytes(data)))

        self._subscriptions[peripheral_id] = self._spawn(
            peripheral_id, lambda: client.start_notify(characteristic_id, _handler)
        )

    def write(
        self,
        peripheral_id: str,
        characteristic_id: str,
        data: bytes,
        *,
        with_response: bool,
    ) -> None:
        client = self._client_or_fail(peripheral_id)
        if client is None:
            return

        subscription = self._subscriptions.pop(peripheral_id, None)

        async def _write() -> None:
            # A response sent before start_notify completes is lost.
            if subscription is not None and not await subscription:
                return
            await client.write_gatt_char(characteristic_id, data, response=with_response)
            self._post(WriteCompleted(peripheral_id))

        self._spawn(peripheral_id, _write)

    async def aclose(self) -> None:
        if self._scanner is not None:
            try:
                await self._scanner.stop()
            except BleakError as exc:
                LOGGER.debug("Stopping scanner failed: %s", exc)
        for peripheral_id, client in list(self._clients.items()):
            try:
                await client.disconnect()
            except (BleakError, OSError) as exc:
                LOGGER.debug("Disconnecting %s failed: %s", peripheral_id, exc)
        for task in list(self._tasks):
            task.cancel()
        self._clients.clear()
        self._subscriptions.clear()

    async def _connect(self, peripheral_id: str) -> None:
        target = self._devices.get(peripheral_id, peripheral_id)
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            client = BleakClient(
                target,
                disconnected_callback=lambda c: self._on_disconnected(peripheral_id, c),
                timeout=self.connection_timeout_s,
            )
            try:
                await client.connect()
            except (BleakError, OSError, asyncio.TimeoutError) as exc:
                last_error = exc
                LOGGER.warning(
                    "Connect to %s failed (attempt %d/%d): %s",
                    peripheral_id,
                    attempt,
                    self.max_retries,
                    exc,
                )
                continue
            self._clients[peripheral_id] = client
            self._post(Connected(peripheral_id))
            return
        raise BleakError(f"BLE connect failed for {peripheral_id}: {last_error}")

    def _client_or_fail(self, peripheral_id: str) -> BleakClient | None:
        client = self._clients.get(peripheral_id)
        if client is None or not client.is_connected:
            self._post(TransportFailed(peripheral_id, "not connected"))
            return None
        return client

    def _on_detection(self, device: BLEDevice, advertisement: AdvertisementData) -> None:
        self._devices[device.address] = device
        self._post(
            AdvertisementReceived(
                peripheral_id=device.address,
                rssi=advertisement.rssi,
                name=advertisement.local_name,
                service_ids=tuple(advertisement.service_uuids) or None,
            )
        )

    def _on_disconnected(self, peripheral_id: str, client: BleakClient) -> None:
        # A client replaced by a newer connection must not end the new session.
        if self._clients.get(peripheral_id) is not client:
            return
        del self._clients[peripheral_id]
        self._subscriptions.pop(peripheral_id, None)
        self._post(Disconnected(peripheral_id))

    def _post(self, event: Event) -> None:
        self.events.put_nowait(event)

    def _spawn(
        self,
        peripheral_id: str | None,
        operation: Callable[[], Awaitable[object]],
    ) -> asyncio.Task[bool]:
        """Run ``operation`` in the background; the task result tells whether it succeeded."""

        async def _run() -> bool:
            try:
                await operation()
            except (BleakError, OSError, asyncio.TimeoutError) as exc:
                LOGGER.warning("BLE operation failed for %s: %s", peripheral_id or "scanner", exc)
                if peripheral_id is not None:
                    self._post(TransportFailed(peripheral_id, str(exc)))
                return False
            return True

        task = asyncio.get_running_loop().create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
