"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol


class RadioTransport(Protocol):
    """Non-blocking BLE central operations.

    Every call only starts the operation. Its outcome is delivered later as an
    event (``Connected``, ``ServicesDiscovered``, ``TransportFailed``, ...)
    keyed by peripheral id. ``Disconnected`` is only posted for links the
    peripheral dropped, never in answer to :meth:`disconnect`.
    """

    def start_scan(self) -> None: ...

    def stop_scan(self) -> None: ...

    def connect(self, peripheral_id: str) -> None: ...

    def disconnect(self, peripheral_id: str) -> None: ...

    def discover_services(self, peripheral_id: str, service_ids: tuple[str, ...]) -> None: ...

    def discover_characteristics(
        self,
        peripheral_id: str,
        service_id: str,
        characteristic_ids: tuple[str, ...],
    ) -> None: ...

    def enable_notifications(self, peripheral_id: str, characteristic_id: str) -> None: ...

    def write(
        self,
        peripheral_id: str,
        characteristic_id: str,
        data: bytes,
        *,
        with_response: bool,
    ) -> None: ...
