"""Peripheral filter predicate and the admission-gated filtered view."""

from __future__ import annotations

from collections.abc import Iterable

from dtsctl.core.constants import FILTER_SERVICE_UUIDS, RSSI_FILTER_THRESHOLD
from dtsctl.core.model import FilterSettings, Peripheral


def _service_match(peripheral: Peripheral) -> bool:
    if peripheral.advertised_service_ids is None:
        return False
    return not FILTER_SERVICE_UUIDS.isdisjoint(peripheral.advertised_service_ids)


def _rssi_match(peripheral: Peripheral) -> bool:
    return peripheral.highest_rssi >= RSSI_FILTER_THRESHOLD


def matches(peripheral: Peripheral, filter_by_service: bool, filter_by_rssi: bool) -> bool:
    if filter_by_service and not _service_match(peripheral):
        return False
    if filter_by_rssi and not _rssi_match(peripheral):
        return False
    return True


def matches_settings(peripheral: Peripheral, settings: FilterSettings) -> bool:
    return matches(peripheral, settings.by_service, settings.by_rssi)


class FilteredView:
    """Peripheral ids admitted to the user-visible list, in admission order.

    Admission is one-way: an admitted id stays until :meth:`reevaluate` is
    called after an explicit filter change.
    """

    def __init__(self) -> None:
        self._ids: dict[str, None] = {}

    def __len__(self) -> int:
        return len(self._ids)

    def contains(self, peripheral_id: str) -> bool:
        return peripheral_id in self._ids

    def admit(self, peripheral_id: str) -> bool:
        if peripheral_id in self._ids:
            return False
        self._ids[peripheral_id] = None
        return True

    def ids(self) -> list[str]:
        return list(self._ids)

    def reevaluate(self, peripherals: Iterable[Peripheral], settings: FilterSettings) -> list[str]:
        self._ids = {
            p.id: None
            for p in peripherals
            if p.protocol_supported is True and matches_settings(p, settings)
        }
        return self.ids()
