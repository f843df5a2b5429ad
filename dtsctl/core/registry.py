"""Identifier-keyed registry of discovered peripherals."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import replace

from dtsctl.core.constants import RSSI_UNKNOWN, UNKNOWN_NAME, normalize_uuid
from dtsctl.core.model import CommissioningState, Peripheral

LOGGER = logging.getLogger(__name__)


class PeripheralRegistry:
    """Owns every known :class:`Peripheral`, one entry per transport identifier.

    Entries are immutable snapshots; each mutator swaps in a new snapshot so
    callers holding an old one never observe partial updates. Insertion order
    is preserved and nothing is ever evicted.
    """

    def __init__(self) -> None:
        self._peripherals: dict[str, Peripheral] = {}

    def __len__(self) -> int:
        return len(self._peripherals)

    def __iter__(self) -> Iterator[Peripheral]:
        return iter(list(self._peripherals.values()))

    def __contains__(self, peripheral_id: object) -> bool:
        return peripheral_id in self._peripherals

    def lookup(self, peripheral_id: str) -> Peripheral | None:
        return self._peripherals.get(peripheral_id)

    def upsert_from_advertisement(
        self,
        peripheral_id: str,
        *,
        rssi: int,
        name: str | None = None,
        service_ids: Iterable[str] | None = None,
    ) -> Peripheral:
        current = self._peripherals.get(peripheral_id) or Peripheral(id=peripheral_id)

        updated = replace(
            current,
            advertised_name=name if name else UNKNOWN_NAME,
            advertised_service_ids=(
                frozenset(normalize_uuid(s) for s in service_ids)
                if service_ids is not None
                else None
            ),
        )
        if rssi != RSSI_UNKNOWN:
            updated = replace(
                updated,
                rssi=rssi,
                highest_rssi=max(updated.highest_rssi, rssi),
            )

        self._peripherals[peripheral_id] = updated
        return updated

    def apply_address_suffix(self, peripheral_id: str, byte_hi: int, byte_lo: int) -> Peripheral | None:
        suffix = f"{byte_hi & 0xFF:02x}{byte_lo & 0xFF:02x}"
        return self._update(peripheral_id, hardware_address_suffix=suffix)

    def apply_commissioning_state(self, peripheral_id: str, enabled: bool) -> Peripheral | None:
        state = CommissioningState.ON if enabled else CommissioningState.OFF
        return self._update(peripheral_id, commissioning_enabled=state)

    def apply_sub_device_count(self, peripheral_id: str, count: int) -> Peripheral | None:
        count &= 0xFF
        return self._update(
            peripheral_id,
            sub_device_count=count,
            has_commissioned_sub_devices=count > 0,
        )

    def apply_attention_state(self, peripheral_id: str, active: bool) -> Peripheral | None:
        return self._update(peripheral_id, attention_active=active)

    def apply_commissioning_indicator(self, peripheral_id: str, active: bool) -> Peripheral | None:
        return self._update(peripheral_id, commissioning_indicator_active=active)

    def mark_protocol_support(self, peripheral_id: str, supported: bool) -> Peripheral | None:
        return self._update(peripheral_id, protocol_supported=supported)

    def _update(self, peripheral_id: str, **changes: object) -> Peripheral | None:
        current = self._peripherals.get(peripheral_id)
        if current is None:
            LOGGER.debug("Ignoring update for unknown peripheral %s: %s", peripheral_id, changes)
            return None
        updated = replace(current, **changes)
        self._peripherals[peripheral_id] = updated
        return updated
