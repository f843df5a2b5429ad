"""Service layer used by the runtime, CLI, and public API."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from dtsctl.core.config import load_config, save_filter_settings
from dtsctl.core.errors import DeviceSelectionError
from dtsctl.core.filters import FilteredView, matches_settings
from dtsctl.core.model import (
    AddressSuffix,
    AdvertisementReceived,
    ApplyUpdates,
    CharacteristicsDiscovered,
    Command,
    CommissioningChanged,
    Connect,
    DiscoverCharacteristics,
    DiscoverServices,
    Disconnect,
    Disconnected,
    Effect,
    EnableNotifications,
    Event,
    FilterSettings,
    IndicatorChanged,
    IndicatorKind,
    IssueCommand,
    MarkProtocolSupport,
    Peripheral,
    ScannerConfig,
    ServicesDiscovered,
    Session,
    SessionState,
    StepResult,
    SubDeviceCount,
    TransportFailed,
    WriteFrame,
)
from dtsctl.core.registry import PeripheralRegistry
from dtsctl.core.session import step
from dtsctl.transports.base import RadioTransport

LOGGER = logging.getLogger(__name__)

TRANSACTION_TIMEOUT_REASON = "transaction timed out"

Listener = Callable[[Peripheral], None]


class ScannerService:
    """Single control flow that owns the registry, filtered view and session.

    Every transport event goes through :meth:`dispatch`; nothing else mutates
    state, so no locking is needed as long as events are delivered serially.
    """

    def __init__(
        self,
        *,
        transport: RadioTransport,
        config: ScannerConfig | None = None,
        config_path: Path | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.load_warnings: tuple[str, ...] = ()
        if config is None:
            loaded = load_config(config_path)
            config = loaded.config
            config_path = loaded.path
            self.load_warnings = loaded.warnings
        self.config = config
        self.transport = transport
        self.registry = PeripheralRegistry()
        self.filtered_view = FilteredView()
        self.filter_settings = config.filters
        self._config_path = config_path
        self._clock = clock
        self._session: Session | None = None
        self._listeners: list[Listener] = []
        # Why the most recent session ended early, or None if it completed.
        self.last_error: str | None = None
        # State the failed session was in when it ended.
        self.last_error_state: SessionState | None = None

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def is_idle(self) -> bool:
        return self._session is None

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def get_filtered_view(self) -> list[Peripheral]:
        peripherals = (self.registry.lookup(pid) for pid in self.filtered_view.ids())
        return [p for p in peripherals if p is not None]

    def set_filters(self, by_service: bool, by_rssi: bool, *, persist: bool = True) -> list[Peripheral]:
        self.filter_settings = FilterSettings(by_service=by_service, by_rssi=by_rssi)
        self.filtered_view.reevaluate(self.registry, self.filter_settings)
        if persist:
            save_filter_settings(self.filter_settings, self._config_path)
        return self.get_filtered_view()

    def resolve(self, device_hint: str) -> Peripheral | None:
        """Find a discovered peripheral by exact id, else by unique name substring."""
        hint = device_hint.lower()
        exact = [p for p in self.registry if p.id.lower() == hint]
        if exact:
            return exact[0]
        named = [p for p in self.registry if hint in p.advertised_name.lower()]
        if len(named) > 1:
            candidates = ", ".join(f"{p.id} ({p.advertised_name})" for p in named)
            raise DeviceSelectionError(
                f"Multiple peripherals match '{device_hint}': {candidates}. Use the device id."
            )
        return named[0] if named else None

    def issue_command(self, peripheral_id: str, command: Command) -> bool:
        if peripheral_id not in self.registry:
            LOGGER.info("Rejecting %s: %s has not been discovered", command.value, peripheral_id)
            return False
        return self._step(IssueCommand(peripheral_id, command)).accepted

    def dispatch(self, event: Event) -> None:
        if isinstance(event, AdvertisementReceived):
            self._on_advertisement(event)
            return
        self._step(event)

    def check_timeouts(self, now: float | None = None) -> bool:
        session = self._session
        if session is None:
            return False
        now = self._clock() if now is None else now
        if now - session.started_at < self.config.transaction_timeout_s:
            return False
        self._step(TransportFailed(session.target_peripheral_id, TRANSACTION_TIMEOUT_REASON))
        return True

    def _on_advertisement(self, event: AdvertisementReceived) -> None:
        peripheral = self.registry.upsert_from_advertisement(
            event.peripheral_id,
            rssi=event.rssi,
            name=event.name,
            service_ids=event.service_ids,
        )
        self._notify(peripheral)

        # Admitted peripherals stay listed even if they stop matching.
        if self.filtered_view.contains(peripheral.id):
            return
        if not matches_settings(peripheral, self.filter_settings):
            return
        if peripheral.protocol_supported is True:
            self.filtered_view.admit(peripheral.id)
            return
        if peripheral.protocol_supported is None and self.is_idle:
            self._step(IssueCommand(peripheral.id, Command.READ_ADDRESS_AND_COUNT))

    def _step(self, event: Event) -> StepResult:
        previous = self._session
        result = step(
            previous,
            event,
            now=self._clock(),
            write_with_response=self.config.write_with_response,
        )
        self._session = result.session
        if previous is None and result.session is not None:
            self.last_error = None
            self.last_error_state = None
        elif previous is not None and result.session is None:
            self.last_error = _failure_reason(event)
            if self.last_error is not None:
                self.last_error_state = previous.state
        for effect in result.effects:
            self._execute(effect)
        return result

    def _execute(self, effect: Effect) -> None:
        if isinstance(effect, Connect):
            self.transport.connect(effect.peripheral_id)
        elif isinstance(effect, DiscoverServices):
            self.transport.discover_services(effect.peripheral_id, effect.service_ids)
        elif isinstance(effect, DiscoverCharacteristics):
            self.transport.discover_characteristics(
                effect.peripheral_id,
                effect.service_id,
                effect.characteristic_ids,
            )
        elif isinstance(effect, EnableNotifications):
            self.transport.enable_notifications(effect.peripheral_id, effect.characteristic_id)
        elif isinstance(effect, WriteFrame):
            self.transport.write(
                effect.peripheral_id,
                effect.characteristic_id,
                effect.data,
                with_response=effect.with_response,
            )
        elif isinstance(effect, Disconnect):
            self.transport.disconnect(effect.peripheral_id)
        elif isinstance(effect, ApplyUpdates):
            for update in effect.updates:
                self._apply_update(effect.peripheral_id, update)
        elif isinstance(effect, MarkProtocolSupport):
            self._notify(self.registry.mark_protocol_support(effect.peripheral_id, effect.supported))
            self._admit_if_matching(effect.peripheral_id)
        elif isinstance(effect, IndicatorChanged):
            if effect.kind is IndicatorKind.ATTENTION:
                updated = self.registry.apply_attention_state(effect.peripheral_id, effect.active)
            else:
                updated = self.registry.apply_commissioning_indicator(effect.peripheral_id, effect.active)
            self._notify(updated)

    def _apply_update(self, peripheral_id: str, update: object) -> None:
        if isinstance(update, AddressSuffix):
            updated = self.registry.apply_address_suffix(peripheral_id, update.byte_hi, update.byte_lo)
        elif isinstance(update, SubDeviceCount):
            updated = self.registry.apply_sub_device_count(peripheral_id, update.count)
        elif isinstance(update, CommissioningChanged):
            updated = self.registry.apply_commissioning_state(peripheral_id, update.enabled)
        else:
            # Attention flags are driven by IndicatorChanged effects.
            return
        self._notify(updated)

    def _admit_if_matching(self, peripheral_id: str) -> None:
        peripheral = self.registry.lookup(peripheral_id)
        if peripheral is None or peripheral.protocol_supported is not True:
            return
        if matches_settings(peripheral, self.filter_settings):
            self.filtered_view.admit(peripheral_id)

    def _notify(self, peripheral: Peripheral | None) -> None:
        if peripheral is None:
            return
        for listener in self._listeners:
            listener(peripheral)


def _failure_reason(event: Event) -> str | None:
    if isinstance(event, TransportFailed):
        return event.reason
    if isinstance(event, Disconnected):
        return "peripheral disconnected before the response arrived"
    if isinstance(event, ServicesDiscovered):
        return "peripheral does not expose the data transfer service"
    if isinstance(event, CharacteristicsDiscovered):
        return "peripheral is missing the data transfer characteristics"
    return None
