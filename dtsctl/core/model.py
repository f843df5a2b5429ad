"""Core data models used across registry, codec, session, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from dtsctl.core.constants import RSSI_FLOOR, UNKNOWN_NAME


class Command(Enum):
    NONE = "none"
    READ_ADDRESS = "read_address"
    READ_ADDRESS_AND_COUNT = "read_address_and_count"
    ENABLE_COMMISSIONING = "enable_commissioning"
    DISABLE_COMMISSIONING = "disable_commissioning"
    DECOMMISSION = "decommission"
    TRIGGER_ATTENTION = "trigger_attention"


class CommissioningState(Enum):
    UNKNOWN = "unknown"
    OFF = "off"
    ON = "on"


class SessionState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    DISCOVERING_SERVICES = "discovering_services"
    DISCOVERING_CHARACTERISTICS = "discovering_characteristics"
    WRITING = "writing"
    AWAITING_NOTIFICATION = "awaiting_notification"


class IndicatorKind(Enum):
    ATTENTION = "attention"
    COMMISSIONING = "commissioning"


@dataclass(frozen=True)
class Peripheral:
    id: str
    advertised_name: str = UNKNOWN_NAME
    advertised_service_ids: frozenset[str] | None = None
    rssi: int = RSSI_FLOOR
    highest_rssi: int = RSSI_FLOOR
    hardware_address_suffix: str | None = None
    commissioning_enabled: CommissioningState = CommissioningState.UNKNOWN
    has_commissioned_sub_devices: bool = False
    sub_device_count: int | None = None
    attention_active: bool = False
    commissioning_indicator_active: bool = False
    protocol_supported: bool | None = None


@dataclass(frozen=True)
class FilterSettings:
    by_service: bool = False
    by_rssi: bool = False


@dataclass(frozen=True)
class ScannerConfig:
    filters: FilterSettings = FilterSettings()
    connection_timeout_s: float = 20.0
    transaction_timeout_s: float = 30.0
    max_retries: int = 3
    write_with_response: bool = False
    scan_duration_s: float = 10.0


@dataclass(frozen=True)
class Session:
    """One in-flight command/response transaction with one peripheral."""

    target_peripheral_id: str
    command: Command
    state: SessionState
    started_at: float


# Typed results of decoding an inbound frame.


@dataclass(frozen=True)
class AddressSuffix:
    byte_hi: int
    byte_lo: int


@dataclass(frozen=True)
class SubDeviceCount:
    count: int


@dataclass(frozen=True)
class CommissioningChanged:
    enabled: bool


@dataclass(frozen=True)
class AttentionChanged:
    active: bool


FrameUpdate = Union[AddressSuffix, SubDeviceCount, CommissioningChanged, AttentionChanged]


@dataclass(frozen=True)
class DecodedFrame:
    frame_class: int
    sub_opcode: int
    updates: tuple[FrameUpdate, ...]


# Transport and caller events consumed by the session state machine.


@dataclass(frozen=True)
class AdvertisementReceived:
    peripheral_id: str
    rssi: int
    name: str | None = None
    service_ids: tuple[str, ...] | None = None


@dataclass(frozen=True)
class IssueCommand:
    peripheral_id: str
    command: Command


@dataclass(frozen=True)
class Connected:
    peripheral_id: str


@dataclass(frozen=True)
class ServicesDiscovered:
    peripheral_id: str
    service_ids: tuple[str, ...]


@dataclass(frozen=True)
class CharacteristicsDiscovered:
    peripheral_id: str
    characteristic_ids: tuple[str, ...]


@dataclass(frozen=True)
class WriteCompleted:
    peripheral_id: str


@dataclass(frozen=True)
class NotificationReceived:
    peripheral_id: str
    data: bytes


@dataclass(frozen=True)
class Disconnected:
    peripheral_id: str


@dataclass(frozen=True)
class TransportFailed:
    peripheral_id: str
    reason: str


Event = Union[
    AdvertisementReceived,
    IssueCommand,
    Connected,
    ServicesDiscovered,
    CharacteristicsDiscovered,
    WriteCompleted,
    NotificationReceived,
    Disconnected,
    TransportFailed,
]


# Effects requested by the session state machine.


@dataclass(frozen=True)
class Connect:
    peripheral_id: str


@dataclass(frozen=True)
class DiscoverServices:
    peripheral_id: str
    service_ids: tuple[str, ...]


@dataclass(frozen=True)
class DiscoverCharacteristics:
    peripheral_id: str
    service_id: str
    characteristic_ids: tuple[str, ...]


@dataclass(frozen=True)
class EnableNotifications:
    peripheral_id: str
    characteristic_id: str


@dataclass(frozen=True)
class WriteFrame:
    peripheral_id: str
    characteristic_id: str
    data: bytes
    with_response: bool


@dataclass(frozen=True)
class Disconnect:
    peripheral_id: str


@dataclass(frozen=True)
class ApplyUpdates:
    peripheral_id: str
    updates: tuple[FrameUpdate, ...]


@dataclass(frozen=True)
class MarkProtocolSupport:
    peripheral_id: str
    supported: bool


@dataclass(frozen=True)
class IndicatorChanged:
    peripheral_id: str
    kind: IndicatorKind
    active: bool


Effect = Union[
    Connect,
    DiscoverServices,
    DiscoverCharacteristics,
    EnableNotifications,
    WriteFrame,
    Disconnect,
    ApplyUpdates,
    MarkProtocolSupport,
    IndicatorChanged,
]


@dataclass(frozen=True)
class StepResult:
    session: Session | None
    effects: tuple[Effect, ...] = ()
    accepted: bool = True


@dataclass(frozen=True)
class CommandResult:
    peripheral: Peripheral
    command: Command
    frame_hex: str
