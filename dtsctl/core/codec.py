"""Wire codec for frames exchanged over the DTS characteristics.

Outbound frames are fixed three-byte commands ``[group, length, opcode]``.
Inbound notifications carry ``[class, declared_length, sub_opcode, payload...]``;
the declared length is only used as a minimum-length guard. Decoding never
raises: short or unknown frames yield ``None`` and are dropped by the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from dtsctl.core.model import (
    AddressSuffix,
    AttentionChanged,
    Command,
    CommissioningChanged,
    DecodedFrame,
    FrameUpdate,
    SubDeviceCount,
)

LOGGER = logging.getLogger(__name__)

GENERIC_REQUEST_RESPONSE = 0x04
GENERIC_COMMAND_RESPONSE = 0x05

_COMMAND_FRAMES: dict[Command, bytes] = {
    Command.NONE: b"",
    Command.READ_ADDRESS: bytes((0x01, 0x01, 0x01)),
    Command.READ_ADDRESS_AND_COUNT: bytes((0x01, 0x01, 0x03)),
    Command.ENABLE_COMMISSIONING: bytes((0x02, 0x01, 0x01)),
    Command.DISABLE_COMMISSIONING: bytes((0x02, 0x01, 0x02)),
    Command.TRIGGER_ATTENTION: bytes((0x02, 0x01, 0x03)),
    Command.DECOMMISSION: bytes((0x02, 0x01, 0x05)),
}


@dataclass(frozen=True)
class _Layout:
    min_length: int
    # Highest payload index read, so the buffer can be bounds-checked.
    last_index: int

    @property
    def required_bytes(self) -> int:
        # A frame whose buffer is shorter than its declared minimum is truncated,
        # even if the bytes actually read are present.
        return max(self.min_length, self.last_index + 1)


_LAYOUTS: dict[tuple[int, int], _Layout] = {
    (GENERIC_REQUEST_RESPONSE, 0x01): _Layout(min_length=7, last_index=4),
    (GENERIC_REQUEST_RESPONSE, 0x03): _Layout(min_length=4, last_index=5),
    (GENERIC_REQUEST_RESPONSE, 0x02): _Layout(min_length=2, last_index=3),
    (GENERIC_COMMAND_RESPONSE, 0x01): _Layout(min_length=1, last_index=2),
    (GENERIC_COMMAND_RESPONSE, 0x02): _Layout(min_length=1, last_index=3),
    (GENERIC_COMMAND_RESPONSE, 0x03): _Layout(min_length=1, last_index=2),
    (GENERIC_COMMAND_RESPONSE, 0x04): _Layout(min_length=1, last_index=2),
}


def encode_command(command: Command) -> bytes:
    return _COMMAND_FRAMES[command]


def describe_frame(data: bytes | bytearray) -> str:
    return bytes(data).hex(" ") if data else "<empty>"


def decode_frame(data: bytes | bytearray) -> DecodedFrame | None:
    frame = bytes(data)
    if len(frame) < 3:
        LOGGER.debug("Discarding short frame: %s", describe_frame(frame))
        return None

    frame_class, declared_length, sub_opcode = frame[0], frame[1], frame[2]
    layout = _LAYOUTS.get((frame_class, sub_opcode))
    if layout is None:
        LOGGER.debug(
            "Ignoring frame class 0x%02x sub-opcode 0x%02x: %s",
            frame_class,
            sub_opcode,
            describe_frame(frame),
        )
        return None

    if declared_length < layout.min_length or len(frame) < layout.required_bytes:
        LOGGER.debug("Discarding malformed frame: %s", describe_frame(frame))
        return None

    return DecodedFrame(
        frame_class=frame_class,
        sub_opcode=sub_opcode,
        updates=_updates_for(frame_class, sub_opcode, frame),
    )


def _updates_for(frame_class: int, sub_opcode: int, frame: bytes) -> tuple[FrameUpdate, ...]:
    if frame_class == GENERIC_REQUEST_RESPONSE:
        if sub_opcode == 0x01:
            return (AddressSuffix(frame[3], frame[4]),)
        if sub_opcode == 0x03:
            return (AddressSuffix(frame[3], frame[4]), SubDeviceCount(frame[5]))
        return (SubDeviceCount(frame[3]),)

    if sub_opcode == 0x01:
        return (CommissioningChanged(enabled=True),)
    if sub_opcode == 0x02:
        return (CommissioningChanged(enabled=False), SubDeviceCount(frame[3]))
    if sub_opcode == 0x03:
        return (AttentionChanged(active=True),)
    return (AttentionChanged(active=False),)
