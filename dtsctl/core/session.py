"""Transaction state machine for a single in-flight DTS command.

``step`` is a pure function: given the current session (``None`` when idle)
and one event, it returns the next session and the effects the caller must
carry out. Only one session exists at a time; holding one is what keeps a
second command from being issued.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from dtsctl.core.codec import decode_frame, describe_frame, encode_command
from dtsctl.core.constants import (
    DTS_INBOUND_CHAR_UUID,
    DTS_OUTBOUND_CHAR_UUID,
    DTS_SERVICE_UUID,
    PROTOCOL_MARKER_UUIDS,
    normalize_uuid,
)
from dtsctl.core.model import (
    ApplyUpdates,
    AttentionChanged,
    CharacteristicsDiscovered,
    Command,
    CommissioningChanged,
    Connect,
    Connected,
    DiscoverCharacteristics,
    DiscoverServices,
    Disconnect,
    Disconnected,
    Effect,
    EnableNotifications,
    Event,
    IndicatorChanged,
    IndicatorKind,
    IssueCommand,
    MarkProtocolSupport,
    NotificationReceived,
    ServicesDiscovered,
    Session,
    SessionState,
    StepResult,
    TransportFailed,
    WriteCompleted,
    WriteFrame,
)

LOGGER = logging.getLogger(__name__)

_AWAITING_STATES = (SessionState.WRITING, SessionState.AWAITING_NOTIFICATION)


def step(
    session: Session | None,
    event: Event,
    *,
    now: float,
    write_with_response: bool = False,
) -> StepResult:
    if isinstance(event, IssueCommand):
        return _issue(session, event, now)

    peripheral_id = getattr(event, "peripheral_id", None)
    if session is None or peripheral_id != session.target_peripheral_id:
        LOGGER.debug("Ignoring %s for %s: no matching session", type(event).__name__, peripheral_id)
        return StepResult(session=session)

    if isinstance(event, Disconnected):
        return _finish_on_disconnect(session)
    if isinstance(event, TransportFailed):
        LOGGER.warning(
            "Aborting %s on %s in state %s: %s",
            session.command.value,
            session.target_peripheral_id,
            session.state.value,
            event.reason,
        )
        return StepResult(
            session=None,
            effects=_teardown_indicators(session) + (Disconnect(session.target_peripheral_id),),
        )

    if session.state is SessionState.CONNECTING and isinstance(event, Connected):
        return StepResult(
            session=replace(session, state=SessionState.DISCOVERING_SERVICES),
            effects=(DiscoverServices(session.target_peripheral_id, (DTS_SERVICE_UUID,)),),
        )
    if session.state is SessionState.DISCOVERING_SERVICES and isinstance(event, ServicesDiscovered):
        return _on_services(session, event)
    if session.state is SessionState.DISCOVERING_CHARACTERISTICS and isinstance(
        event, CharacteristicsDiscovered
    ):
        return _on_characteristics(session, event, write_with_response)
    if session.state is SessionState.WRITING and isinstance(event, WriteCompleted):
        return StepResult(session=replace(session, state=SessionState.AWAITING_NOTIFICATION))
    # A notification may overtake the write acknowledgement.
    if session.state in _AWAITING_STATES and isinstance(event, NotificationReceived):
        return _on_notification(session, event)

    LOGGER.debug("Ignoring %s in state %s", type(event).__name__, session.state.value)
    return StepResult(session=session)


def _issue(session: Session | None, event: IssueCommand, now: float) -> StepResult:
    if session is not None:
        LOGGER.info(
            "Rejecting %s for %s: %s already in flight for %s",
            event.command.value,
            event.peripheral_id,
            session.command.value,
            session.target_peripheral_id,
        )
        return StepResult(session=session, accepted=False)
    if event.command is Command.NONE:
        return StepResult(session=None, accepted=False)

    LOGGER.info("Starting %s for %s", event.command.value, event.peripheral_id)
    return StepResult(
        session=Session(
            target_peripheral_id=event.peripheral_id,
            command=event.command,
            state=SessionState.CONNECTING,
            started_at=now,
        ),
        effects=(Connect(event.peripheral_id),),
    )


def _on_services(session: Session, event: ServicesDiscovered) -> StepResult:
    found = {normalize_uuid(s) for s in event.service_ids}
    peripheral_id = session.target_peripheral_id
    if DTS_SERVICE_UUID not in found or PROTOCOL_MARKER_UUIDS.isdisjoint(found):
        LOGGER.info("%s does not expose the data transfer service; disconnecting", peripheral_id)
        return StepResult(
            session=None,
            effects=(MarkProtocolSupport(peripheral_id, False), Disconnect(peripheral_id)),
        )

    return StepResult(
        session=replace(session, state=SessionState.DISCOVERING_CHARACTERISTICS),
        effects=(
            MarkProtocolSupport(peripheral_id, True),
            DiscoverCharacteristics(
                peripheral_id,
                DTS_SERVICE_UUID,
                (DTS_INBOUND_CHAR_UUID, DTS_OUTBOUND_CHAR_UUID),
            ),
        ),
    )


def _on_characteristics(
    session: Session,
    event: CharacteristicsDiscovered,
    write_with_response: bool,
) -> StepResult:
    found = {normalize_uuid(c) for c in event.characteristic_ids}
    peripheral_id = session.target_peripheral_id
    if DTS_INBOUND_CHAR_UUID not in found or DTS_OUTBOUND_CHAR_UUID not in found:
        LOGGER.warning("%s is missing data transfer characteristics; disconnecting", peripheral_id)
        return StepResult(session=None, effects=(Disconnect(peripheral_id),))

    return StepResult(
        session=replace(session, state=SessionState.WRITING),
        effects=(
            EnableNotifications(peripheral_id, DTS_INBOUND_CHAR_UUID),
            WriteFrame(
                peripheral_id,
                DTS_OUTBOUND_CHAR_UUID,
                encode_command(session.command),
                write_with_response,
            ),
        ),
    )


def _on_notification(session: Session, event: NotificationReceived) -> StepResult:
    decoded = decode_frame(event.data)
    if decoded is None:
        return StepResult(session=session)

    peripheral_id = session.target_peripheral_id
    LOGGER.debug("Notification from %s: %s", peripheral_id, describe_frame(event.data))
    effects: list[Effect] = [ApplyUpdates(peripheral_id, decoded.updates)]
    keep_open = False
    for update in decoded.updates:
        if isinstance(update, CommissioningChanged):
            effects.append(IndicatorChanged(peripheral_id, IndicatorKind.COMMISSIONING, update.enabled))
        elif isinstance(update, AttentionChanged):
            effects.append(IndicatorChanged(peripheral_id, IndicatorKind.ATTENTION, update.active))
            # The connection is held until the attention timer expires.
            keep_open = keep_open or update.active

    if keep_open:
        return StepResult(
            session=replace(session, state=SessionState.AWAITING_NOTIFICATION),
            effects=tuple(effects),
        )

    LOGGER.info("Finished %s for %s", session.command.value, peripheral_id)
    effects.append(Disconnect(peripheral_id))
    return StepResult(session=None, effects=tuple(effects))


def _finish_on_disconnect(session: Session) -> StepResult:
    LOGGER.info(
        "%s disconnected during %s (%s)",
        session.target_peripheral_id,
        session.command.value,
        session.state.value,
    )
    return StepResult(session=None, effects=_teardown_indicators(session))


def _teardown_indicators(session: Session) -> tuple[Effect, ...]:
    # Losing the link cancels the attention blink; commissioning outlives it.
    if session.command is Command.TRIGGER_ATTENTION:
        return (IndicatorChanged(session.target_peripheral_id, IndicatorKind.ATTENTION, False),)
    return ()
