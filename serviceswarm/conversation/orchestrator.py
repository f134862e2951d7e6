"""
Turn orchestrator: the per-callback entry point of the dialogue engine.

Each inbound webhook is one turn. The orchestrator loads (or creates) the
call's session under its lock, runs the extraction the current state
needs, asks the state machine what happens next, saves the session, and
returns the directive for the telephony layer to render.

Two entry points share the same machinery:
    multi-turn:   start_call() then handle_turn() per spoken answer
    single-shot:  handle_recording() with a recorded utterance
"""

from dataclasses import dataclass
from typing import Optional

from serviceswarm.conversation.session_store import SessionStore
from serviceswarm.conversation.slots import BookingSlots
from serviceswarm.conversation.state_machine import (
    DialogueState,
    DialogueStateMachine,
    Directive,
    Step,
)
from serviceswarm.logging_context import bind_call_id, get_call_logger
from serviceswarm.prompts import prompt_templates as lines
from serviceswarm.schemas.extraction_schema import ExtractionFailed, TranscriptionFailed
from serviceswarm.schemas.session_schema import Session
from serviceswarm.tools.extractor import NluExtractor

logger = get_call_logger(__name__)

FOLLOW_UP_STATES = frozenset({DialogueState.AWAITING_DATE, DialogueState.AWAITING_TIME})


@dataclass(frozen=True)
class TurnInput:
    """What one callback carried: speech text, a recording, or (malformed) neither."""

    transcript: Optional[str] = None
    recording_url: Optional[str] = None
    expected_state: Optional[DialogueState] = None

    @property
    def has_speech(self) -> bool:
        return bool(self.transcript and self.transcript.strip())

    @property
    def has_audio(self) -> bool:
        return bool(self.recording_url)


class UnknownCallError(Exception):
    """A follow-up turn arrived for a call with no live session."""


class CallEndedError(Exception):
    """A turn arrived for a call whose dialogue has already finished."""


class TurnOrchestrator:
    """Ties extraction, the state machine, and the session store together."""

    def __init__(
        self,
        store: SessionStore,
        extractor: NluExtractor,
        machine: Optional[DialogueStateMachine] = None,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._machine = machine or DialogueStateMachine()

    async def start_call(self, call_id: str) -> Directive:
        """Greet a new caller. A repeated call-start re-asks the current question."""
        with bind_call_id(call_id):
            try:
                async with self._store.locked(call_id):
                    session = await self._store.get(call_id)
                    if session is not None:
                        logger.info("Duplicate call start in state '%s'", session.state.value)
                        session.touch()
                        await self._store.put(session)
                        return self._machine.prompt_for(session.state, session.slots)

                    if await self._store.has_ended(call_id):
                        logger.warning("Call start for a call that has already ended")
                        return Directive.hangup(lines.APOLOGY)

                    session = Session(call_id=call_id)
                    step = self._machine.next(session.state, session.slots)
                    session.enter(step.state)
                    await self._store.put(session)
                    logger.info("Call started")
                    return step.directive
            except Exception:
                logger.exception("Call start failed")
                return Directive.hangup(lines.APOLOGY)

    async def handle_turn(self, call_id: str, turn: TurnInput) -> Directive:
        """Process one caller turn and return the next directive. Never raises."""
        with bind_call_id(call_id):
            try:
                async with self._store.locked(call_id):
                    return await self._process(call_id, turn)
            except CallEndedError:
                logger.warning("Turn received after the call ended, ignoring")
                return Directive.hangup(lines.APOLOGY)
            except UnknownCallError:
                logger.warning(
                    "No session for follow-up turn (expected '%s')",
                    turn.expected_state.value if turn.expected_state else "?",
                )
                return Directive.hangup(lines.APOLOGY)
            except Exception:
                logger.exception("Turn failed, ending call")
                await self._store.delete(call_id)
                return Directive.hangup(lines.APOLOGY)

    async def handle_recording(
        self,
        call_id: str,
        recording_url: str,
        expected_state: Optional[DialogueState] = None,
    ) -> Directive:
        """Single-shot entry: transcribe a recorded utterance, then run the turn."""
        return await self.handle_turn(
            call_id, TurnInput(recording_url=recording_url, expected_state=expected_state)
        )

    async def _process(self, call_id: str, turn: TurnInput) -> Directive:
        session = await self._store.get(call_id)
        if session is None:
            if await self._store.has_ended(call_id):
                raise CallEndedError(call_id)
            if turn.expected_state in FOLLOW_UP_STATES:
                raise UnknownCallError(call_id)
            session = Session(call_id=call_id)
            logger.info("Session created on first content turn")

        if session.state == DialogueState.WELCOME:
            session.enter(self._machine.next(session.state, session.slots).state)

        if turn.expected_state and turn.expected_state != session.state:
            logger.warning(
                "Turn posted for '%s' but session is in '%s'",
                turn.expected_state.value, session.state.value,
            )

        text = turn.transcript.strip() if turn.has_speech else ""
        if not text and turn.has_audio:
            outcome = await self._extractor.transcribe(turn.recording_url)
            if isinstance(outcome, TranscriptionFailed):
                logger.warning("Recording unusable (%s), ending call", outcome.reason)
                await self._store.delete(call_id)
                return Directive.hangup(lines.RECORDING_APOLOGY)
            text = outcome.text

        if text:
            session.slots = await self._extract(session.state, session.slots, text)
            step = self._machine.next(session.state, session.slots, session.reprompts_in())
        else:
            logger.info("Turn carried no speech or recording, re-asking")
            step = self._machine.reprompt(session.state, session.reprompts_in())

        await self._commit(session, step)
        return step.directive

    async def _extract(self, state: DialogueState, slots: BookingSlots, text: str) -> BookingSlots:
        """Run the one extraction ``state`` calls for and merge it into ``slots``."""
        if state == DialogueState.AWAITING_INTENT:
            result = await self._extractor.extract_intent_and_slots(text)
            if isinstance(result, ExtractionFailed):
                logger.info("Extraction failed (%s), treating as non-booking", result.reason)
            return slots.merge(result).with_transcript(text)
        if state == DialogueState.AWAITING_DATE:
            return slots.with_date(await self._extractor.extract_date(text)).with_transcript(text)
        if state == DialogueState.AWAITING_TIME:
            return slots.with_time(await self._extractor.extract_time(text)).with_transcript(text)
        return slots.with_transcript(text)

    async def _commit(self, session: Session, step: Step) -> None:
        if step.is_reprompt:
            session.record_reprompt()
        session.enter(step.state)

        if self._machine.is_terminal(session.state):
            logger.info(
                "Dialogue ended in '%s' after %s: %s",
                session.state.value, " -> ".join(session.get_state_trace()),
                session.slots.to_dict(),
            )
            await self._store.delete(session.call_id)
        else:
            await self._store.put(session)
