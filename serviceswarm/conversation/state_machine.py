"""
Finite state machine for the booking dialogue.

Given the state a call is in and the slots gathered so far, ``next`` decides
the following state and the directive the telephony layer should render.
Every edge is declared in ``TRANSITIONS``; the machine refuses anything else.

Usage:
    sm = DialogueStateMachine()
    step = sm.next(DialogueState.AWAITING_INTENT, slots)
    # step.state, step.directive
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from serviceswarm.config import settings
from serviceswarm.conversation.slots import BookingSlots
from serviceswarm.prompts import prompt_templates as lines

logger = logging.getLogger(__name__)


class DialogueState(str, Enum):
    """All possible states in a call's dialogue."""
    WELCOME = "welcome"
    AWAITING_INTENT = "awaiting_intent"
    AWAITING_DATE = "awaiting_date"
    AWAITING_TIME = "awaiting_time"
    CONFIRMED = "confirmed"
    DEFERRED = "deferred"


TERMINAL_STATES = frozenset({DialogueState.CONFIRMED, DialogueState.DEFERRED})


class TransitionTrigger(str, Enum):
    """What the latest turn established."""
    GREETED = "greeted"
    NOT_BOOKING = "not_booking"
    NEED_DATE = "need_date"
    NEED_TIME = "need_time"
    COMPLETE = "complete"
    SLOT_MISSING = "slot_missing"
    RETRIES_EXHAUSTED = "retries_exhausted"


class DirectiveKind(str, Enum):
    GATHER = "gather"    # speak, then capture the caller's speech
    RECORD = "record"    # speak, then record the caller's audio
    HANGUP = "hangup"    # speak, then end the call


@dataclass(frozen=True)
class Directive:
    """Abstract next action for the telephony layer to render."""
    kind: DirectiveKind
    text: str
    expecting: Optional[DialogueState] = None

    @property
    def ends_call(self) -> bool:
        return self.kind == DirectiveKind.HANGUP

    @classmethod
    def hangup(cls, text: str) -> "Directive":
        return cls(kind=DirectiveKind.HANGUP, text=text)


@dataclass(frozen=True)
class Transition:
    """A single valid state transition."""
    from_state: DialogueState
    to_state: DialogueState
    trigger: TransitionTrigger


@dataclass(frozen=True)
class Step:
    """Outcome of one ``next`` call."""
    state: DialogueState
    directive: Directive
    trigger: TransitionTrigger

    @property
    def is_reprompt(self) -> bool:
        return self.trigger == TransitionTrigger.SLOT_MISSING


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


class DialogueStateMachine:
    """
    Deterministic dialogue policy on top of probabilistic NLU output.

    Intent classification takes priority over slot presence: a non-booking
    intent ends the dialogue even when a date or time was also extracted.
    A state that keeps failing to fill its slot is re-asked at most
    ``max_reprompts`` times before the call is deferred to the team.
    """

    TRANSITIONS: list[Transition] = [
        # --- Greeting ---
        Transition(DialogueState.WELCOME, DialogueState.AWAITING_INTENT,
                   TransitionTrigger.GREETED),

        # --- Intent routing ---
        Transition(DialogueState.AWAITING_INTENT, DialogueState.DEFERRED,
                   TransitionTrigger.NOT_BOOKING),
        Transition(DialogueState.AWAITING_INTENT, DialogueState.AWAITING_DATE,
                   TransitionTrigger.NEED_DATE),
        Transition(DialogueState.AWAITING_INTENT, DialogueState.AWAITING_TIME,
                   TransitionTrigger.NEED_TIME),
        Transition(DialogueState.AWAITING_INTENT, DialogueState.CONFIRMED,
                   TransitionTrigger.COMPLETE),
        Transition(DialogueState.AWAITING_INTENT, DialogueState.AWAITING_INTENT,
                   TransitionTrigger.SLOT_MISSING),
        Transition(DialogueState.AWAITING_INTENT, DialogueState.DEFERRED,
                   TransitionTrigger.RETRIES_EXHAUSTED),

        # --- Date slot ---
        Transition(DialogueState.AWAITING_DATE, DialogueState.AWAITING_DATE,
                   TransitionTrigger.SLOT_MISSING),
        Transition(DialogueState.AWAITING_DATE, DialogueState.AWAITING_TIME,
                   TransitionTrigger.NEED_TIME),
        Transition(DialogueState.AWAITING_DATE, DialogueState.CONFIRMED,
                   TransitionTrigger.COMPLETE),
        Transition(DialogueState.AWAITING_DATE, DialogueState.DEFERRED,
                   TransitionTrigger.RETRIES_EXHAUSTED),

        # --- Time slot ---
        Transition(DialogueState.AWAITING_TIME, DialogueState.AWAITING_TIME,
                   TransitionTrigger.SLOT_MISSING),
        Transition(DialogueState.AWAITING_TIME, DialogueState.CONFIRMED,
                   TransitionTrigger.COMPLETE),
        Transition(DialogueState.AWAITING_TIME, DialogueState.DEFERRED,
                   TransitionTrigger.RETRIES_EXHAUSTED),
    ]

    def __init__(
        self,
        max_reprompts: Optional[int] = None,
        capture_mode: Optional[str] = None,
    ) -> None:
        self._max_reprompts = (
            max_reprompts if max_reprompts is not None else settings.dialogue.max_reprompts
        )
        self._capture_mode = capture_mode or settings.dialogue.capture_mode

    @property
    def max_reprompts(self) -> int:
        return self._max_reprompts

    def next(self, state: DialogueState, slots: BookingSlots, reprompts: int = 0) -> Step:
        """
        Decide the next state and directive.

        Args:
            state: The state the turn was processed in.
            slots: Slots after merging this turn's extraction.
            reprompts: How many times ``state`` has already been re-asked.

        Raises:
            InvalidTransitionError: If ``state`` is terminal.
        """
        if state == DialogueState.WELCOME:
            return self._step(state, TransitionTrigger.GREETED,
                              self._prompt(lines.GREETING, DialogueState.AWAITING_INTENT))

        if state == DialogueState.AWAITING_INTENT:
            if not slots.is_booking():
                return self._step(state, TransitionTrigger.NOT_BOOKING,
                                  Directive.hangup(lines.DEFERRED))
            return self._advance_booking(state, slots)

        if state == DialogueState.AWAITING_DATE:
            if not slots.has_date():
                return self.reprompt(state, reprompts)
            return self._advance_booking(state, slots)

        if state == DialogueState.AWAITING_TIME:
            if not slots.has_time():
                return self.reprompt(state, reprompts)
            return self._advance_booking(state, slots)

        raise InvalidTransitionError(f"No transitions out of terminal state '{state.value}'")

    def reprompt(self, state: DialogueState, reprompts: int) -> Step:
        """Re-ask the slot ``state`` is waiting on, or defer once retries run out."""
        if reprompts >= self._max_reprompts:
            logger.info(
                "Reprompt limit (%d) reached in '%s', deferring", self._max_reprompts, state.value
            )
            return self._step(state, TransitionTrigger.RETRIES_EXHAUSTED,
                              Directive.hangup(lines.ESCALATED))
        text = {
            DialogueState.AWAITING_INTENT: lines.ASK_REQUEST_AGAIN,
            DialogueState.AWAITING_DATE: lines.ASK_DATE_AGAIN,
            DialogueState.AWAITING_TIME: lines.ASK_TIME_AGAIN,
        }.get(state)
        if text is None:
            raise InvalidTransitionError(f"Cannot reprompt from state '{state.value}'")
        return self._step(state, TransitionTrigger.SLOT_MISSING, self._prompt(text, state))

    def prompt_for(self, state: DialogueState, slots: BookingSlots) -> Directive:
        """The question a non-terminal ``state`` asks, without moving anywhere."""
        if state in (DialogueState.WELCOME, DialogueState.AWAITING_INTENT):
            return self._prompt(lines.GREETING, DialogueState.AWAITING_INTENT)
        if state == DialogueState.AWAITING_DATE:
            return self._prompt(lines.ASK_DATE, state)
        if state == DialogueState.AWAITING_TIME:
            return self._prompt(lines.build_ask_time_prompt(slots.date), state)
        raise InvalidTransitionError(f"State '{state.value}' asks nothing")

    def transition(self, state: DialogueState, trigger: TransitionTrigger) -> DialogueState:
        """
        Resolve a declared transition.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_state == state and t.trigger == trigger:
                logger.debug(
                    "State transition: %s -> %s (trigger: %s)",
                    state.value, t.to_state.value, trigger.value,
                )
                return t.to_state

        valid = [t.value for t in self.get_valid_triggers(state)]
        raise InvalidTransitionError(
            f"No valid transition from '{state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def get_valid_triggers(self, state: DialogueState) -> list[TransitionTrigger]:
        """Return all triggers valid from ``state``."""
        return [t.trigger for t in self.TRANSITIONS if t.from_state == state]

    @staticmethod
    def is_terminal(state: DialogueState) -> bool:
        return state in TERMINAL_STATES

    def _advance_booking(self, state: DialogueState, slots: BookingSlots) -> Step:
        if slots.is_complete():
            return self._step(state, TransitionTrigger.COMPLETE, Directive.hangup(
                lines.build_confirmation_prompt(slots.date, slots.time)))
        if not slots.has_date():
            return self._step(state, TransitionTrigger.NEED_DATE,
                              self._prompt(lines.ASK_DATE, DialogueState.AWAITING_DATE))
        return self._step(state, TransitionTrigger.NEED_TIME, self._prompt(
            lines.build_ask_time_prompt(slots.date), DialogueState.AWAITING_TIME))

    def _step(self, state: DialogueState, trigger: TransitionTrigger, directive: Directive) -> Step:
        return Step(state=self.transition(state, trigger), directive=directive, trigger=trigger)

    def _prompt(self, text: str, expecting: DialogueState) -> Directive:
        kind = DirectiveKind.RECORD if self._capture_mode == "recording" else DirectiveKind.GATHER
        return Directive(kind=kind, text=text, expecting=expecting)
