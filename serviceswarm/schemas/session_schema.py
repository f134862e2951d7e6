"""Per-call session state."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from serviceswarm.conversation.slots import BookingSlots
from serviceswarm.conversation.state_machine import DialogueState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: DialogueState
    entered_at: datetime


@dataclass
class Session:
    """
    Dialogue state for one live call, keyed by the telephony call id.

    Owned by the turn orchestrator while a callback is being processed;
    lives no longer than the call itself.
    """
    call_id: str
    state: DialogueState = DialogueState.WELCOME
    slots: BookingSlots = field(default_factory=BookingSlots)
    reprompts: dict[DialogueState, int] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    history: list[StateEntry] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(StateEntry(state=self.state, entered_at=self.created_at))

    def reprompts_in(self, state: Optional[DialogueState] = None) -> int:
        return self.reprompts.get(state or self.state, 0)

    def record_reprompt(self) -> None:
        self.reprompts[self.state] = self.reprompts_in() + 1

    def enter(self, state: DialogueState, now: Optional[datetime] = None) -> None:
        """Move to ``state``, logging it in the history when it changes."""
        now = now or _utcnow()
        if state != self.state:
            self.history.append(StateEntry(state=state, entered_at=now))
        self.state = state
        self.updated_at = now

    def touch(self, now: Optional[datetime] = None) -> None:
        self.updated_at = now or _utcnow()

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self.history]
