from serviceswarm.conversation.slots import BookingSlots
from serviceswarm.conversation.state_machine import (
    DialogueState,
    DialogueStateMachine,
    Directive,
    DirectiveKind,
    TransitionTrigger,
)

__all__ = [
    "BookingSlots",
    "DialogueStateMachine",
    "DialogueState",
    "Directive",
    "DirectiveKind",
    "TransitionTrigger",
]
