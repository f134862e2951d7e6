"""
Offline console demo: runs the booking dialogue without any API keys.

Drives the real turn orchestrator, state machine, and session store from
the terminal. The NLU service is replaced by a small keyword extractor, so
no network calls are made. Designed for live demo walkthroughs.

Usage:
    python console_demo.py
    python console_demo.py --scenario booking
    python console_demo.py --scenario retries
"""

import argparse
import asyncio
import re
from datetime import date, timedelta

from serviceswarm.config import settings
from serviceswarm.conversation.orchestrator import TurnInput, TurnOrchestrator
from serviceswarm.conversation.session_store import InMemorySessionStore
from serviceswarm.conversation.state_machine import DialogueState, Directive
from serviceswarm.schemas.extraction_schema import (
    Extracted,
    ExtractionResult,
    Intent,
    TranscriptionFailed,
    TranscriptionResult,
)
from serviceswarm.utils import normalize_date, normalize_time

BLUE = "\033[94m"
GREEN = "\033[92m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

CALL_ID = "CONSOLE-0001"

_BOOKING_SIGNALS = ("book", "appointment", "schedule", "fix", "repair", "come out", "broken")
_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_TIME_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*([ap])\.?m\.?\b", re.IGNORECASE)
_ISO_DATE_RE = re.compile(r"\b\d{4}-\d{2}-\d{2}\b")


class KeywordExtractor:
    """Offline stand-in for the NLU service with the same interface."""

    def __init__(self, today: date) -> None:
        self._today = today

    async def extract_intent_and_slots(self, utterance: str) -> ExtractionResult:
        lower = utterance.lower()
        intent = Intent.BOOKING if any(s in lower for s in _BOOKING_SIGNALS) else Intent.OTHER
        return Extracted(
            intent=intent,
            date=self._date(lower),
            time=self._time(lower),
            raw_transcript=utterance,
        )

    async def extract_date(self, utterance: str) -> str:
        return self._date(utterance.lower())

    async def extract_time(self, utterance: str) -> str:
        return self._time(utterance.lower())

    async def transcribe(self, recording_url: str) -> TranscriptionResult:
        return TranscriptionFailed(reason="no transcription offline")

    def _date(self, lower: str) -> str:
        match = _ISO_DATE_RE.search(lower)
        if match:
            return normalize_date(match.group(0))
        if "tomorrow" in lower:
            return (self._today + timedelta(days=1)).isoformat()
        for index, name in enumerate(_WEEKDAYS):
            if name in lower:
                ahead = (index - self._today.weekday()) % 7 or 7
                return (self._today + timedelta(days=ahead)).isoformat()
        return ""

    def _time(self, lower: str) -> str:
        match = _TIME_RE.search(lower)
        if not match:
            return ""
        hour, minute, half = match.group(1), match.group(2) or "00", match.group(3)
        return normalize_time(f"{hour}:{minute} {half}m")


class ConsoleSession:
    """Plays one call against the orchestrator in the terminal."""

    SCENARIOS: dict[str, list[str]] = {
        "booking": ["I need my AC fixed next Tuesday at 3pm"],
        "followup": ["My furnace is broken, can you schedule a repair?", "tomorrow", "10am"],
        "info": ["Just wondering about pricing"],
        "retries": ["Please book a repair for Friday", "noon", "whenever", "", "sometime"],
    }

    MAX_INPUT_LENGTH = 500

    def __init__(self) -> None:
        self.store = InMemorySessionStore()
        self.orchestrator = TurnOrchestrator(self.store, KeywordExtractor(date.today()))
        self._expecting: DialogueState = DialogueState.AWAITING_INTENT
        self._done = False

    def agent_say(self, directive: Directive) -> None:
        print(f"{GREEN}{BOLD}[{settings.business.name}]{RESET} {GREEN}{directive.text}{RESET}")
        if directive.ends_call:
            self._done = True
            print(f"{DIM}  >> call ended{RESET}")
        elif directive.expecting is not None:
            self._expecting = directive.expecting
            print(f"{DIM}  >> awaiting: {directive.expecting.value}{RESET}")

    async def _turn(self, text: str) -> None:
        directive = await self.orchestrator.handle_turn(
            CALL_ID, TurnInput(transcript=text, expected_state=self._expecting)
        )
        self.agent_say(directive)

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        print(f"{BOLD}{'=' * 60}\n  Scenario: {scenario}\n{'=' * 60}{RESET}")
        self.agent_say(await self.orchestrator.start_call(CALL_ID))
        for step in self.SCENARIOS[scenario]:
            if self._done:
                break
            print(f"\n{BLUE}[Caller] {RESET}{step}")
            await self._turn(step)

    async def run(self) -> None:
        print(f"{BOLD}{'=' * 60}\n  Console Demo - type 'quit' to exit\n{'=' * 60}{RESET}")
        self.agent_say(await self.orchestrator.start_call(CALL_ID))
        while not self._done:
            user_input = input(f"\n{BLUE}[Caller] {RESET}").strip()
            if user_input.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                return
            await self._turn(user_input[: self.MAX_INPUT_LENGTH])


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        asyncio.run(session.run_scenario(args.scenario))
    else:
        asyncio.run(session.run())


if __name__ == "__main__":
    main()
