"""Shared test fixtures and helpers."""

import asyncio
from types import SimpleNamespace
from typing import Optional

import httpx
import pytest

from serviceswarm.conversation.orchestrator import TurnOrchestrator
from serviceswarm.conversation.session_store import InMemorySessionStore
from serviceswarm.conversation.state_machine import DialogueStateMachine
from serviceswarm.schemas.extraction_schema import (
    Extracted,
    ExtractionFailed,
    ExtractionResult,
    Intent,
    Transcribed,
    TranscriptionResult,
)
from serviceswarm.schemas.session_schema import Session


@pytest.fixture
def state_machine():
    return DialogueStateMachine(max_reprompts=3, capture_mode="speech")


@pytest.fixture
def store():
    return RecordingStore(ttl_seconds=900)


class RecordingStore(InMemorySessionStore):
    """In-memory store that keeps the last state of every finished session."""

    def __init__(self, ttl_seconds: int = 900) -> None:
        super().__init__(ttl_seconds=ttl_seconds)
        self.finished: dict[str, Session] = {}

    async def delete(self, call_id: str) -> None:
        session = await self.get(call_id)
        if session is not None:
            self.finished[call_id] = session
        await super().delete(call_id)


class FakeExtractor:
    """Scripted stand-in for NluExtractor that records every call."""

    def __init__(
        self,
        intent_result: Optional[ExtractionResult] = None,
        dates: Optional[list[str]] = None,
        times: Optional[list[str]] = None,
        transcription: Optional[TranscriptionResult] = None,
        delay: float = 0.0,
    ) -> None:
        self.intent_result = intent_result or ExtractionFailed(reason="unscripted")
        self.dates = list(dates or [])
        self.times = list(times or [])
        self.transcription = transcription or Transcribed(text="")
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _record(self, kind: str, value: str) -> None:
        self.calls.append((kind, value))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    async def extract_intent_and_slots(self, utterance: str) -> ExtractionResult:
        await self._record("intent", utterance)
        return self.intent_result

    async def extract_date(self, utterance: str) -> str:
        await self._record("date", utterance)
        return self.dates.pop(0) if self.dates else ""

    async def extract_time(self, utterance: str) -> str:
        await self._record("time", utterance)
        return self.times.pop(0) if self.times else ""

    async def transcribe(self, recording_url: str) -> TranscriptionResult:
        await self._record("transcribe", recording_url)
        return self.transcription

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]


def booking(date: str = "", time: str = "", transcript: str = "") -> Extracted:
    """Helper to create a booking-intent extraction."""
    return Extracted(intent=Intent.BOOKING, date=date, time=time, raw_transcript=transcript)


def make_orchestrator(
    store: InMemorySessionStore, extractor: FakeExtractor, max_reprompts: int = 3
) -> TurnOrchestrator:
    machine = DialogueStateMachine(max_reprompts=max_reprompts, capture_mode="speech")
    return TurnOrchestrator(store, extractor, machine)  # type: ignore[arg-type]


def make_completion(content: Optional[str]) -> SimpleNamespace:
    """Shape of an openai ChatCompletion, as far as the extractor reads it."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )


class FakeOpenAI:
    """Minimal AsyncOpenAI double: chat completions and audio transcriptions."""

    def __init__(
        self,
        replies: Optional[list[Optional[str]]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        transcript: str = "",
        transcribe_error: Optional[Exception] = None,
    ) -> None:
        self.replies = list(replies or [])
        self.error = error
        self.delay = delay
        self.transcript = transcript
        self.transcribe_error = transcribe_error
        self.requests: list[dict] = []
        self.uploads: list[dict] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))
        self.audio = SimpleNamespace(transcriptions=SimpleNamespace(create=self._transcribe))

    async def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return make_completion(self.replies.pop(0) if self.replies else "")

    async def _transcribe(self, **kwargs):
        self.uploads.append(kwargs)
        if self.transcribe_error is not None:
            raise self.transcribe_error
        return SimpleNamespace(text=self.transcript)

    async def close(self) -> None:
        pass


def make_http(status: int = 200, content: bytes = b"RIFF----WAVEfmt ") -> httpx.AsyncClient:
    """An httpx client whose every request is answered locally."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, content=content)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client.seen = seen  # type: ignore[attr-defined]
    return client
