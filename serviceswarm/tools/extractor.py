"""
NLU and transcription calls, made total.

The upstream model may be unreachable, slow, or answer with free-form text
instead of the JSON it was asked for. None of that escapes this module:
every operation returns a value, with "nothing extracted" as an ordinary
outcome, and every call is bounded by a timeout.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

import httpx
from openai import AsyncOpenAI

from serviceswarm.config import settings
from serviceswarm.logging_context import get_call_logger
from serviceswarm.prompts.system_prompts import (
    DATE_PROMPT,
    INTENT_AND_SLOTS_PROMPT,
    TIME_PROMPT,
    TRANSCRIPTION_HINT,
)
from serviceswarm.schemas.extraction_schema import (
    Extracted,
    ExtractionFailed,
    ExtractionResult,
    NluPayload,
    Transcribed,
    TranscriptionFailed,
    TranscriptionResult,
)
from serviceswarm.tools.recordings import fetch_recording
from serviceswarm.utils import clean_model_text, normalize_date, normalize_time

logger = get_call_logger(__name__)


def _business_today() -> str:
    return datetime.now(ZoneInfo(settings.business.timezone)).strftime("%Y-%m-%d")


def decode_nlu_reply(reply: str, utterance: str) -> ExtractionResult:
    """Decode the NLU model's reply into an ``ExtractionResult``.

    Anything that is not a JSON object yields ``ExtractionFailed``.
    Individual malformed fields are emptied by ``NluPayload``.
    """
    try:
        data = json.loads(clean_model_text(reply))
    except json.JSONDecodeError:
        return ExtractionFailed(reason="reply is not JSON", raw_transcript=utterance)
    if not isinstance(data, dict):
        return ExtractionFailed(reason="reply is not a JSON object", raw_transcript=utterance)

    payload = NluPayload.model_validate(data)
    return Extracted(
        intent=payload.intent,
        date=payload.date,
        time=payload.time,
        raw_transcript=payload.raw_transcript or utterance,
    )


class NluExtractor:
    """Intent/slot extraction and transcription over the OpenAI API."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        http: Optional[httpx.AsyncClient] = None,
        nlu_timeout: Optional[float] = None,
        transcription_timeout: Optional[float] = None,
        today: Callable[[], str] = _business_today,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=settings.model.openai_api_key or None)
        self._http = http or httpx.AsyncClient()
        self._nlu_timeout = nlu_timeout or settings.model.nlu_timeout_sec
        self._transcription_timeout = (
            transcription_timeout or settings.model.transcription_timeout_sec
        )
        self._today = today

    async def aclose(self) -> None:
        await self._http.aclose()
        await self._client.close()

    # ------------------------------------------------------------------ #
    # Extraction
    # ------------------------------------------------------------------ #

    async def extract_intent_and_slots(self, utterance: str) -> ExtractionResult:
        """Classify intent and pull date/time from a free-form request."""
        instruction = INTENT_AND_SLOTS_PROMPT.format(today=self._today())
        reply = await self._ask(instruction, utterance, json_mode=True)
        if reply is None:
            return ExtractionFailed(reason="NLU call failed", raw_transcript=utterance)

        result = decode_nlu_reply(reply, utterance)
        if isinstance(result, ExtractionFailed):
            logger.warning("NLU parse error (%s): %r", result.reason, reply[:200])
        return result

    async def extract_date(self, utterance: str) -> str:
        """Return the date mentioned in ``utterance`` as YYYY-MM-DD, or ``""``."""
        reply = await self._ask(DATE_PROMPT.format(today=self._today()), utterance)
        date = normalize_date(reply or "")
        if reply and not date:
            logger.info("No usable date in NLU reply %r", reply[:80])
        return date

    async def extract_time(self, utterance: str) -> str:
        """Return the time mentioned in ``utterance`` as HH:MM AM/PM, or ``""``."""
        reply = await self._ask(TIME_PROMPT, utterance)
        time = normalize_time(reply or "")
        if reply and not time:
            logger.info("No usable time in NLU reply %r", reply[:80])
        return time

    # ------------------------------------------------------------------ #
    # Transcription
    # ------------------------------------------------------------------ #

    async def transcribe(self, recording_url: str) -> TranscriptionResult:
        """Fetch a call recording and convert it to text."""
        try:
            text = await asyncio.wait_for(
                self._transcribe(recording_url), timeout=self._transcription_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Transcription timed out after %.1fs", self._transcription_timeout)
            return TranscriptionFailed(reason="timeout")
        except Exception as exc:  # noqa: BLE001
            logger.warning("Transcription failed: %s", exc)
            return TranscriptionFailed(reason=type(exc).__name__)

        if not text:
            logger.warning("Transcription returned no text")
            return TranscriptionFailed(reason="empty transcription")
        return Transcribed(text=text)

    async def _transcribe(self, recording_url: str) -> str:
        filename, audio = await fetch_recording(self._http, recording_url)
        response = await self._client.audio.transcriptions.create(
            model=settings.model.transcription_model,
            file=(filename, audio),
            language="en",
            prompt=TRANSCRIPTION_HINT,
        )
        return (response.text or "").strip()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    async def _ask(self, instruction: str, utterance: str, json_mode: bool = False) -> Optional[str]:
        """One chat completion. Returns the reply text, or None on any failure."""
        kwargs: dict[str, Any] = {
            "model": settings.model.llm_model,
            "messages": [
                {"role": "system", "content": instruction},
                {"role": "user", "content": utterance},
            ],
            "temperature": settings.model.llm_temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs), timeout=self._nlu_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("NLU call timed out after %.1fs", self._nlu_timeout)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.warning("NLU call failed: %s", exc)
            return None

        if not response.choices:
            logger.warning("NLU reply had no choices")
            return None
        return response.choices[0].message.content or ""
