"""NLU and transcription result models.

``NluPayload`` validates the JSON object the NLU model is asked to return.
Results handed to the dialogue engine are tagged: a success variant carrying
fields, or a failure variant carrying only the reason.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from serviceswarm.utils import normalize_date, normalize_time


class Intent(str, Enum):
    BOOKING = "booking"
    OTHER = "other"
    UNKNOWN = "unknown"


class NluPayload(BaseModel):
    """Decoded NLU response. Malformed fields collapse to empty, never raise."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    intent: Intent = Intent.UNKNOWN
    date: str = ""
    time: str = ""
    raw_transcript: str = Field(default="", alias="rawTranscript")

    @field_validator("intent", mode="before")
    @classmethod
    def _coerce_intent(cls, value: Any) -> Intent:
        if not isinstance(value, str):
            return Intent.UNKNOWN
        normalized = value.strip().lower()
        if normalized == Intent.BOOKING.value:
            return Intent.BOOKING
        if normalized == Intent.OTHER.value:
            return Intent.OTHER
        return Intent.UNKNOWN

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> str:
        return normalize_date(value) if isinstance(value, str) else ""

    @field_validator("time", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> str:
        return normalize_time(value) if isinstance(value, str) else ""

    @field_validator("raw_transcript", mode="before")
    @classmethod
    def _coerce_transcript(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""


@dataclass(frozen=True)
class Extracted:
    """Successful intent/slot extraction."""

    intent: Intent
    date: str
    time: str
    raw_transcript: str


@dataclass(frozen=True)
class ExtractionFailed:
    """NLU unreachable, timed out, or returned content that is not a JSON object."""

    reason: str
    raw_transcript: str = ""

    def as_extracted(self) -> Extracted:
        """The safe reading of a failed extraction: a non-booking utterance."""
        return Extracted(
            intent=Intent.OTHER, date="", time="", raw_transcript=self.raw_transcript
        )


ExtractionResult = Union[Extracted, ExtractionFailed]


@dataclass(frozen=True)
class Transcribed:
    text: str


@dataclass(frozen=True)
class TranscriptionFailed:
    reason: str


TranscriptionResult = Union[Transcribed, TranscriptionFailed]
