"""
Booking slot model: what has been gathered from the caller so far.

Slots are filled incrementally across turns. A merge only ever overwrites
a slot with a non-empty value, so a follow-up turn that asks for the time
cannot erase a date captured earlier.

Usage:
    slots = BookingSlots().merge(result)
    if slots.is_complete():
        ...
"""

import logging
from dataclasses import dataclass, replace

from serviceswarm.schemas.extraction_schema import (
    Extracted,
    ExtractionFailed,
    ExtractionResult,
    Intent,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingSlots:
    """Immutable snapshot of the booking slots for one call."""

    intent: Intent = Intent.UNKNOWN
    date: str = ""
    time: str = ""
    raw_transcript: str = ""

    def has_intent(self) -> bool:
        return self.intent != Intent.UNKNOWN

    def is_booking(self) -> bool:
        return self.intent == Intent.BOOKING

    def has_date(self) -> bool:
        return bool(self.date)

    def has_time(self) -> bool:
        return bool(self.time)

    def is_complete(self) -> bool:
        """Booking intent with both date and time present."""
        return self.is_booking() and self.has_date() and self.has_time()

    def merge(self, result: ExtractionResult) -> "BookingSlots":
        """Return a copy with every non-empty field of ``result`` applied.

        A failed extraction merges as its safe reading (intent ``other``,
        no date or time).
        """
        if isinstance(result, ExtractionFailed):
            logger.debug("Merging failed extraction (%s) as non-booking", result.reason)
            extracted = result.as_extracted()
        else:
            extracted = result
        return self._apply(extracted)

    def with_date(self, date: str) -> "BookingSlots":
        return replace(self, date=date) if date else self

    def with_time(self, time: str) -> "BookingSlots":
        return replace(self, time=time) if time else self

    def with_transcript(self, transcript: str) -> "BookingSlots":
        return replace(self, raw_transcript=transcript) if transcript else self

    def _apply(self, extracted: Extracted) -> "BookingSlots":
        return BookingSlots(
            intent=extracted.intent if extracted.intent != Intent.UNKNOWN else self.intent,
            date=extracted.date or self.date,
            time=extracted.time or self.time,
            raw_transcript=extracted.raw_transcript or self.raw_transcript,
        )

    def to_dict(self) -> dict[str, str]:
        """Export slot values as a flat dict for logging."""
        return {
            "intent": self.intent.value,
            "date": self.date,
            "time": self.time,
            "raw_transcript": self.raw_transcript,
        }
