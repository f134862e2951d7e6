"""Spoken lines for each dialogue step."""

from serviceswarm.config import settings

_biz = settings.business

ONLINE_MESSAGE = f"{_biz.name} is online and ready to handle calls."

GREETING = (
    f"Hello, you've reached {_biz.name} {_biz.service_label} repair. "
    "Please briefly state your repair request, including preferred date and time "
    "if you know them."
)

ASK_REQUEST_AGAIN = (
    "Sorry, I didn't catch that. Please briefly state your repair request."
)

ASK_DATE = "Sure, what date would you like to schedule your service?"

ASK_DATE_AGAIN = "Sorry, I didn't catch the date. Please say the date for your appointment."

ASK_TIME_AGAIN = "Sorry, I didn't catch the time. Please say the time for your appointment."

DEFERRED = "Got it. Our team will review your request and follow up shortly. Goodbye."

ESCALATED = (
    "I'm having trouble understanding. A member of our team will call you back "
    "shortly to finish your booking. Goodbye."
)

APOLOGY = (
    "I'm sorry, something went wrong on our end. Please call back in a few minutes. Goodbye."
)

RECORDING_APOLOGY = (
    "I'm sorry, we couldn't process your recording. Please call back and try again. Goodbye."
)


def build_ask_time_prompt(date: str) -> str:
    return f"Great, what time on {date} works best for you?"


def build_confirmation_prompt(date: str, time: str) -> str:
    """Read back the booked date and time before hanging up."""
    return (
        f"All set! Your {_biz.service_label} service is scheduled for {date} at {time}. "
        "We'll send confirmation via text shortly. Goodbye."
    )
