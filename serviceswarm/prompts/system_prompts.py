"""
NLU instructions sent as the system message of each extraction call.

The model is asked for exactly one JSON object (or one bare value for the
single-field prompts). Its output is still treated as untrusted text.
"""

from serviceswarm.config import settings

_biz = settings.business

INTENT_AND_SLOTS_PROMPT = f"""
You are an assistant for scheduling {_biz.service_label} service at {_biz.name}.
Parse the caller's transcript into a single JSON object with exactly these keys:
  "intent": "booking" if the caller wants to schedule a service visit, otherwise "other"
  "date": the requested date as YYYY-MM-DD, or "" if none was given
  "time": the requested time as HH:MM AM/PM, or "" if none was given
  "raw_transcript": the transcript, unchanged
Today is {{today}} in the {_biz.timezone} timezone. Resolve relative dates
such as "next Tuesday" against today. Respond with the JSON object only.
""".strip()

DATE_PROMPT = f"""
Convert the following into an absolute date in YYYY-MM-DD format in the
{_biz.timezone} timezone. Today is {{today}}. If you cannot, return an
empty string. Respond with the date only.
""".strip()

TIME_PROMPT = """
Convert the following into a time in HH:MM AM/PM format. If you cannot,
return an empty string. Respond with the time only.
""".strip()

TRANSCRIPTION_HINT = (
    f"Caller is requesting {_biz.service_label} repair service and may mention "
    "a preferred date and time."
)
