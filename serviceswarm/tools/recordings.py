"""Download call recordings from the telephony provider."""

import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

from serviceswarm.config import settings

logger = logging.getLogger(__name__)


def recording_media_url(recording_url: str, media_format: Optional[str] = None) -> str:
    """Twilio serves a recording's audio at its URL plus a format extension.

    Examples:
        >>> recording_media_url("https://api.twilio.com/2010-04-01/Accounts/AC1/Recordings/RE1")
        'https://api.twilio.com/2010-04-01/Accounts/AC1/Recordings/RE1.wav'
    """
    media_format = media_format or settings.telephony.recording_format
    path = urlparse(recording_url).path
    if "." in path.rsplit("/", 1)[-1]:
        return recording_url
    return f"{recording_url}.{media_format}"


async def fetch_recording(http: httpx.AsyncClient, recording_url: str) -> tuple[str, bytes]:
    """Fetch the audio behind ``recording_url``.

    Returns:
        (filename, audio bytes) ready to hand to the transcription API.

    Raises:
        httpx.HTTPError: On transport failure or a non-2xx response.
    """
    url = recording_media_url(recording_url)
    auth = None
    if settings.telephony.account_sid and settings.telephony.auth_token:
        auth = (settings.telephony.account_sid, settings.telephony.auth_token)

    response = await http.get(url, auth=auth, follow_redirects=True)
    response.raise_for_status()
    filename = urlparse(url).path.rsplit("/", 1)[-1] or "recording.wav"
    logger.debug("Fetched recording %s (%d bytes)", filename, len(response.content))
    return filename, response.content
