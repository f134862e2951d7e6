"""Render dialogue directives as TwiML."""

from fastapi.responses import Response
from twilio.twiml.voice_response import VoiceResponse

from serviceswarm.config import settings
from serviceswarm.conversation.state_machine import DialogueState, Directive, DirectiveKind

TWIML_CT = "text/xml"

SPEECH_ROUTES: dict[DialogueState, str] = {
    DialogueState.AWAITING_INTENT: "/handle-request",
    DialogueState.AWAITING_DATE: "/gather-date",
    DialogueState.AWAITING_TIME: "/gather-time",
}
RECORDING_ROUTE = "/handle-recording"
MAX_RECORDING_SECONDS = 30


def _say(verb, text: str) -> None:
    verb.say(text, voice=settings.business.voice, language=settings.business.language)


def render_directive(directive: Directive) -> str:
    """Build the TwiML document for ``directive``.

    Prompts that capture input are followed by a redirect to the same
    handler, so a caller who says nothing is re-asked instead of dropped.
    """
    response = VoiceResponse()

    if directive.kind == DirectiveKind.GATHER and directive.expecting in SPEECH_ROUTES:
        action = SPEECH_ROUTES[directive.expecting]
        gather = response.gather(
            input="speech", action=action, method="POST", speech_timeout="auto"
        )
        _say(gather, directive.text)
        response.redirect(action, method="POST")
    elif directive.kind == DirectiveKind.RECORD and directive.expecting is not None:
        action = f"{RECORDING_ROUTE}?step={directive.expecting.value}"
        _say(response, directive.text)
        response.record(
            action=action,
            method="POST",
            max_length=MAX_RECORDING_SECONDS,
            timeout=3,
            play_beep=True,
        )
        response.redirect(action, method="POST")
    else:
        _say(response, directive.text)
        response.hangup()

    return str(response)


def twiml_response(directive: Directive) -> Response:
    return Response(content=render_directive(directive), media_type=TWIML_CT)


def say_only(text: str) -> Response:
    response = VoiceResponse()
    _say(response, text)
    return Response(content=str(response), media_type=TWIML_CT)
