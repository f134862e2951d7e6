"""
Twilio webhook application.

One route per dialogue step, mirroring where each directive tells Twilio
to post the caller's next answer. Every route answers with TwiML, including
when the payload is unusable.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import Depends, FastAPI, Form, Query, Request
from fastapi.responses import Response

from serviceswarm.api.twiml import say_only, twiml_response
from serviceswarm.conversation.orchestrator import TurnInput, TurnOrchestrator
from serviceswarm.conversation.session_store import InMemorySessionStore, SessionStore, run_sweeper
from serviceswarm.conversation.state_machine import DialogueState, Directive
from serviceswarm.prompts import prompt_templates as lines
from serviceswarm.tools.extractor import NluExtractor

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build default collaborators if none were injected, and run the session sweeper."""
    extractor: Optional[NluExtractor] = None
    if getattr(app.state, "orchestrator", None) is None:
        extractor = NluExtractor()
        app.state.store = InMemorySessionStore()
        app.state.orchestrator = TurnOrchestrator(app.state.store, extractor)

    sweeper = None
    if app.state.store is not None:
        sweeper = asyncio.create_task(run_sweeper(app.state.store))
    logger.info("Voice webhook ready")
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper
        if extractor is not None:
            await extractor.aclose()


def get_orchestrator(request: Request) -> TurnOrchestrator:
    return request.app.state.orchestrator


def _parse_step(step: Optional[str]) -> Optional[DialogueState]:
    try:
        return DialogueState(step) if step else None
    except ValueError:
        logger.warning("Ignoring unknown step %r", step)
        return None


async def _speech_turn(
    orchestrator: TurnOrchestrator,
    call_sid: str,
    speech: str,
    expected: DialogueState,
) -> Response:
    if not call_sid:
        logger.warning("Speech callback without CallSid")
        return twiml_response(Directive.hangup(lines.APOLOGY))
    logger.info("Caller said (%s): %r", expected.value, speech)
    directive = await orchestrator.handle_turn(
        call_sid, TurnInput(transcript=speech, expected_state=expected)
    )
    return twiml_response(directive)


def create_app(
    orchestrator: Optional[TurnOrchestrator] = None,
    store: Optional[SessionStore] = None,
) -> FastAPI:
    """Create the webhook app. Pass both collaborators to bypass default construction."""
    app = FastAPI(title="ServiceSwarm voice booking", lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.state.store = store

    @app.get("/voice-webhook")
    async def voice_ping() -> Response:
        # Twilio console test pings use GET
        return say_only(lines.ONLINE_MESSAGE)

    @app.post("/voice-webhook")
    async def voice_start(
        CallSid: str = Form(""),
        orchestrator: TurnOrchestrator = Depends(get_orchestrator),
    ) -> Response:
        if not CallSid:
            logger.warning("Call start without CallSid")
            return twiml_response(Directive.hangup(lines.APOLOGY))
        return twiml_response(await orchestrator.start_call(CallSid))

    @app.post("/handle-request")
    async def handle_request(
        CallSid: str = Form(""),
        SpeechResult: str = Form(""),
        orchestrator: TurnOrchestrator = Depends(get_orchestrator),
    ) -> Response:
        return await _speech_turn(orchestrator, CallSid, SpeechResult, DialogueState.AWAITING_INTENT)

    @app.post("/gather-date")
    async def gather_date(
        CallSid: str = Form(""),
        SpeechResult: str = Form(""),
        orchestrator: TurnOrchestrator = Depends(get_orchestrator),
    ) -> Response:
        return await _speech_turn(orchestrator, CallSid, SpeechResult, DialogueState.AWAITING_DATE)

    @app.post("/gather-time")
    async def gather_time(
        CallSid: str = Form(""),
        SpeechResult: str = Form(""),
        orchestrator: TurnOrchestrator = Depends(get_orchestrator),
    ) -> Response:
        return await _speech_turn(orchestrator, CallSid, SpeechResult, DialogueState.AWAITING_TIME)

    @app.post("/handle-recording")
    async def handle_recording(
        CallSid: str = Form(""),
        RecordingUrl: str = Form(""),
        step: Optional[str] = Query(None),
        orchestrator: TurnOrchestrator = Depends(get_orchestrator),
    ) -> Response:
        if not CallSid:
            logger.warning("Recording callback without CallSid")
            return twiml_response(Directive.hangup(lines.APOLOGY))
        directive = await orchestrator.handle_turn(
            CallSid, TurnInput(recording_url=RecordingUrl or None, expected_state=_parse_step(step))
        )
        return twiml_response(directive)

    return app
