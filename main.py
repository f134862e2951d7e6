"""
Voice booking webhook entry point.

Serves the Twilio webhooks that drive the booking dialogue.
Supports both the live webhook server and console text mode for development.

Usage:
    Webhook server: python main.py
    Console mode:   python main.py console
"""

import logging
import sys

from serviceswarm.config import settings

logger = logging.getLogger(__name__)


def _run_server() -> None:
    """Start the webhook server (requires OPENAI_API_KEY)."""
    import uvicorn

    from serviceswarm.api.app import create_app

    logger.info(
        "Voice assistant listening on %s:%d", settings.server.host, settings.server.port
    )
    uvicorn.run(
        create_app(),
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
    )


def _run_console_mode() -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import main as console_main

    sys.argv = sys.argv[:1] + sys.argv[2:]
    console_main()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode()
    else:
        _run_server()
