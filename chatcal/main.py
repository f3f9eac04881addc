from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.responses import PlainTextResponse

from chatcal import __version__
from chatcal.config import settings
from chatcal.controller import AuthorizationError, ConversationController
from chatcal.deps import Notifier, get_controller, get_notifier, set_notifier
from chatcal.logging_conf import setup_logging
from chatcal.telegram_bot import TelegramFrontend

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    controller = get_controller()
    frontend: TelegramFrontend | None = None
    polling: asyncio.Task | None = None
    if settings.telegram_bot_token:
        frontend = TelegramFrontend(settings.telegram_bot_token, controller)
        set_notifier(frontend)
        polling = asyncio.create_task(frontend.run())
    else:
        logger.warning("Telegram bot disabled; only the HTTP endpoints are served")

    yield

    if polling is not None:
        polling.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await polling
    if frontend is not None:
        await frontend.close()
    set_notifier(None)


app = FastAPI(title="Chat Calendar Assistant", version=__version__, lifespan=lifespan)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/oauth2callback", response_class=PlainTextResponse)
async def oauth2callback(
    code: str = "",
    state: str = "",
    ctrl: ConversationController = Depends(get_controller),
    notifier: Notifier = Depends(get_notifier),
):
    try:
        conversation_id, message = await asyncio.to_thread(
            ctrl.complete_authorization, code, state
        )
    except AuthorizationError as exc:
        if exc.conversation_id is not None:
            await notifier.notify(exc.conversation_id, str(exc))
        return PlainTextResponse(str(exc), status_code=400)

    await notifier.notify(conversation_id, message)
    return "Authentication successful! You can now return to Telegram."
