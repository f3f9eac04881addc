from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from aiogram import Bot, Dispatcher, F, types

from chatcal.controller import ConversationController
from chatcal.models import ConversationId

logger = logging.getLogger(__name__)

TELEGRAM_MESSAGE_LIMIT = 4096


def split_message(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> list[str]:
    """Break a reply on line boundaries so every chunk fits one Telegram message."""

    if len(text) <= limit:
        return [text]
    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if len(current) + len(line) > limit:
            chunks.append(current)
            current = ""
        current += line
    if current:
        chunks.append(current)
    return chunks


class TelegramFrontend:
    """aiogram long-polling transport in front of ``ConversationController``.

    aiogram dispatches updates concurrently, so messages of one chat are
    serialised here with a per-chat lock before they reach the controller.
    """

    def __init__(self, token: str, controller: ConversationController) -> None:
        self.bot = Bot(token=token)
        self.dp = Dispatcher()
        self._controller = controller
        self._locks: defaultdict[ConversationId, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.dp.message.register(self.handle_text, F.text)

    async def handle_text(self, message: types.Message) -> None:
        chat_id = message.chat.id
        async with self._locks[chat_id]:
            await self.bot.send_chat_action(chat_id, action="typing")
            replies = await asyncio.to_thread(
                self._controller.handle_message, chat_id, message.text or ""
            )
            for reply in replies:
                await self.notify(chat_id, reply)

    async def notify(self, conversation_id: ConversationId, text: str) -> None:
        for chunk in split_message(text):
            await self.bot.send_message(conversation_id, chunk)

    async def run(self) -> None:
        logger.info("Telegram bot polling started")
        await self.dp.start_polling(self.bot, handle_signals=False)

    async def close(self) -> None:
        await self.bot.session.close()
