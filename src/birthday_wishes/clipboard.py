from __future__ import annotations

import logging
from typing import Protocol

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.helpers import escape_markdown

LOGGER = logging.getLogger(__name__)


class ClipboardError(Exception):
    pass


class ClipboardWriter(Protocol):
    async def write_text(self, text: str) -> None:
        ...


class TelegramChatClipboard:
    """Posts text as a monospace block; Telegram clients copy it on tap."""

    def __init__(self, *, bot: Bot, chat_id: int) -> None:
        self._bot = bot
        self._chat_id = chat_id

    async def write_text(self, text: str) -> None:
        payload = f"`{escape_markdown(text, version=2, entity_type='code')}`"
        try:
            await self._bot.send_message(
                chat_id=self._chat_id,
                text=payload,
                parse_mode=ParseMode.MARKDOWN_V2,
            )
        except TelegramError as exc:
            LOGGER.warning("Could not deliver greeting to chat %s: %s", self._chat_id, exc)
            raise ClipboardError("Could not copy the greeting") from exc
