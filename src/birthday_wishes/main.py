from __future__ import annotations

import logging

from telegram.ext import Application

from birthday_wishes.bot_handlers import HandlerDependencies, build_handlers
from birthday_wishes.clipboard import TelegramChatClipboard
from birthday_wishes.presenter import BirthdayBook
from birthday_wishes.settings import load_settings
from birthday_wishes.store import TomlBirthdayStore, ensure_default_store

LOGGER = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every Telegram poll at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def initial_load(application: Application) -> None:
    deps: HandlerDependencies = application.bot_data["handler_deps"]
    notice = deps.book.refresh()
    if notice is None:
        LOGGER.info("Loaded %s birthdays", len(deps.book.records))


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)

    ensure_default_store(settings.birthday_store_path)
    store = TomlBirthdayStore(settings.birthday_store_path)
    config = store.load_config()

    application = Application.builder().token(settings.telegram_bot_token).build()
    application.bot_data["handler_deps"] = HandlerDependencies(
        settings=settings,
        book=BirthdayBook(store, config),
        clipboard=TelegramChatClipboard(
            bot=application.bot,
            chat_id=settings.telegram_allowed_chat_id,
        ),
    )

    for handler in build_handlers():
        application.add_handler(handler)

    application.post_init = initial_load
    LOGGER.info("Starting birthday bot with store %s", settings.birthday_store_path)
    application.run_polling()


if __name__ == "__main__":
    main()
