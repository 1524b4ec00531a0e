import asyncio
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

from telegram.ext import ConversationHandler

from birthday_wishes.bot_handlers import (
    STATE_BIRTH_DATE,
    STATE_CONFIRM,
    STATE_EMAIL,
    STATE_NAME,
    STATE_NOTES,
    STATE_PHONE,
    STATE_RELATIONSHIP,
    STATE_SELECT,
    HandlerDependencies,
    _render_list_message,
    _render_today_message,
    _render_upcoming_message,
    _render_wish_message,
    add_start,
    confirm,
    delete_command,
    edit_select,
    edit_start,
    format_birth_date,
    format_days_until,
    is_authorized,
    list_command,
    normalize_relationship,
    receive_birth_date,
    receive_email,
    receive_name,
    receive_notes,
    receive_phone,
    receive_relationship,
    wish_command,
)
from birthday_wishes.models import AppConfig, BirthdayDraft, BirthdayRecord, UpcomingEntry
from birthday_wishes.presenter import BirthdayBook, ListedBirthday, Notice, Wish
from birthday_wishes.settings import Settings
from birthday_wishes.store import TomlBirthdayStore, ensure_default_store

SETTINGS = Settings(
    telegram_bot_token="token",
    telegram_allowed_user_id=111,
    telegram_allowed_chat_id=222,
    birthday_store_path=Path("data/birthdays.toml"),
)


@dataclass
class FakeUser:
    id: int


@dataclass
class FakeChat:
    id: int


@dataclass
class FakeMessage:
    text: str | None = None
    replies: list[str] = field(default_factory=list)

    async def reply_text(self, text: str) -> None:
        self.replies.append(text)


@dataclass
class FakeUpdate:
    effective_user: FakeUser
    effective_chat: FakeChat
    effective_message: FakeMessage


@dataclass
class FakeApplication:
    bot_data: dict[str, Any]


@dataclass
class FakeContext:
    application: FakeApplication
    user_data: dict[str, Any] = field(default_factory=dict)
    args: list[str] = field(default_factory=list)


@dataclass
class FakeClipboard:
    written: list[str] = field(default_factory=list)

    async def write_text(self, text: str) -> None:
        self.written.append(text)


def _update(text: str | None = None, chat_id: int = 222) -> FakeUpdate:
    return FakeUpdate(
        effective_user=FakeUser(id=111),
        effective_chat=FakeChat(id=chat_id),
        effective_message=FakeMessage(text=text),
    )


def _context(tmp_path: Path) -> tuple[FakeContext, TomlBirthdayStore, FakeClipboard]:
    path = tmp_path / "birthdays.toml"
    ensure_default_store(path)
    store = TomlBirthdayStore(path)
    clipboard = FakeClipboard()
    deps = HandlerDependencies(
        settings=SETTINGS,
        book=BirthdayBook(store, store.load_config()),
        clipboard=clipboard,
    )
    return FakeContext(application=FakeApplication(bot_data={"handler_deps": deps})), store, clipboard


def _say(handler, context: FakeContext, text: str) -> tuple[int, list[str]]:
    update = _update(text)
    state = asyncio.run(handler(update, context))
    return state, update.effective_message.replies


def test_format_days_until() -> None:
    assert format_days_until(0) == "Today!"
    assert format_days_until(1) == "1 day"
    assert format_days_until(12) == "12 days"


def test_format_birth_date() -> None:
    assert format_birth_date(date(1990, 6, 5)) == "June 5, 1990"


def test_normalize_relationship() -> None:
    assert normalize_relationship(" family ") == "Family"
    assert normalize_relationship("Neighbour") == "Neighbour"


def test_render_list_message_structured_output() -> None:
    alice = BirthdayRecord(
        id="a",
        name="Alice",
        birth_date=date(1990, 6, 15),
        relationship="Family",
        phone="555-0100",
        email="alice@example.com",
        notes="Gift: tea",
    )
    bob = BirthdayRecord(id="b", name="Bob", birth_date=date(1985, 8, 22))

    message = _render_list_message([ListedBirthday(alice, 34), ListedBirthday(bob, 38)])

    assert message == (
        "All Birthdays (2)\n"
        "1. Alice [Family]\n"
        "   June 15, 1990 (34 years old)\n"
        "   Phone 555-0100 | Email alice@example.com\n"
        "   Gift: tea\n"
        "\n"
        "2. Bob [Friend]\n"
        "   August 22, 1985 (38 years old)"
    )


def test_render_today_and_upcoming() -> None:
    alice = BirthdayRecord(id="a", name="Alice", birth_date=date(1990, 6, 15))

    assert _render_today_message([]) == "No birthdays today."
    assert _render_today_message([ListedBirthday(alice, 34)]) == (
        "🎉 Today's Birthdays!\n- Alice (Turning 34)\n  Friend"
    )
    assert _render_upcoming_message(
        [
            UpcomingEntry(record=alice, next_occurrence=date(2024, 6, 15), days_until=0),
            UpcomingEntry(record=alice, next_occurrence=date(2024, 6, 16), days_until=1),
        ]
    ) == "Upcoming Birthdays\n1. Alice - Today! (2024-06-15)\n2. Alice - 1 day (2024-06-16)"


def test_render_wish_message_includes_contact() -> None:
    alice = BirthdayRecord(id="a", name="Alice", birth_date=date(1990, 6, 15), email="alice@example.com")
    wish = Wish(record=alice, message="Happy!", notice=Notice("success", "Birthday Wish Ready!"))

    assert _render_wish_message(wish) == (
        "Birthday Wish Ready!\n"
        "The birthday message has been copied to your clipboard:\n"
        "\n"
        "Happy!\n"
        "\n"
        "Email: alice@example.com"
    )


def test_is_authorized() -> None:
    assert is_authorized(_update(), SETTINGS) is True
    assert is_authorized(_update(chat_id=999), SETTINGS) is False


def test_unauthorized_list_is_refused(tmp_path: Path) -> None:
    context, _store, _clipboard = _context(tmp_path)
    update = _update(chat_id=999)

    asyncio.run(list_command(update, context))

    assert update.effective_message.replies == ["This bot is restricted to its configured owner."]


def test_add_wizard_saves_birthday(tmp_path: Path) -> None:
    context, store, _clipboard = _context(tmp_path)

    assert _say(add_start, context, "/add")[0] == STATE_NAME
    assert _say(receive_name, context, "")[0] == STATE_NAME
    assert _say(receive_name, context, "Alice")[0] == STATE_BIRTH_DATE
    assert _say(receive_birth_date, context, "1990-02-30")[0] == STATE_BIRTH_DATE
    assert _say(receive_birth_date, context, "1990-06-15")[0] == STATE_RELATIONSHIP
    assert _say(receive_relationship, context, "family")[0] == STATE_PHONE
    assert _say(receive_phone, context, "skip")[0] == STATE_EMAIL
    assert _say(receive_email, context, "alice@example.com")[0] == STATE_NOTES
    state, replies = _say(receive_notes, context, "skip")
    assert state == STATE_CONFIRM
    assert "Birth date: June 15, 1990" in replies[0]
    assert "Phone: (not set)" in replies[0]

    state, replies = _say(confirm, context, "yes")

    assert state == ConversationHandler.END
    assert replies == ["Birthday added successfully!"]
    [record] = store.list()
    assert record.name == "Alice"
    assert record.birth_date == date(1990, 6, 15)
    assert record.relationship == "Family"
    assert record.phone is None
    assert record.email == "alice@example.com"
    assert "pending_birthday" not in context.user_data


def test_edit_wizard_keeps_and_clears_fields(tmp_path: Path) -> None:
    context, store, _clipboard = _context(tmp_path)
    original = store.create(
        BirthdayDraft(name="Bob", birth_date=date(1985, 8, 22), relationship="Colleague", email="bob@example.com")
    )

    assert _say(edit_start, context, "/edit")[0] == STATE_SELECT
    assert _say(edit_select, context, "7")[0] == STATE_SELECT
    assert _say(edit_select, context, "1")[0] == STATE_NAME
    assert _say(receive_name, context, "skip")[0] == STATE_BIRTH_DATE
    assert _say(receive_birth_date, context, "keep")[0] == STATE_RELATIONSHIP
    assert _say(receive_relationship, context, "-")[0] == STATE_PHONE
    assert _say(receive_phone, context, "555-0199")[0] == STATE_EMAIL
    assert _say(receive_email, context, "skip")[0] == STATE_NOTES
    assert _say(receive_notes, context, "skip")[0] == STATE_CONFIRM
    state, replies = _say(confirm, context, "y")

    assert state == ConversationHandler.END
    assert replies == ["Birthday updated successfully!"]
    [record] = store.list()
    assert record.id == original.id
    assert record.name == "Bob"
    assert record.birth_date == date(1985, 8, 22)
    assert record.relationship is None
    assert record.phone == "555-0199"
    assert record.email == "bob@example.com"


def test_confirm_no_discards_changes(tmp_path: Path) -> None:
    context, store, _clipboard = _context(tmp_path)
    _say(add_start, context, "/add")
    _say(receive_name, context, "Alice")
    _say(receive_birth_date, context, "1990-06-15")
    for handler in (receive_relationship, receive_phone, receive_email, receive_notes):
        _say(handler, context, "skip")

    assert _say(confirm, context, "maybe")[0] == STATE_CONFIRM
    state, replies = _say(confirm, context, "no")

    assert state == ConversationHandler.END
    assert replies == ["Canceled. No changes were made."]
    assert store.list() == []


def test_step_without_session_expires(tmp_path: Path) -> None:
    context, _store, _clipboard = _context(tmp_path)

    state, replies = _say(receive_phone, context, "555")

    assert state == ConversationHandler.END
    assert replies == ["Session expired. Send /add or /edit to start again."]


def test_wish_command_copies_greeting(tmp_path: Path) -> None:
    context, store, clipboard = _context(tmp_path)
    store.create(BirthdayDraft(name="Alice", birth_date=date(1990, 6, 15), phone="555-0100"))
    context.args = ["1"]

    _state, replies = _say(wish_command, context, "/wish 1")

    assert len(clipboard.written) == 1
    assert "Birthday, Alice!" in clipboard.written[0]
    assert replies[0].startswith("Birthday Wish Ready!")
    assert replies[0].endswith("Phone: 555-0100")


def test_wish_command_rejects_bad_index(tmp_path: Path) -> None:
    context, _store, clipboard = _context(tmp_path)
    context.args = ["3"]

    _state, replies = _say(wish_command, context, "/wish 3")

    assert clipboard.written == []
    assert replies == ["Usage: /wish N, where N is an entry number from /list."]


def test_delete_command(tmp_path: Path) -> None:
    context, store, _clipboard = _context(tmp_path)
    store.create(BirthdayDraft(name="Alice", birth_date=date(1990, 6, 15)))
    bob = store.create(BirthdayDraft(name="Bob", birth_date=date(1985, 8, 22)))
    context.args = ["1"]

    _state, replies = _say(delete_command, context, "/delete 1")

    assert replies == ["Birthday deleted successfully!"]
    assert store.list() == [bob]


def test_list_command_reports_load_failure(tmp_path: Path) -> None:
    context, store, _clipboard = _context(tmp_path)
    store.path.write_text("not = [valid\n", encoding="utf-8")

    _state, replies = _say(list_command, context, "/list")

    assert replies == ["Failed to load birthdays"]


def test_wish_command_rejects_non_decimal_digits(tmp_path: Path) -> None:
    context, store, clipboard = _context(tmp_path)
    store.create(BirthdayDraft(name="Alice", birth_date=date(1990, 6, 15)))
    context.args = ["²"]

    _state, replies = _say(wish_command, context, "/wish ²")

    assert clipboard.written == []
    assert replies == ["Usage: /wish N, where N is an entry number from /list."]


def test_edit_of_deleted_birthday_is_not_saved(tmp_path: Path) -> None:
    context, store, _clipboard = _context(tmp_path)
    bob = store.create(BirthdayDraft(name="Bob", birth_date=date(1985, 8, 22)))

    _say(edit_start, context, "/edit")
    _say(edit_select, context, "1")
    _say(receive_name, context, "Robert")
    _say(receive_birth_date, context, "skip")
    for handler in (receive_relationship, receive_phone, receive_email, receive_notes):
        _say(handler, context, "skip")
    store.delete(bob.id)

    state, replies = _say(confirm, context, "yes")

    assert state == ConversationHandler.END
    assert replies == ["Could not save because this birthday no longer exists. Send /edit and try again."]
    assert store.list() == []
