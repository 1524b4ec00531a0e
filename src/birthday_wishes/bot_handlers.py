from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from telegram import Update
from telegram.ext import (
    CallbackContext,
    CommandHandler,
    ConversationHandler,
    MessageHandler,
    filters,
)

from birthday_wishes.clipboard import ClipboardWriter
from birthday_wishes.date_logic import InvalidDateError, parse_birth_date
from birthday_wishes.models import RELATIONSHIP_OPTIONS, BirthdayDraft, BirthdayRecord, UpcomingEntry
from birthday_wishes.presenter import BirthdayBook, ListedBirthday, Wish, reference_date_for
from birthday_wishes.settings import Settings

LOGGER = logging.getLogger(__name__)

(
    STATE_SELECT,
    STATE_NAME,
    STATE_BIRTH_DATE,
    STATE_RELATIONSHIP,
    STATE_PHONE,
    STATE_EMAIL,
    STATE_NOTES,
    STATE_CONFIRM,
) = range(8)

PENDING_KEY = "pending_birthday"
MODE_ADD = "add"
MODE_EDIT = "edit"

SKIP_WORDS = {"skip", "keep", "same"}
CLEAR_WORDS = {"-", "none", "clear"}

OPTIONAL_FIELD_LABELS = {
    "relationship": "Relationship",
    "phone": "Phone",
    "email": "Email",
    "notes": "Notes",
}


@dataclass(frozen=True)
class HandlerDependencies:
    settings: Settings
    book: BirthdayBook
    clipboard: ClipboardWriter


def is_authorized(update: Update, settings: Settings) -> bool:
    effective_user = update.effective_user
    effective_chat = update.effective_chat
    if effective_user is None or effective_chat is None:
        return False
    return (
        effective_user.id == settings.telegram_allowed_user_id
        and effective_chat.id == settings.telegram_allowed_chat_id
    )


async def _deny_unauthorized(update: Update) -> None:
    if update.effective_message:
        await update.effective_message.reply_text("This bot is restricted to its configured owner.")


def format_days_until(days: int) -> str:
    if days == 0:
        return "Today!"
    return f"{days} day{'s' if days > 1 else ''}"


def format_birth_date(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def normalize_relationship(raw_text: str) -> str:
    value = raw_text.strip()
    for option in RELATIONSHIP_OPTIONS:
        if option.lower() == value.lower():
            return option
    return value


def _render_help() -> str:
    return (
        "Birthday Wishes - never forget to wish your loved ones a happy birthday.\n\n"
        "Commands:\n"
        "/list - Show all birthdays\n"
        "/today - Show today's birthdays\n"
        "/upcoming - Show the next upcoming birthdays\n"
        "/wish N - Prepare a birthday message for entry N of /list\n"
        "/add - Add a new birthday\n"
        "/edit - Edit an existing birthday\n"
        "/delete N - Delete entry N of /list\n"
        "/cancel - Cancel the active add/edit wizard\n"
        "/help - Show this help message\n\n"
        "Birth date format: YYYY-MM-DD (e.g., 1990-06-15)"
    )


def _render_contact_line(record: BirthdayRecord) -> str | None:
    pieces: list[str] = []
    if record.phone:
        pieces.append(f"Phone {record.phone}")
    if record.email:
        pieces.append(f"Email {record.email}")
    if not pieces:
        return None
    return " | ".join(pieces)


def _render_list_message(rows: list[ListedBirthday]) -> str:
    if not rows:
        return "No birthdays yet. Send /add to create one."

    lines = [f"All Birthdays ({len(rows)})"]
    for index, row in enumerate(rows, start=1):
        record = row.record
        lines.append(f"{index}. {record.name} [{record.display_relationship}]")
        lines.append(f"   {format_birth_date(record.birth_date)} ({row.age} years old)")
        contact = _render_contact_line(record)
        if contact:
            lines.append(f"   {contact}")
        if record.notes:
            lines.append(f"   {record.notes}")
        lines.append("")

    return "\n".join(lines).rstrip()


def _render_today_message(rows: list[ListedBirthday]) -> str:
    if not rows:
        return "No birthdays today."

    lines = ["🎉 Today's Birthdays!"]
    for row in rows:
        record = row.record
        lines.append(f"- {record.name} (Turning {row.age})")
        lines.append(f"  {record.display_relationship}")
        if record.notes:
            lines.append(f"  {record.notes}")
    return "\n".join(lines)


def _render_upcoming_message(entries: list[UpcomingEntry]) -> str:
    if not entries:
        return "No upcoming birthdays."

    lines = ["Upcoming Birthdays"]
    for index, entry in enumerate(entries, start=1):
        lines.append(
            f"{index}. {entry.record.name} - {format_days_until(entry.days_until)}"
            f" ({entry.next_occurrence.isoformat()})"
        )
    return "\n".join(lines)


def _render_wish_message(wish: Wish) -> str:
    if not wish.notice.ok:
        return f"{wish.notice.text}\n\n{wish.message}"

    lines = [
        wish.notice.text,
        "The birthday message has been copied to your clipboard:",
        "",
        wish.message,
    ]
    contact = [
        f"{label}: {value}"
        for label, value in (("Phone", wish.record.phone), ("Email", wish.record.email))
        if value
    ]
    if contact:
        lines.append("")
        lines.extend(contact)
    return "\n".join(lines)


def _render_summary(pending: dict[str, Any]) -> str:
    title = "Edit Birthday" if pending.get("mode") == MODE_EDIT else "Add New Birthday"
    birth_date = date.fromisoformat(pending["birth_date"])
    lines = [
        f"{title} - confirm:",
        f"Name: {pending['name']}",
        f"Birth date: {format_birth_date(birth_date)}",
    ]
    for field, label in OPTIONAL_FIELD_LABELS.items():
        lines.append(f"{label}: {pending.get(field) or '(not set)'}")
    lines.append("")
    lines.append("Reply with yes to save, or no to cancel.")
    return "\n".join(lines)


def _draft_from_pending(pending: dict[str, Any]) -> BirthdayDraft:
    return BirthdayDraft(
        name=str(pending["name"]),
        birth_date=date.fromisoformat(pending["birth_date"]),
        relationship=pending.get("relationship"),
        phone=pending.get("phone"),
        email=pending.get("email"),
        notes=pending.get("notes"),
    )


def _pending_from_record(record: BirthdayRecord) -> dict[str, Any]:
    return {
        "mode": MODE_EDIT,
        "record_id": record.id,
        "name": record.name,
        "birth_date": record.birth_date.isoformat(),
        "relationship": record.relationship,
        "phone": record.phone,
        "email": record.email,
        "notes": record.notes,
    }


def _is_skip(value: str) -> bool:
    return value.strip().lower() in SKIP_WORDS


def _keep_hint(pending: dict[str, Any], field: str) -> str:
    if pending.get("mode") != MODE_EDIT:
        return "or skip."
    current = pending.get(field)
    if current:
        return f"skip to keep \"{current}\", or - to clear."
    return "or skip."


async def _authorized_deps(update: Update, context: CallbackContext) -> HandlerDependencies | None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return None
    return deps


async def _load_book(update: Update, book: BirthdayBook) -> bool:
    notice = book.refresh()
    if notice is not None:
        await update.effective_message.reply_text(notice.text)
    return book.loaded


def _record_from_args(book: BirthdayBook, args: list[str]) -> BirthdayRecord | None:
    if len(args) != 1 or not args[0].isdecimal():
        return None
    selected = int(args[0])
    if selected < 1 or selected > len(book.records):
        return None
    return book.records[selected - 1]


def _session(context: CallbackContext) -> dict[str, Any] | None:
    pending = context.user_data.get(PENDING_KEY)
    if not isinstance(pending, dict) or "mode" not in pending:
        return None
    return pending


async def _session_expired(update: Update) -> int:
    await update.effective_message.reply_text("Session expired. Send /add or /edit to start again.")
    return ConversationHandler.END


async def help_command(update: Update, context: CallbackContext) -> None:
    if await _authorized_deps(update, context) is None:
        return
    await update.effective_message.reply_text(_render_help())


async def list_command(update: Update, context: CallbackContext) -> None:
    deps = await _authorized_deps(update, context)
    if deps is None or not await _load_book(update, deps.book):
        return

    dashboard = deps.book.dashboard(reference_date_for(deps.book.config))
    await update.effective_message.reply_text(_render_list_message(dashboard.everyone))


async def today_command(update: Update, context: CallbackContext) -> None:
    deps = await _authorized_deps(update, context)
    if deps is None or not await _load_book(update, deps.book):
        return

    dashboard = deps.book.dashboard(reference_date_for(deps.book.config))
    await update.effective_message.reply_text(_render_today_message(dashboard.today))


async def upcoming_command(update: Update, context: CallbackContext) -> None:
    deps = await _authorized_deps(update, context)
    if deps is None or not await _load_book(update, deps.book):
        return

    dashboard = deps.book.dashboard(reference_date_for(deps.book.config))
    await update.effective_message.reply_text(_render_upcoming_message(dashboard.upcoming))


async def wish_command(update: Update, context: CallbackContext) -> None:
    deps = await _authorized_deps(update, context)
    if deps is None or not await _load_book(update, deps.book):
        return

    record = _record_from_args(deps.book, list(context.args or []))
    if record is None:
        await update.effective_message.reply_text("Usage: /wish N, where N is an entry number from /list.")
        return

    wish = await deps.book.wish(record, reference_date_for(deps.book.config), deps.clipboard)
    await update.effective_message.reply_text(_render_wish_message(wish))


async def delete_command(update: Update, context: CallbackContext) -> None:
    deps = await _authorized_deps(update, context)
    if deps is None or not await _load_book(update, deps.book):
        return

    record = _record_from_args(deps.book, list(context.args or []))
    if record is None:
        await update.effective_message.reply_text("Usage: /delete N, where N is an entry number from /list.")
        return

    notice = deps.book.delete(record.id)
    await update.effective_message.reply_text(notice.text)


async def add_start(update: Update, context: CallbackContext) -> int:
    if await _authorized_deps(update, context) is None:
        return ConversationHandler.END

    context.user_data[PENDING_KEY] = {"mode": MODE_ADD}
    await update.effective_message.reply_text("Add New Birthday\nSend the person's name.")
    return STATE_NAME


async def edit_start(update: Update, context: CallbackContext) -> int:
    deps = await _authorized_deps(update, context)
    if deps is None or not await _load_book(update, deps.book):
        return ConversationHandler.END

    if not deps.book.records:
        await update.effective_message.reply_text("No birthdays yet. Send /add to create one.")
        return ConversationHandler.END

    lines = ["Edit Birthday", "Reply with the number of the entry to edit:"]
    for index, record in enumerate(deps.book.records, start=1):
        lines.append(f"{index}. {record.name} | {record.birth_date.isoformat()}")
    context.user_data[PENDING_KEY] = {"mode": MODE_EDIT}
    await update.effective_message.reply_text("\n".join(lines))
    return STATE_SELECT


async def edit_select(update: Update, context: CallbackContext) -> int:
    deps = await _authorized_deps(update, context)
    if deps is None:
        return ConversationHandler.END

    raw_text = (update.effective_message.text or "").strip()
    record = _record_from_args(deps.book, [raw_text])
    if record is None:
        await update.effective_message.reply_text(
            f"Entry must be a number between 1 and {len(deps.book.records)}."
        )
        return STATE_SELECT

    context.user_data[PENDING_KEY] = _pending_from_record(record)
    await update.effective_message.reply_text(f"Send a new name, or skip to keep \"{record.name}\".")
    return STATE_NAME


async def receive_name(update: Update, context: CallbackContext) -> int:
    if await _authorized_deps(update, context) is None:
        return ConversationHandler.END
    pending = _session(context)
    if pending is None:
        return await _session_expired(update)

    raw_text = (update.effective_message.text or "").strip()
    editing = pending["mode"] == MODE_EDIT
    if not (editing and _is_skip(raw_text)):
        if not raw_text:
            await update.effective_message.reply_text("Please enter the name")
            return STATE_NAME
        pending["name"] = raw_text

    if editing:
        prompt = f"Send a new birth date as YYYY-MM-DD, or skip to keep {pending['birth_date']}."
    else:
        prompt = "Send the birth date as YYYY-MM-DD."
    await update.effective_message.reply_text(prompt)
    return STATE_BIRTH_DATE


async def receive_birth_date(update: Update, context: CallbackContext) -> int:
    if await _authorized_deps(update, context) is None:
        return ConversationHandler.END
    pending = _session(context)
    if pending is None:
        return await _session_expired(update)

    raw_text = (update.effective_message.text or "").strip()
    if not (pending["mode"] == MODE_EDIT and _is_skip(raw_text)):
        try:
            pending["birth_date"] = parse_birth_date(raw_text).isoformat()
        except InvalidDateError as exc:
            await update.effective_message.reply_text(f"{exc}. Please select birth date.")
            return STATE_BIRTH_DATE

    options = ", ".join(RELATIONSHIP_OPTIONS)
    await update.effective_message.reply_text(
        f"Send the relationship ({options}), {_keep_hint(pending, 'relationship')}"
    )
    return STATE_RELATIONSHIP


def _apply_optional(pending: dict[str, Any], field: str, raw_text: str) -> None:
    value = raw_text.strip()
    if _is_skip(value) or not value:
        if pending["mode"] == MODE_ADD:
            pending[field] = None
        return
    if value.lower() in CLEAR_WORDS:
        pending[field] = None
        return
    pending[field] = normalize_relationship(value) if field == "relationship" else value


async def _optional_step(
    update: Update,
    context: CallbackContext,
    field: str,
    next_field: str | None,
    next_state: int,
) -> int:
    if await _authorized_deps(update, context) is None:
        return ConversationHandler.END
    pending = _session(context)
    if pending is None:
        return await _session_expired(update)

    _apply_optional(pending, field, update.effective_message.text or "")

    if next_field is None:
        await update.effective_message.reply_text(_render_summary(pending))
    else:
        label = OPTIONAL_FIELD_LABELS[next_field].lower()
        await update.effective_message.reply_text(f"Send the {label}, {_keep_hint(pending, next_field)}")
    return next_state


async def receive_relationship(update: Update, context: CallbackContext) -> int:
    return await _optional_step(update, context, "relationship", "phone", STATE_PHONE)


async def receive_phone(update: Update, context: CallbackContext) -> int:
    return await _optional_step(update, context, "phone", "email", STATE_EMAIL)


async def receive_email(update: Update, context: CallbackContext) -> int:
    return await _optional_step(update, context, "email", "notes", STATE_NOTES)


async def receive_notes(update: Update, context: CallbackContext) -> int:
    return await _optional_step(update, context, "notes", None, STATE_CONFIRM)


async def confirm(update: Update, context: CallbackContext) -> int:
    deps = await _authorized_deps(update, context)
    if deps is None:
        return ConversationHandler.END
    pending = _session(context)
    if pending is None:
        return await _session_expired(update)

    decision = (update.effective_message.text or "").strip().lower()
    if decision not in {"yes", "y", "no", "n"}:
        await update.effective_message.reply_text("Please reply with yes or no.")
        return STATE_CONFIRM

    context.user_data.pop(PENDING_KEY, None)
    if decision in {"no", "n"}:
        await update.effective_message.reply_text("Canceled. No changes were made.")
        return ConversationHandler.END

    editing_id = pending.get("record_id") if pending["mode"] == MODE_EDIT else None
    if editing_id is not None:
        deps.book.refresh()
        if deps.book.find(editing_id) is None:
            await update.effective_message.reply_text(
                "Could not save because this birthday no longer exists. Send /edit and try again."
            )
            return ConversationHandler.END

    notice = deps.book.save(_draft_from_pending(pending), editing_id=editing_id)
    await update.effective_message.reply_text(notice.text)
    return ConversationHandler.END


async def cancel_command(update: Update, context: CallbackContext) -> int:
    if await _authorized_deps(update, context) is None:
        return ConversationHandler.END

    context.user_data.pop(PENDING_KEY, None)
    await update.effective_message.reply_text("Wizard canceled.")
    return ConversationHandler.END


def build_handlers() -> list:
    text_only = filters.TEXT & ~filters.COMMAND
    birthday_conversation = ConversationHandler(
        entry_points=[CommandHandler("add", add_start), CommandHandler("edit", edit_start)],
        states={
            STATE_SELECT: [MessageHandler(text_only, edit_select)],
            STATE_NAME: [MessageHandler(text_only, receive_name)],
            STATE_BIRTH_DATE: [MessageHandler(text_only, receive_birth_date)],
            STATE_RELATIONSHIP: [MessageHandler(text_only, receive_relationship)],
            STATE_PHONE: [MessageHandler(text_only, receive_phone)],
            STATE_EMAIL: [MessageHandler(text_only, receive_email)],
            STATE_NOTES: [MessageHandler(text_only, receive_notes)],
            STATE_CONFIRM: [MessageHandler(text_only, confirm)],
        },
        fallbacks=[CommandHandler("cancel", cancel_command)],
        name="birthday_form_conversation",
        persistent=False,
    )

    return [
        CommandHandler(["start", "help"], help_command),
        CommandHandler("list", list_command),
        CommandHandler("today", today_command),
        CommandHandler("upcoming", upcoming_command),
        CommandHandler("wish", wish_command),
        CommandHandler("delete", delete_command),
        CommandHandler("cancel", cancel_command),
        birthday_conversation,
    ]
