from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from birthday_wishes.clipboard import ClipboardError, ClipboardWriter
from birthday_wishes.date_logic import age, todays_birthdays, upcoming_birthdays
from birthday_wishes.greetings import compose_greeting
from birthday_wishes.models import AppConfig, BirthdayDraft, BirthdayRecord, UpcomingEntry
from birthday_wishes.store import BirthdayStore, StoreError

LOGGER = logging.getLogger(__name__)

NOTICE_SUCCESS = "success"
NOTICE_ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: str
    text: str

    @property
    def ok(self) -> bool:
        return self.level == NOTICE_SUCCESS


@dataclass(frozen=True)
class ListedBirthday:
    record: BirthdayRecord
    age: int


@dataclass(frozen=True)
class Dashboard:
    reference_date: date
    today: list[ListedBirthday]
    upcoming: list[UpcomingEntry]
    everyone: list[ListedBirthday]


@dataclass(frozen=True)
class Wish:
    record: BirthdayRecord
    message: str
    notice: Notice


def reference_date_for(config: AppConfig, now: datetime | None = None) -> date:
    tz = ZoneInfo(config.timezone)
    if now is None:
        return datetime.now(tz).date()
    return now.astimezone(tz).date()


class BirthdayBook:
    """Holds the last snapshot loaded from the store and derives views from it.

    Every mutation is followed by a full reload; a failed call leaves the
    snapshot exactly as it was.
    """

    def __init__(self, store: BirthdayStore, config: AppConfig) -> None:
        self._store = store
        self._config = config
        self._records: tuple[BirthdayRecord, ...] = ()
        self._loaded = False

    @property
    def records(self) -> tuple[BirthdayRecord, ...]:
        return self._records

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def config(self) -> AppConfig:
        return self._config

    def refresh(self) -> Notice | None:
        try:
            records = self._store.list()
        except StoreError:
            LOGGER.exception("Failed to load birthdays")
            return Notice(NOTICE_ERROR, "Failed to load birthdays")

        self._records = tuple(records)
        self._loaded = True
        return None

    def find(self, record_id: str) -> BirthdayRecord | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def save(self, draft: BirthdayDraft, editing_id: str | None = None) -> Notice:
        if not (draft.name or "").strip():
            return Notice(NOTICE_ERROR, "Please enter the name")
        if draft.birth_date is None:
            return Notice(NOTICE_ERROR, "Please select birth date")

        try:
            if editing_id is not None:
                self._store.update(editing_id, draft)
                notice = Notice(NOTICE_SUCCESS, "Birthday updated successfully!")
            else:
                self._store.create(draft)
                notice = Notice(NOTICE_SUCCESS, "Birthday added successfully!")
        except StoreError as exc:
            LOGGER.warning("Failed to save birthday %s: %s", draft.name, exc)
            return Notice(NOTICE_ERROR, "Failed to save birthday")

        self.refresh()
        return notice

    def delete(self, record_id: str) -> Notice:
        try:
            self._store.delete(record_id)
        except StoreError as exc:
            LOGGER.warning("Failed to delete birthday %s: %s", record_id, exc)
            return Notice(NOTICE_ERROR, "Failed to delete birthday")

        self.refresh()
        return Notice(NOTICE_SUCCESS, "Birthday deleted successfully!")

    def dashboard(self, reference_date: date) -> Dashboard:
        records = self._records
        rule = self._config.leap_day_rule
        return Dashboard(
            reference_date=reference_date,
            today=[
                ListedBirthday(record=record, age=age(record.birth_date, reference_date, rule))
                for record in todays_birthdays(records, reference_date, rule)
            ],
            upcoming=upcoming_birthdays(records, reference_date, self._config.upcoming_limit, rule),
            everyone=[
                ListedBirthday(record=record, age=age(record.birth_date, reference_date, rule))
                for record in records
            ],
        )

    async def wish(self, record: BirthdayRecord, reference_date: date, clipboard: ClipboardWriter) -> Wish:
        message = compose_greeting(record, reference_date, self._config.leap_day_rule)
        try:
            await clipboard.write_text(message)
        except ClipboardError:
            return Wish(
                record=record,
                message=message,
                notice=Notice(NOTICE_ERROR, "Failed to copy the birthday message"),
            )

        LOGGER.info("Prepared birthday wish for %s", record.name)
        return Wish(
            record=record,
            message=message,
            notice=Notice(NOTICE_SUCCESS, "Birthday Wish Ready!"),
        )
