from __future__ import annotations

from dataclasses import dataclass
from datetime import date


DEFAULT_RELATIONSHIP = "Friend"
RELATIONSHIP_OPTIONS = ("Family", "Friend", "Colleague", "Partner", "Other")
DEFAULT_UPCOMING_LIMIT = 5


@dataclass(frozen=True)
class BirthdayDraft:
    name: str
    birth_date: date | None
    relationship: str | None = None
    phone: str | None = None
    email: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class BirthdayRecord:
    id: str
    name: str
    birth_date: date
    relationship: str | None = None
    phone: str | None = None
    email: str | None = None
    notes: str | None = None

    @property
    def display_relationship(self) -> str:
        return self.relationship or DEFAULT_RELATIONSHIP


@dataclass(frozen=True)
class UpcomingEntry:
    record: BirthdayRecord
    next_occurrence: date
    days_until: int


@dataclass(frozen=True)
class AppConfig:
    timezone: str = "UTC"
    upcoming_limit: int = DEFAULT_UPCOMING_LIMIT
    leap_day_rule: str = "mar1"
