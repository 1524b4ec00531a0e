from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date

from birthday_wishes.models import BirthdayRecord, UpcomingEntry

ALLOWED_LEAP_DAY_RULES = {"feb28", "mar1"}


class InvalidDateError(ValueError):
    pass


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def parse_birth_date(raw_text: str) -> date:
    value = raw_text.strip()
    match = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", value)
    if not match:
        raise InvalidDateError("Birth date must use YYYY-MM-DD")

    year, month, day = (int(piece) for piece in match.groups())
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise InvalidDateError(f"Invalid birth date: {value}") from exc


def validate_leap_day_rule(leap_day_rule: str) -> str:
    rule = leap_day_rule.strip().lower()
    if rule not in ALLOWED_LEAP_DAY_RULES:
        raise InvalidDateError(f"Unsupported leap day rule: {leap_day_rule}")
    return rule


def occurrence_in_year(birth_date: date, year: int, leap_day_rule: str = "mar1") -> date:
    if birth_date.month == 2 and birth_date.day == 29 and not is_leap_year(year):
        rule = validate_leap_day_rule(leap_day_rule)
        if rule == "feb28":
            return date(year, 2, 28)
        return date(year, 3, 1)
    return date(year, birth_date.month, birth_date.day)


def next_occurrence(birth_date: date, reference_date: date, leap_day_rule: str = "mar1") -> date:
    this_year = occurrence_in_year(birth_date, reference_date.year, leap_day_rule)
    if this_year >= reference_date:
        return this_year
    return occurrence_in_year(birth_date, reference_date.year + 1, leap_day_rule)


def days_until(birth_date: date, reference_date: date, leap_day_rule: str = "mar1") -> int:
    nxt = next_occurrence(birth_date, reference_date, leap_day_rule)
    return (nxt - reference_date).days


def todays_birthdays(
    records: Iterable[BirthdayRecord],
    reference_date: date,
    leap_day_rule: str = "mar1",
) -> list[BirthdayRecord]:
    return [
        record
        for record in records
        if occurrence_in_year(record.birth_date, reference_date.year, leap_day_rule) == reference_date
    ]


def upcoming_birthdays(
    records: Iterable[BirthdayRecord],
    reference_date: date,
    limit: int,
    leap_day_rule: str = "mar1",
) -> list[UpcomingEntry]:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValueError(f"limit must be a positive integer, got {limit!r}")

    entries: list[UpcomingEntry] = []
    for record in records:
        nxt = next_occurrence(record.birth_date, reference_date, leap_day_rule)
        entries.append(
            UpcomingEntry(
                record=record,
                next_occurrence=nxt,
                days_until=(nxt - reference_date).days,
            )
        )

    # list.sort is stable, so equal days keep their input order
    entries.sort(key=lambda entry: entry.days_until)
    return entries[:limit]


def age(birth_date: date, reference_date: date, leap_day_rule: str = "mar1") -> int:
    years = reference_date.year - birth_date.year
    # a Feb 29 birthday counts from the day todays_birthdays celebrates it
    if reference_date < occurrence_in_year(birth_date, reference_date.year, leap_day_rule):
        years -= 1
    return years
