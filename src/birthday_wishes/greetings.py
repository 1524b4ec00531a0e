from __future__ import annotations

from datetime import date

from birthday_wishes.date_logic import age
from birthday_wishes.models import BirthdayRecord

GREETING_TEMPLATE = (
    "🎉 Happy {ordinal} Birthday, {name}! 🎂 "
    "Hope you have a wonderful day filled with joy and celebration! 🎈"
)


def ordinal(number: int) -> str:
    if 10 <= number % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")
    return f"{number}{suffix}"


def compose_greeting(record: BirthdayRecord, reference_date: date, leap_day_rule: str = "mar1") -> str:
    years = age(record.birth_date, reference_date, leap_day_rule)
    return GREETING_TEMPLATE.format(ordinal=ordinal(years), name=record.name)
