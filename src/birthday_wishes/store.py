from __future__ import annotations

import logging
import os
import tempfile
import tomllib
import uuid
from datetime import date
from pathlib import Path
from typing import Any, Protocol

from birthday_wishes.date_logic import InvalidDateError, parse_birth_date, validate_leap_day_rule
from birthday_wishes.models import AppConfig, BirthdayDraft, BirthdayRecord

LOGGER = logging.getLogger(__name__)

OPTIONAL_TEXT_FIELDS = ("relationship", "phone", "email", "notes")


class StoreError(Exception):
    pass


class StoreUnavailableError(StoreError):
    """The backing file could not be read, parsed or written."""


class StoreValidationError(StoreError):
    """The request or the stored data does not describe a valid birthday."""


class BirthdayStore(Protocol):
    def list(self) -> list[BirthdayRecord]:
        ...

    def create(self, draft: BirthdayDraft) -> BirthdayRecord:
        ...

    def update(self, record_id: str, draft: BirthdayDraft) -> BirthdayRecord:
        ...

    def delete(self, record_id: str) -> None:
        ...


TOML_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"}


def _toml_escape(value: str) -> str:
    pieces: list[str] = []
    for char in value:
        if char in TOML_ESCAPES:
            pieces.append(TOML_ESCAPES[char])
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            # TOML basic strings reject raw control characters
            pieces.append(f"\\u{ord(char):04X}")
        else:
            pieces.append(char)
    return "".join(pieces)


def _clean_optional(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_birth_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        return parse_birth_date(str(value))
    except InvalidDateError as exc:
        raise StoreValidationError(str(exc)) from exc


def validate_draft(draft: BirthdayDraft) -> BirthdayDraft:
    name = (draft.name or "").strip()
    if not name:
        raise StoreValidationError("name must not be empty")
    if draft.birth_date is None:
        raise StoreValidationError("birth date is required")

    return BirthdayDraft(
        name=name,
        birth_date=_coerce_birth_date(draft.birth_date),
        relationship=_clean_optional(draft.relationship),
        phone=_clean_optional(draft.phone),
        email=_clean_optional(draft.email),
        notes=_clean_optional(draft.notes),
    )


def validate_config(config: AppConfig) -> AppConfig:
    timezone = config.timezone.strip()
    if not timezone:
        raise StoreValidationError("timezone must not be empty")

    if isinstance(config.upcoming_limit, bool) or not isinstance(config.upcoming_limit, int):
        raise StoreValidationError("upcoming_limit must be an integer")
    if config.upcoming_limit < 1:
        raise StoreValidationError("upcoming_limit must be positive")

    try:
        leap_day_rule = validate_leap_day_rule(config.leap_day_rule)
    except InvalidDateError as exc:
        raise StoreValidationError(str(exc)) from exc

    return AppConfig(
        timezone=timezone,
        upcoming_limit=config.upcoming_limit,
        leap_day_rule=leap_day_rule,
    )


def _record_from_row(row: dict[str, Any]) -> BirthdayRecord:
    record_id = _clean_optional(row.get("id"))
    if record_id is None:
        raise StoreValidationError("stored birthday is missing its id")

    draft = validate_draft(
        BirthdayDraft(
            name=str(row.get("name", "")),
            birth_date=row.get("birth_date"),
            **{field: row.get(field) for field in OPTIONAL_TEXT_FIELDS},
        )
    )
    return _record_from_draft(record_id, draft)


def _record_from_draft(record_id: str, draft: BirthdayDraft) -> BirthdayRecord:
    return BirthdayRecord(
        id=record_id,
        name=draft.name,
        birth_date=draft.birth_date,
        relationship=draft.relationship,
        phone=draft.phone,
        email=draft.email,
        notes=draft.notes,
    )


def load_document(path: Path) -> tuple[AppConfig, list[BirthdayRecord]]:
    try:
        with path.open("rb") as file_obj:
            data = tomllib.load(file_obj)
    except FileNotFoundError as exc:
        raise StoreUnavailableError(f"Birthday store not found: {path}") from exc
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise StoreUnavailableError(f"Could not read birthday store {path}: {exc}") from exc

    config = validate_config(
        AppConfig(
            timezone=str(data.get("timezone", "UTC")),
            upcoming_limit=data.get("upcoming_limit", AppConfig.upcoming_limit),
            leap_day_rule=str(data.get("leap_day_rule", "mar1")),
        )
    )

    records = [_record_from_row(row) for row in data.get("birthdays", [])]
    seen: set[str] = set()
    for record in records:
        if record.id in seen:
            raise StoreValidationError(f"duplicate birthday id: {record.id}")
        seen.add(record.id)

    return config, records


def render_document(config: AppConfig, records: list[BirthdayRecord]) -> str:
    validated = validate_config(config)

    lines: list[str] = [
        f'timezone = "{_toml_escape(validated.timezone)}"',
        f"upcoming_limit = {validated.upcoming_limit}",
        f'leap_day_rule = "{validated.leap_day_rule}"',
        "",
    ]

    for record in records:
        lines.append("[[birthdays]]")
        lines.append(f'id = "{_toml_escape(record.id)}"')
        lines.append(f'name = "{_toml_escape(record.name)}"')
        lines.append(f"birth_date = {record.birth_date.isoformat()}")
        for field in OPTIONAL_TEXT_FIELDS:
            value = getattr(record, field)
            if value is not None:
                lines.append(f'{field} = "{_toml_escape(value)}"')
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def save_document_atomic(path: Path, config: AppConfig, records: list[BirthdayRecord]) -> None:
    rendered = render_document(config, records)
    try:
        tomllib.loads(rendered)
    except tomllib.TOMLDecodeError as exc:
        raise StoreValidationError(f"Refusing to write unreadable birthday store: {exc}") from exc

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            delete=False,
        ) as temp_file:
            temp_file.write(rendered)
            temp_name = temp_file.name

        os.replace(temp_name, path)
    except OSError as exc:
        raise StoreUnavailableError(f"Could not write birthday store {path}: {exc}") from exc


def ensure_default_store(path: Path) -> None:
    if path.exists():
        return
    save_document_atomic(path, AppConfig(), [])


class TomlBirthdayStore:
    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load_config(self) -> AppConfig:
        config, _records = load_document(self._path)
        return config

    def list(self) -> list[BirthdayRecord]:
        _config, records = load_document(self._path)
        return records

    def create(self, draft: BirthdayDraft) -> BirthdayRecord:
        validated = validate_draft(draft)
        config, records = load_document(self._path)

        record = _record_from_draft(str(uuid.uuid4()), validated)
        save_document_atomic(self._path, config, [*records, record])
        LOGGER.info("Created birthday %s for %s", record.id, record.name)
        return record

    def update(self, record_id: str, draft: BirthdayDraft) -> BirthdayRecord:
        validated = validate_draft(draft)
        config, records = load_document(self._path)

        index = self._index_of(records, record_id)
        record = _record_from_draft(record_id, validated)
        updated = list(records)
        updated[index] = record
        save_document_atomic(self._path, config, updated)
        LOGGER.info("Updated birthday %s for %s", record.id, record.name)
        return record

    def delete(self, record_id: str) -> None:
        config, records = load_document(self._path)

        index = self._index_of(records, record_id)
        removed = records[index]
        save_document_atomic(self._path, config, records[:index] + records[index + 1 :])
        LOGGER.info("Deleted birthday %s for %s", removed.id, removed.name)

    @staticmethod
    def _index_of(records: list[BirthdayRecord], record_id: str) -> int:
        for index, record in enumerate(records):
            if record.id == record_id:
                return index
        raise StoreValidationError(f"Unknown birthday id: {record_id}")
