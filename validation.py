from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping


PHONE_RE = re.compile(r"^[6-9]\d{9}$")

MAX_FILE_SIZE = 2 * 1024 * 1024
ACCEPTED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png")


class ValidationErrors(Exception):
    """Caller-correctable input problems, keyed by field path."""

    def __init__(self, errors: dict[str, list[str]]):
        super().__init__("Validation failed")
        self.errors = errors


class ErrorBag:
    def __init__(self):
        self._errors: dict[str, list[str]] = {}

    def add(self, path: str, message: str) -> None:
        self._errors.setdefault(path, []).append(message)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def as_dict(self) -> dict[str, list[str]]:
        return {k: list(v) for k, v in self._errors.items()}

    def raise_if_any(self) -> None:
        if self._errors:
            raise ValidationErrors(self.as_dict())


@dataclass(frozen=True)
class FileMeta:
    name: str
    content_type: str
    size: int

    @classmethod
    def from_mapping(cls, raw: Any) -> "FileMeta | None":
        if raw is None or raw == "":
            return None
        if isinstance(raw, FileMeta):
            return raw
        if not isinstance(raw, Mapping):
            return cls(name="", content_type="", size=-1)
        try:
            size = int(raw.get("size") or 0)
        except (TypeError, ValueError):
            size = -1
        return cls(
            name=str(raw.get("name") or "").strip(),
            content_type=str(raw.get("type") or raw.get("content_type") or "").strip().lower(),
            size=size,
        )


def clean_str(value: Any) -> str:
    if value is None:
        return ""
    s = str(value).strip()
    # Browsers serialize unset form values as the literal "undefined".
    return "" if s in {"undefined", "null"} else s


def optional_str(value: Any) -> str | None:
    s = clean_str(value)
    return s or None


def require_str(bag: ErrorBag, data: Mapping[str, Any], key: str, message: str, *, path: str = "") -> str:
    s = clean_str(data.get(key))
    if not s:
        bag.add(path or key, message)
    return s


def check_phone(bag: ErrorBag, path: str, value: str, *, required: bool, message: str, missing: str = "") -> str:
    if not value:
        if required:
            bag.add(path, missing or message)
        return value
    if not PHONE_RE.match(value):
        bag.add(path, message)
    return value


def check_choice(bag: ErrorBag, path: str, value: str, choices: tuple[str, ...], message: str) -> str:
    if value not in choices:
        bag.add(path, message)
    return value


def check_file(
    bag: ErrorBag,
    path: str,
    meta: FileMeta | None,
    *,
    required: bool,
    missing_message: str,
    accepted_types: tuple[str, ...] = ACCEPTED_IMAGE_TYPES,
    max_size: int = MAX_FILE_SIZE,
) -> FileMeta | None:
    if meta is None:
        if required:
            bag.add(path, missing_message)
        return None
    if not meta.name:
        bag.add(path, "File name cannot be empty.")
    if not meta.content_type:
        bag.add(path, "File type cannot be empty.")
    elif meta.content_type not in accepted_types:
        bag.add(path, f"Unsupported file type. Accepted: {', '.join(accepted_types)}")
    if meta.size <= 0:
        bag.add(path, "File size must be positive.")
    elif meta.size > max_size:
        bag.add(path, f"File too large. Max size: {max_size // (1024 * 1024)}MB.")
    return meta
