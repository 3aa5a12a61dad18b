# app/services/deliverable_validation.py
from __future__ import annotations

import os
import re
from urllib.parse import urlparse

from app.core.config import Settings
from app.core.errors import ValidationError
from app.models.deliverable import Deliverable, DeliverableKind

_ALLOWED_URL_SCHEMES = {"http", "https"}
_WHITESPACE = re.compile(r"\s")


class DeliverableInvariantViolation(ValueError):
    pass


def normalize_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("title required")
    return title


def normalize_description(description: str | None) -> str | None:
    description = (description or "").strip()
    return description or None


def is_valid_url(url: str | None) -> bool:
    if not url or _WHITESPACE.search(url):
        return False
    parsed = urlparse(url)
    return parsed.scheme.lower() in _ALLOWED_URL_SCHEMES and bool(parsed.netloc)


def validate_url(url: str | None) -> str:
    url = (url or "").strip()
    if not is_valid_url(url):
        raise ValidationError("invalid url")
    return url


def _type_allowed(filename: str, content_type: str, allowed_types: list[str]) -> bool:
    name = filename.lower()
    for rule in allowed_types:
        rule = rule.strip().lower()
        if not rule:
            continue
        if rule.startswith("."):
            if name.endswith(rule):
                return True
        elif rule.endswith("/*"):
            if content_type.startswith(rule[:-1]):
                return True
        elif content_type == rule:
            return True
    return False


def validate_file(
    filename: str | None,
    content_type: str | None,
    size_bytes: int,
    settings: Settings,
) -> None:
    """
    Size limit and allow-list check for an uploaded payload.

    Allow-list entries are matched like the upload form does it:
    ``type/*`` by MIME prefix, ``.ext`` by file name suffix, anything else
    by exact MIME type.
    """
    if size_bytes > settings.deliverable_max_file_mb * 1024 * 1024:
        raise ValidationError("file rejected")

    name = os.path.basename(filename or "")
    mime = (content_type or "").lower()
    if not _type_allowed(name, mime, settings.deliverable_allowed_types):
        raise ValidationError("file rejected")


def check_location_invariant(d: Deliverable) -> None:
    """Exactly one of url/file_path is set and it matches kind."""
    has_url = bool(d.url)
    has_file = bool(d.file_path)

    if has_url == has_file:
        raise DeliverableInvariantViolation("exactly one of url/file_path must be set")

    if d.kind == DeliverableKind.url.value and not has_url:
        raise DeliverableInvariantViolation("url deliverable requires url")
    if d.kind == DeliverableKind.file.value and not has_file:
        raise DeliverableInvariantViolation("file deliverable requires file_path")
    if d.kind not in (DeliverableKind.url.value, DeliverableKind.file.value):
        raise DeliverableInvariantViolation(f"unknown deliverable kind '{d.kind}'")
