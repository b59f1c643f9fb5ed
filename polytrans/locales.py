from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

from polytrans.config import settings

_current_locale: ContextVar[str | None] = ContextVar("polytrans_locale", default=None)


def normalize_locale(locale: object) -> str:
    return str(locale).strip()


def get_locale() -> str:
    """Locale used by attribute accessors when none is passed explicitly."""
    return _current_locale.get() or settings.default_locale


def set_locale(locale: object | None) -> None:
    _current_locale.set(normalize_locale(locale) if locale else None)


@contextmanager
def use_locale(locale: object) -> Iterator[str]:
    token = _current_locale.set(normalize_locale(locale))
    try:
        yield _current_locale.get()  # type: ignore[misc]
    finally:
        _current_locale.reset(token)
