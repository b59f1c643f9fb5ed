from typing import Iterable


class PolytransError(Exception):
    """Base class for all errors raised by polytrans."""


class ConfigurationError(PolytransError):
    """Raised at declaration time when a translated attribute group cannot be set up."""


class ReservedOptionKeyError(ConfigurationError):
    pass


class DuplicateTranslationError(PolytransError):
    """More than one live record exists for the same owner, key and locale."""

    def __init__(self, owner: object, key: str, locale: str, count: int) -> None:
        self.owner = owner
        self.key = key
        self.locale = locale
        self.count = count
        super().__init__(
            f"{count} translation records found for {type(owner).__name__} "
            f"key={key!r} locale={locale!r}; expected at most one"
        )


class UnavailableLocaleError(PolytransError):
    def __init__(self, locale: str, available: Iterable[str]) -> None:
        self.locale = locale
        self.available = sorted(available)
        super().__init__(f"Locale {locale!r} is not one of {self.available}")
