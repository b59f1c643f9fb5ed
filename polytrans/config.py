from typing import Any, Dict, List
import json

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from polytrans.errors import ReservedOptionKeyError

RESERVED_OPTION_KEYS = frozenset({"backend", "model_class"})

DEFAULT_OPTIONS: Dict[str, Any] = {
    "cache": True,
    "presence": True,
    "query": True,
    # None keeps fallbacks switchable per read.
    "fallbacks": None,
}


def _split_list(value: Any) -> List[str]:
    """Accepts a list, a JSON array or text separated by commas or semicolons."""
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        value = json.loads(text) if text.startswith("[") else text.replace(";", ",").split(",")
    return [str(item).strip() for item in value if str(item).strip()]


def _parse_fallbacks(value: Any) -> Dict[str, List[str]]:
    """Accepts a mapping or text such as ``fr=en|de; pt-BR=pt``."""
    if value is None:
        return {}
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return {}
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = {}
            for chunk in text.split(";"):
                locale, sep, chain = chunk.partition("=")
                if not sep or not locale.strip():
                    continue
                parsed[locale.strip()] = chain.split("|")
        value = parsed
    if not isinstance(value, dict):
        raise ValueError("fallbacks must be a mapping of locale to locale list")
    return {
        str(locale).strip(): _split_list(chain)
        for locale, chain in value.items()
        if str(locale).strip()
    }


class Options(dict):
    """Backend options; reserved keys may never be set."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self.update(*args, **kwargs)

    def __setitem__(self, key: str, value: Any) -> None:
        if key in RESERVED_OPTION_KEYS:
            raise ReservedOptionKeyError(
                f"Default options may not contain the following reserved key: {key}"
            )
        super().__setitem__(key, value)

    def update(self, *args: Any, **kwargs: Any) -> None:  # type: ignore[override]
        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def setdefault(self, key: str, default: Any = None) -> Any:
        if key not in self:
            self[key] = default
        return self[key]


class Settings(BaseSettings):
    database_url: str = "sqlite+pysqlite:///:memory:"
    echo_sql: bool = False
    default_locale: str = "en"
    # Keep Any here so env parser doesn't force JSON for list/dict fields.
    # Empty accepts every locale.
    available_locales: Any = []
    fallbacks: Any = {}
    default_options: Any = Field(default_factory=dict, validate_default=True)

    @field_validator("available_locales", mode="before")
    @classmethod
    def _split_locales(cls, value: Any) -> List[str]:
        return _split_list(value)

    @field_validator("default_locale", mode="before")
    @classmethod
    def _normalize_default_locale(cls, value: Any) -> str:
        if value is None:
            return "en"
        text = str(value).strip().strip("\"'")
        return text or "en"

    @field_validator("fallbacks", mode="before")
    @classmethod
    def _parse_fallback_chains(cls, value: Any) -> Dict[str, List[str]]:
        return _parse_fallbacks(value)

    @field_validator("default_options", mode="before")
    @classmethod
    def _merge_default_options(cls, value: Any) -> Options:
        if isinstance(value, str):
            value = json.loads(value) if value.strip() else {}
        options = Options(DEFAULT_OPTIONS)
        options.update(value or {})
        return options

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="POLYTRANS_",
        extra="ignore",
    )


settings = Settings()
