from __future__ import annotations

import pytest
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from conftest import Article, Post, backend
from polytrans import (
    ConfigurationError,
    Fallbacks,
    KeyValueBackend,
    Options,
    ReservedOptionKeyError,
    Settings,
)
from polytrans.config import settings
from polytrans.models import Base


class Coupon(Base):
    __tablename__ = "coupons"

    code: Mapped[str] = mapped_column(String(32), primary_key=True)


def test_locale_list_parsing() -> None:
    assert Settings(available_locales="en, fr; de").available_locales == ["en", "fr", "de"]
    assert Settings(available_locales='["en", "pt-BR"]').available_locales == ["en", "pt-BR"]
    assert Settings(available_locales="").available_locales == []
    assert Settings().available_locales == []


def test_fallback_chain_parsing() -> None:
    parsed = Settings(fallbacks="fr=en|de; pt-BR=pt").fallbacks
    assert parsed == {"fr": ["en", "de"], "pt-BR": ["pt"]}
    assert Settings(fallbacks='{"fr": ["en"]}').fallbacks == {"fr": ["en"]}


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POLYTRANS_DEFAULT_LOCALE", "de")
    monkeypatch.setenv("POLYTRANS_AVAILABLE_LOCALES", "de,en")
    monkeypatch.setenv("POLYTRANS_FALLBACKS", "de=en")

    loaded = Settings()
    assert loaded.default_locale == "de"
    assert loaded.available_locales == ["de", "en"]
    assert loaded.fallbacks == {"de": ["en"]}


def test_default_options_are_merged() -> None:
    options = Settings(default_options={"fallbacks": True}).default_options
    assert options == {"cache": True, "presence": True, "query": True, "fallbacks": True}
    assert Settings().default_options["presence"] is True


def test_reserved_option_keys() -> None:
    with pytest.raises(ReservedOptionKeyError):
        Options(backend="key_value")
    options = Options()
    with pytest.raises(ReservedOptionKeyError):
        options.update({"model_class": Post})
    with pytest.raises(ReservedOptionKeyError):
        options["backend"] = "key_value"
    with pytest.raises(ReservedOptionKeyError):
        KeyValueBackend(options={"model_class": Post})


def test_reserved_key_in_settings() -> None:
    with pytest.raises(ReservedOptionKeyError):
        Settings(default_options={"backend": "key_value"})


def test_fallbacks_end_with_default_locale() -> None:
    fallbacks = Fallbacks({"fr": ["en", "de"]}, default_locale="en")
    assert fallbacks("fr") == ["fr", "en", "de"]
    assert fallbacks("es") == ["es", "en"]


def test_presence_can_be_disabled() -> None:
    plain = KeyValueBackend(options={"presence": False})
    assert plain.options["presence"] is False
    assert plain.options["cache"] is True


def test_unknown_shape_fails_before_declaring() -> None:
    fresh = KeyValueBackend()
    with pytest.raises(ConfigurationError, match="JsonTranslation"):
        fresh.declare_translated(Post, None, ["title"], "json")
    with pytest.raises(ConfigurationError):
        fresh.owner_config(Post)


def test_unmapped_owner_is_rejected() -> None:
    class Plain:
        pass

    with pytest.raises(ConfigurationError, match="not a mapped class"):
        KeyValueBackend().declare_translated(Plain, None, ["title"], "string")


def test_attribute_colliding_with_column() -> None:
    with pytest.raises(ConfigurationError, match="collides"):
        backend.declare_translated(Article, None, ["slug"], "string")


def test_attribute_bound_to_one_association() -> None:
    with pytest.raises(ConfigurationError, match="already translated"):
        backend.declare_translated(Post, "headline_translations", ["title"], "string")


def test_owner_key_must_be_integer() -> None:
    coupons = KeyValueBackend()
    with pytest.raises(ConfigurationError, match="integer primary key"):
        coupons.declare_translated(Coupon, None, ["title"], "string")
    assert not hasattr(Coupon, "string_translations")


def test_backend_reads_available_locales_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "available_locales", ["en", "fr"])
    assert KeyValueBackend().available_locales == {"en", "fr"}
    assert KeyValueBackend(available_locales=[]).available_locales == frozenset()
