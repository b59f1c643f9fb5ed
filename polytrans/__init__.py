from polytrans.backends import KeyValueBackend, LocaleQueryBuilder
from polytrans.config import Options, Settings, settings
from polytrans.errors import (
    ConfigurationError,
    DuplicateTranslationError,
    PolytransError,
    ReservedOptionKeyError,
    UnavailableLocaleError,
)
from polytrans.fallbacks import Fallbacks
from polytrans.locales import get_locale, set_locale, use_locale
from polytrans.models import (
    OwnerReference,
    StringTranslation,
    TextTranslation,
    TranslationModel,
)
from polytrans.registry import AttributeScopeRegistry, TranslationShapeRegistry

__all__ = [
    "AttributeScopeRegistry",
    "ConfigurationError",
    "DuplicateTranslationError",
    "Fallbacks",
    "KeyValueBackend",
    "LocaleQueryBuilder",
    "Options",
    "OwnerReference",
    "PolytransError",
    "ReservedOptionKeyError",
    "Settings",
    "StringTranslation",
    "TextTranslation",
    "TranslationModel",
    "TranslationShapeRegistry",
    "UnavailableLocaleError",
    "get_locale",
    "set_locale",
    "settings",
    "use_locale",
]
