from polytrans.backends.key_value import KeyValueBackend, OwnerConfig, TranslatedAttribute, is_blank
from polytrans.backends.query import LocaleQueryBuilder

__all__ = [
    "KeyValueBackend",
    "LocaleQueryBuilder",
    "OwnerConfig",
    "TranslatedAttribute",
    "is_blank",
]
