from enum import Enum


class BaseActionEnum(str, Enum):
    def __str__(self) -> str:
        return self.value


class TranslationStoreAction(BaseActionEnum):
    DECLARE = "declare"
    BUILD = "build"
    PRUNE_BLANK = "prune_blank"
    CASCADE_DELETE = "cascade_delete"
    CASCADE_DELETE_FAILED = "cascade_delete_failed"
    DUPLICATE = "duplicate"


class QueryAction(BaseActionEnum):
    BUILD_PREDICATE = "build_predicate"
    BUILD_ORDER = "build_order"
