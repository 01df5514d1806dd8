"""Store-backed batch rules (and the callable CustomRule)."""

from .base import KEY_SEPARATOR, KeyGroup, RuleValidator, batch_key
from .custom import CustomRule
from .equality import EmptyOrEqual, Equal
from .exists_and_unique import ExistsAndUnique
from .existence import Exists, Unique

__all__ = [
    "KEY_SEPARATOR",
    "KeyGroup",
    "RuleValidator",
    "batch_key",
    "CustomRule",
    "Equal",
    "EmptyOrEqual",
    "Exists",
    "ExistsAndUnique",
    "Unique",
]
