import copy
import json
import logging
import os

from minitoken.config import (
    ALLOWANCES_DICT,
    BALANCES_DICT,
    DECIMALS_KEY,
    NAME_KEY,
    SYMBOL_KEY,
    TOTAL_SUPPLY_KEY,
)
from minitoken.u256 import require_u256

logger = logging.getLogger(__name__)


class LedgerStore:
    """
    Storage contract the token engine relies on.

    Subclasses provide named-key and dictionary access; the typed
    accessors below are built on top of those primitives. Each call
    is atomic on its own; grouping calls into one all-or-nothing operation
    is the engine's job.
    """

    # =========================================================================
    # PRIMITIVES (implemented by backends)
    # =========================================================================

    def get_key(self, name: str, default=None):
        raise NotImplementedError

    def set_key(self, name: str, value):
        raise NotImplementedError

    def dictionary_get(self, dictionary_name: str, item_key: str, default=None):
        raise NotImplementedError

    def dictionary_put(self, dictionary_name: str, item_key: str, value):
        raise NotImplementedError

    def dictionary_remove(self, dictionary_name: str, item_key: str):
        raise NotImplementedError

    def new_dictionary(self, dictionary_name: str):
        """Backends that create dictionaries lazily need not override this."""

    # =========================================================================
    # TYPED ACCESSORS
    # =========================================================================

    def read_balance(self, key: str) -> int:
        return self.dictionary_get(BALANCES_DICT, key, 0)

    def write_balance(self, key: str, value: int):
        self.dictionary_put(BALANCES_DICT, key, require_u256(value, "balance"))

    def read_allowance(self, key: str) -> int:
        return self.dictionary_get(ALLOWANCES_DICT, key, 0)

    def write_allowance(self, key: str, value: int):
        self.dictionary_put(ALLOWANCES_DICT, key, require_u256(value, "allowance"))

    def read_total_supply(self) -> int:
        return self.get_key(TOTAL_SUPPLY_KEY, 0)

    def write_total_supply(self, value: int):
        self.set_key(TOTAL_SUPPLY_KEY, require_u256(value, "total_supply"))

    @property
    def name(self) -> str:
        return self.get_key(NAME_KEY, "")

    @property
    def symbol(self) -> str:
        return self.get_key(SYMBOL_KEY, "")

    @property
    def decimals(self) -> int:
        return self.get_key(DECIMALS_KEY, 0)


class InMemoryStore(LedgerStore):
    def __init__(self):
        # { name: str|int }
        self.named_keys = {}
        # { dictionary_name: { item_key: int } }
        self.dictionaries = {}

    def get_key(self, name, default=None):
        return self.named_keys.get(name, default)

    def set_key(self, name, value):
        self.named_keys[name] = value

    def new_dictionary(self, dictionary_name):
        """Create an empty dictionary if it does not exist yet."""
        self.dictionaries.setdefault(dictionary_name, {})

    def dictionary_get(self, dictionary_name, item_key, default=None):
        return self.dictionaries.get(dictionary_name, {}).get(item_key, default)

    def dictionary_put(self, dictionary_name, item_key, value):
        self.dictionaries.setdefault(dictionary_name, {})[item_key] = value

    def dictionary_remove(self, dictionary_name, item_key):
        self.dictionaries.get(dictionary_name, {}).pop(item_key, None)

    def balances_total(self) -> int:
        """Sum of every balance entry. Equals total supply while the ledger is sound."""
        return sum(self.dictionaries.get(BALANCES_DICT, {}).values())

    def snapshot(self) -> "InMemoryStore":
        """
        Return an independent copy of the store.
        """
        new_store = InMemoryStore()
        new_store.named_keys = copy.deepcopy(self.named_keys)
        new_store.dictionaries = copy.deepcopy(self.dictionaries)
        return new_store

    def to_dict(self) -> dict:
        # Ints become decimal strings: U256 values do not survive JSON numbers in every reader
        return {
            "named_keys": {
                name: _encode_value(value) for name, value in self.named_keys.items()
            },
            "dictionaries": {
                dict_name: {item_key: str(value) for item_key, value in items.items()}
                for dict_name, items in self.dictionaries.items()
            },
        }

    def load_dict(self, data: dict):
        self.named_keys = {
            name: _decode_value(value) for name, value in data.get("named_keys", {}).items()
        }
        self.dictionaries = {
            dict_name: {item_key: int(value) for item_key, value in items.items()}
            for dict_name, items in data.get("dictionaries", {}).items()
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InMemoryStore":
        store = cls()
        store.load_dict(data)
        return store


class JsonFileStore(InMemoryStore):
    """In-memory store persisted as a JSON document."""

    def __init__(self, path):
        super().__init__()
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    @classmethod
    def load(cls, path) -> "JsonFileStore":
        store = cls(path)
        with open(path, "r", encoding="utf-8") as f:
            store.load_dict(json.load(f))
        logger.debug("Loaded ledger state from %s", path)
        return store

    def save(self):
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)
        logger.debug("Saved ledger state to %s", self.path)


def _encode_value(value):
    if isinstance(value, bool):
        raise TypeError("Named keys do not hold booleans")
    if isinstance(value, int):
        return {"int": str(value)}
    return value


def _decode_value(value):
    if isinstance(value, dict) and set(value) == {"int"}:
        return int(value["int"])
    return value
