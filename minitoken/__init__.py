# Addresses and key codec
from .address import (
    NULL_ACCOUNT,
    NULL_HASH,
    AccountHash,
    Address,
    ContractHash,
    allowance_key,
    balance_key,
)

# Errors
from .errors import ApiError, LedgerError, Revert, TokenError, UserError

# Storage
from .store import InMemoryStore, JsonFileStore, LedgerStore

# Events
from .events import Approval, EventEmitter, EventLog, Transfer

# Caller resolution
from .context import Session, StoredContract, StoredSession, get_caller

# Engine and entry points
from .token import Token
from .contract import ENTRY_POINTS, TokenContract, install_token

__all__ = [
    # Addresses
    "Address",
    "AccountHash",
    "ContractHash",
    "NULL_ACCOUNT",
    "NULL_HASH",
    "balance_key",
    "allowance_key",
    # Errors
    "TokenError",
    "UserError",
    "LedgerError",
    "ApiError",
    "Revert",
    # Storage
    "LedgerStore",
    "InMemoryStore",
    "JsonFileStore",
    # Events
    "Transfer",
    "Approval",
    "EventLog",
    "EventEmitter",
    # Caller resolution
    "Session",
    "StoredSession",
    "StoredContract",
    "get_caller",
    # Engine
    "Token",
    "TokenContract",
    "ENTRY_POINTS",
    "install_token",
]
