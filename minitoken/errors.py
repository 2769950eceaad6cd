"""
Error types raised by the token ledger.

Core code raises `LedgerError` carrying a `TokenError` (or a `UserError`
for callers embedding their own error space). Only the contract layer
turns those into numeric codes via `Revert`.
"""

from enum import Enum, IntEnum

from minitoken.config import USER_ERROR_MAX


class TokenError(IntEnum):
    """Ledger failures, numbered down from 65535 to stay clear of user codes."""

    InvalidContext = 65535
    InsufficientBalance = 65534
    InsufficientAllowance = 65533
    Overflow = 65532
    ZeroAddress = 65531
    CannotMintToZeroHash = 65530
    CannotBurnFromZeroHash = 65529
    BurnAmountExceedsBalance = 65528


class UserError:
    """An error code from an embedding caller's own error space."""

    __slots__ = ("code",)

    def __init__(self, code: int):
        if isinstance(code, bool) or not isinstance(code, int):
            raise TypeError("User error code must be an int")
        if not 0 <= code <= USER_ERROR_MAX:
            raise ValueError(f"User error code must be in [0, {USER_ERROR_MAX}], got {code}")
        self.code = code

    @property
    def name(self) -> str:
        return f"User({self.code})"

    def __eq__(self, other):
        return isinstance(other, UserError) and other.code == self.code

    def __hash__(self):
        return hash(("user", self.code))

    def __repr__(self):
        return f"UserError({self.code})"


class LedgerError(Exception):
    """Raised when a ledger operation fails. Nothing has been written."""

    def __init__(self, error):
        if not isinstance(error, (TokenError, UserError)):
            raise TypeError(f"Expected TokenError or UserError, got {type(error).__name__}")
        self.error = error
        super().__init__(error.name)

    @property
    def code(self) -> int:
        return int(self.error) if isinstance(self.error, TokenError) else self.error.code


class ApiError(Enum):
    """
    Failures reported at the entry-point boundary.
    `User` wraps a numeric ledger or caller error code.
    """

    MissingArgument = "missing_argument"
    InvalidArgument = "invalid_argument"
    MissingKey = "missing_key"
    NoSuchEntryPoint = "no_such_entry_point"
    User = "user"


class Revert(Exception):
    """An entry-point call aborted with an `ApiError`."""

    def __init__(self, api_error: ApiError, code: int = None, detail: str = ""):
        self.api_error = api_error
        self.code = code
        self.detail = detail
        if api_error is ApiError.User:
            message = f"User({code})"
        else:
            message = api_error.name
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    @classmethod
    def from_ledger_error(cls, exc: LedgerError) -> "Revert":
        return cls(ApiError.User, code=exc.code, detail=exc.error.name)
