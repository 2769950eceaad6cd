"""
Call stack frames and caller resolution.

A call stack lists frames outermost first; the last frame is the code
currently running. The acting identity is the frame just below it, so a
token called through a stored contract attributes the action to that
contract's package rather than to the account that started the chain.
"""

from collections import namedtuple

from minitoken.address import AccountHash, ContractHash
from minitoken.errors import LedgerError, TokenError

Session = namedtuple("Session", ["account_hash"])
StoredSession = namedtuple("StoredSession", ["account_hash", "contract_package_hash", "contract_hash"])
StoredContract = namedtuple("StoredContract", ["contract_package_hash", "contract_hash"])


def frame_identity(frame):
    """The address a frame acts as."""
    if isinstance(frame, (Session, StoredSession)):
        identity = frame.account_hash
        expected = AccountHash
    elif isinstance(frame, StoredContract):
        identity = frame.contract_package_hash
        expected = ContractHash
    else:
        raise TypeError(f"Unknown call stack frame: {frame!r}")
    if not isinstance(identity, expected):
        raise TypeError(f"{type(frame).__name__} frame holds {type(identity).__name__}, expected {expected.__name__}")
    return identity


def get_caller(call_stack):
    """
    Returns the immediate caller of the running frame, whether it's an
    account or a contract package.
    """
    frames = list(call_stack)
    if len(frames) < 2:
        raise LedgerError(TokenError.InvalidContext)
    return frame_identity(frames[-2])
