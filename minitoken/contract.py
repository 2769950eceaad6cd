"""
Entry-point layer for an installed token.

Turns named-argument calls into `Token` operations: looks the entry point
up, checks argument types, resolves the caller from the call stack and
converts ledger failures into `Revert` errors carrying numeric codes.
Also installs a token into an empty store.
"""

import logging
from collections import namedtuple

from nacl.encoding import RawEncoder
from nacl.hash import blake2b

from minitoken.address import AccountHash, Address, ContractHash, balance_key
from minitoken.config import (
    ALLOWANCES_DICT,
    BALANCES_DICT,
    DECIMALS_KEY,
    HASH_LENGTH,
    NAME_KEY,
    PACKAGE_HASH_KEY,
    SYMBOL_KEY,
    TOTAL_SUPPLY_KEY,
    U8_MAX,
)
from minitoken.context import Session, StoredContract, get_caller
from minitoken.errors import ApiError, LedgerError, Revert, TokenError
from minitoken.token import Token
from minitoken.u256 import is_u256, require_u256

logger = logging.getLogger(__name__)

CONTRACT_HASH_KEY = "contract_hash"
INSTALLER_KEY = "installer"

# Access levels
PUBLIC = "public"
INSTALLER = "installer"

Parameter = namedtuple("Parameter", ["name", "cl_type"])
EntryPoint = namedtuple("EntryPoint", ["name", "params", "ret", "access"])


def endpoint(name, params, ret, access=PUBLIC):
    return EntryPoint(name, tuple(Parameter(*p) for p in params), ret, access)


ENTRY_POINTS = {
    ep.name: ep
    for ep in (
        endpoint("name", [], "String"),
        endpoint("symbol", [], "String"),
        endpoint("decimals", [], "U8"),
        endpoint("total_supply", [], "U256"),
        endpoint("balance_of", [("address", "Key")], "U256"),
        endpoint("allowance", [("owner", "Key"), ("spender", "Key")], "U256"),
        endpoint("transfer", [("recipient", "Key"), ("amount", "U256")], "Unit"),
        endpoint("approve", [("spender", "Key"), ("amount", "U256")], "Unit"),
        endpoint(
            "transfer_from",
            [("owner", "Key"), ("recipient", "Key"), ("amount", "U256")],
            "Unit",
        ),
        endpoint("mint", [("owner", "Key"), ("amount", "U256")], "Unit", access=INSTALLER),
        endpoint("burn", [("owner", "Key"), ("amount", "U256")], "Unit", access=INSTALLER),
    )
}


def _parse_arg(param, value):
    if param.cl_type == "Key":
        if isinstance(value, Address):
            return value
        if isinstance(value, str):
            return Address.from_formatted_str(value)
        raise TypeError(f"{param.name} must be an address, got {type(value).__name__}")
    if param.cl_type == "U256":
        return require_u256(value, param.name)
    raise TypeError(f"Unsupported parameter type {param.cl_type}")


def parse_args(entry_point, args):
    parsed = {}
    for param in entry_point.params:
        if param.name not in args:
            raise Revert(ApiError.MissingArgument, detail=param.name)
        try:
            parsed[param.name] = _parse_arg(param, args[param.name])
        except (TypeError, ValueError) as e:
            raise Revert(ApiError.InvalidArgument, detail=str(e)) from e
    return parsed


class TokenContract:
    """An installed token, callable through its entry points."""

    def __init__(self, token, contract_hash=None, installer=None):
        self.token = token
        self.contract_hash = contract_hash
        self.installer = installer

    @classmethod
    def from_store(cls, store, sink=None) -> "TokenContract":
        """Reattach to a token previously installed into `store`."""
        if store.get_key(PACKAGE_HASH_KEY) is None:
            raise Revert(ApiError.MissingKey, detail=PACKAGE_HASH_KEY)
        contract_hash = store.get_key(CONTRACT_HASH_KEY)
        installer = store.get_key(INSTALLER_KEY)
        return cls(
            Token(store, sink=sink),
            contract_hash=Address.from_formatted_str(contract_hash) if contract_hash else None,
            installer=Address.from_formatted_str(installer) if installer else None,
        )

    @property
    def package_hash(self):
        return self.token.package_hash

    @property
    def events(self):
        return self.token.events

    def call_stack_for(self, *callers):
        """
        Call stack for a session started by `callers[0]` that reaches this
        token through any further contract packages in `callers`.
        """
        if not callers:
            raise ValueError("At least one caller is required")
        frames = []
        for address in callers:
            if isinstance(address, AccountHash):
                frames.append(Session(address))
            else:
                frames.append(StoredContract(address, None))
        frames.append(StoredContract(self.package_hash, self.contract_hash))
        return frames

    def call_as(self, account, entry_point, **args):
        """Shorthand for a direct session call by `account`."""
        return self.call(entry_point, args, self.call_stack_for(account))

    def call(self, entry_point, args, call_stack):
        """
        Invoke `entry_point` with named `args`. Returns the entry point's
        value (None for state-changing ones). Raises `Revert` on failure.
        """
        ep = ENTRY_POINTS.get(entry_point)
        if ep is None:
            raise Revert(ApiError.NoSuchEntryPoint, detail=entry_point)
        parsed = parse_args(ep, args or {})
        handler = getattr(self, f"_ep_{ep.name}")
        try:
            if ep.access == INSTALLER:
                caller = get_caller(call_stack)
                if caller != self.installer:
                    logger.warning("Rejected %s from %r: installer only", ep.name, caller)
                    raise LedgerError(TokenError.InvalidContext)
            return handler(parsed, call_stack)
        except LedgerError as e:
            logger.debug("Entry point %s reverted with %s (%d)", ep.name, e.error.name, e.code)
            raise Revert.from_ledger_error(e) from e

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def _ep_name(self, args, call_stack):
        return self.token.name()

    def _ep_symbol(self, args, call_stack):
        return self.token.symbol()

    def _ep_decimals(self, args, call_stack):
        return self.token.decimals()

    def _ep_total_supply(self, args, call_stack):
        return self.token.total_supply()

    def _ep_balance_of(self, args, call_stack):
        return self.token.balance_of(args["address"])

    def _ep_allowance(self, args, call_stack):
        return self.token.allowance(args["owner"], args["spender"])

    def _ep_transfer(self, args, call_stack):
        self.token.transfer(get_caller(call_stack), args["recipient"], args["amount"])

    def _ep_approve(self, args, call_stack):
        self.token.approve(get_caller(call_stack), args["spender"], args["amount"])

    def _ep_transfer_from(self, args, call_stack):
        self.token.transfer_from(
            args["owner"], args["recipient"], args["amount"], get_caller(call_stack)
        )

    def _ep_mint(self, args, call_stack):
        self.token.mint(args["owner"], args["amount"])

    def _ep_burn(self, args, call_stack):
        self.token.burn(args["owner"], args["amount"])


def derive_package_hash(deployer, token_name):
    raw = deployer.to_bytes() + b":" + token_name.encode("utf-8")
    return ContractHash(blake2b(raw, digest_size=HASH_LENGTH, encoder=RawEncoder))


def derive_contract_hash(package_hash, version=1):
    raw = package_hash.to_bytes() + version.to_bytes(4, "little")
    return ContractHash(blake2b(raw, digest_size=HASH_LENGTH, encoder=RawEncoder))


def _access_token(package_hash):
    raw = b"access:" + package_hash.to_bytes()
    # READ | ADD | WRITE
    return f"uref-{blake2b(raw, digest_size=HASH_LENGTH).decode('ascii')}-007"


def install_token(store, deployer, token_name, token_symbol, token_decimals, token_total_supply, sink=None):
    """
    Install a token into an empty `store`, crediting the whole initial
    supply to `deployer`.

    Returns the `TokenContract` and the named keys handed back to the
    deployer: `<name>`, `<name>_hash`, `<name>_package_hash` and
    `<name>_access_token`.
    """
    if not isinstance(deployer, AccountHash):
        raise TypeError("deployer must be an AccountHash")
    if deployer.is_null():
        raise ValueError("deployer cannot be the null account")
    if not isinstance(token_name, str) or not token_name:
        raise ValueError("token_name must be a non-empty string")
    if not isinstance(token_symbol, str):
        raise TypeError("token_symbol must be a string")
    if (isinstance(token_decimals, bool) or not isinstance(token_decimals, int)
            or not 0 <= token_decimals <= U8_MAX):
        raise ValueError(f"token_decimals must fit in a byte, got {token_decimals!r}")
    if not is_u256(token_total_supply):
        raise ValueError(f"token_total_supply out of U256 range: {token_total_supply!r}")
    if store.get_key(NAME_KEY) is not None:
        raise ValueError(f"Store already holds token {store.get_key(NAME_KEY)!r}")

    package_hash = derive_package_hash(deployer, token_name)
    contract_hash = derive_contract_hash(package_hash)

    store.new_dictionary(BALANCES_DICT)
    store.new_dictionary(ALLOWANCES_DICT)
    store.dictionary_put(BALANCES_DICT, balance_key(deployer), token_total_supply)

    store.set_key(NAME_KEY, token_name)
    store.set_key(SYMBOL_KEY, token_symbol)
    store.set_key(DECIMALS_KEY, token_decimals)
    store.set_key(TOTAL_SUPPLY_KEY, token_total_supply)
    store.set_key(PACKAGE_HASH_KEY, str(package_hash))
    store.set_key(CONTRACT_HASH_KEY, str(contract_hash))
    store.set_key(INSTALLER_KEY, str(deployer))

    named_keys = {
        token_name: str(contract_hash),
        f"{token_name}_hash": str(contract_hash),
        f"{token_name}_package_hash": str(package_hash),
        f"{token_name}_access_token": _access_token(package_hash),
    }

    logger.info(
        "Installed token %s (%s), supply %d credited to %r, package %s",
        token_name, token_symbol, token_total_supply, deployer, package_hash,
    )
    contract = TokenContract(
        Token(store, sink=sink, package_hash=package_hash),
        contract_hash=contract_hash,
        installer=deployer,
    )
    return contract, named_keys
