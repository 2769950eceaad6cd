import logging
import threading
from collections import namedtuple

from minitoken.address import NULL_HASH, Address, allowance_key, balance_key
from minitoken.config import ALLOWANCES_DICT, BALANCES_DICT, PACKAGE_HASH_KEY
from minitoken.errors import LedgerError, TokenError
from minitoken.events import Approval, EventEmitter, Transfer
from minitoken.u256 import checked_add, checked_sub, require_u256

logger = logging.getLogger(__name__)

# A pending store write. `dictionary` None means the total supply key;
# `old` None means the entry did not exist before.
Write = namedtuple("Write", ["dictionary", "key", "new", "old"])


class Token:
    """
    Accounting engine for a fungible token.

    Holds no ledger state of its own: balances, allowances and supply live
    in the injected store, and events go to the injected sink. Every public
    operation runs all of its checks and builds its event records before
    its first write, so a failed call leaves the store untouched and emits
    nothing. If the sink itself raises, the writes are undone before the
    error propagates.

    Known caveat: `approve` overwrites the allowance without looking at the
    previous value. A spender watching for a change from N to M can spend N
    before the change lands and M after it. Owners who care should approve
    0 first and wait for it to commit.
    """

    def __init__(self, store, sink=None, package_hash=None):
        self.store = store
        if package_hash is None:
            stored = store.get_key(PACKAGE_HASH_KEY)
            if stored:
                package_hash = Address.from_formatted_str(stored)
            else:
                logger.warning("Store has no %s; events will be tagged with %s",
                               PACKAGE_HASH_KEY, NULL_HASH)
                package_hash = NULL_HASH
        self.package_hash = package_hash
        self.emitter = EventEmitter(package_hash, sink)
        self._lock = threading.RLock()

    @property
    def events(self):
        return self.emitter.sink

    # =========================================================================
    # METADATA
    # =========================================================================

    def name(self) -> str:
        return self.store.name

    def symbol(self) -> str:
        return self.store.symbol

    def decimals(self) -> int:
        return self.store.decimals

    def total_supply(self) -> int:
        with self._lock:
            return self.store.read_total_supply()

    # =========================================================================
    # READS
    # =========================================================================

    def balance_of(self, address: Address) -> int:
        """Balance of `address`, 0 if it never held tokens."""
        _require_address(address, "address")
        with self._lock:
            return self.store.read_balance(balance_key(address))

    def allowance(self, owner: Address, spender: Address) -> int:
        """How much `spender` may still move out of `owner`'s balance."""
        _require_address(owner, "owner")
        _require_address(spender, "spender")
        with self._lock:
            return self.store.read_allowance(allowance_key(owner, spender))

    # =========================================================================
    # STATE CHANGES
    # =========================================================================

    def transfer(self, sender: Address, recipient: Address, amount: int):
        _require_address(sender, "sender")
        _require_address(recipient, "recipient")
        require_u256(amount)

        with self._lock:
            writes = self._plan_transfer(sender, recipient, amount)
            self._commit(writes, [Transfer(sender, recipient, amount)])
            logger.info("Transfer %d: %r -> %r", amount, sender, recipient)

    def approve(self, owner: Address, spender: Address, amount: int):
        """Set (not add to) the allowance `spender` has over `owner`'s tokens."""
        _require_address(owner, "owner")
        _require_address(spender, "spender")
        require_u256(amount)

        with self._lock:
            _check_not_null(owner, spender)
            writes = [self._plan_allowance(owner, spender, amount)]
            self._commit(writes, [Approval(owner, spender, amount)])
            logger.info("Approval %d: %r -> %r", amount, owner, spender)

    def transfer_from(self, owner: Address, recipient: Address, amount: int, caller: Address):
        """
        Move `amount` from `owner` to `recipient` on behalf of `caller`,
        spending `caller`'s allowance.

        Checks run in this order: null owner/recipient, allowance, the
        transfer's own checks, null caller. An insufficient allowance is
        therefore reported even when the balance is also short.
        """
        _require_address(owner, "owner")
        _require_address(recipient, "recipient")
        _require_address(caller, "caller")
        require_u256(amount)

        with self._lock:
            _check_not_null(owner, recipient)

            spender_allowance = self.store.read_allowance(allowance_key(owner, caller))
            new_allowance = checked_sub(spender_allowance, amount)
            if new_allowance is None:
                _fail(TokenError.InsufficientAllowance,
                      "%r has allowance %d from %r, needs %d", caller, spender_allowance, owner, amount)

            writes = self._plan_transfer(owner, recipient, amount)
            _check_not_null(owner, caller)
            writes.append(self._plan_allowance(owner, caller, new_allowance))

            self._commit(writes, [
                Transfer(owner, recipient, amount),
                Approval(owner, caller, new_allowance),
            ])
            logger.info("Transfer %d: %r -> %r by %r", amount, owner, recipient, caller)

    def mint(self, to: Address, amount: int):
        """
        Create `amount` new tokens for `to`. Callers are responsible for
        deciding who may mint.
        """
        _require_address(to, "to")
        require_u256(amount)

        with self._lock:
            if to.is_null():
                _fail(TokenError.CannotMintToZeroHash, "mint to %r", to)

            supply = self.store.read_total_supply()
            new_supply = checked_add(supply, amount)
            if new_supply is None:
                _fail(TokenError.Overflow, "total supply overflow minting %d", amount)

            key = balance_key(to)
            old = self.store.dictionary_get(BALANCES_DICT, key)
            new_balance = checked_add(old or 0, amount)
            if new_balance is None:
                _fail(TokenError.Overflow, "balance overflow minting %d to %r", amount, to)

            self._commit([
                Write(None, None, new_supply, supply),
                Write(BALANCES_DICT, key, new_balance, old),
            ], [Transfer(NULL_HASH, to, amount)])
            logger.info("Minted %d to %r, supply now %d", amount, to, new_supply)

    def burn(self, owner: Address, amount: int):
        """Destroy `amount` of `owner`'s tokens."""
        _require_address(owner, "owner")
        require_u256(amount)

        with self._lock:
            if owner.is_null():
                _fail(TokenError.CannotBurnFromZeroHash, "burn from %r", owner)

            key = balance_key(owner)
            old = self.store.dictionary_get(BALANCES_DICT, key)
            new_balance = checked_sub(old or 0, amount)
            if new_balance is None:
                _fail(TokenError.BurnAmountExceedsBalance,
                      "burn %d from %r which holds %d", amount, owner, old or 0)

            supply = self.store.read_total_supply()
            new_supply = checked_sub(supply, amount)
            if new_supply is None:
                _fail(TokenError.Overflow, "total supply underflow burning %d", amount)

            self._commit([
                Write(BALANCES_DICT, key, new_balance, old),
                Write(None, None, new_supply, supply),
            ], [Transfer(owner, NULL_HASH, amount)])
            logger.info("Burned %d from %r, supply now %d", amount, owner, new_supply)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _plan_transfer(self, sender, recipient, amount):
        """
        Validate a transfer and return the balance writes it needs,
        without applying them. Sender solvency is checked before recipient
        overflow.
        """
        _check_not_null(sender, recipient)

        sender_key = balance_key(sender)
        sender_old = self.store.dictionary_get(BALANCES_DICT, sender_key)
        sender_balance = sender_old or 0
        new_sender_balance = checked_sub(sender_balance, amount)
        if new_sender_balance is None:
            _fail(TokenError.InsufficientBalance,
                  "%r holds %d, cannot send %d", sender, sender_balance, amount)

        recipient_key = balance_key(recipient)
        if recipient_key == sender_key:
            return [Write(BALANCES_DICT, sender_key, sender_balance, sender_old)]

        recipient_old = self.store.dictionary_get(BALANCES_DICT, recipient_key)
        new_recipient_balance = checked_add(recipient_old or 0, amount)
        if new_recipient_balance is None:
            _fail(TokenError.Overflow, "balance overflow crediting %r", recipient)

        return [
            Write(BALANCES_DICT, sender_key, new_sender_balance, sender_old),
            Write(BALANCES_DICT, recipient_key, new_recipient_balance, recipient_old),
        ]

    def _plan_allowance(self, owner, spender, amount):
        key = allowance_key(owner, spender)
        return Write(ALLOWANCES_DICT, key, amount, self.store.dictionary_get(ALLOWANCES_DICT, key))

    def _commit(self, writes, events):
        """
        Apply `writes` and publish `events` as one unit. Records are built
        before anything is written; if a write or the sink fails, applied
        writes are restored to their old values and the error propagates.
        """
        records = self.emitter.prepare(events)
        applied = []
        try:
            for write in writes:
                self._apply(write, write.new)
                applied.append(write)
            self.emitter.publish(records)
        except Exception:
            logger.error("Commit failed, restoring %d write(s)", len(applied))
            for write in reversed(applied):
                self._apply(write, write.old)
            raise

    def _apply(self, write, value):
        if write.dictionary is None:
            self.store.write_total_supply(value)
        elif value is None:
            self.store.dictionary_remove(write.dictionary, write.key)
        elif write.dictionary == BALANCES_DICT:
            self.store.write_balance(write.key, value)
        else:
            self.store.write_allowance(write.key, value)


def _require_address(value, name):
    if not isinstance(value, Address):
        raise TypeError(f"{name} must be an Address, got {type(value).__name__}")


def _check_not_null(x, y):
    if x.is_null() or y.is_null():
        _fail(TokenError.ZeroAddress, "null address in (%r, %r)", x, y)


def _fail(error, message, *args):
    logger.warning("Rejected (%s): " + message, error.name, *args)
    raise LedgerError(error)
