import random
import threading
import unittest
from nacl.signing import SigningKey

from minitoken import (
    NULL_ACCOUNT,
    NULL_HASH,
    AccountHash,
    InMemoryStore,
    LedgerError,
    Token,
    TokenError,
    balance_key,
    install_token,
)
from minitoken.config import U256_MAX


def new_account():
    return AccountHash.from_public_key(SigningKey.generate().verify_key)


class TestToken(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()

        # Deployer, Bob, Joe
        self.dan = new_account()
        self.bob = new_account()
        self.joe = new_account()

        contract, _ = install_token(self.store, self.dan, "ERC20", "ERC", 8, 1000)
        self.token = contract.token

    def assertConserved(self):
        self.assertEqual(self.store.balances_total(), self.token.total_supply())

    def test_deploy(self):
        """Whole supply is credited to the deployer."""
        self.assertEqual(self.token.name(), "ERC20")
        self.assertEqual(self.token.symbol(), "ERC")
        self.assertEqual(self.token.decimals(), 8)
        self.assertEqual(self.token.total_supply(), 1000)
        self.assertEqual(self.token.balance_of(self.dan), 1000)
        self.assertEqual(len(self.token.events), 0)

    def test_unknown_address_reads_zero(self):
        self.assertEqual(self.token.balance_of(self.bob), 0)
        self.assertEqual(self.token.allowance(self.dan, self.bob), 0)

    def test_transfer(self):
        self.token.transfer(self.dan, self.bob, 10)

        self.assertEqual(self.token.balance_of(self.dan), 990)
        self.assertEqual(self.token.balance_of(self.bob), 10)
        self.assertConserved()

        event = self.token.events[-1]
        self.assertEqual(event["event_type"], "transfer")
        self.assertEqual(event["from"], str(self.dan))
        self.assertEqual(event["to"], str(self.bob))
        self.assertEqual(event["value"], "10")

    def test_transfer_to_self(self):
        self.token.transfer(self.dan, self.dan, 400)
        self.assertEqual(self.token.balance_of(self.dan), 1000)
        self.assertConserved()
        self.assertEqual(len(self.token.events), 1)

    def test_overdraft(self):
        """Bob holds nothing and cannot send anything."""
        with self.assertRaises(LedgerError) as cm:
            self.token.transfer(self.bob, self.dan, 1)
        self.assertEqual(cm.exception.error, TokenError.InsufficientBalance)
        self.assertEqual(cm.exception.code, 65534)

        self.assertEqual(self.token.balance_of(self.dan), 1000)
        self.assertEqual(self.token.balance_of(self.bob), 0)
        self.assertEqual(len(self.token.events), 0)

    def test_transfer_whole_balance(self):
        self.token.transfer(self.dan, self.bob, 1000)
        self.assertEqual(self.token.balance_of(self.dan), 0)
        self.assertEqual(self.token.balance_of(self.bob), 1000)

    def test_zero_address_rejected(self):
        for sender, recipient in [
            (self.dan, NULL_ACCOUNT),
            (self.dan, NULL_HASH),
            (NULL_ACCOUNT, self.dan),
            (NULL_HASH, self.bob),
        ]:
            with self.assertRaises(LedgerError) as cm:
                self.token.transfer(sender, recipient, 1)
            self.assertEqual(cm.exception.error, TokenError.ZeroAddress)

        self.assertEqual(self.token.balance_of(self.dan), 1000)
        self.assertEqual(len(self.token.events), 0)

    def test_zero_address_checked_before_balance(self):
        """Null recipient wins over an empty sender."""
        with self.assertRaises(LedgerError) as cm:
            self.token.transfer(self.bob, NULL_ACCOUNT, 5)
        self.assertEqual(cm.exception.error, TokenError.ZeroAddress)

    def test_recipient_overflow(self):
        """Nothing is written when the recipient cannot be credited."""
        self.store.write_balance(balance_key(self.bob), U256_MAX)
        with self.assertRaises(LedgerError) as cm:
            self.token.transfer(self.dan, self.bob, 1)
        self.assertEqual(cm.exception.error, TokenError.Overflow)
        self.assertEqual(self.token.balance_of(self.dan), 1000)
        self.assertEqual(self.token.balance_of(self.bob), U256_MAX)
        self.assertEqual(len(self.token.events), 0)

    def test_insufficient_balance_before_overflow(self):
        self.store.write_balance(balance_key(self.joe), U256_MAX)
        with self.assertRaises(LedgerError) as cm:
            self.token.transfer(self.bob, self.joe, 1)
        self.assertEqual(cm.exception.error, TokenError.InsufficientBalance)

    def test_amount_must_be_u256(self):
        with self.assertRaises(ValueError):
            self.token.transfer(self.dan, self.bob, -1)
        with self.assertRaises(ValueError):
            self.token.approve(self.dan, self.bob, U256_MAX + 1)
        with self.assertRaises(TypeError):
            self.token.transfer(self.dan, self.bob, 1.5)
        with self.assertRaises(TypeError):
            self.token.mint(self.dan, True)
        self.assertEqual(self.token.balance_of(self.dan), 1000)

    def test_addresses_must_be_addresses(self):
        with self.assertRaises(TypeError):
            self.token.transfer(str(self.dan), self.bob, 1)
        with self.assertRaises(TypeError):
            self.token.balance_of(self.dan.value)


class TestAllowance(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.dan = new_account()
        self.bob = new_account()
        self.joe = new_account()
        contract, _ = install_token(self.store, self.dan, "ERC20", "ERC", 8, 1000)
        self.token = contract.token

    def test_approve(self):
        self.token.approve(self.dan, self.bob, 10)
        self.assertEqual(self.token.allowance(self.dan, self.bob), 10)
        self.assertEqual(self.token.balance_of(self.dan), 1000)

        event = self.token.events[-1]
        self.assertEqual(event["event_type"], "approve")
        self.assertEqual(event["owner"], str(self.dan))
        self.assertEqual(event["spender"], str(self.bob))
        self.assertEqual(event["value"], "10")

    def test_approve_overwrites(self):
        self.token.approve(self.dan, self.bob, 10)
        self.token.approve(self.dan, self.bob, 4)
        self.assertEqual(self.token.allowance(self.dan, self.bob), 4)

    def test_allowance_is_directional(self):
        self.token.approve(self.dan, self.bob, 10)
        self.assertEqual(self.token.allowance(self.bob, self.dan), 0)
        self.assertEqual(self.token.allowance(self.dan, self.joe), 0)

    def test_approve_zero_address(self):
        with self.assertRaises(LedgerError) as cm:
            self.token.approve(self.dan, NULL_ACCOUNT, 10)
        self.assertEqual(cm.exception.error, TokenError.ZeroAddress)
        with self.assertRaises(LedgerError) as cm:
            self.token.approve(NULL_HASH, self.bob, 10)
        self.assertEqual(cm.exception.error, TokenError.ZeroAddress)
        self.assertEqual(len(self.token.events), 0)

    def test_transfer_from(self):
        self.token.approve(self.dan, self.bob, 10)
        self.token.transfer_from(self.dan, self.joe, 3, self.bob)

        self.assertEqual(self.token.balance_of(self.dan), 997)
        self.assertEqual(self.token.balance_of(self.joe), 3)
        self.assertEqual(self.token.allowance(self.dan, self.bob), 7)
        self.assertEqual(self.store.balances_total(), self.token.total_supply())

        transfer, approval = self.token.events[-2:]
        self.assertEqual(transfer["event_type"], "transfer")
        self.assertEqual(transfer["value"], "3")
        self.assertEqual(approval["event_type"], "approve")
        self.assertEqual(approval["spender"], str(self.bob))
        self.assertEqual(approval["value"], "7")

    def test_transfer_from_without_approval(self):
        with self.assertRaises(LedgerError) as cm:
            self.token.transfer_from(self.dan, self.joe, 1, self.bob)
        self.assertEqual(cm.exception.error, TokenError.InsufficientAllowance)
        self.assertEqual(cm.exception.code, 65533)
        self.assertEqual(self.token.balance_of(self.joe), 0)

    def test_transfer_from_low_allowance(self):
        self.token.approve(self.dan, self.bob, 1)
        with self.assertRaises(LedgerError) as cm:
            self.token.transfer_from(self.dan, self.joe, 3, self.bob)
        self.assertEqual(cm.exception.error, TokenError.InsufficientAllowance)
        self.assertEqual(self.token.allowance(self.dan, self.bob), 1)

    def test_transfer_from_too_much(self):
        self.token.approve(self.dan, self.bob, U256_MAX)
        with self.assertRaises(LedgerError) as cm:
            self.token.transfer_from(self.dan, self.joe, 1001, self.bob)
        self.assertEqual(cm.exception.error, TokenError.InsufficientBalance)
        self.assertEqual(self.token.allowance(self.dan, self.bob), U256_MAX)
        self.assertEqual(self.token.balance_of(self.dan), 1000)

    def test_allowance_checked_before_balance(self):
        """Joe has neither balance nor allowance: the allowance error wins."""
        with self.assertRaises(LedgerError) as cm:
            self.token.transfer_from(self.joe, self.dan, 5, self.bob)
        self.assertEqual(cm.exception.error, TokenError.InsufficientAllowance)

    def test_transfer_from_zero_address(self):
        self.token.approve(self.dan, self.bob, 10)
        with self.assertRaises(LedgerError) as cm:
            self.token.transfer_from(self.dan, NULL_ACCOUNT, 1, self.bob)
        self.assertEqual(cm.exception.error, TokenError.ZeroAddress)
        self.assertEqual(self.token.allowance(self.dan, self.bob), 10)

    def test_null_caller_writes_nothing(self):
        """A zero-amount spend by the null caller fails without touching balances."""
        before = self.store.snapshot()
        events = len(self.token.events)
        with self.assertRaises(LedgerError) as cm:
            self.token.transfer_from(self.dan, self.joe, 0, NULL_ACCOUNT)
        self.assertEqual(cm.exception.error, TokenError.ZeroAddress)
        self.assertEqual(self.store.to_dict(), before.to_dict())
        self.assertEqual(len(self.token.events), events)

    def test_spend_allowance_to_zero(self):
        self.token.approve(self.dan, self.bob, 5)
        self.token.transfer_from(self.dan, self.bob, 5, self.bob)
        self.assertEqual(self.token.allowance(self.dan, self.bob), 0)
        self.assertEqual(self.token.balance_of(self.bob), 5)
        with self.assertRaises(LedgerError):
            self.token.transfer_from(self.dan, self.bob, 1, self.bob)


class TestMintBurn(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.dan = new_account()
        self.bob = new_account()
        contract, _ = install_token(self.store, self.dan, "ERC20", "ERC", 8, 1000)
        self.token = contract.token

    def test_mint(self):
        self.token.mint(self.bob, 50)
        self.assertEqual(self.token.total_supply(), 1050)
        self.assertEqual(self.token.balance_of(self.bob), 50)
        self.assertEqual(self.store.balances_total(), 1050)

        event = self.token.events[-1]
        self.assertEqual(event["from"], str(NULL_HASH))
        self.assertEqual(event["to"], str(self.bob))

    def test_mint_to_zero(self):
        for null in (NULL_ACCOUNT, NULL_HASH):
            with self.assertRaises(LedgerError) as cm:
                self.token.mint(null, 1)
            self.assertEqual(cm.exception.error, TokenError.CannotMintToZeroHash)
        self.assertEqual(self.token.total_supply(), 1000)

    def test_mint_overflow(self):
        with self.assertRaises(LedgerError) as cm:
            self.token.mint(self.bob, U256_MAX)
        self.assertEqual(cm.exception.error, TokenError.Overflow)
        self.assertEqual(self.token.total_supply(), 1000)
        self.assertEqual(self.token.balance_of(self.bob), 0)

    def test_mint_up_to_max(self):
        self.token.mint(self.bob, U256_MAX - 1000)
        self.assertEqual(self.token.total_supply(), U256_MAX)

    def test_burn(self):
        self.token.burn(self.dan, 300)
        self.assertEqual(self.token.total_supply(), 700)
        self.assertEqual(self.token.balance_of(self.dan), 700)

        event = self.token.events[-1]
        self.assertEqual(event["from"], str(self.dan))
        self.assertEqual(event["to"], str(NULL_HASH))
        self.assertEqual(event["value"], "300")

    def test_burn_from_zero(self):
        with self.assertRaises(LedgerError) as cm:
            self.token.burn(NULL_ACCOUNT, 1)
        self.assertEqual(cm.exception.error, TokenError.CannotBurnFromZeroHash)

    def test_burn_exceeds_balance(self):
        with self.assertRaises(LedgerError) as cm:
            self.token.burn(self.bob, 1)
        self.assertEqual(cm.exception.error, TokenError.BurnAmountExceedsBalance)
        self.assertEqual(self.token.total_supply(), 1000)

    def test_burn_supply_underflow(self):
        """A balance above total supply means a broken ledger; burn refuses rather than wrap."""
        self.store.write_balance(balance_key(self.bob), 5000)
        with self.assertRaises(LedgerError) as cm:
            self.token.burn(self.bob, 2000)
        self.assertEqual(cm.exception.error, TokenError.Overflow)
        self.assertEqual(self.token.balance_of(self.bob), 5000)
        self.assertEqual(self.token.total_supply(), 1000)


class TestConservation(unittest.TestCase):
    def test_random_transfers_conserve_supply(self):
        store = InMemoryStore()
        accounts = [new_account() for _ in range(5)]
        contract, _ = install_token(store, accounts[0], "ERC20", "ERC", 8, 1000)
        token = contract.token
        rng = random.Random(7)

        for _ in range(300):
            a, b, c = rng.choice(accounts), rng.choice(accounts), rng.choice(accounts)
            amount = rng.randint(0, 400)
            op = rng.choice(["transfer", "approve", "transfer_from"])
            try:
                if op == "transfer":
                    token.transfer(a, b, amount)
                elif op == "approve":
                    token.approve(a, b, amount)
                else:
                    token.transfer_from(a, b, amount, c)
            except LedgerError as e:
                self.assertIn(e.error, (TokenError.InsufficientBalance, TokenError.InsufficientAllowance))

            self.assertEqual(store.balances_total(), 1000)
            for account in accounts:
                self.assertGreaterEqual(token.balance_of(account), 0)
        self.assertEqual(token.total_supply(), 1000)

    def test_threaded_transfers_conserve_supply(self):
        store = InMemoryStore()
        accounts = [new_account() for _ in range(4)]
        contract, _ = install_token(store, accounts[0], "ERC20", "ERC", 8, 1000)
        token = contract.token
        for account in accounts[1:]:
            token.transfer(accounts[0], account, 250)

        def worker(i):
            sender, recipient = accounts[i], accounts[(i + 1) % len(accounts)]
            for _ in range(200):
                try:
                    token.transfer(sender, recipient, 3)
                except LedgerError:
                    pass

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(len(accounts))]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(store.balances_total(), 1000)
        self.assertEqual(sum(token.balance_of(a) for a in accounts), 1000)


class SinkError(Exception):
    pass


class TestFailingSink(unittest.TestCase):
    """A sink that raises must leave the store as it was before the call."""

    def setUp(self):
        self.store = InMemoryStore()
        self.dan = new_account()
        self.bob = new_account()
        self.joe = new_account()
        contract, _ = install_token(self.store, self.dan, "ERC20", "ERC", 8, 1000)
        contract.token.approve(self.dan, self.bob, 10)
        self.received = []

    def sink_rejecting(self, event_type):
        def sink(record):
            if record["event_type"] == event_type:
                raise SinkError(event_type)
            self.received.append(record)
        return sink

    def test_transfer_from_rolled_back(self):
        token = Token(self.store, sink=self.sink_rejecting("approve"))
        before = self.store.to_dict()

        with self.assertRaises(SinkError):
            token.transfer_from(self.dan, self.joe, 3, self.bob)

        self.assertEqual(self.store.to_dict(), before)
        self.assertEqual(token.allowance(self.dan, self.bob), 10)
        self.assertEqual(token.balance_of(self.joe), 0)

    def test_transfer_rolled_back(self):
        token = Token(self.store, sink=self.sink_rejecting("transfer"))
        before = self.store.to_dict()

        with self.assertRaises(SinkError):
            token.transfer(self.dan, self.joe, 5)

        self.assertEqual(self.store.to_dict(), before)
        self.assertEqual(self.received, [])

    def test_approve_rolled_back(self):
        token = Token(self.store, sink=self.sink_rejecting("approve"))
        before = self.store.to_dict()

        with self.assertRaises(SinkError):
            token.approve(self.joe, self.bob, 7)

        # new entry removed, not left at 0
        self.assertEqual(self.store.to_dict(), before)

    def test_mint_and_burn_rolled_back(self):
        token = Token(self.store, sink=self.sink_rejecting("transfer"))
        before = self.store.to_dict()

        with self.assertRaises(SinkError):
            token.mint(self.joe, 50)
        self.assertEqual(self.store.to_dict(), before)

        with self.assertRaises(SinkError):
            token.burn(self.dan, 50)
        self.assertEqual(self.store.to_dict(), before)
        self.assertEqual(token.total_supply(), 1000)

    def test_working_sink_receives_records(self):
        token = Token(self.store, sink=self.received.append)
        token.transfer_from(self.dan, self.joe, 3, self.bob)

        self.assertEqual([r["event_type"] for r in self.received], ["transfer", "approve"])
        self.assertEqual(token.allowance(self.dan, self.bob), 7)

    def test_missing_package_hash_warns(self):
        with self.assertLogs("minitoken.token", level="WARNING") as cm:
            token = Token(InMemoryStore())
        self.assertEqual(token.package_hash, NULL_HASH)
        self.assertIn("contract_package_hash", cm.output[0])


if __name__ == '__main__':
    unittest.main()
