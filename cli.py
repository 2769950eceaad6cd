#!/usr/bin/env python3
"""
MiniToken CLI

Command-line interface for a token ledger kept in a JSON state file.

Usage:
    # Create a key pair and print its account hash
    python cli.py keygen

    # Install a token, crediting the supply to the deployer
    python cli.py install --as <account-hash> --name ERC20 --symbol ERC --decimals 8 --supply 1000

    # Move tokens
    python cli.py transfer --as <account-hash> <recipient> 10

    # Inspect
    python cli.py info
    python cli.py balance <address>

The state file defaults to $MINITOKEN_STATE or ./minitoken_state.json.
"""

import argparse
import json
import logging
import sys

from nacl.encoding import HexEncoder
from nacl.signing import SigningKey

from minitoken import AccountHash, Address, JsonFileStore, Revert, TokenContract, install_token
from minitoken.config import (
    DEFAULT_STATE_PATH,
    DEFAULT_TOKEN_DECIMALS,
    DEFAULT_TOKEN_NAME,
    DEFAULT_TOKEN_SYMBOL,
    DEFAULT_TOKEN_TOTAL_SUPPLY,
)

logger = logging.getLogger(__name__)

# subcommand -> (entry point, positional args in entry point order)
CALLS = {
    "transfer": ("transfer", ["recipient", "amount"]),
    "approve": ("approve", ["spender", "amount"]),
    "transfer-from": ("transfer_from", ["owner", "recipient", "amount"]),
    "mint": ("mint", ["owner", "amount"]),
    "burn": ("burn", ["owner", "amount"]),
}


def parse_address(text):
    try:
        return Address.from_formatted_str(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def parse_amount(text):
    try:
        value = int(text, 10)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not an integer amount: {text!r}")
    if value < 0:
        raise argparse.ArgumentTypeError("Amount cannot be negative")
    return value


def build_parser():
    parser = argparse.ArgumentParser(description="MiniToken - fungible token ledger")
    parser.add_argument(
        "--state",
        type=str,
        default=DEFAULT_STATE_PATH,
        help="Path of the JSON state file"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("keygen", help="Generate an Ed25519 key pair and its account hash")

    install = sub.add_parser("install", help="Install a new token into the state file")
    install.add_argument("--as", dest="caller", type=parse_address, required=True,
                         help="Deployer account hash")
    install.add_argument("--name", default=DEFAULT_TOKEN_NAME)
    install.add_argument("--symbol", default=DEFAULT_TOKEN_SYMBOL)
    install.add_argument("--decimals", type=int, default=DEFAULT_TOKEN_DECIMALS)
    install.add_argument("--supply", type=parse_amount, default=DEFAULT_TOKEN_TOTAL_SUPPLY)

    sub.add_parser("info", help="Show token metadata and total supply")

    balance = sub.add_parser("balance", help="Show the balance of an address")
    balance.add_argument("address", type=parse_address)

    allowance = sub.add_parser("allowance", help="Show what a spender may move for an owner")
    allowance.add_argument("owner", type=parse_address)
    allowance.add_argument("spender", type=parse_address)

    for command, (_, params) in CALLS.items():
        p = sub.add_parser(command, help=f"Call the {command} entry point")
        p.add_argument("--as", dest="caller", type=parse_address, required=True,
                       help="Account (or contract package) making the call")
        p.add_argument("--via", type=parse_address, action="append", default=[],
                       help="Contract package the call passes through (repeatable)")
        for name in params:
            p.add_argument(name, type=parse_amount if name == "amount" else parse_address)

    return parser


def print_events(records):
    for record in records:
        print(json.dumps(dict(record), sort_keys=True))


def cmd_keygen(args):
    sk = SigningKey.generate()
    pk = sk.verify_key.encode(encoder=HexEncoder).decode()
    print(f"Private key:  {sk.encode(encoder=HexEncoder).decode()}")
    print(f"Public key:   {pk}")
    print(f"Account hash: {AccountHash.from_public_key(sk.verify_key)}")
    return 0


def cmd_install(args):
    store = JsonFileStore(args.state)
    if store.exists():
        print(f"State file {args.state} already exists")
        return 1
    if not isinstance(args.caller, AccountHash):
        print("Deployer must be an account hash")
        return 1
    try:
        contract, named_keys = install_token(
            store, args.caller, args.name, args.symbol, args.decimals, args.supply
        )
    except (TypeError, ValueError) as e:
        print(f"Install failed: {e}")
        return 1
    store.save()
    for key, value in named_keys.items():
        print(f"{key}: {value}")
    return 0


def run_call(contract, entry_point, call_args, call_stack):
    try:
        return contract.call(entry_point, call_args, call_stack), 0
    except Revert as e:
        print(f"Reverted: {e}")
        return None, 1


def cmd_query(args, contract):
    if args.command == "info":
        for name in ("name", "symbol", "decimals", "total_supply"):
            value, status = run_call(contract, name, {}, [])
            if status != 0:
                return status
            print(f"{name}: {value}")
        print(f"package: {contract.package_hash}")
        return 0
    if args.command == "balance":
        value, status = run_call(contract, "balance_of", {"address": args.address}, [])
    else:
        value, status = run_call(contract, "allowance", {"owner": args.owner, "spender": args.spender}, [])
    if status == 0:
        print(value)
    return status


def cmd_call(args, contract, store):
    entry_point, params = CALLS[args.command]
    call_args = {name: getattr(args, name) for name in params}
    call_stack = contract.call_stack_for(args.caller, *args.via)

    _, status = run_call(contract, entry_point, call_args, call_stack)
    if status == 0:
        store.save()
        print_events(contract.events)
    return status


def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Setup logging
    level = logging.DEBUG if args.debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    if args.command == "keygen":
        return cmd_keygen(args)
    if args.command == "install":
        return cmd_install(args)

    try:
        store = JsonFileStore.load(args.state)
    except FileNotFoundError:
        print(f"No state file at {args.state}; run `install` first")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot read state file {args.state}: {e}")
        return 1

    try:
        contract = TokenContract.from_store(store)
    except Revert as e:
        print(f"State file holds no installed token: {e}")
        return 1

    if args.command in CALLS:
        return cmd_call(args, contract, store)
    return cmd_query(args, contract)


if __name__ == "__main__":
    sys.exit(main())
