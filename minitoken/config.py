"""
config.py - MiniToken configuration constants.
Simple settings for the token ledger.
"""

import os

# Default token parameters (used by `cli.py install` when not overridden)
DEFAULT_TOKEN_NAME = "ERC20"
DEFAULT_TOKEN_SYMBOL = "ERC"
DEFAULT_TOKEN_DECIMALS = 8
DEFAULT_TOKEN_TOTAL_SUPPLY = 1000

# Unsigned 256-bit ceiling for balances, allowances and supply
U256_MAX = 2**256 - 1

# Decimals are stored as a single byte
U8_MAX = 255

# Highest user error code a caller may define without colliding with ours
USER_ERROR_MAX = 65535 - 27

# Storage layout
BALANCES_DICT = "balances"
ALLOWANCES_DICT = "allowances"
NAME_KEY = "name"
SYMBOL_KEY = "symbol"
DECIMALS_KEY = "decimals"
TOTAL_SUPPLY_KEY = "total_supply"
PACKAGE_HASH_KEY = "contract_package_hash"

# Address identifiers are fixed-length hashes
HASH_LENGTH = 32

# State file used by the CLI
DEFAULT_STATE_PATH = os.environ.get("MINITOKEN_STATE", "minitoken_state.json")
