#!/usr/bin/env python3
from typing import Dict

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_RESET = '\033[0m'

# --- Environment Variable Names ---
ETH_WS_URL_ENV_VAR = 'ETH_WS_URL'
ETH_RPC_URL_ENV_VAR = 'ETH_RPC_URL'
TELEGRAM_BOT_TOKEN_ENV_VAR = 'TELEGRAM_BOT_TOKEN'
TELEGRAM_CHAT_ID_ENV_VAR = 'TELEGRAM_CHAT_ID'

# --- Mainnet Token Addresses (Lowercase for case-insensitive matching) ---
TOKEN_ADDRESSES: Dict[str, str] = {
    'dai': '0x6b175474e89094c44da98b954eedeac495271d0f',
    'weth': '0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2',
}

# Kyber identifies native ETH with a reserved sentinel instead of WETH.
NATIVE_ASSET_SENTINEL = '0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee'

# --- Venue Contracts ---
KYBER_NETWORK_PROXY_ADDRESS = '0x818e6fecd516ecc3849daf6845e3ec868087b755'
UNISWAP_V2_FACTORY_ADDRESS = '0x5c69bee701ef814a2b6a3edd4b1652cb9cc5aa6f'

# Uniswap V2 charges 0.3% on the input amount.
UNISWAP_V2_FEE_NUMERATOR = 997
UNISWAP_V2_FEE_DENOMINATOR = 1000

# --- Venue Labels ---
VENUE_A_NAME = 'Kyber'
VENUE_B_NAME = 'Uniswap'
BASE_SYMBOL = 'ETH'
QUOTE_SYMBOL = 'dai'

# --- Units ---
WEI_DECIMALS = 18
WEI_PER_ETH = 10 ** WEI_DECIMALS

# --- Scan Defaults ---
DEFAULT_AMOUNT_ETH = 100.0
DEFAULT_REFERENCE_PRICE = 230.0
# Flat approximation of a two-swap arbitrage; not a simulated transaction.
DEFAULT_GAS_UNITS = 200000
DEFAULT_CYCLE_TIMEOUT = 15.0
DEFAULT_RPC_TIMEOUT = 8.0
DEFAULT_RECONNECT_DELAY = 5.0
DEFAULT_MAX_RECONNECT_ATTEMPTS = 10
DEFAULT_ALERT_COOLDOWN = 300
