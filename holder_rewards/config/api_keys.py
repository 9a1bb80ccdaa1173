"""
API endpoint configuration for external services.
Keys themselves are never hardcoded; they come from the environment via Settings.
"""

from typing import Dict
from urllib.parse import quote

# API Endpoints
HELIUS_RPC_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={}"
BIRDEYE_BASE_URL = "https://public-api.birdeye.so"
BIRDEYE_MARKET_DATA_URL = f"{BIRDEYE_BASE_URL}/defi/v3/token/market-data?address={{}}&x-chain=solana"
BIRDEYE_PRICE_URL = f"{BIRDEYE_BASE_URL}/defi/price?address={{}}&include_liquidity=true"

# Token programs scanned for holder accounts
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"


def helius_rpc_url(api_key: str) -> str:
    """Build the Helius mainnet RPC URL for an API key."""
    return HELIUS_RPC_TEMPLATE.format(api_key) if api_key else ""


def birdeye_headers(api_key: str) -> Dict[str, str]:
    return {
        "accept": "application/json",
        "X-API-KEY": api_key or "",
        "x-chain": "solana",
    }


def market_data_url(mint: str) -> str:
    return BIRDEYE_MARKET_DATA_URL.format(quote(mint, safe=""))


def price_url(mint: str) -> str:
    return BIRDEYE_PRICE_URL.format(quote(mint, safe=""))
