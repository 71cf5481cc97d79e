"""
Market data service: balances, prices, token metadata and priority fees.

Solana data comes from JSON-RPC and Birdeye, XRP data from the XRPL JSON-RPC
and the onthedex token API. Every call degrades to a default value on failure.
"""
import logging
import re
import time
from typing import Optional, Dict, List, Tuple
import httpx
from solders.pubkey import Pubkey
from xrpl.core.addresscodec import is_valid_classic_address

from .config import config as app_config
from .models import (
    DEFAULT_PRIORITY_FEES,
    DROPS_PER_XRP,
    LAMPORTS_PER_SOL,
    POPULAR_TOKENS,
    SOL_MINT,
    UNKNOWN_TOKEN,
    Chain,
)

logger = logging.getLogger(__name__)

# Birdeye API base URL
BIRDEYE_API_URL = "https://public-api.birdeye.so"

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
JUPITER_PROGRAM_ID = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"

_price_cache: Dict[str, Tuple[float, float]] = {}  # mint -> (price, timestamp)
_metadata_cache: Dict[str, dict] = {}  # mint -> {name, symbol, decimals}
CACHE_TTL_SECONDS = 60

_BASE58_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


# =============================================================================
# ADDRESS VALIDATION
# =============================================================================

def is_valid_solana_address(address: str) -> bool:
    if not address or not _BASE58_RE.match(address):
        return False
    try:
        Pubkey.from_string(address)
        return True
    except Exception:
        return False


def is_valid_xrp_address(address: str) -> bool:
    if not address or not address.startswith("r"):
        return False
    try:
        return is_valid_classic_address(address)
    except Exception:
        return False


def is_valid_address(chain: Chain, address: str) -> bool:
    if chain == Chain.SOLANA:
        return is_valid_solana_address(address)
    return is_valid_xrp_address(address)


# =============================================================================
# JSON-RPC HELPERS
# =============================================================================

async def _solana_rpc(method: str, params: list) -> Optional[dict]:
    """Call a Solana JSON-RPC method and return its result, or None on failure."""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                app_config.SOLANA_RPC_URL,
                json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
                timeout=10.0,
            )
            if response.status_code != 200:
                logger.warning(f"Solana RPC {method} error: {response.status_code}")
                return None
            data = response.json()
            if "error" in data:
                logger.warning(f"Solana RPC {method} returned error: {data['error']}")
                return None
            return data.get("result")
    except httpx.TimeoutException:
        logger.warning(f"Timeout calling Solana RPC {method}")
    except Exception as e:
        logger.error(f"Error calling Solana RPC {method}: {e}")
    return None


async def _xrpl_rpc(method: str, params: dict) -> Optional[dict]:
    """Call an XRPL JSON-RPC method and return its result, or None on failure."""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                app_config.XRP_RPC_URL,
                json={"method": method, "params": [params]},
                timeout=10.0,
            )
            if response.status_code != 200:
                logger.warning(f"XRPL RPC {method} error: {response.status_code}")
                return None
            result = response.json().get("result") or {}
            if result.get("status") == "error":
                logger.warning(f"XRPL RPC {method} returned error: {result.get('error')}")
                return None
            return result
    except httpx.TimeoutException:
        logger.warning(f"Timeout calling XRPL RPC {method}")
    except Exception as e:
        logger.error(f"Error calling XRPL RPC {method}: {e}")
    return None


# =============================================================================
# SOLANA BALANCES
# =============================================================================

async def get_sol_balance(public_key: str) -> float:
    """SOL balance of a wallet, 0 when the balance cannot be fetched."""
    result = await _solana_rpc("getBalance", [public_key])
    if not result:
        return 0.0
    return result.get("value", 0) / LAMPORTS_PER_SOL


async def get_token_balances(public_key: str) -> List[dict]:
    """
    SPL token balances held by a wallet.

    Returns:
        List of {"mint", "amount", "decimals"} with non-zero amounts
    """
    result = await _solana_rpc(
        "getTokenAccountsByOwner",
        [public_key, {"programId": TOKEN_PROGRAM_ID}, {"encoding": "jsonParsed"}],
    )
    if not result:
        return []

    balances = []
    for account in result.get("value", []):
        try:
            info = account["account"]["data"]["parsed"]["info"]
            token_amount = info["tokenAmount"]
            amount = float(token_amount.get("uiAmount") or 0)
        except (KeyError, TypeError, ValueError):
            continue
        if amount > 0:
            balances.append({
                "mint": info["mint"],
                "amount": amount,
                "decimals": int(token_amount.get("decimals", 0)),
            })
    return balances


async def get_token_balance(public_key: str, mint: str) -> float:
    balances = await get_token_balances(public_key)
    return sum(b["amount"] for b in balances if b["mint"] == mint)


# =============================================================================
# XRP BALANCES
# =============================================================================

async def get_xrp_balance(address: str) -> float:
    """XRP balance of an account, 0 when unfunded or unavailable."""
    result = await _xrpl_rpc("account_info", {"account": address, "ledger_index": "validated"})
    if not result:
        return 0.0
    try:
        return int(result["account_data"]["Balance"]) / DROPS_PER_XRP
    except (KeyError, TypeError, ValueError):
        return 0.0


async def get_xrp_token_balances(address: str) -> List[dict]:
    """Trust line balances as {"currency", "balance", "issuer"}."""
    result = await _xrpl_rpc("account_lines", {"account": address})
    if not result:
        return []
    return [
        {
            "currency": line.get("currency"),
            "balance": float(line.get("balance", 0)),
            "issuer": line.get("account"),
        }
        for line in result.get("lines", [])
    ]


async def get_xrp_token_balance(address: str, issuer: str) -> float:
    lines = await get_xrp_token_balances(address)
    return sum(line["balance"] for line in lines if line["issuer"] == issuer)


# =============================================================================
# PRIORITY FEES
# =============================================================================

async def get_priority_fees() -> Dict[str, int]:
    """
    Priority fee tiers (micro-lamports per compute unit).

    Uses QuickNode's qn_estimatePriorityFees; falls back to fixed tiers.
    """
    if not app_config.PRIORITY_FEE_RPC_URL:
        return dict(DEFAULT_PRIORITY_FEES)

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                app_config.PRIORITY_FEE_RPC_URL,
                json={
                    "jsonrpc": "2.0",
                    "id": 1,
                    "method": "qn_estimatePriorityFees",
                    "params": {"last_n_blocks": 100, "account": JUPITER_PROGRAM_ID},
                },
                timeout=10.0,
            )
            if response.status_code == 200:
                per_cu = (response.json().get("result") or {}).get("per_compute_unit")
                if per_cu:
                    return {tier: int(per_cu.get(tier, DEFAULT_PRIORITY_FEES[tier])) for tier in DEFAULT_PRIORITY_FEES}
                logger.warning("Priority fee response missing per_compute_unit")
            else:
                logger.warning(f"Priority fee API error: {response.status_code}")
    except httpx.TimeoutException:
        logger.warning("Timeout fetching priority fees")
    except Exception as e:
        logger.error(f"Error fetching priority fees: {e}")

    return dict(DEFAULT_PRIORITY_FEES)


# =============================================================================
# PRICES AND METADATA (BIRDEYE)
# =============================================================================

async def _birdeye_get(path: str, params: dict) -> Optional[dict]:
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{BIRDEYE_API_URL}{path}",
                params=params,
                headers={
                    "X-API-KEY": app_config.BIRDEYE_API_KEY or "",
                    "x-chain": "solana",
                },
                timeout=10.0,
            )
            if response.status_code == 200:
                data = response.json()
                if data.get("success") and data.get("data"):
                    return data["data"]
            else:
                logger.warning(f"Birdeye {path} API error: {response.status_code} for {params}")
    except httpx.TimeoutException:
        logger.warning(f"Timeout calling Birdeye {path} for {params}")
    except Exception as e:
        logger.error(f"Error calling Birdeye {path} for {params}: {e}")
    return None


async def get_token_price(mint: str) -> Optional[float]:
    """
    Get the USD price of a token from Birdeye.

    Args:
        mint: Token mint address

    Returns:
        USD price or None if not found
    """
    if not mint:
        return None

    now = time.time()
    if mint in _price_cache:
        cached_price, cached_time = _price_cache[mint]
        if now - cached_time < CACHE_TTL_SECONDS:
            return cached_price

    data = await _birdeye_get("/defi/price", {"address": mint})
    if data and data.get("value") is not None:
        price = float(data["value"])
        _price_cache[mint] = (price, now)
        logger.debug(f"Got price for {mint[:8]}...: ${price}")
        return price
    return None


async def get_token_overview(mint: str) -> Optional[dict]:
    """Full Birdeye token overview (price, changes, volume, liquidity, holders)."""
    if not mint:
        return None
    return await _birdeye_get("/defi/token_overview", {"address": mint})


async def get_token_details(mint: str) -> dict:
    """
    Name, symbol and decimals for a Solana token.

    Falls back to the popular token list, then to an unknown placeholder.
    """
    if mint == SOL_MINT:
        return {"name": "Solana", "symbol": "SOL", "decimals": 9}
    if mint in _metadata_cache:
        return _metadata_cache[mint]

    overview = await get_token_overview(mint)
    if overview and overview.get("symbol"):
        details = {
            "name": overview.get("name") or overview["symbol"],
            "symbol": overview["symbol"],
            "decimals": int(overview.get("decimals") or 0),
        }
        _metadata_cache[mint] = details
        return details

    if mint in POPULAR_TOKENS:
        return {**POPULAR_TOKENS[mint], "decimals": 0}

    return {**UNKNOWN_TOKEN, "decimals": 0}


async def get_xrp_token_info(issuer: str) -> dict:
    """Currency name and price for an XRPL token issuer."""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{app_config.XRP_TOKEN_API_URL}/token/meta/{issuer}",
                timeout=10.0,
            )
            if response.status_code == 200:
                meta = response.json().get("meta") or {}
                token = meta.get("token") or {}
                symbol = token.get("currency") or token.get("name")
                if symbol:
                    return {"name": token.get("name") or symbol, "symbol": symbol, "price": meta.get("price")}
            else:
                logger.warning(f"XRP token API error: {response.status_code} for {issuer}")
    except httpx.TimeoutException:
        logger.warning(f"Timeout fetching XRP token info for {issuer}")
    except Exception as e:
        logger.error(f"Error fetching XRP token info for {issuer}: {e}")
    return {**UNKNOWN_TOKEN, "price": None}


# =============================================================================
# SUPPLY AND HOLDERS
# =============================================================================

async def get_token_supply(mint: str) -> Optional[dict]:
    """On-chain supply as {"total", "decimals"}."""
    result = await _solana_rpc("getTokenSupply", [mint])
    if not result or not result.get("value"):
        return None
    value = result["value"]
    return {
        "total": float(value.get("uiAmount") or 0),
        "decimals": int(value.get("decimals") or 0),
    }


async def get_largest_holders(mint: str, limit: int = 10) -> List[dict]:
    result = await _solana_rpc("getTokenLargestAccounts", [mint])
    if not result:
        return []
    return [
        {"address": account.get("address"), "amount": float(account.get("uiAmount") or 0)}
        for account in result.get("value", [])[:limit]
    ]


def clear_price_cache():
    """Clear the price cache."""
    _price_cache.clear()


def clear_metadata_cache():
    """Clear the token metadata cache."""
    _metadata_cache.clear()
