"""
Token research snapshots assembled from several partially reliable sources.
"""
import asyncio
import logging
from datetime import datetime

from . import market_data
from .models import (
    HolderStats,
    LiquidityStats,
    PriceChange,
    SupplyStats,
    TokenMetadata,
    TokenResearchSnapshot,
    VolumeStats,
)

logger = logging.getLogger(__name__)


class InvalidTokenAddressError(ValueError):
    pass


def _num(value, default: float = 0.0) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _metadata(overview: dict) -> TokenMetadata:
    extensions = overview.get("extensions") or {}
    return TokenMetadata(
        name=overview.get("name") or "Unknown Token",
        symbol=overview.get("symbol") or "UNKNOWN",
        decimals=int(_num(overview.get("decimals"))),
        image=overview.get("logoURI") or "",
        description=extensions.get("description") or "",
    )


async def fetch_token_snapshot(address: str) -> TokenResearchSnapshot:
    """
    Build a research snapshot for a Solana token.

    Each source that fails leaves its section at defaults. Market cap and FDV
    are derived from price and supply (0 when either is missing).

    Raises:
        InvalidTokenAddressError: address is not a valid Solana mint address
    """
    if not market_data.is_valid_solana_address(address):
        raise InvalidTokenAddressError(f"Invalid Solana address: {address}")

    overview, supply, holders = await asyncio.gather(
        market_data.get_token_overview(address),
        market_data.get_token_supply(address),
        market_data.get_largest_holders(address),
        return_exceptions=True,
    )
    for name, value in (("overview", overview), ("supply", supply), ("holders", holders)):
        if isinstance(value, Exception):
            logger.warning(f"Research {name} lookup failed for {address}: {value}")
    overview = overview if isinstance(overview, dict) else {}
    supply = supply if isinstance(supply, dict) else {}
    holders = holders if isinstance(holders, list) else []

    price = _num(overview.get("price"))
    total = _num(supply.get("total"), _num(overview.get("supply")))
    circulating = _num(overview.get("circulatingSupply"), total)

    snapshot = TokenResearchSnapshot(
        address=address,
        metadata=_metadata(overview),
        price=price,
        price_change=PriceChange(
            h1=_num(overview.get("priceChange1hPercent")),
            h24=_num(overview.get("priceChange24hPercent")),
            d7=_num(overview.get("priceChange7dPercent")),
        ),
        volume=VolumeStats(
            h24=_num(overview.get("v24hUSD")),
            d7=_num(overview.get("v7dUSD")),
        ),
        supply=SupplyStats(
            total=total,
            circulating=circulating,
            decimals=int(_num(supply.get("decimals"), _num(overview.get("decimals")))),
        ),
        market_cap=price * circulating if price and circulating else 0.0,
        fdv=price * total if price and total else 0.0,
        liquidity=LiquidityStats(
            tvl=_num(overview.get("liquidity")),
            main_pools=overview.get("markets") or [],
        ),
        holders=HolderStats(
            count=int(_num(overview.get("holder"))),
            top_holders=holders,
        ),
        last_updated=datetime.utcnow(),
    )
    logger.info(f"Built research snapshot for {address} ({snapshot.metadata.symbol})")
    return snapshot
