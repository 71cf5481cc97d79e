"""
Resolve quick trade tiers (min / medium / large) to concrete amounts.
"""
from typing import List, Optional, Tuple

from .models import DEFAULT_QUICK_BUY, DEFAULT_QUICK_SELL, QUICK_TIERS, TradeSettings


def _resolve(settings: Optional[TradeSettings], tier: str, kind: str, defaults: dict) -> float:
    if tier not in QUICK_TIERS:
        raise ValueError(f"Unknown quick tier {tier!r}")
    if settings is not None:
        value = getattr(settings, f"{tier}_quick_{kind}")
        if value is not None and value > 0:
            return value
    return defaults[tier]


def resolve_quick_buy(settings: Optional[TradeSettings], tier: str) -> float:
    """Buy amount (base currency) for a tier; persisted value wins over the default."""
    return _resolve(settings, tier, "buy", DEFAULT_QUICK_BUY)


def resolve_quick_sell(settings: Optional[TradeSettings], tier: str) -> float:
    """Sell percentage for a tier; persisted value wins over the default."""
    value = _resolve(settings, tier, "sell", DEFAULT_QUICK_SELL)
    return value if value <= 100 else DEFAULT_QUICK_SELL[tier]


def quick_buy_options(settings: Optional[TradeSettings]) -> List[Tuple[str, float]]:
    return [(tier, resolve_quick_buy(settings, tier)) for tier in QUICK_TIERS]


def quick_sell_options(settings: Optional[TradeSettings]) -> List[Tuple[str, float]]:
    return [(tier, resolve_quick_sell(settings, tier)) for tier in QUICK_TIERS]
