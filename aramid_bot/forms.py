"""
Validation and application of modal (text form) submissions.

A failed validation never touches the session; the caller re-prompts with the
error message.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .market_data import is_valid_address
from .models import Chain, MarketMakingConfig, PRIORITY_FEE_TIERS, SLIPPAGE_OPTIONS_BPS, slippage_label
from .sessions import FlowKind, SessionStore

logger = logging.getLogger(__name__)


class FieldError(ValueError):
    """A single form field failed validation."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


@dataclass
class FormOutcome:
    ok: bool
    config: Any = None
    error: Optional[str] = None


# =============================================================================
# FIELD PARSERS
# =============================================================================

def parse_number(raw: Optional[str], label: str, field: str = "") -> float:
    text = (raw or "").strip()
    if not text:
        raise FieldError(field, f"{label} is required.")
    try:
        value = float(text)
    except ValueError:
        raise FieldError(field, f"{label} must be a number.")
    if not math.isfinite(value):
        raise FieldError(field, f"{label} must be a number.")
    return value


def parse_positive_number(raw: Optional[str], label: str, field: str = "") -> float:
    value = parse_number(raw, label, field)
    if value <= 0:
        raise FieldError(field, f"{label} must be greater than 0.")
    return value


def parse_non_negative_number(raw: Optional[str], label: str, field: str = "") -> float:
    value = parse_number(raw, label, field)
    if value < 0:
        raise FieldError(field, f"{label} cannot be negative.")
    return value


def parse_percentage(raw: Optional[str], label: str, field: str = "") -> float:
    """A percentage in (0, 100]."""
    value = parse_positive_number(raw, label, field)
    if value > 100:
        raise FieldError(field, f"{label} cannot be more than 100%.")
    return value


def parse_positive_int(raw: Optional[str], label: str, field: str = "") -> int:
    value = parse_positive_number(raw, label, field)
    if not value.is_integer():
        raise FieldError(field, f"{label} must be a whole number.")
    return int(value)


def parse_slippage_choice(raw: str) -> int:
    try:
        bps = int(raw)
    except (TypeError, ValueError):
        raise FieldError("slippage_bps", "Unknown slippage option.")
    if bps not in SLIPPAGE_OPTIONS_BPS:
        allowed = ", ".join(slippage_label(b) for b in SLIPPAGE_OPTIONS_BPS)
        raise FieldError("slippage_bps", f"Slippage must be one of {allowed}.")
    return bps


def parse_fee_tier(raw: str) -> str:
    if raw not in PRIORITY_FEE_TIERS:
        raise FieldError("priority_fee_tier", f"Priority fee must be one of {', '.join(PRIORITY_FEE_TIERS)}.")
    return raw


def parse_token_address(chain: Chain, raw: Optional[str]) -> str:
    address = (raw or "").strip()
    if not address:
        raise FieldError("token_address", "Token address is required.")
    if not is_valid_address(chain, address):
        label = "Solana mint" if chain == Chain.SOLANA else "XRP issuer"
        raise FieldError("token_address", f"`{address}` is not a valid {label} address.")
    return address


TRADE_FIELD_PARSERS: Dict[str, Callable[[str, Chain], Any]] = {
    "token_address": lambda raw, chain: parse_token_address(chain, raw),
    "amount": lambda raw, chain: parse_positive_number(raw, "Amount", "amount"),
    "sell_percentage": lambda raw, chain: parse_percentage(raw, "Sell percentage", "sell_percentage"),
    "slippage_bps": lambda raw, chain: parse_slippage_choice(raw),
}


# =============================================================================
# SESSION UPDATES
# =============================================================================

def apply_trade_field(store: SessionStore, user_id: str, flow: FlowKind, field: str, raw: str) -> FormOutcome:
    """
    Validate one raw field value and write it to the user's session.

    Raises:
        ConfigNotFoundError: the flow was never started (or has expired)
    """
    parser = TRADE_FIELD_PARSERS.get(field)
    if parser is None:
        raise ValueError(f"No parser for trade field {field!r}")

    try:
        value = parser(raw, flow.chain)
    except FieldError as e:
        logger.info(f"Rejected {field} for {user_id} ({flow.value}): {e}")
        return FormOutcome(ok=False, config=store.get(user_id, flow), error=str(e))

    config = store.update(user_id, flow, **{field: value})
    return FormOutcome(ok=True, config=config)


def apply_fee_tier(store: SessionStore, user_id: str, flow: FlowKind, raw: str, fees: Dict[str, int]) -> FormOutcome:
    try:
        tier = parse_fee_tier(raw)
    except FieldError as e:
        return FormOutcome(ok=False, config=store.get(user_id, flow), error=str(e))
    config = store.update(user_id, flow, priority_fee_tier=tier, priority_fee=int(fees[tier]))
    return FormOutcome(ok=True, config=config)


# =============================================================================
# SETTINGS FORMS
# =============================================================================

QUICK_SETTINGS_FIELDS = {
    "min_quick_buy": ("Min quick buy", parse_positive_number),
    "medium_quick_buy": ("Medium quick buy", parse_positive_number),
    "large_quick_buy": ("Large quick buy", parse_positive_number),
    "min_quick_sell": ("Min quick sell", parse_percentage),
    "medium_quick_sell": ("Medium quick sell", parse_percentage),
    "large_quick_sell": ("Large quick sell", parse_percentage),
}


def parse_quick_settings(values: Dict[str, str]) -> dict:
    """
    Parse the quick settings form. Blank fields are left out of the patch.

    Raises:
        FieldError: for the first invalid field
    """
    patch = {}
    for field, (label, parser) in QUICK_SETTINGS_FIELDS.items():
        raw = values.get(field)
        if raw is None or not raw.strip():
            continue
        patch[field] = parser(raw, label, field)
    if not patch:
        raise FieldError("", "Enter at least one value.")
    return patch


MARKET_MAKING_FIELDS = {
    "spread_percentage": ("Spread", parse_percentage),
    "price_range": ("Price range", parse_percentage),
    "number_of_wallets": ("Number of wallets", parse_positive_int),
    "min_trades": ("Min trades", parse_positive_int),
    "max_trades": ("Max trades", parse_positive_int),
    "slippage": ("Slippage", parse_percentage),
    "static_dust_amount": ("Dust amount", parse_non_negative_number),
    "min_sol_balance": ("Min SOL balance", parse_non_negative_number),
    "static_sell_percentage": ("Sell percentage", parse_percentage),
    "range_min_sell_percentage": ("Min sell percentage", parse_percentage),
    "range_max_sell_percentage": ("Max sell percentage", parse_percentage),
    "static_purchase_amount": ("Buy amount", parse_positive_number),
    "range_min_purchase_amount": ("Min buy amount", parse_positive_number),
    "range_max_purchase_amount": ("Max buy amount", parse_positive_number),
}

# (min field, max field, message) pairs checked against the merged config
MARKET_MAKING_RANGES = (
    ("min_trades", "max_trades", "Min trades cannot be greater than max trades."),
    ("range_min_sell_percentage", "range_max_sell_percentage", "Min sell percentage cannot be greater than max sell percentage."),
    ("range_min_purchase_amount", "range_max_purchase_amount", "Min buy amount cannot be greater than max buy amount."),
)


def parse_market_making_fields(values: Dict[str, str], current: MarketMakingConfig) -> dict:
    """
    Parse any of the market making forms against the current config.

    Only fields present and non-blank in the submission are patched. Range
    bounds are checked on the config the patch would produce.

    Raises:
        FieldError: for the first invalid field or inverted range
    """
    patch = {}
    for field, (label, parser) in MARKET_MAKING_FIELDS.items():
        raw = values.get(field)
        if raw is None or not raw.strip():
            continue
        patch[field] = parser(raw, label, field)

    for low_field, high_field, message in MARKET_MAKING_RANGES:
        low = patch.get(low_field, getattr(current, low_field))
        high = patch.get(high_field, getattr(current, high_field))
        if low > high:
            raise FieldError(low_field, message)
    return patch
