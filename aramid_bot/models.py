"""
MongoDB models, trading constants and defaults for the Aramid Discord trading bot.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field
from nanoid import generate


# =============================================================================
# CHAINS AND KNOWN TOKENS
# =============================================================================

class Chain(str, Enum):
    SOLANA = "solana"
    XRP = "xrp"


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


SOL_MINT = "So11111111111111111111111111111111111111112"
XRP_MINT = "rXRP"
LAMPORTS_PER_SOL = 1_000_000_000
DROPS_PER_XRP = 1_000_000

NATIVE_SYMBOL = {
    Chain.SOLANA: "SOL",
    Chain.XRP: "XRP",
}

# Fallback metadata when market data is unavailable
POPULAR_TOKENS = {
    "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN": {"name": "Jupiter", "symbol": "JUP"},
    "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263": {"name": "Bonk", "symbol": "BONK"},
    "YtfMZ4jg2ubdz4GsNdJWpJk3YTM5pUdMrFN7N6yvqZA": {"name": "RAC", "symbol": "RAC"},
}

UNKNOWN_TOKEN = {"name": "Unknown Token", "symbol": "Unknown"}


# =============================================================================
# TRADING DEFAULTS
# =============================================================================

SLIPPAGE_OPTIONS_BPS = (10, 50, 100, 300)   # 0.1%, 0.5%, 1%, 3%
DEFAULT_SLIPPAGE_BPS = 50

PRIORITY_FEE_TIERS = ("low", "medium", "high")
DEFAULT_PRIORITY_FEES = {"low": 1000, "medium": 10000, "high": 100000}   # micro-lamports per CU
DEFAULT_PRIORITY_FEE_TIER = "medium"

DEFAULT_BUY_AMOUNT = {
    Chain.SOLANA: 0.01,
    Chain.XRP: 10.0,
}

QUICK_TIERS = ("min", "medium", "large")
DEFAULT_QUICK_BUY = {"min": 0.01, "medium": 0.5, "large": 1.0}
DEFAULT_QUICK_SELL = {"min": 10.0, "medium": 50.0, "large": 100.0}

# Settings fields stored as strings, never coerced to numbers
SETTINGS_STRING_FIELDS = {"user_id", "channel_id", "channel_name", "guild_id", "primary_channel", "updated_at"}


def slippage_label(bps: int) -> str:
    """Render basis points as a percentage label, e.g. 50 -> '0.5%'."""
    return f"{bps / 100:g}%"


def lamports_to_sol(lamports: float) -> float:
    return lamports / LAMPORTS_PER_SOL


def format_duration(started_at: Optional[datetime], stopped_at: datetime) -> str:
    """Elapsed time as '{h}h {m}m', or 'Unknown' without a start time."""
    if started_at is None:
        return "Unknown"
    minutes = max(0, int((stopped_at - started_at).total_seconds() // 60))
    return f"{minutes // 60}h {minutes % 60}m"


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class TradeSettings(BaseModel):
    """Per-user quick trade presets and notification channels."""
    user_id: str
    min_quick_buy: Optional[float] = None
    medium_quick_buy: Optional[float] = None
    large_quick_buy: Optional[float] = None
    min_quick_sell: Optional[float] = None
    medium_quick_sell: Optional[float] = None
    large_quick_sell: Optional[float] = None
    channels: List[str] = Field(default_factory=list)
    primary_channel: Optional[str] = None
    channel_id: Optional[str] = None
    channel_name: Optional[str] = None
    guild_id: Optional[str] = None
    updated_at: Optional[datetime] = None


class MarketMakingConfig(BaseModel):
    user_id: str
    token_mint: Optional[str] = None
    token_symbol: Optional[str] = None
    token_name: Optional[str] = None
    spread_percentage: float = 1.0
    price_range: float = 5.0
    auto_adjust: bool = True
    number_of_wallets: int = 5
    min_trades: int = 1
    max_trades: int = 10
    slippage: float = 0.5
    leave_dust: bool = False
    dust_amount_type: str = "Static"
    static_dust_amount: float = 0.0
    min_sol_balance: float = 0.05
    sell_percentage_type: str = "Static"
    static_sell_percentage: float = 100.0
    range_min_sell_percentage: float = 50.0
    range_max_sell_percentage: float = 100.0
    retry_amount: int = 5
    trade_investment_type: str = "Range"
    static_purchase_amount: float = 0.1
    range_min_purchase_amount: float = 0.1
    range_max_purchase_amount: float = 0.5
    platform: str = "Raydium"
    final_wallet_address: Optional[str] = None
    recent_tokens: List[str] = Field(default_factory=list)
    active: bool = False
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None


class TokenMetadata(BaseModel):
    name: str = "Unknown Token"
    symbol: str = "UNKNOWN"
    decimals: int = 0
    image: str = ""
    description: str = ""


class PriceChange(BaseModel):
    h1: float = 0.0
    h24: float = 0.0
    d7: float = 0.0


class VolumeStats(BaseModel):
    h24: float = 0.0
    d7: float = 0.0


class SupplyStats(BaseModel):
    total: float = 0.0
    circulating: float = 0.0
    decimals: int = 0


class LiquidityStats(BaseModel):
    tvl: float = 0.0
    main_pools: List[dict] = Field(default_factory=list)


class HolderStats(BaseModel):
    count: int = 0
    top_holders: List[dict] = Field(default_factory=list)


class TokenResearchSnapshot(BaseModel):
    """Research view of a token. Every field has a default so it always renders."""
    address: str
    metadata: TokenMetadata = Field(default_factory=TokenMetadata)
    price: float = 0.0
    price_change: PriceChange = Field(default_factory=PriceChange)
    volume: VolumeStats = Field(default_factory=VolumeStats)
    supply: SupplyStats = Field(default_factory=SupplyStats)
    market_cap: float = 0.0
    fdv: float = 0.0
    liquidity: LiquidityStats = Field(default_factory=LiquidityStats)
    holders: HolderStats = Field(default_factory=HolderStats)
    last_updated: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# MONGODB DOCUMENT SCHEMAS
# =============================================================================

def user_document(
    user_id: str,
    username: Optional[str] = None,
    referred_by: Optional[str] = None,
) -> dict:
    """Create a user document for MongoDB."""
    doc = {
        "user_id": user_id,
        "username": None,
        "referred_by": None,
        "terms_agreed": False,
        "terms_agreed_at": None,
        "two_factor_enabled": False,
        "created_at": datetime.utcnow(),
    }

    if username:
        doc["username"] = username

    if referred_by:
        doc["referred_by"] = referred_by

    return doc


def wallet_document(
    user_id: str,
    sol_public_key: Optional[str] = None,
    sol_private_key: Optional[str] = None,
    xrp_public_key: Optional[str] = None,
    xrp_private_key: Optional[str] = None,
) -> dict:
    """Create a custody wallet document. Private key values must already be encrypted."""
    return {
        "user_id": user_id,
        "sol_public_key": sol_public_key,
        "sol_private_key": sol_private_key,
        "xrp_public_key": xrp_public_key,
        "xrp_private_key": xrp_private_key,
        "created_at": datetime.utcnow(),
    }


def trade_document(
    user_id: str,
    chain: str,
    side: str,
    token_address: str,
    amount: float,
    success: bool,
    tx_id: Optional[str] = None,
    output_amount: Optional[float] = None,
    error: Optional[str] = None,
) -> dict:
    """Create a trade history document for MongoDB."""
    return {
        "_id": generate(size=10),
        "user_id": user_id,
        "chain": chain,
        "side": side,
        "token_address": token_address,
        "amount": amount,
        "success": success,
        "tx_id": tx_id,
        "output_amount": output_amount,
        "error": error,
        "created_at": datetime.utcnow(),
    }
