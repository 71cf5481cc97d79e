import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # MongoDB
    MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
    MONGO_DB = os.getenv("MONGO_DB", "aramid")

    # Discord
    DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
    DISCORD_GUILD_ID = os.getenv("DISCORD_GUILD_ID")
    TRADING_CATEGORY_NAME = os.getenv("TRADING_CATEGORY_NAME", "Trading")
    DEV_WHITELIST = [u.strip() for u in os.getenv("DEV_WHITELIST", "").split(",") if u.strip()]
    MARKET_MAKING_DEV_ONLY = _env_bool("MARKET_MAKING_DEV_ONLY", "false")

    # Wallet encryption (Fernet key material for stored private keys)
    ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")

    # Solana
    SOLANA_RPC_URL = os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com")
    PRIORITY_FEE_RPC_URL = os.getenv("PRIORITY_FEE_RPC_URL")  # QuickNode endpoint with qn_estimatePriorityFees
    BIRDEYE_API_KEY = os.getenv("BIRDEYE_API_KEY")

    # XRP Ledger
    XRP_RPC_URL = os.getenv("XRP_RPC_URL", "https://s1.ripple.com:51234/")

    # Trading API
    TRADE_API_URL = os.getenv("TRADE_API_URL", "https://api.smalltimedevs.com/solana/raydium-api")
    XRP_TRADE_API_URL = os.getenv("XRP_TRADE_API_URL", "https://api.smalltimedevs.com/xrp/ledger-api")
    XRP_TOKEN_API_URL = os.getenv("XRP_TOKEN_API_URL", "https://api.onthedex.live/public/v1")

    # Fees
    PLATFORM_PUBLIC_KEY = os.getenv("PLATFORM_PUBLIC_KEY", "8doV3bDFAxE6ENAAckbQYaVwNZwmdpkk5BmP7SHsmijQ")
    PLATFORM_FEE_PERCENTAGE = float(os.getenv("PLATFORM_FEE_PERCENTAGE", "0.1"))
    REFERRAL_FEE_PERCENTAGE = float(os.getenv("REFERRAL_FEE_PERCENTAGE", "0.2"))
    ENABLE_PLATFORM_FEE = _env_bool("ENABLE_PLATFORM_FEE")
    ENABLE_REFERRAL_FEE = _env_bool("ENABLE_REFERRAL_FEE")

    # Sessions
    SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "1800"))
    SESSION_SWEEP_SECONDS = int(os.getenv("SESSION_SWEEP_SECONDS", "300"))


config = Config()
