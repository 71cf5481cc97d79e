"""
Database service for MongoDB operations.
Handles users, custody wallets, trade settings, market making configs and trades.
"""
import logging
from datetime import datetime
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from solders.keypair import Keypair
from xrpl.wallet import Wallet

from .encryption import encrypt_private_key
from .models import (
    TradeSettings,
    MarketMakingConfig,
    SETTINGS_STRING_FIELDS,
    user_document,
    wallet_document,
    trade_document,
)

logger = logging.getLogger(__name__)

_SETTINGS_FIELDS = set(TradeSettings.model_fields) - {"user_id", "updated_at"}
_MM_FIELDS = set(MarketMakingConfig.model_fields) - {"user_id", "recent_tokens"}


def coerce_settings_patch(patch: dict) -> dict:
    """
    Normalize a trade settings patch before it is merged.

    Numeric strings become floats; channel/guild identifiers stay strings.

    Raises:
        ValueError: on unknown fields
    """
    unknown = set(patch) - _SETTINGS_FIELDS
    if unknown:
        raise ValueError(f"Unknown trade settings fields: {', '.join(sorted(unknown))}")

    coerced = {}
    for key, value in patch.items():
        if key in SETTINGS_STRING_FIELDS:
            coerced[key] = str(value) if value is not None else None
        elif isinstance(value, str) and key != "channels":
            try:
                coerced[key] = float(value)
            except ValueError:
                coerced[key] = value
        else:
            coerced[key] = value
    return coerced


class DatabaseService:
    def __init__(self, mongo_url: str, database_name: str):
        self.client = AsyncIOMotorClient(mongo_url)
        self.db: AsyncIOMotorDatabase = self.client[database_name]

        # Collections
        self.users = self.db["users"]
        self.wallets = self.db["wallets"]
        self.trade_settings = self.db["trade_settings"]
        self.market_making = self.db["market_making"]
        self.trades = self.db["trades"]

    async def setup_indexes(self):
        """Create necessary indexes for performance."""
        await self.users.create_index("user_id", unique=True)
        await self.users.create_index("referred_by", sparse=True)

        await self.wallets.create_index("user_id", unique=True)
        await self.wallets.create_index("sol_public_key", sparse=True)

        await self.trade_settings.create_index("user_id", unique=True)
        await self.market_making.create_index("user_id", unique=True)
        await self.market_making.create_index("active")

        await self.trades.create_index("user_id")
        await self.trades.create_index([("user_id", 1), ("created_at", -1)])

        logger.info("Database indexes created")

    # =========================================================================
    # USER OPERATIONS
    # =========================================================================

    async def get_user(self, user_id: str) -> Optional[dict]:
        """Get user by Discord user ID."""
        return await self.users.find_one({"user_id": user_id})

    async def register_user(
        self,
        user_id: str,
        username: Optional[str] = None,
        referred_by: Optional[str] = None,
    ) -> dict:
        """Get existing user or create a new one."""
        user = await self.get_user(user_id)
        if user:
            if username and user.get("username") != username:
                await self.users.update_one({"user_id": user_id}, {"$set": {"username": username}})
                user["username"] = username
            return user

        if referred_by == user_id:
            referred_by = None

        user_doc = user_document(user_id=user_id, username=username, referred_by=referred_by)
        await self.users.insert_one(user_doc)
        logger.info(f"Registered new user: {user_id}")
        return user_doc

    async def agree_to_terms(self, user_id: str) -> bool:
        result = await self.users.update_one(
            {"user_id": user_id},
            {"$set": {"terms_agreed": True, "terms_agreed_at": datetime.utcnow()}},
            upsert=True,
        )
        return result.modified_count > 0 or result.upserted_id is not None

    async def has_agreed_to_terms(self, user_id: str) -> bool:
        user = await self.get_user(user_id)
        return bool(user and user.get("terms_agreed"))

    # =========================================================================
    # WALLET OPERATIONS
    # =========================================================================

    async def get_wallet(self, user_id: str) -> dict:
        """
        Look up a user's custody wallets.

        Returns:
            Dict with exists, sol_public_key, xrp_public_key and the encrypted
            private key references. Private keys are never decrypted here.
        """
        doc = await self.wallets.find_one({"user_id": user_id})
        if not doc:
            return {
                "exists": False,
                "sol_public_key": None,
                "xrp_public_key": None,
                "sol_private_key_ref": None,
                "xrp_private_key_ref": None,
            }
        return {
            "exists": bool(doc.get("sol_public_key") or doc.get("xrp_public_key")),
            "sol_public_key": doc.get("sol_public_key"),
            "xrp_public_key": doc.get("xrp_public_key"),
            "sol_private_key_ref": doc.get("sol_private_key"),
            "xrp_private_key_ref": doc.get("xrp_private_key"),
        }

    async def check_user_wallet(self, user_id: str, username: Optional[str] = None) -> dict:
        """Return the user's wallets, generating any that are missing."""
        wallet = await self.get_wallet(user_id)
        updates = {}

        if not wallet["sol_public_key"]:
            keypair = Keypair()
            updates["sol_public_key"] = str(keypair.pubkey())
            updates["sol_private_key"] = encrypt_private_key(str(keypair))

        if not wallet["xrp_public_key"]:
            xrp_wallet = Wallet.create()
            updates["xrp_public_key"] = xrp_wallet.classic_address
            updates["xrp_private_key"] = encrypt_private_key(xrp_wallet.seed)

        if updates:
            if not wallet["exists"]:
                doc = wallet_document(user_id=user_id, **updates)
                await self.wallets.insert_one(doc)
            else:
                await self.wallets.update_one({"user_id": user_id}, {"$set": updates})
            logger.info(f"Generated wallets for {username or user_id}: {', '.join(k for k in updates if k.endswith('public_key'))}")
            await self.register_user(user_id, username)
            wallet = await self.get_wallet(user_id)

        return wallet

    async def get_referral_public_key(self, user_id: str) -> Optional[str]:
        """Solana public key of the user's referrer, if any."""
        user = await self.get_user(user_id)
        if not user or not user.get("referred_by"):
            return None
        referrer_wallet = await self.get_wallet(user["referred_by"])
        return referrer_wallet["sol_public_key"]

    # =========================================================================
    # TRADE SETTINGS OPERATIONS
    # =========================================================================

    async def get_trade_settings(self, user_id: str) -> Optional[TradeSettings]:
        """Get persisted trade settings, or None if the user never saved any."""
        doc = await self.trade_settings.find_one({"user_id": user_id})
        if not doc:
            return None
        doc.pop("_id", None)
        return TradeSettings(**doc)

    async def save_trade_settings(self, user_id: str, patch: dict) -> Optional[TradeSettings]:
        """
        Merge a partial settings update into the stored record.

        Only the fields present in the patch are written; everything else
        keeps its stored value.
        """
        update = coerce_settings_patch(patch)
        update["updated_at"] = datetime.utcnow()

        await self.trade_settings.update_one(
            {"user_id": user_id},
            {"$set": update, "$setOnInsert": {"user_id": user_id}},
            upsert=True,
        )
        logger.info(f"Saved trade settings for {user_id}: {sorted(k for k in update if k != 'updated_at')}")
        return await self.get_trade_settings(user_id)

    async def add_channel(self, user_id: str, channel_id: str) -> None:
        await self.trade_settings.update_one(
            {"user_id": user_id},
            {
                "$addToSet": {"channels": str(channel_id)},
                "$set": {"updated_at": datetime.utcnow()},
                "$setOnInsert": {"user_id": user_id},
            },
            upsert=True,
        )

    async def remove_channel(self, user_id: str, channel_id: str) -> None:
        settings = await self.get_trade_settings(user_id)
        update = {"$pull": {"channels": str(channel_id)}, "$set": {"updated_at": datetime.utcnow()}}
        if settings and settings.primary_channel == str(channel_id):
            update["$set"]["primary_channel"] = None
        await self.trade_settings.update_one({"user_id": user_id}, update)

    async def set_primary_channel(self, user_id: str, channel_id: str) -> None:
        await self.add_channel(user_id, channel_id)
        await self.save_trade_settings(user_id, {"primary_channel": channel_id})

    async def save_trading_channel(self, user_id: str, channel_id: str, channel_name: str, guild_id: str) -> None:
        """Record the user's private trading channel."""
        await self.save_trade_settings(
            user_id,
            {"channel_id": channel_id, "channel_name": channel_name, "guild_id": guild_id},
        )
        await self.add_channel(user_id, channel_id)

    # =========================================================================
    # MARKET MAKING OPERATIONS
    # =========================================================================

    async def get_market_making_config(self, user_id: str) -> Optional[MarketMakingConfig]:
        doc = await self.market_making.find_one({"user_id": user_id})
        if not doc:
            return None
        doc.pop("_id", None)
        return MarketMakingConfig(**doc)

    async def save_market_making_config(self, user_id: str, patch: dict) -> Optional[MarketMakingConfig]:
        """Merge a partial market making config update (upsert)."""
        unknown = set(patch) - _MM_FIELDS
        if unknown:
            raise ValueError(f"Unknown market making fields: {', '.join(sorted(unknown))}")

        update = {"$set": dict(patch), "$setOnInsert": {"user_id": user_id}}
        if patch.get("token_mint"):
            update["$addToSet"] = {"recent_tokens": patch["token_mint"]}

        await self.market_making.update_one({"user_id": user_id}, update, upsert=True)
        return await self.get_market_making_config(user_id)

    # =========================================================================
    # TRADE HISTORY
    # =========================================================================

    async def store_trade(
        self,
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
        doc = trade_document(
            user_id=user_id,
            chain=chain,
            side=side,
            token_address=token_address,
            amount=amount,
            success=success,
            tx_id=tx_id,
            output_amount=output_amount,
            error=error,
        )
        await self.trades.insert_one(doc)
        logger.info(f"Stored {chain} {side} trade {doc['_id']} for {user_id} (success={success})")
        return doc

    async def get_recent_trades(self, user_id: str, limit: int = 10) -> list:
        cursor = self.trades.find({"user_id": user_id}).sort("created_at", -1).limit(limit)
        return await cursor.to_list(length=limit)
