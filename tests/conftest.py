"""
Pytest fixtures and configuration for tests.
"""
import copy
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from aramid_bot.models import Chain, TradeSide
from aramid_bot.sessions import SessionStore, TradeSessionConfig


# Real mainnet addresses, valid for base58 / XRPL checksum validation
SOL_WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
XRP_WALLET = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"
XRP_ISSUER = "rvYAfWj5gh67oV6fW32ZzP3Aw4Eubs59B"


# =============================================================================
# MOCK DATA
# =============================================================================

@pytest.fixture
def sample_user():
    """Sample user document."""
    return {
        "user_id": "123456789012345678",
        "username": "trader",
        "referred_by": None,
        "terms_agreed": True,
        "terms_agreed_at": datetime.utcnow(),
        "two_factor_enabled": False,
        "created_at": datetime.utcnow(),
    }


@pytest.fixture
def sample_wallet_doc():
    """Sample custody wallet document (keys already encrypted)."""
    return {
        "user_id": "123456789012345678",
        "sol_public_key": SOL_WALLET,
        "sol_private_key": "enc:v1:sol-token",
        "xrp_public_key": XRP_WALLET,
        "xrp_private_key": "enc:v1:xrp-token",
        "created_at": datetime.utcnow(),
    }


@pytest.fixture
def sol_buy_config():
    """A complete Solana buy session."""
    return TradeSessionConfig(
        user_id="123456789012345678",
        chain=Chain.SOLANA,
        side=TradeSide.BUY,
        token_address=USDC_MINT,
        amount=0.5,
        slippage_bps=50,
        priority_fee_tier="medium",
        priority_fee=10000,
        wallet_public_key=SOL_WALLET,
        wallet_private_key_ref="enc:v1:sol-token",
    )


@pytest.fixture
def sol_sell_config():
    """A complete Solana sell session."""
    return TradeSessionConfig(
        user_id="123456789012345678",
        chain=Chain.SOLANA,
        side=TradeSide.SELL,
        token_address=USDC_MINT,
        sell_percentage=50.0,
        slippage_bps=100,
        priority_fee_tier="high",
        priority_fee=100000,
        wallet_public_key=SOL_WALLET,
        wallet_private_key_ref="enc:v1:sol-token",
    )


@pytest.fixture
def xrp_buy_config():
    """A complete XRP buy session."""
    return TradeSessionConfig(
        user_id="123456789012345678",
        chain=Chain.XRP,
        side=TradeSide.BUY,
        token_address=XRP_ISSUER,
        amount=25.0,
        wallet_public_key=XRP_WALLET,
        wallet_private_key_ref="enc:v1:xrp-token",
    )


@pytest.fixture
def session_store():
    """Session store with a controllable clock."""
    clock = {"now": 1000.0}
    store = SessionStore(ttl_seconds=60, clock=lambda: clock["now"])
    store.clock = clock
    return store


# =============================================================================
# HTTP MOCKS
# =============================================================================

@pytest.fixture
def mock_http_response():
    """Build a MagicMock httpx response."""
    def make_response(json_data=None, status_code: int = 200):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = json_data
        return response
    return make_response


@pytest.fixture
def patch_http_client():
    """Patch httpx.AsyncClient so post/get return the given response (or raise)."""
    def _patch(post=None, get=None):
        patcher = patch("httpx.AsyncClient")
        mock_client = patcher.start()
        mock_client.return_value.__aenter__ = AsyncMock(return_value=mock_client.return_value)
        mock_client.return_value.__aexit__ = AsyncMock(return_value=False)
        mock_client.return_value.post = AsyncMock(**_effect(post))
        mock_client.return_value.get = AsyncMock(**_effect(get))
        _active_patchers.append(patcher)
        return mock_client.return_value
    _active_patchers = []
    yield _patch
    for patcher in _active_patchers:
        patcher.stop()


def _effect(value):
    if isinstance(value, BaseException) or (isinstance(value, type) and issubclass(value, BaseException)):
        return {"side_effect": value}
    if isinstance(value, list):
        return {"side_effect": value}
    return {"return_value": value}


# =============================================================================
# DATABASE MOCKS
# =============================================================================

@pytest.fixture
def mock_collection():
    """Create a mock MongoDB collection."""
    def _create_collection():
        collection = AsyncMock()
        collection.find_one = AsyncMock(return_value=None)
        collection.insert_one = AsyncMock()
        collection.update_one = AsyncMock()
        collection.find = MagicMock()
        collection.find.return_value.sort.return_value.limit.return_value.to_list = AsyncMock(return_value=[])
        collection.create_index = AsyncMock()
        return collection
    return _create_collection


@pytest.fixture
def mock_db_service(mock_collection):
    """Create a mock DatabaseService."""
    from aramid_bot.database import DatabaseService

    with patch.object(DatabaseService, '__init__', lambda self, *args, **kwargs: None):
        service = DatabaseService.__new__(DatabaseService)
        # Give each collection its own mock
        service.users = mock_collection()
        service.wallets = mock_collection()
        service.trade_settings = mock_collection()
        service.market_making = mock_collection()
        service.trades = mock_collection()
        service.client = MagicMock()
        service.db = MagicMock()
        return service


class FakeCollection:
    """In-memory collection supporting the single-document operators the service uses."""

    def __init__(self):
        self.docs = []

    @staticmethod
    def _matches(doc, query):
        return all(doc.get(key) == value for key, value in query.items())

    def _find(self, query):
        return next((doc for doc in self.docs if self._matches(doc, query)), None)

    async def find_one(self, query):
        doc = self._find(query)
        return copy.deepcopy(doc) if doc else None

    async def insert_one(self, doc):
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", len(self.docs) + 1)
        self.docs.append(stored)
        return MagicMock(inserted_id=stored["_id"])

    async def update_one(self, query, update, upsert=False):
        target = self._find(query)
        upserted_id = None
        if target is None:
            if not upsert:
                return MagicMock(modified_count=0, upserted_id=None)
            target = dict(query, _id=len(self.docs) + 1)
            target.update(update.get("$setOnInsert", {}))
            self.docs.append(target)
            upserted_id = target["_id"]

        target.update(copy.deepcopy(update.get("$set", {})))
        for key, value in update.get("$addToSet", {}).items():
            values = target.setdefault(key, [])
            if value not in values:
                values.append(value)
        for key, value in update.get("$pull", {}).items():
            target[key] = [item for item in target.get(key, []) if item != value]
        return MagicMock(modified_count=0 if upserted_id else 1, upserted_id=upserted_id)

    async def create_index(self, *args, **kwargs):
        return None


@pytest.fixture
def fake_db_service():
    """DatabaseService backed by in-memory collections."""
    from aramid_bot.database import DatabaseService

    with patch.object(DatabaseService, '__init__', lambda self, *args, **kwargs: None):
        service = DatabaseService.__new__(DatabaseService)
        service.users = FakeCollection()
        service.wallets = FakeCollection()
        service.trade_settings = FakeCollection()
        service.market_making = FakeCollection()
        service.trades = FakeCollection()
        service.client = MagicMock()
        service.db = MagicMock()
        return service


# =============================================================================
# CONFIG MOCKS
# =============================================================================

@pytest.fixture
def encryption_key():
    """Configure a test ENCRYPTION_KEY and reset the cached cipher around the test."""
    from aramid_bot import encryption

    with patch.object(encryption.app_config, "ENCRYPTION_KEY", "test-encryption-key"):
        encryption.reset_cipher()
        yield "test-encryption-key"
    encryption.reset_cipher()


@pytest.fixture
def mock_config():
    """Mock configuration for tests."""
    from aramid_bot.config import config

    overrides = {
        "TRADE_API_URL": "https://trade.test/solana",
        "XRP_TRADE_API_URL": "https://trade.test/xrp",
        "XRP_TOKEN_API_URL": "https://xrp-tokens.test",
        "SOLANA_RPC_URL": "https://rpc.test",
        "XRP_RPC_URL": "https://xrpl.test",
        "PRIORITY_FEE_RPC_URL": None,
        "BIRDEYE_API_KEY": "test-birdeye-key",
        "PLATFORM_PUBLIC_KEY": SOL_WALLET,
        "PLATFORM_FEE_PERCENTAGE": 0.1,
        "REFERRAL_FEE_PERCENTAGE": 0.2,
        "ENABLE_PLATFORM_FEE": True,
        "ENABLE_REFERRAL_FEE": True,
        "DISCORD_GUILD_ID": None,
        "DEV_WHITELIST": [],
        "MARKET_MAKING_DEV_ONLY": False,
    }
    patchers = [patch.object(config, name, value) for name, value in overrides.items()]
    for patcher in patchers:
        patcher.start()
    yield config
    for patcher in patchers:
        patcher.stop()
