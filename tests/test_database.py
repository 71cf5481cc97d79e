"""
Tests for database service operations.

Covers users, custody wallets, trade settings merges and market making configs.
"""
import pytest
from unittest.mock import AsyncMock

from aramid_bot.database import coerce_settings_patch
from aramid_bot.encryption import decrypt_private_key, is_encrypted
from aramid_bot.market_data import is_valid_solana_address, is_valid_xrp_address

USER_ID = "123456789012345678"


class TestDatabaseServiceInit:
    """Test database service initialization."""

    @pytest.mark.asyncio
    async def test_indexes_created(self, mock_db_service):
        """Test that indexes are created on setup."""
        await mock_db_service.setup_indexes()

        assert mock_db_service.users.create_index.called
        assert mock_db_service.wallets.create_index.called
        assert mock_db_service.trade_settings.create_index.called
        assert mock_db_service.market_making.create_index.called
        assert mock_db_service.trades.create_index.called


class TestUserOperations:
    """Test user registration and terms."""

    @pytest.mark.asyncio
    async def test_register_new_user(self, mock_db_service):
        user = await mock_db_service.register_user(USER_ID, "trader")

        mock_db_service.users.insert_one.assert_called_once()
        assert user["user_id"] == USER_ID
        assert user["username"] == "trader"
        assert user["terms_agreed"] is False

    @pytest.mark.asyncio
    async def test_register_existing_user_updates_username(self, mock_db_service, sample_user):
        mock_db_service.users.find_one = AsyncMock(return_value=dict(sample_user))

        user = await mock_db_service.register_user(USER_ID, "renamed")

        mock_db_service.users.insert_one.assert_not_called()
        mock_db_service.users.update_one.assert_called_once_with(
            {"user_id": USER_ID}, {"$set": {"username": "renamed"}}
        )
        assert user["username"] == "renamed"

    @pytest.mark.asyncio
    async def test_self_referral_ignored(self, mock_db_service):
        user = await mock_db_service.register_user(USER_ID, "trader", referred_by=USER_ID)
        assert user["referred_by"] is None

    @pytest.mark.asyncio
    async def test_agree_to_terms(self, fake_db_service):
        await fake_db_service.register_user(USER_ID, "trader")
        assert await fake_db_service.has_agreed_to_terms(USER_ID) is False

        assert await fake_db_service.agree_to_terms(USER_ID) is True
        assert await fake_db_service.has_agreed_to_terms(USER_ID) is True


class TestWalletOperations:
    """Test custody wallet creation and key access."""

    @pytest.mark.asyncio
    async def test_get_wallet_missing(self, fake_db_service):
        wallet = await fake_db_service.get_wallet(USER_ID)
        assert wallet["exists"] is False
        assert wallet["sol_public_key"] is None

    @pytest.mark.asyncio
    async def test_check_user_wallet_generates_both_chains(self, fake_db_service, encryption_key):
        wallet = await fake_db_service.check_user_wallet(USER_ID, "trader")

        assert wallet["exists"] is True
        assert is_valid_solana_address(wallet["sol_public_key"])
        assert is_valid_xrp_address(wallet["xrp_public_key"])
        assert is_encrypted(wallet["sol_private_key_ref"])
        assert is_encrypted(wallet["xrp_private_key_ref"])
        # User record is created alongside the wallet
        assert await fake_db_service.get_user(USER_ID) is not None

    @pytest.mark.asyncio
    async def test_check_user_wallet_is_idempotent(self, fake_db_service, encryption_key):
        first = await fake_db_service.check_user_wallet(USER_ID)
        second = await fake_db_service.check_user_wallet(USER_ID)

        assert first == second
        assert len(fake_db_service.wallets.docs) == 1

    @pytest.mark.asyncio
    async def test_check_user_wallet_fills_missing_chain(self, fake_db_service, encryption_key, sample_wallet_doc):
        sample_wallet_doc["xrp_public_key"] = None
        sample_wallet_doc["xrp_private_key"] = None
        await fake_db_service.wallets.insert_one(sample_wallet_doc)

        wallet = await fake_db_service.check_user_wallet(USER_ID)

        assert wallet["sol_public_key"] == sample_wallet_doc["sol_public_key"]
        assert is_valid_xrp_address(wallet["xrp_public_key"])
        assert len(fake_db_service.wallets.docs) == 1

    @pytest.mark.asyncio
    async def test_stored_xrp_seed_decrypts(self, fake_db_service, encryption_key):
        wallet = await fake_db_service.check_user_wallet(USER_ID)
        assert decrypt_private_key(wallet["xrp_private_key_ref"]).startswith("s")

    @pytest.mark.asyncio
    async def test_referral_public_key(self, fake_db_service, sample_wallet_doc):
        referrer_wallet = dict(sample_wallet_doc, user_id="referrer")
        await fake_db_service.wallets.insert_one(referrer_wallet)
        await fake_db_service.register_user(USER_ID, referred_by="referrer")

        assert await fake_db_service.get_referral_public_key(USER_ID) == referrer_wallet["sol_public_key"]
        assert await fake_db_service.get_referral_public_key("referrer") is None


class TestCoerceSettingsPatch:
    """Test normalization of settings updates."""

    def test_numeric_strings_become_floats(self):
        assert coerce_settings_patch({"min_quick_buy": "0.2"}) == {"min_quick_buy": 0.2}

    def test_identifier_fields_stay_strings(self):
        patch = coerce_settings_patch({"channel_id": 1234567890123, "guild_id": "42"})
        assert patch == {"channel_id": "1234567890123", "guild_id": "42"}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            coerce_settings_patch({"favourite_colour": "blue"})


class TestTradeSettings:
    """Test partial settings persistence."""

    @pytest.mark.asyncio
    async def test_missing_settings_returns_none(self, fake_db_service):
        assert await fake_db_service.get_trade_settings(USER_ID) is None

    @pytest.mark.asyncio
    async def test_partial_save_keeps_other_fields(self, fake_db_service):
        await fake_db_service.save_trade_settings(USER_ID, {"min_quick_buy": 0.2})
        settings = await fake_db_service.save_trade_settings(USER_ID, {"large_quick_sell": 80.0})

        assert settings.min_quick_buy == 0.2
        assert settings.large_quick_sell == 80.0
        assert settings.medium_quick_buy is None

    @pytest.mark.asyncio
    async def test_save_uses_set_upsert(self, mock_db_service):
        await mock_db_service.save_trade_settings(USER_ID, {"min_quick_buy": 0.2})

        args, kwargs = mock_db_service.trade_settings.update_one.call_args
        assert args[0] == {"user_id": USER_ID}
        assert args[1]["$set"]["min_quick_buy"] == 0.2
        assert "large_quick_sell" not in args[1]["$set"]
        assert kwargs["upsert"] is True

    @pytest.mark.asyncio
    async def test_channels(self, fake_db_service):
        await fake_db_service.add_channel(USER_ID, "111")
        await fake_db_service.set_primary_channel(USER_ID, "222")
        settings = await fake_db_service.get_trade_settings(USER_ID)
        assert settings.channels == ["111", "222"]
        assert settings.primary_channel == "222"

        await fake_db_service.remove_channel(USER_ID, "222")
        settings = await fake_db_service.get_trade_settings(USER_ID)
        assert settings.channels == ["111"]
        assert settings.primary_channel is None

    @pytest.mark.asyncio
    async def test_save_trading_channel(self, fake_db_service):
        await fake_db_service.save_trade_settings(USER_ID, {"min_quick_buy": 0.3})
        await fake_db_service.save_trading_channel(USER_ID, "999", "trading-trader", "42")

        settings = await fake_db_service.get_trade_settings(USER_ID)
        assert settings.channel_id == "999"
        assert settings.channel_name == "trading-trader"
        assert settings.guild_id == "42"
        assert "999" in settings.channels
        assert settings.min_quick_buy == 0.3


class TestMarketMakingConfig:
    """Test market making config persistence."""

    @pytest.mark.asyncio
    async def test_save_creates_with_defaults(self, fake_db_service):
        mm_config = await fake_db_service.save_market_making_config(USER_ID, {"spread_percentage": 2.0})

        assert mm_config.user_id == USER_ID
        assert mm_config.spread_percentage == 2.0
        assert mm_config.price_range == 5.0
        assert mm_config.active is False

    @pytest.mark.asyncio
    async def test_token_selection_tracks_recent_tokens(self, fake_db_service):
        await fake_db_service.save_market_making_config(USER_ID, {"token_mint": "mintA"})
        await fake_db_service.save_market_making_config(USER_ID, {"token_mint": "mintB"})
        mm_config = await fake_db_service.save_market_making_config(USER_ID, {"token_mint": "mintA"})

        assert mm_config.token_mint == "mintA"
        assert mm_config.recent_tokens == ["mintA", "mintB"]

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, fake_db_service):
        with pytest.raises(ValueError):
            await fake_db_service.save_market_making_config(USER_ID, {"leverage": 10})


class TestTradeHistory:
    """Test trade recording."""

    @pytest.mark.asyncio
    async def test_store_trade(self, mock_db_service):
        doc = await mock_db_service.store_trade(
            user_id=USER_ID,
            chain="solana",
            side="buy",
            token_address="mint",
            amount=0.5,
            success=True,
            tx_id="sig",
        )

        mock_db_service.trades.insert_one.assert_called_once_with(doc)
        assert len(doc["_id"]) == 10
        assert doc["success"] is True

    @pytest.mark.asyncio
    async def test_get_recent_trades(self, mock_db_service):
        cursor = mock_db_service.trades.find.return_value.sort.return_value.limit.return_value
        cursor.to_list = AsyncMock(return_value=[{"tx_id": "sig"}])

        trades = await mock_db_service.get_recent_trades(USER_ID, limit=5)

        assert trades == [{"tx_id": "sig"}]
        mock_db_service.trades.find.assert_called_once_with({"user_id": USER_ID})
        mock_db_service.trades.find.return_value.sort.assert_called_once_with("created_at", -1)
