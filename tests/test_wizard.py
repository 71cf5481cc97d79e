"""
Tests for wizard flow descriptors, ids and screen rendering.
"""
import pytest

from aramid_bot import screens
from aramid_bot.executor import ExecutionState, TradeResult
from aramid_bot.models import Chain, TradeSettings
from aramid_bot.sessions import FlowKind
from aramid_bot.wizard import (
    ACTION_EXECUTE,
    ACTION_OPEN,
    ACTION_QUICK,
    ACTION_REFRESH,
    WIZARD_FLOWS,
    DisplayData,
    missing_steps,
    parse_wizard_id,
    render_screen,
    seed_config,
    size_modal,
    token_modal,
    trade_result_screen,
    wizard_id,
    wizard_ids,
)

from conftest import USDC_MINT


class TestWizardIds:
    def test_round_trip(self):
        custom_id = wizard_id(FlowKind.SOL_BUY, ACTION_QUICK, "min")
        assert custom_id == "sol_buy:quick:min"
        assert parse_wizard_id(custom_id) == (FlowKind.SOL_BUY, ACTION_QUICK, "min")

    def test_without_arg(self):
        assert parse_wizard_id("xrp_sell:execute") == (FlowKind.XRP_SELL, ACTION_EXECUTE, None)

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_wizard_id("nonsense")
        with pytest.raises(ValueError):
            parse_wizard_id("unknown_flow:open")

    def test_xrp_flows_have_no_slippage_or_fee_ids(self):
        ids = wizard_ids()
        assert "sol_buy:slippage:" in ids
        assert "xrp_buy:slippage:" not in ids
        assert "xrp_sell:fee:" not in ids
        assert WIZARD_FLOWS[FlowKind.XRP_BUY].supports(ACTION_QUICK)
        assert not WIZARD_FLOWS[FlowKind.XRP_BUY].supports("slippage")

    def test_dashboard_buttons_match_open_ids(self):
        dashboard_ids = {b.custom_id for b in screens.dashboard_screen("trader").all_buttons()}
        for flow in WIZARD_FLOWS:
            assert wizard_id(flow, ACTION_OPEN) in dashboard_ids

    def test_wizard_ids_cover_rendered_buttons(self):
        ids = wizard_ids()
        for flow in WIZARD_FLOWS:
            config = seed_config(flow, "u1", "pub", "ref")
            config.token_address = USDC_MINT
            for button in render_screen(flow, config).all_buttons():
                if button.custom_id.startswith(flow.value):
                    assert any(button.custom_id == i or (i.endswith(":") and button.custom_id.startswith(i)) for i in ids)


class TestSeedConfig:
    def test_solana_buy_defaults(self):
        config = seed_config(FlowKind.SOL_BUY, "u1", "pub", "ref", {"low": 1, "medium": 20, "high": 300})
        assert config.chain == Chain.SOLANA
        assert config.amount == 0.01
        assert config.slippage_bps == 50
        assert config.priority_fee_tier == "medium"
        assert config.priority_fee == 20
        assert config.wallet_private_key_ref == "ref"

    def test_xrp_sell_has_no_amount_or_fee(self):
        config = seed_config(FlowKind.XRP_SELL, "u1", "pub", "ref")
        assert config.amount is None
        assert config.priority_fee == 0

    def test_missing_steps(self):
        config = seed_config(FlowKind.SOL_SELL, "u1", "pub", "ref")
        assert missing_steps(FlowKind.SOL_SELL, config) == ["Token", "Sell Percentage"]
        config.token_address = USDC_MINT
        config.sell_percentage = 100.0
        assert missing_steps(FlowKind.SOL_SELL, config) == []


class TestRenderScreen:
    """The renderer always returns a screen."""

    def test_expired_session(self):
        screen = render_screen(FlowKind.SOL_BUY, None)
        assert screen.is_error
        assert screen.title == "Session Expired"

    def test_execute_disabled_until_complete(self):
        config = seed_config(FlowKind.SOL_BUY, "u1", "pub", "ref")
        screen = render_screen(FlowKind.SOL_BUY, config)
        assert screen.button("sol_buy:execute").disabled is True

        config.token_address = USDC_MINT
        screen = render_screen(FlowKind.SOL_BUY, config, DisplayData(token_symbol="USDC", token_price=1.0))
        assert screen.button("sol_buy:execute").disabled is False
        assert "USDC" in screen.fields[0].value

    def test_quick_buttons_use_settings(self):
        config = seed_config(FlowKind.SOL_BUY, "u1", "pub", "ref")
        settings = TradeSettings(user_id="u1", min_quick_buy=0.2)
        screen = render_screen(FlowKind.SOL_BUY, config, settings=settings)
        assert screen.button("sol_buy:quick:min").label == "0.2 SOL"

    def test_selected_options_highlighted(self):
        config = seed_config(FlowKind.SOL_BUY, "u1", "pub", "ref")
        screen = render_screen(FlowKind.SOL_BUY, config)
        assert screen.button("sol_buy:slippage:50").style == "success"
        assert screen.button("sol_buy:slippage:100").style == "secondary"
        assert screen.button("sol_buy:fee:medium").style == "success"

    def test_xrp_flow_has_no_slippage_or_fee(self):
        config = seed_config(FlowKind.XRP_BUY, "u1", "pub", "ref")
        ids = [b.custom_id for b in render_screen(FlowKind.XRP_BUY, config).all_buttons()]
        assert not any(":slippage:" in i or ":fee:" in i for i in ids)
        assert "xrp_buy:quick:large" in ids

    def test_render_error_becomes_error_screen(self):
        config = seed_config(FlowKind.SOL_BUY, "u1", "pub", "ref")
        config.amount = "not-a-number"
        screen = render_screen(FlowKind.SOL_BUY, config)
        assert screen.is_error

    def test_rows_fit_discord_limits(self):
        config = seed_config(FlowKind.SOL_SELL, "u1", "pub", "ref")
        screen = render_screen(FlowKind.SOL_SELL, config)
        assert len(screen.rows) <= 5
        assert all(len(row) <= 5 for row in screen.rows)


class TestModals:
    def test_token_modal_label(self):
        assert token_modal(FlowKind.XRP_BUY).inputs[0].label == "Token issuer address"
        assert token_modal(FlowKind.SOL_BUY).custom_id == "sol_buy:token_modal"

    def test_size_modal_prefills_current(self):
        config = seed_config(FlowKind.SOL_BUY, "u1", "pub", "ref")
        form = size_modal(FlowKind.SOL_BUY, config)
        assert form.inputs[0].custom_id == "amount"
        assert form.inputs[0].default == "0.01"

    def test_size_modal_for_sell(self):
        form = size_modal(FlowKind.XRP_SELL, None)
        assert form.inputs[0].custom_id == "sell_percentage"
        assert form.inputs[0].default == ""


class TestTradeResultScreen:
    def test_success(self, sol_buy_config):
        result = TradeResult(
            state=ExecutionState.SUCCEEDED, tx_id="5sig", explorer_url="https://solscan.io/tx/5sig", output_amount=12.5,
        )
        screen = trade_result_screen(FlowKind.SOL_BUY, sol_buy_config, result)
        assert screen.title == "Buy Successful"
        assert screen.button("sol_buy:open") is not None
        assert any("solscan.io" in f.value for f in screen.fields)

    def test_failure_offers_retry(self, sol_buy_config):
        result = TradeResult(state=ExecutionState.FAILED, error="Insufficient balance.")
        screen = trade_result_screen(FlowKind.SOL_BUY, sol_buy_config, result)
        assert screen.is_error
        assert screen.description == "Insufficient balance."
        assert screen.button(wizard_id(FlowKind.SOL_BUY, ACTION_REFRESH)) is not None
