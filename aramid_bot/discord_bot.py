"""
Discord bot for Aramid trading.
/trade opens the dashboard; every button click and modal submission is
routed through the handler registry by custom id.
"""
import logging
import re
from typing import Optional

import discord
from discord.ext import commands

from .config import config as app_config
from .database import DatabaseService
from .dispatch import HandlerRegistry, UnhandledInteractionError
from .executor import TradeExecutor
from .forms import (
    FieldError,
    apply_fee_tier,
    apply_trade_field,
    parse_market_making_fields,
    parse_quick_settings,
    parse_token_address,
)
from .interaction import InteractionReply
from .market_making import MarketMakingController
from .models import Chain, MarketMakingConfig, TradeSide
from .quick_amounts import resolve_quick_buy, resolve_quick_sell
from .research import InvalidTokenAddressError, fetch_token_snapshot
from .sessions import ConfigNotFoundError, FlowKind, SessionStore, TradeSessionConfig
from .views import ScreenView, screen_to_embed
from . import market_data, screens, wizard

logger = logging.getLogger(__name__)

EXPIRED_BUTTON = "This button is no longer available. Use /trade to start again."


# custom id -> (label, config field, the two values it alternates between)
MM_TOGGLES = {
    screens.MM_AUTO_ADJUST: ("Auto-adjust", "auto_adjust", (True, False)),
    screens.MM_TOGGLE_DUST: ("Leave dust", "leave_dust", (True, False)),
    screens.MM_TOGGLE_SELL_TYPE: ("Sell type", "sell_percentage_type", ("Static", "Range")),
    screens.MM_TOGGLE_BUY_TYPE: ("Buy type", "trade_investment_type", ("Static", "Range")),
}


def _with_notice(screen: screens.Screen, notice: Optional[str]) -> screens.Screen:
    if notice:
        screen.description = f"⚠️ {notice}\n\n{screen.description}".strip()
    return screen


def _channel_name(username: str) -> str:
    slug = re.sub(r"[^a-z0-9-]+", "-", username.lower()).strip("-")
    return f"trading-{slug or 'user'}"[:100]


class DiscordBot:
    def __init__(
        self,
        db_service: DatabaseService,
        sessions: SessionStore,
        executor: Optional[TradeExecutor] = None,
        market_maker: Optional[MarketMakingController] = None,
    ):
        self.db = db_service
        self.sessions = sessions
        self.executor = executor or TradeExecutor(db_service)
        self.market_maker = market_maker or MarketMakingController(db_service)
        self.client = commands.Bot(command_prefix="!", intents=discord.Intents.default())
        self.registry = HandlerRegistry()
        self._synced = False

        self._register_handlers()
        self._register_routes()
        self.registry.validate(list(screens.SCREEN_IDS) + wizard.wizard_ids())

    def _register_handlers(self):
        """Register Discord gateway events and the /trade command."""

        @self.client.event
        async def on_ready():
            if not self._synced:
                await self._sync_commands()
                self._synced = True
            logger.info(f"Discord bot connected as {self.client.user}")

        @self.client.event
        async def on_interaction(interaction: discord.Interaction):
            if interaction.type in (discord.InteractionType.component, discord.InteractionType.modal_submit):
                await self.dispatch(interaction)

        @self.client.tree.command(name="trade", description="Open the Aramid trading dashboard")
        async def trade(interaction: discord.Interaction):
            await self._run(InteractionReply(interaction), self._handle_dashboard)

    async def _sync_commands(self):
        try:
            if app_config.DISCORD_GUILD_ID:
                guild = discord.Object(id=int(app_config.DISCORD_GUILD_ID))
                self.client.tree.copy_global_to(guild=guild)
                synced = await self.client.tree.sync(guild=guild)
            else:
                synced = await self.client.tree.sync()
            logger.info(f"Synced {len(synced)} application commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync application commands: {e}")

    def _register_routes(self):
        route = self.registry.register
        route(screens.MENU_MAIN, self._handle_dashboard)
        route(screens.MENU_WALLET, self._handle_wallet)
        route(screens.MENU_HISTORY, self._handle_history)
        route(screens.TERMS_AGREE, self._handle_terms_agree)
        route(screens.TERMS_DECLINE, self._handle_terms_decline)

        route(screens.SETTINGS_VIEW, self._handle_settings)
        route(screens.SETTINGS_EDIT_BUY, self._handle_settings_edit)
        route(screens.SETTINGS_EDIT_SELL, self._handle_settings_edit)
        route(screens.SETTINGS_MODAL, self._handle_settings_submit)
        route(screens.CHANNEL_CREATE, self._handle_create_channel)

        route(screens.MM_DASHBOARD, self._handle_mm_dashboard)
        route(screens.MM_START, self._handle_mm_start)
        route(screens.MM_STOP, self._handle_mm_stop)
        route(screens.MM_SELECT_TOKEN, self._handle_mm_select_token)
        route(screens.MM_TOKEN_MODAL, self._handle_mm_token_submit)
        route(screens.MM_RECENT_TOKEN, self._handle_mm_recent_token, prefix=True)
        route(screens.MM_CONFIGURE, self._handle_mm_configure)
        route(screens.MM_CONFIG_MODAL, self._handle_mm_config_submit)
        route(screens.MM_SIZING, self._handle_mm_sizing)
        route(screens.MM_SIZING_MODAL, self._handle_mm_config_submit)
        route(screens.MM_RISK, self._handle_mm_risk)
        route(screens.MM_RISK_MODAL, self._handle_mm_config_submit)
        for custom_id in MM_TOGGLES:
            route(custom_id, self._handle_mm_toggle)

        route(screens.RESEARCH_OPEN, self._handle_research_open)
        route(screens.RESEARCH_MODAL, self._handle_research_submit)
        route(screens.RESEARCH_REFRESH, self._handle_research_refresh)

        for custom_id in wizard.wizard_ids():
            route(custom_id, self._handle_wizard, prefix=custom_id.endswith(":"))

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def dispatch(self, interaction: discord.Interaction):
        reply = InteractionReply(interaction)
        custom_id = reply.custom_id
        try:
            handler = self.registry.resolve(custom_id)
        except UnhandledInteractionError:
            logger.warning(f"Unhandled interaction {custom_id!r} from {reply.user_id}")
            await reply.fail(EXPIRED_BUTTON)
            return
        await self._run(reply, handler)

    async def _run(self, reply: InteractionReply, handler):
        try:
            await handler(reply)
        except Exception as e:
            logger.error(f"Error handling {reply.custom_id or 'command'} for {reply.user_id}: {e}", exc_info=True)
            await reply.fail()

    async def _require_terms(self, reply: InteractionReply) -> bool:
        """Show the terms screen unless the user has agreed. Returns True when they have."""
        if await self.db.has_agreed_to_terms(reply.user_id):
            return True
        await reply.show(screens.terms_screen())
        return False

    # =========================================================================
    # MENU, TERMS, WALLET
    # =========================================================================

    async def _handle_dashboard(self, reply: InteractionReply):
        await self.db.register_user(reply.user_id, reply.username)
        if not await self._require_terms(reply):
            return
        await reply.show(screens.dashboard_screen(reply.username))

    async def _handle_terms_agree(self, reply: InteractionReply):
        await self.db.register_user(reply.user_id, reply.username)
        await self.db.agree_to_terms(reply.user_id)
        logger.info(f"User {reply.user_id} agreed to terms")
        await reply.show(screens.dashboard_screen(reply.username))

    async def _handle_terms_decline(self, reply: InteractionReply):
        await reply.message("You must agree to the terms to use Aramid trading. Run /trade when you're ready.")

    async def _handle_wallet(self, reply: InteractionReply):
        if not await self._require_terms(reply):
            return
        await reply.defer()
        wallet = await self.db.check_user_wallet(reply.user_id, reply.username)
        sol_balance = await market_data.get_sol_balance(wallet["sol_public_key"]) if wallet["sol_public_key"] else 0.0
        xrp_balance = await market_data.get_xrp_balance(wallet["xrp_public_key"]) if wallet["xrp_public_key"] else 0.0
        tokens = await market_data.get_token_balances(wallet["sol_public_key"]) if wallet["sol_public_key"] else []
        await reply.show(screens.wallet_screen(wallet, sol_balance, xrp_balance, tokens))

    async def _handle_history(self, reply: InteractionReply):
        await reply.defer()
        trades = await self.db.get_recent_trades(reply.user_id)
        await reply.show(screens.history_screen(trades))

    # =========================================================================
    # SETTINGS AND TRADING CHANNEL
    # =========================================================================

    async def _handle_settings(self, reply: InteractionReply, notice: Optional[str] = None):
        await reply.defer()
        settings = await self.db.get_trade_settings(reply.user_id)
        await reply.show(_with_notice(screens.settings_screen(settings), notice))

    async def _handle_settings_edit(self, reply: InteractionReply):
        kind = "buy" if reply.custom_id == screens.SETTINGS_EDIT_BUY else "sell"
        settings = await self.db.get_trade_settings(reply.user_id)
        await reply.show_modal(screens.settings_form(settings, kind))

    async def _handle_settings_submit(self, reply: InteractionReply):
        try:
            patch = parse_quick_settings(reply.modal_values())
        except FieldError as e:
            await self._handle_settings(reply, notice=str(e))
            return
        await self.db.save_trade_settings(reply.user_id, patch)
        logger.info(f"Saved quick settings for {reply.user_id}: {sorted(patch)}")
        await self._handle_settings(reply, notice="Settings saved.")

    async def _handle_create_channel(self, reply: InteractionReply):
        guild = reply.interaction.guild
        if guild is None:
            await reply.show(screens.error_screen("Trading channels can only be created inside a server."))
            return
        await reply.defer()

        try:
            category = discord.utils.get(guild.categories, name=app_config.TRADING_CATEGORY_NAME)
            if category is None:
                category = await guild.create_category(app_config.TRADING_CATEGORY_NAME)

            name = _channel_name(reply.username)
            channel = discord.utils.get(category.text_channels, name=name)
            if channel is None:
                overwrites = {
                    guild.default_role: discord.PermissionOverwrite(view_channel=False),
                    reply.interaction.user: discord.PermissionOverwrite(
                        view_channel=True, send_messages=True, read_message_history=True,
                    ),
                    guild.me: discord.PermissionOverwrite(
                        view_channel=True, send_messages=True, embed_links=True, manage_messages=True,
                    ),
                }
                channel = await guild.create_text_channel(name, category=category, overwrites=overwrites)
                logger.info(f"Created trading channel {channel.name} for {reply.user_id}")
        except discord.Forbidden:
            logger.warning(f"Missing permissions to create trading channel in guild {guild.id}")
            await reply.show(screens.error_screen("I don't have permission to manage channels in this server."))
            return

        await self.db.save_trading_channel(reply.user_id, str(channel.id), channel.name, str(guild.id))
        dashboard = screens.dashboard_screen(reply.username)
        await channel.send(embed=screen_to_embed(dashboard), view=ScreenView(dashboard, timeout=None))
        await reply.show(screens.notice_screen("Trading Channel", f"Your private trading channel is ready: <#{channel.id}>"))

    # =========================================================================
    # TRADE WIZARD
    # =========================================================================

    async def _handle_wizard(self, reply: InteractionReply):
        flow, action, arg = wizard.parse_wizard_id(reply.custom_id)
        if not wizard.WIZARD_FLOWS[flow].supports(action):
            logger.warning(f"Rejected {reply.custom_id!r} from {reply.user_id}: {flow.value} has no {action} step")
            await reply.fail(EXPIRED_BUTTON)
            return
        try:
            if action == wizard.ACTION_OPEN:
                await self._open_flow(reply, flow)
            elif action == wizard.ACTION_TOKEN:
                await self._wizard_modal(reply, flow, wizard.token_modal(flow))
            elif action == wizard.ACTION_SIZE:
                await self._wizard_modal(reply, flow, wizard.size_modal(flow, self.sessions.get(reply.user_id, flow)))
            elif action == wizard.ACTION_TOKEN_MODAL:
                await reply.defer()
                raw = reply.modal_values().get("token_address", "")
                outcome = apply_trade_field(self.sessions, reply.user_id, flow, "token_address", raw)
                if outcome.ok:
                    await self._load_token_names(flow, outcome.config)
                await self._show_wizard(reply, flow, notice=outcome.error)
            elif action == wizard.ACTION_SIZE_MODAL:
                field = wizard.WIZARD_FLOWS[flow].size_step.field
                outcome = apply_trade_field(self.sessions, reply.user_id, flow, field, reply.modal_values().get(field, ""))
                await self._show_wizard(reply, flow, notice=outcome.error)
            elif action == wizard.ACTION_QUICK:
                await self._apply_quick(reply, flow, arg)
            elif action == wizard.ACTION_SLIPPAGE:
                outcome = apply_trade_field(self.sessions, reply.user_id, flow, "slippage_bps", arg)
                await self._show_wizard(reply, flow, notice=outcome.error)
            elif action == wizard.ACTION_FEE:
                await reply.defer()
                fees = await market_data.get_priority_fees()
                outcome = apply_fee_tier(self.sessions, reply.user_id, flow, arg, fees)
                await self._show_wizard(reply, flow, notice=outcome.error, fees=fees)
            elif action == wizard.ACTION_EXECUTE:
                await self._execute(reply, flow)
            elif action == wizard.ACTION_REFRESH:
                await self._show_wizard(reply, flow)
            else:
                raise UnhandledInteractionError(reply.custom_id)
        except ConfigNotFoundError:
            logger.info(f"{flow.value} session missing for {reply.user_id} on {action}")
            await reply.show(wizard.render_screen(flow, None))

    async def _open_flow(self, reply: InteractionReply, flow: FlowKind):
        if not await self._require_terms(reply):
            return
        await reply.defer()
        wallet = await self.db.check_user_wallet(reply.user_id, reply.username)
        prefix = "sol" if flow.chain == Chain.SOLANA else "xrp"
        fees = await market_data.get_priority_fees() if flow.chain == Chain.SOLANA else None
        config = wizard.seed_config(
            flow,
            reply.user_id,
            wallet[f"{prefix}_public_key"],
            wallet[f"{prefix}_private_key_ref"],
            fees,
        )
        self.sessions.init(reply.user_id, flow, config)
        logger.info(f"Opened {flow.value} flow for {reply.user_id}")
        await self._show_wizard(reply, flow, fees=fees)

    async def _wizard_modal(self, reply: InteractionReply, flow: FlowKind, form: screens.ModalForm):
        if self.sessions.get(reply.user_id, flow) is None:
            raise ConfigNotFoundError(reply.user_id, flow)
        await reply.show_modal(form)

    async def _apply_quick(self, reply: InteractionReply, flow: FlowKind, tier: str):
        await reply.defer()
        if self.sessions.get(reply.user_id, flow) is None:
            raise ConfigNotFoundError(reply.user_id, flow)
        settings = await self.db.get_trade_settings(reply.user_id)
        if flow.side == TradeSide.BUY:
            self.sessions.update(reply.user_id, flow, amount=resolve_quick_buy(settings, tier))
        else:
            self.sessions.update(reply.user_id, flow, sell_percentage=resolve_quick_sell(settings, tier))
        await self._show_wizard(reply, flow)

    async def _execute(self, reply: InteractionReply, flow: FlowKind):
        await reply.defer()
        config = self.sessions.get(reply.user_id, flow)
        if config is None:
            raise ConfigNotFoundError(reply.user_id, flow)

        result = await self.executor.execute(config)
        if result.success:
            self.sessions.clear(reply.user_id, flow)
        await reply.show(wizard.trade_result_screen(flow, config, result))

    async def _load_token_names(self, flow: FlowKind, config: TradeSessionConfig):
        if flow.chain == Chain.SOLANA:
            details = await market_data.get_token_details(config.token_address)
        else:
            details = await market_data.get_xrp_token_info(config.token_address)
        self.sessions.update(
            config.user_id, flow,
            token_name=details.get("name", ""),
            token_symbol=details.get("symbol", ""),
        )

    async def _load_display(self, flow: FlowKind, config: TradeSessionConfig, fees=None) -> wizard.DisplayData:
        """Fetch balances, price and fee estimates shown beside the session config."""
        display = wizard.DisplayData(token_name=config.token_name, token_symbol=config.token_symbol)
        if flow.chain == Chain.SOLANA:
            display.fees = fees or await market_data.get_priority_fees()
            if config.wallet_public_key:
                display.balance = await market_data.get_sol_balance(config.wallet_public_key)
            if config.token_address:
                display.token_price = await market_data.get_token_price(config.token_address)
                if flow.side == TradeSide.SELL and config.wallet_public_key:
                    display.token_balance = await market_data.get_token_balance(
                        config.wallet_public_key, config.token_address,
                    )
        else:
            if config.wallet_public_key:
                display.balance = await market_data.get_xrp_balance(config.wallet_public_key)
            if config.token_address:
                info = await market_data.get_xrp_token_info(config.token_address)
                display.token_price = info.get("price")
                if flow.side == TradeSide.SELL and config.wallet_public_key:
                    display.token_balance = await market_data.get_xrp_token_balance(
                        config.wallet_public_key, config.token_address,
                    )
        return display

    async def _show_wizard(self, reply: InteractionReply, flow: FlowKind, notice: Optional[str] = None, fees=None):
        await reply.defer()
        config = self.sessions.get(reply.user_id, flow)
        if config is None:
            raise ConfigNotFoundError(reply.user_id, flow)
        settings = await self.db.get_trade_settings(reply.user_id)
        display = await self._load_display(flow, config, fees)
        await reply.show(_with_notice(wizard.render_screen(flow, config, display, settings), notice))

    # =========================================================================
    # MARKET MAKING
    # =========================================================================

    def _market_making_allowed(self, user_id: str) -> bool:
        return not app_config.MARKET_MAKING_DEV_ONLY or user_id in app_config.DEV_WHITELIST

    async def _handle_mm_dashboard(self, reply: InteractionReply, notice: Optional[str] = None):
        if not self._market_making_allowed(reply.user_id):
            await reply.show(screens.notice_screen("Market Making", "Market making is not available yet."))
            return
        await reply.defer()
        mm_config, session = await self.market_maker.stats(reply.user_id)
        price = await market_data.get_token_price(mm_config.token_mint) if mm_config and mm_config.token_mint else None
        await reply.show(_with_notice(screens.market_making_screen(mm_config, price, session), notice))

    async def _handle_mm_start(self, reply: InteractionReply):
        if not self._market_making_allowed(reply.user_id):
            await reply.show(screens.notice_screen("Market Making", "Market making is not available yet."))
            return
        await reply.defer()
        result = await self.market_maker.start(reply.user_id)
        if result.status == "configuration_required":
            await reply.show(screens.configuration_required_screen())
            return
        await self._handle_mm_dashboard(reply, notice="Market making started.")

    async def _handle_mm_stop(self, reply: InteractionReply):
        await reply.defer()
        result = await self.market_maker.stop(reply.user_id)
        if result.status == "not_running":
            await self._handle_mm_dashboard(reply, notice="Market making is not running.")
            return
        if not result.ok:
            await reply.show(screens.notice_screen(
                "Market Making", "No market making configuration found.", back_to=screens.MM_DASHBOARD,
            ))
            return
        await reply.show(screens.market_making_summary_screen(result))

    async def _mm_locked(self, reply: InteractionReply, mm_config: Optional[MarketMakingConfig]) -> bool:
        if mm_config is not None and mm_config.active:
            await self._handle_mm_dashboard(reply, notice="Stop market making before changing its settings.")
            return True
        return False

    async def _handle_mm_select_token(self, reply: InteractionReply):
        await reply.show_modal(screens.token_form(screens.MM_TOKEN_MODAL, "Market Making Token", "Solana token mint"))

    async def _select_mm_token(self, reply: InteractionReply, raw: str):
        try:
            mint = parse_token_address(Chain.SOLANA, raw)
        except FieldError as e:
            await self._handle_mm_dashboard(reply, notice=str(e))
            return
        await reply.defer()
        if await self._mm_locked(reply, await self.db.get_market_making_config(reply.user_id)):
            return
        details = await market_data.get_token_details(mint)
        await self.db.save_market_making_config(reply.user_id, {
            "token_mint": mint,
            "token_symbol": details.get("symbol"),
            "token_name": details.get("name"),
        })
        logger.info(f"Market making token for {reply.user_id} set to {mint}")
        await self._handle_mm_dashboard(reply, notice=f"Token set to {details.get('symbol') or mint}.")

    async def _handle_mm_token_submit(self, reply: InteractionReply):
        await self._select_mm_token(reply, reply.modal_values().get("token_address", ""))

    async def _handle_mm_recent_token(self, reply: InteractionReply):
        await self._select_mm_token(reply, reply.custom_id[len(screens.MM_RECENT_TOKEN):])

    async def _handle_mm_configure(self, reply: InteractionReply):
        mm_config = await self.db.get_market_making_config(reply.user_id)
        await reply.show_modal(screens.market_making_form(mm_config))

    async def _handle_mm_config_submit(self, reply: InteractionReply):
        await reply.defer()
        mm_config = await self.db.get_market_making_config(reply.user_id)
        if await self._mm_locked(reply, mm_config):
            return
        try:
            patch = parse_market_making_fields(
                reply.modal_values(), mm_config or MarketMakingConfig(user_id=reply.user_id),
            )
        except FieldError as e:
            await self._handle_mm_dashboard(reply, notice=str(e))
            return
        if patch:
            await self.db.save_market_making_config(reply.user_id, patch)
        await self._handle_mm_dashboard(reply, notice="Parameters saved." if patch else None)

    async def _handle_mm_sizing(self, reply: InteractionReply):
        mm_config = await self.db.get_market_making_config(reply.user_id)
        await reply.show_modal(screens.market_making_sizing_form(mm_config))

    async def _handle_mm_risk(self, reply: InteractionReply):
        mm_config = await self.db.get_market_making_config(reply.user_id)
        await reply.show_modal(screens.market_making_risk_form(mm_config))

    async def _handle_mm_toggle(self, reply: InteractionReply):
        label, field, (first, second) = MM_TOGGLES[reply.custom_id]
        await reply.defer()
        mm_config = await self.db.get_market_making_config(reply.user_id)
        if await self._mm_locked(reply, mm_config):
            return
        current = getattr(mm_config or MarketMakingConfig(user_id=reply.user_id), field)
        value = second if current == first else first
        await self.db.save_market_making_config(reply.user_id, {field: value})
        if isinstance(value, bool):
            notice = f"{label} {'enabled' if value else 'disabled'}."
        else:
            notice = f"{label} set to {value}."
        await self._handle_mm_dashboard(reply, notice=notice)

    # =========================================================================
    # RESEARCH
    # =========================================================================

    async def _handle_research_open(self, reply: InteractionReply):
        await reply.show_modal(screens.token_form(screens.RESEARCH_MODAL, "Token Research", "Solana token mint"))

    async def _show_research(self, reply: InteractionReply, address: str):
        await reply.defer()
        try:
            snapshot = await fetch_token_snapshot(address)
        except InvalidTokenAddressError:
            await reply.show(screens.error_screen(f"`{address}` is not a valid Solana token address."))
            return
        self.sessions.init(reply.user_id, FlowKind.RESEARCH, snapshot)
        await reply.show(screens.research_screen(snapshot))

    async def _handle_research_submit(self, reply: InteractionReply):
        await self._show_research(reply, reply.modal_values().get("token_address", "").strip())

    async def _handle_research_refresh(self, reply: InteractionReply):
        snapshot = self.sessions.get(reply.user_id, FlowKind.RESEARCH)
        if snapshot is None:
            await reply.show(screens.notice_screen("Token Research", "This research result has expired. Look the token up again."))
            return
        await self._show_research(reply, snapshot.address)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self):
        """Start the Discord bot. Runs until the client is closed."""
        logger.info("Starting Discord bot")
        await self.client.start(app_config.DISCORD_TOKEN)

    async def stop(self):
        """Stop the Discord bot."""
        await self.client.close()
        logger.info("Discord bot stopped")
