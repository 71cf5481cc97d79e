"""
Platform-neutral screen structures and the non-wizard screens
(dashboard, wallet, settings, market making, research, terms).

Everything here is side-effect free; views.py turns a Screen into Discord
components.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .models import (
    MarketMakingConfig,
    TokenResearchSnapshot,
    TradeSettings,
    format_duration,
)
from .quick_amounts import quick_buy_options, quick_sell_options

COLOR_INFO = 0x0099FF
COLOR_SUCCESS = 0x00FF00
COLOR_ERROR = 0xFF0000
COLOR_WARNING = 0xFFA500


@dataclass
class Button:
    custom_id: str
    label: str
    style: str = "secondary"   # primary | secondary | success | danger
    disabled: bool = False
    emoji: Optional[str] = None


@dataclass
class ScreenField:
    name: str
    value: str
    inline: bool = True


@dataclass
class Screen:
    title: str
    description: str = ""
    fields: List[ScreenField] = field(default_factory=list)
    rows: List[List[Button]] = field(default_factory=list)
    color: int = COLOR_INFO
    is_error: bool = False

    def all_buttons(self) -> List[Button]:
        return [button for row in self.rows for button in row]

    def button(self, custom_id: str) -> Optional[Button]:
        for button in self.all_buttons():
            if button.custom_id == custom_id:
                return button
        return None


@dataclass
class ModalInput:
    custom_id: str
    label: str
    placeholder: str = ""
    default: str = ""
    required: bool = True
    paragraph: bool = False


@dataclass
class ModalForm:
    custom_id: str
    title: str
    inputs: List[ModalInput] = field(default_factory=list)


# =============================================================================
# CUSTOM IDS
# =============================================================================

MENU_MAIN = "menu:main"
MENU_WALLET = "menu:wallet"
MENU_HISTORY = "menu:history"
TERMS_AGREE = "terms:agree"
TERMS_DECLINE = "terms:decline"
SETTINGS_VIEW = "settings:view"
SETTINGS_EDIT_BUY = "settings:edit_buy"
SETTINGS_EDIT_SELL = "settings:edit_sell"
SETTINGS_MODAL = "settings:modal"
CHANNEL_CREATE = "channel:create"
MM_DASHBOARD = "mm:dashboard"
MM_START = "mm:start"
MM_STOP = "mm:stop"
MM_SELECT_TOKEN = "mm:select_token"
MM_TOKEN_MODAL = "mm:token_modal"
MM_RECENT_TOKEN = "mm:recent:"
MM_CONFIGURE = "mm:configure"
MM_CONFIG_MODAL = "mm:config_modal"
MM_AUTO_ADJUST = "mm:auto_adjust"
MM_SIZING = "mm:sizing"
MM_SIZING_MODAL = "mm:sizing_modal"
MM_RISK = "mm:risk"
MM_RISK_MODAL = "mm:risk_modal"
MM_TOGGLE_DUST = "mm:toggle_dust"
MM_TOGGLE_SELL_TYPE = "mm:toggle_sell_type"
MM_TOGGLE_BUY_TYPE = "mm:toggle_buy_type"
RESEARCH_OPEN = "research:open"
RESEARCH_MODAL = "research:modal"
RESEARCH_REFRESH = "research:refresh"


def back_row(target: str = MENU_MAIN) -> List[Button]:
    return [Button(target, "Back", "secondary", emoji="⬅️")]


def error_screen(message: str, back_to: Optional[str] = MENU_MAIN, title: str = "Something went wrong") -> Screen:
    return Screen(
        title=title,
        description=message,
        rows=[back_row(back_to)] if back_to else [],
        color=COLOR_ERROR,
        is_error=True,
    )


def notice_screen(title: str, message: str, back_to: Optional[str] = MENU_MAIN) -> Screen:
    return Screen(title=title, description=message, rows=[back_row(back_to)] if back_to else [], color=COLOR_WARNING)


# =============================================================================
# DASHBOARD, TERMS, WALLET
# =============================================================================

def dashboard_screen(username: str) -> Screen:
    return Screen(
        title="Aramid Trading",
        description=f"Welcome {username}. Pick a chain and action to get started.",
        rows=[
            [
                Button("sol_buy:open", "Buy SOL Tokens", "success", emoji="🟢"),
                Button("sol_sell:open", "Sell SOL Tokens", "danger", emoji="🔴"),
            ],
            [
                Button("xrp_buy:open", "Buy XRP Tokens", "success", emoji="🟢"),
                Button("xrp_sell:open", "Sell XRP Tokens", "danger", emoji="🔴"),
            ],
            [
                Button(MM_DASHBOARD, "Market Making", "primary", emoji="📈"),
                Button(RESEARCH_OPEN, "Token Research", "primary", emoji="🔍"),
            ],
            [
                Button(MENU_WALLET, "Wallet", "secondary", emoji="👛"),
                Button(MENU_HISTORY, "Trade History", "secondary", emoji="🧾"),
                Button(SETTINGS_VIEW, "Settings", "secondary", emoji="⚙️"),
                Button(CHANNEL_CREATE, "Trading Channel", "secondary", emoji="💬"),
            ],
        ],
    )


def terms_screen() -> Screen:
    return Screen(
        title="Terms of Use",
        description=(
            "Trading digital assets carries risk. Aramid holds custody keys on your behalf "
            "and executes trades through a third-party API. Nothing here is financial advice.\n\n"
            "You must agree before trading."
        ),
        rows=[[
            Button(TERMS_AGREE, "I Agree", "success"),
            Button(TERMS_DECLINE, "Decline", "danger"),
        ]],
        color=COLOR_WARNING,
    )


def wallet_screen(wallet: dict, sol_balance: float, xrp_balance: float, token_balances: List[dict]) -> Screen:
    if not wallet.get("exists"):
        return Screen(
            title="No Wallet Found",
            description="You don't have a wallet yet.",
            rows=[[Button(MENU_WALLET, "Generate Wallet", "success")], back_row()],
            color=COLOR_WARNING,
        )

    tokens = "\n".join(f"`{t['mint'][:6]}…` {t['amount']:,.4f}" for t in token_balances[:10]) or "No tokens found"
    return Screen(
        title="Wallet Details",
        fields=[
            ScreenField("Solana Address", f"`{wallet.get('sol_public_key') or 'Not created'}`", inline=False),
            ScreenField("SOL Balance", f"{sol_balance:.4f} SOL"),
            ScreenField("XRP Address", f"`{wallet.get('xrp_public_key') or 'Not created'}`", inline=False),
            ScreenField("XRP Balance", f"{xrp_balance:.2f} XRP"),
            ScreenField("Token Balances", tokens, inline=False),
        ],
        rows=[back_row()],
    )


def history_screen(trades: List[dict]) -> Screen:
    if not trades:
        return notice_screen("Trade History", "No trades yet.")
    lines = []
    for trade in trades:
        status = "✅" if trade.get("success") else "❌"
        when = trade["created_at"].strftime("%Y-%m-%d %H:%M") if isinstance(trade.get("created_at"), datetime) else ""
        lines.append(
            f"{status} {trade['side'].upper()} {trade['chain'].upper()} `{trade['token_address'][:8]}…` "
            f"{trade['amount']:g} {when}"
        )
    return Screen(title="Trade History", description="\n".join(lines), rows=[back_row()])


# =============================================================================
# SETTINGS
# =============================================================================

def settings_screen(settings: Optional[TradeSettings]) -> Screen:
    buys = ", ".join(f"{tier}: {value:g}" for tier, value in quick_buy_options(settings))
    sells = ", ".join(f"{tier}: {value:g}%" for tier, value in quick_sell_options(settings))
    channel = f"<#{settings.channel_id}>" if settings and settings.channel_id else "Not created"
    return Screen(
        title="Trade Settings",
        fields=[
            ScreenField("Quick Buy Amounts", buys, inline=False),
            ScreenField("Quick Sell Percentages", sells, inline=False),
            ScreenField("Trading Channel", channel, inline=False),
        ],
        rows=[
            [
                Button(SETTINGS_EDIT_BUY, "Edit Quick Buys", "primary"),
                Button(SETTINGS_EDIT_SELL, "Edit Quick Sells", "primary"),
            ],
            back_row(),
        ],
    )


def settings_form(settings: Optional[TradeSettings], kind: str) -> ModalForm:
    """Quick settings modal for one side ('buy' or 'sell'). Discord caps modals at five inputs."""
    if kind == "buy":
        values = dict(quick_buy_options(settings))
        title, unit = "Quick Buy Amounts", ""
    else:
        values = dict(quick_sell_options(settings))
        title, unit = "Quick Sell Percentages", " %"
    return ModalForm(
        custom_id=SETTINGS_MODAL,
        title=title,
        inputs=[
            ModalInput(f"{tier}_quick_{kind}", f"{tier.title()} quick {kind}{unit}", default=f"{value:g}", required=False)
            for tier, value in values.items()
        ],
    )


# =============================================================================
# MARKET MAKING
# =============================================================================

def configuration_required_screen() -> Screen:
    return Screen(
        title="Configuration Required",
        description="Select a token for market making before starting a session.",
        rows=[[
            Button(MM_SELECT_TOKEN, "Select Token", "primary"),
            Button(MM_DASHBOARD, "Back", "secondary", emoji="⬅️"),
        ]],
        color=COLOR_WARNING,
    )


def _sell_sizing(mm_config: MarketMakingConfig) -> str:
    if mm_config.sell_percentage_type == "Static":
        return f"{mm_config.static_sell_percentage:g}%"
    return f"{mm_config.range_min_sell_percentage:g}%-{mm_config.range_max_sell_percentage:g}%"


def _buy_sizing(mm_config: MarketMakingConfig) -> str:
    if mm_config.trade_investment_type == "Static":
        return f"{mm_config.static_purchase_amount:g} SOL"
    return f"{mm_config.range_min_purchase_amount:g}-{mm_config.range_max_purchase_amount:g} SOL"


def market_making_screen(
    mm_config: Optional[MarketMakingConfig],
    token_price: Optional[float],
    session=None,
    now: Optional[datetime] = None,
) -> Screen:
    if mm_config is None or not mm_config.token_mint:
        token_value = "Not selected"
    else:
        token_value = f"{mm_config.token_symbol or mm_config.token_name or 'Token'}\n`{mm_config.token_mint}`"

    current = mm_config or MarketMakingConfig(user_id="")
    active = bool(mm_config and mm_config.active)
    fields = [
        ScreenField("Token", token_value, inline=False),
        ScreenField("Price", f"${token_price:.6f}" if token_price else "N/A"),
        ScreenField("Status", "🟢 Active" if active else "🔴 Inactive"),
    ]
    if mm_config is not None:
        fields.extend([
            ScreenField("Spread", f"{mm_config.spread_percentage:g}%"),
            ScreenField("Price Range", f"{mm_config.price_range:g}%"),
            ScreenField("Auto-adjust", "Enabled" if mm_config.auto_adjust else "Disabled"),
            ScreenField("Wallets", str(mm_config.number_of_wallets)),
            ScreenField("Trades per Wallet", f"{mm_config.min_trades}-{mm_config.max_trades}"),
            ScreenField("Slippage", f"{mm_config.slippage:g}%"),
            ScreenField("Dust", f"Leave {mm_config.static_dust_amount:g}" if mm_config.leave_dust else "Sell all"),
            ScreenField("Min SOL Balance", f"{mm_config.min_sol_balance:g} SOL"),
            ScreenField(f"Sell Size ({mm_config.sell_percentage_type})", _sell_sizing(mm_config)),
            ScreenField(f"Buy Size ({mm_config.trade_investment_type})", _buy_sizing(mm_config)),
        ])
    if active:
        fields.append(ScreenField("Running For", format_duration(mm_config.started_at, now or datetime.utcnow())))
    if active and session is not None:
        fields.extend([
            ScreenField("Orders Filled", str(session.orders_filled)),
            ScreenField("Volume Bought", f"{session.volume_bought:.4f} SOL"),
            ScreenField("Volume Sold", f"{session.volume_sold:.4f} SOL"),
            ScreenField("Profit/Loss", f"{session.profit_loss:.4f} SOL"),
        ])

    rows = [
        [
            Button(MM_START, "Start", "success", disabled=active),
            Button(MM_STOP, "Stop", "danger", disabled=not active),
            Button(MM_DASHBOARD, "Refresh", "secondary", emoji="🔄"),
        ],
        [
            Button(MM_SELECT_TOKEN, "Select Token", "primary", disabled=active),
            Button(MM_CONFIGURE, "Parameters", "primary", disabled=active),
            Button(MM_AUTO_ADJUST, "Toggle Auto-adjust", "secondary", disabled=active),
            Button(MM_SIZING, "Trade Sizing", "primary", disabled=active),
            Button(MM_RISK, "Slippage & Dust", "primary", disabled=active),
        ],
        [
            Button(MM_TOGGLE_DUST, "Disable Dust" if current.leave_dust else "Enable Dust",
                   "danger" if current.leave_dust else "success", disabled=active),
            Button(MM_TOGGLE_SELL_TYPE, f"Sell Type: {current.sell_percentage_type}", "secondary", disabled=active),
            Button(MM_TOGGLE_BUY_TYPE, f"Buy Type: {current.trade_investment_type}", "secondary", disabled=active),
        ],
    ]
    recent = [mint for mint in (mm_config.recent_tokens if mm_config else []) if mint != (mm_config.token_mint if mm_config else None)]
    if recent and not active:
        rows.append([Button(f"{MM_RECENT_TOKEN}{mint}", f"Use {mint[:6]}…", "secondary") for mint in recent[-4:]])
    rows.append(back_row())

    return Screen(title="Market Making", fields=fields, rows=rows)


def market_making_summary_screen(result) -> Screen:
    stats = result.stats
    return Screen(
        title="Market Making Stopped",
        fields=[
            ScreenField("Duration", result.duration),
            ScreenField("Orders Filled", str(stats.orders_filled)),
            ScreenField("Volume Bought", f"{stats.volume_bought:.4f} SOL"),
            ScreenField("Volume Sold", f"{stats.volume_sold:.4f} SOL"),
            ScreenField("Profit/Loss", f"{stats.profit_loss:.4f} SOL"),
        ],
        rows=[[Button(MM_DASHBOARD, "Market Making", "primary")], back_row()],
        color=COLOR_SUCCESS,
    )


def market_making_form(mm_config: Optional[MarketMakingConfig]) -> ModalForm:
    current = mm_config or MarketMakingConfig(user_id="")
    return ModalForm(
        custom_id=MM_CONFIG_MODAL,
        title="Market Making Parameters",
        inputs=[
            ModalInput("spread_percentage", "Spread %", default=f"{current.spread_percentage:g}", required=False),
            ModalInput("price_range", "Price range %", default=f"{current.price_range:g}", required=False),
            ModalInput("number_of_wallets", "Number of wallets", default=str(current.number_of_wallets), required=False),
            ModalInput("min_trades", "Min trades per wallet", default=str(current.min_trades), required=False),
            ModalInput("max_trades", "Max trades per wallet", default=str(current.max_trades), required=False),
        ],
    )


def market_making_sizing_form(mm_config: Optional[MarketMakingConfig]) -> ModalForm:
    """Inputs follow the current static or range choice for sells and buys."""
    current = mm_config or MarketMakingConfig(user_id="")
    if current.sell_percentage_type == "Static":
        inputs = [ModalInput("static_sell_percentage", "Sell %", default=f"{current.static_sell_percentage:g}", required=False)]
    else:
        inputs = [
            ModalInput("range_min_sell_percentage", "Min sell %", default=f"{current.range_min_sell_percentage:g}", required=False),
            ModalInput("range_max_sell_percentage", "Max sell %", default=f"{current.range_max_sell_percentage:g}", required=False),
        ]
    if current.trade_investment_type == "Static":
        inputs.append(ModalInput("static_purchase_amount", "Buy amount (SOL)", default=f"{current.static_purchase_amount:g}", required=False))
    else:
        inputs.extend([
            ModalInput("range_min_purchase_amount", "Min buy (SOL)", default=f"{current.range_min_purchase_amount:g}", required=False),
            ModalInput("range_max_purchase_amount", "Max buy (SOL)", default=f"{current.range_max_purchase_amount:g}", required=False),
        ])
    return ModalForm(custom_id=MM_SIZING_MODAL, title="Trade Sizing", inputs=inputs)


def market_making_risk_form(mm_config: Optional[MarketMakingConfig]) -> ModalForm:
    current = mm_config or MarketMakingConfig(user_id="")
    return ModalForm(
        custom_id=MM_RISK_MODAL,
        title="Slippage & Dust",
        inputs=[
            ModalInput("slippage", "Slippage %", default=f"{current.slippage:g}", required=False),
            ModalInput("static_dust_amount", "Dust amount left per wallet", default=f"{current.static_dust_amount:g}", required=False),
            ModalInput("min_sol_balance", "Min SOL balance per wallet", default=f"{current.min_sol_balance:g}", required=False),
        ],
    )


def token_form(custom_id: str, title: str, label: str = "Token address") -> ModalForm:
    return ModalForm(
        custom_id=custom_id,
        title=title,
        inputs=[ModalInput("token_address", label, placeholder="Paste the address")],
    )


# =============================================================================
# RESEARCH
# =============================================================================

def _compact(value: float) -> str:
    for threshold, suffix in ((1e9, "B"), (1e6, "M"), (1e3, "K")):
        if abs(value) >= threshold:
            return f"{value / threshold:.2f}{suffix}"
    return f"{value:.2f}"


def research_screen(snapshot: TokenResearchSnapshot) -> Screen:
    meta = snapshot.metadata
    change = snapshot.price_change
    top = "\n".join(
        f"`{h['address'][:6]}…` {_compact(h['amount'])}" for h in snapshot.holders.top_holders[:5]
    ) or "N/A"
    return Screen(
        title=f"{meta.name} ({meta.symbol})",
        description=meta.description[:300] if meta.description else f"`{snapshot.address}`",
        fields=[
            ScreenField("Price", f"${snapshot.price:.8f}"),
            ScreenField("Market Cap", f"${_compact(snapshot.market_cap)}"),
            ScreenField("FDV", f"${_compact(snapshot.fdv)}"),
            ScreenField("Change 1h / 24h / 7d", f"{change.h1:+.2f}% / {change.h24:+.2f}% / {change.d7:+.2f}%", inline=False),
            ScreenField("Volume 24h", f"${_compact(snapshot.volume.h24)}"),
            ScreenField("Volume 7d", f"${_compact(snapshot.volume.d7)}"),
            ScreenField("Liquidity", f"${_compact(snapshot.liquidity.tvl)}"),
            ScreenField("Supply", f"{_compact(snapshot.supply.circulating)} / {_compact(snapshot.supply.total)}"),
            ScreenField("Holders", f"{snapshot.holders.count:,}"),
            ScreenField("Top Holders", top, inline=False),
        ],
        rows=[
            [
                Button(RESEARCH_REFRESH, "Refresh", "secondary", emoji="🔄"),
                Button(RESEARCH_OPEN, "Research Another", "primary"),
                Button("sol_buy:open", "Buy", "success"),
            ],
            back_row(),
        ],
    )


SCREEN_IDS = (
    MENU_MAIN,
    MENU_WALLET,
    MENU_HISTORY,
    TERMS_AGREE,
    TERMS_DECLINE,
    SETTINGS_VIEW,
    SETTINGS_EDIT_BUY,
    SETTINGS_EDIT_SELL,
    SETTINGS_MODAL,
    CHANNEL_CREATE,
    MM_DASHBOARD,
    MM_START,
    MM_STOP,
    MM_SELECT_TOKEN,
    MM_TOKEN_MODAL,
    MM_RECENT_TOKEN,
    MM_CONFIGURE,
    MM_CONFIG_MODAL,
    MM_AUTO_ADJUST,
    MM_SIZING,
    MM_SIZING_MODAL,
    MM_RISK,
    MM_RISK_MODAL,
    MM_TOGGLE_DUST,
    MM_TOGGLE_SELL_TYPE,
    MM_TOGGLE_BUY_TYPE,
    RESEARCH_OPEN,
    RESEARCH_MODAL,
    RESEARCH_REFRESH,
)
