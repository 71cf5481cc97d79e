"""
Trade wizard: one parameterized flow for Solana and XRP buys and sells.

Each flow is described by a WizardFlow listing its steps. The renderer turns
(flow, session config, display data, settings) into a Screen and never raises:
rendering errors become an error screen.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .models import (
    DEFAULT_BUY_AMOUNT,
    DEFAULT_PRIORITY_FEE_TIER,
    DEFAULT_PRIORITY_FEES,
    DEFAULT_SLIPPAGE_BPS,
    NATIVE_SYMBOL,
    PRIORITY_FEE_TIERS,
    SLIPPAGE_OPTIONS_BPS,
    TradeSettings,
    lamports_to_sol,
    slippage_label,
)
from .quick_amounts import quick_buy_options, quick_sell_options
from .screens import (
    COLOR_ERROR,
    COLOR_SUCCESS,
    MENU_MAIN,
    Button,
    ModalForm,
    ModalInput,
    Screen,
    ScreenField,
    back_row,
    error_screen,
)
from .sessions import FlowKind, TradeSessionConfig

logger = logging.getLogger(__name__)


# =============================================================================
# STEP DESCRIPTORS
# =============================================================================

@dataclass(frozen=True)
class WizardStep:
    key: str            # token | amount | percentage | slippage | priority_fee
    label: str
    field: str          # TradeSessionConfig attribute the step sets
    required: bool = False


TOKEN = WizardStep("token", "Token", "token_address", required=True)
AMOUNT = WizardStep("amount", "Amount", "amount", required=True)
PERCENTAGE = WizardStep("percentage", "Sell Percentage", "sell_percentage", required=True)
SLIPPAGE = WizardStep("slippage", "Slippage", "slippage_bps")
PRIORITY_FEE = WizardStep("priority_fee", "Priority Fee", "priority_fee_tier")


@dataclass(frozen=True)
class WizardFlow:
    flow: FlowKind
    title: str
    steps: Tuple[WizardStep, ...]
    token_label: str = "Token mint address"

    def has(self, key: str) -> bool:
        return any(step.key == key for step in self.steps)

    @property
    def size_step(self) -> WizardStep:
        return AMOUNT if self.has("amount") else PERCENTAGE

    def supports(self, action: str) -> bool:
        """False for actions that set a step this flow does not have."""
        step_key = STEP_ACTIONS.get(action)
        return step_key is None or self.has(step_key)


WIZARD_FLOWS: Dict[FlowKind, WizardFlow] = {
    FlowKind.SOL_BUY: WizardFlow(FlowKind.SOL_BUY, "Buy Solana Token", (TOKEN, AMOUNT, SLIPPAGE, PRIORITY_FEE)),
    FlowKind.SOL_SELL: WizardFlow(FlowKind.SOL_SELL, "Sell Solana Token", (TOKEN, PERCENTAGE, SLIPPAGE, PRIORITY_FEE)),
    FlowKind.XRP_BUY: WizardFlow(FlowKind.XRP_BUY, "Buy XRP Token", (TOKEN, AMOUNT), token_label="Token issuer address"),
    FlowKind.XRP_SELL: WizardFlow(FlowKind.XRP_SELL, "Sell XRP Token", (TOKEN, PERCENTAGE), token_label="Token issuer address"),
}


# =============================================================================
# CUSTOM IDS
# =============================================================================
# <flow>:<action>[:<arg>]

ACTION_OPEN = "open"
ACTION_TOKEN = "token"
ACTION_TOKEN_MODAL = "token_modal"
ACTION_SIZE = "size"
ACTION_SIZE_MODAL = "size_modal"
ACTION_QUICK = "quick"
ACTION_SLIPPAGE = "slippage"
ACTION_FEE = "fee"
ACTION_EXECUTE = "execute"
ACTION_REFRESH = "refresh"

PARAMETERIZED_ACTIONS = (ACTION_QUICK, ACTION_SLIPPAGE, ACTION_FEE)

# Actions that only exist on flows with the matching step
STEP_ACTIONS = {ACTION_SLIPPAGE: "slippage", ACTION_FEE: "priority_fee"}


def wizard_id(flow: FlowKind, action: str, arg: Optional[object] = None) -> str:
    if arg is None:
        return f"{flow.value}:{action}"
    return f"{flow.value}:{action}:{arg}"


def parse_wizard_id(custom_id: str) -> Tuple[FlowKind, str, Optional[str]]:
    """Split '<flow>:<action>[:<arg>]' into its parts."""
    parts = custom_id.split(":", 2)
    if len(parts) < 2:
        raise ValueError(f"Not a wizard id: {custom_id!r}")
    flow = FlowKind(parts[0])
    return flow, parts[1], parts[2] if len(parts) == 3 else None


def wizard_ids() -> List[str]:
    """Every exact id the wizard renders, plus the prefixes of parameterized ids."""
    ids = []
    for flow in WIZARD_FLOWS:
        for action in (ACTION_OPEN, ACTION_TOKEN, ACTION_TOKEN_MODAL, ACTION_SIZE, ACTION_SIZE_MODAL, ACTION_EXECUTE, ACTION_REFRESH):
            ids.append(wizard_id(flow, action))
        for action in PARAMETERIZED_ACTIONS:
            if WIZARD_FLOWS[flow].supports(action):
                ids.append(wizard_id(flow, action) + ":")
    return ids


# =============================================================================
# SESSION SEED
# =============================================================================

@dataclass
class DisplayData:
    """Freshly fetched values shown alongside the session config."""
    token_name: str = ""
    token_symbol: str = ""
    token_price: Optional[float] = None
    balance: float = 0.0
    token_balance: float = 0.0
    fees: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_PRIORITY_FEES))


def seed_config(
    flow: FlowKind,
    user_id: str,
    wallet_public_key: str,
    wallet_private_key_ref: str,
    fees: Optional[Dict[str, int]] = None,
) -> TradeSessionConfig:
    """Initial session values when a user opens a trade flow."""
    fees = fees or DEFAULT_PRIORITY_FEES
    wizard = WIZARD_FLOWS[flow]
    config = TradeSessionConfig(
        user_id=user_id,
        chain=flow.chain,
        side=flow.side,
        slippage_bps=DEFAULT_SLIPPAGE_BPS,
        priority_fee_tier=DEFAULT_PRIORITY_FEE_TIER,
        priority_fee=int(fees[DEFAULT_PRIORITY_FEE_TIER]) if wizard.has("priority_fee") else 0,
        wallet_public_key=wallet_public_key,
        wallet_private_key_ref=wallet_private_key_ref,
    )
    if wizard.has("amount"):
        config.amount = DEFAULT_BUY_AMOUNT[flow.chain]
    return config


def missing_steps(flow: FlowKind, config: TradeSessionConfig) -> List[str]:
    """Labels of required steps the config has not completed."""
    missing = []
    for step in WIZARD_FLOWS[flow].steps:
        if step.required and not getattr(config, step.field):
            missing.append(step.label)
    return missing


# =============================================================================
# RENDERING
# =============================================================================

def _selected(flag: bool) -> str:
    return "success" if flag else "secondary"


def _token_field(config: TradeSessionConfig, display: DisplayData) -> ScreenField:
    if not config.token_address:
        return ScreenField("Token", "Not selected", inline=False)
    name = display.token_name or config.token_name or "Unknown Token"
    symbol = display.token_symbol or config.token_symbol or "?"
    return ScreenField("Token", f"{name} ({symbol})\n`{config.token_address}`", inline=False)


def _build_screen(
    flow: FlowKind,
    config: TradeSessionConfig,
    display: DisplayData,
    settings: Optional[TradeSettings],
) -> Screen:
    wizard = WIZARD_FLOWS[flow]
    native = NATIVE_SYMBOL[flow.chain]
    missing = missing_steps(flow, config)

    fields = [
        _token_field(config, display),
        ScreenField(f"{native} Balance", f"{display.balance:.4f} {native}"),
    ]
    if config.token_address:
        fields.append(ScreenField("Price", f"${display.token_price:.8f}" if display.token_price else "N/A"))
    if wizard.has("percentage") and config.token_address:
        fields.append(ScreenField("Token Balance", f"{display.token_balance:,.4f}"))

    rows: List[List[Button]] = []
    size_label = "Custom Amount" if wizard.has("amount") else "Custom %"
    rows.append([
        Button(wizard_id(flow, ACTION_TOKEN), "Set Token", "primary", emoji="🪙"),
        Button(wizard_id(flow, ACTION_SIZE), size_label, "primary", emoji="✏️"),
    ])

    if wizard.has("amount"):
        fields.append(ScreenField("Amount", f"{config.amount:g} {native}" if config.amount else "Not set"))
        options = quick_buy_options(settings)
        rows.append([
            Button(wizard_id(flow, ACTION_QUICK, tier), f"{value:g} {native}", _selected(config.amount == value))
            for tier, value in options
        ])
    else:
        fields.append(ScreenField("Sell Percentage", f"{config.sell_percentage:g}%" if config.sell_percentage else "Not set"))
        options = quick_sell_options(settings)
        rows.append([
            Button(wizard_id(flow, ACTION_QUICK, tier), f"{value:g}%", _selected(config.sell_percentage == value))
            for tier, value in options
        ])

    if wizard.has("slippage"):
        fields.append(ScreenField("Slippage", slippage_label(config.slippage_bps)))
        rows.append([
            Button(wizard_id(flow, ACTION_SLIPPAGE, bps), slippage_label(bps), _selected(config.slippage_bps == bps))
            for bps in SLIPPAGE_OPTIONS_BPS
        ])

    if wizard.has("priority_fee"):
        fields.append(ScreenField(
            "Priority Fee",
            f"{config.priority_fee_tier.title()} ({lamports_to_sol(config.priority_fee):.9f} SOL)",
        ))
        rows.append([
            Button(
                wizard_id(flow, ACTION_FEE, tier),
                f"{tier.title()} ({lamports_to_sol(display.fees.get(tier, 0)):.6f})",
                _selected(config.priority_fee_tier == tier),
            )
            for tier in PRIORITY_FEE_TIERS
        ])

    rows.append([
        Button(wizard_id(flow, ACTION_EXECUTE), "Buy" if wizard.has("amount") else "Sell", "success", disabled=bool(missing)),
        Button(wizard_id(flow, ACTION_REFRESH), "Refresh", "secondary", emoji="🔄"),
        back_row()[0],
    ])

    description = "Configure your trade, then execute."
    if missing:
        description += f"\nStill needed: {', '.join(missing)}."

    return Screen(title=wizard.title, description=description, fields=fields, rows=rows)


def render_screen(
    flow: FlowKind,
    config: Optional[TradeSessionConfig],
    display: Optional[DisplayData] = None,
    settings: Optional[TradeSettings] = None,
) -> Screen:
    """Render the wizard screen for a flow. Never raises."""
    if config is None:
        return error_screen(
            "Your trade session has expired. Open the flow again to start over.",
            back_to=MENU_MAIN,
            title="Session Expired",
        )
    try:
        return _build_screen(flow, config, display or DisplayData(), settings)
    except Exception as e:
        logger.error(f"Failed to render {flow.value} screen for {config.user_id}: {e}", exc_info=True)
        return error_screen("Could not display this trade screen. Please try again.", back_to=MENU_MAIN)


# =============================================================================
# MODALS AND RESULTS
# =============================================================================

def token_modal(flow: FlowKind) -> ModalForm:
    wizard = WIZARD_FLOWS[flow]
    return ModalForm(
        custom_id=wizard_id(flow, ACTION_TOKEN_MODAL),
        title="Select Token",
        inputs=[ModalInput("token_address", wizard.token_label, placeholder="Paste the address")],
    )


def size_modal(flow: FlowKind, config: Optional[TradeSessionConfig]) -> ModalForm:
    wizard = WIZARD_FLOWS[flow]
    step = wizard.size_step
    current = getattr(config, step.field, None) if config else None
    if step is AMOUNT:
        label = f"Amount ({NATIVE_SYMBOL[flow.chain]})"
    else:
        label = "Sell percentage (1-100)"
    return ModalForm(
        custom_id=wizard_id(flow, ACTION_SIZE_MODAL),
        title=step.label,
        inputs=[ModalInput(step.field, label, default=f"{current:g}" if current else "")],
    )


def trade_result_screen(flow: FlowKind, config: TradeSessionConfig, result) -> Screen:
    """Screen for a finished TradeExecutor result."""
    wizard = WIZARD_FLOWS[flow]
    if not result.success:
        return Screen(
            title="Trade Failed",
            description=result.error or "The trade was not completed.",
            rows=[[
                Button(wizard_id(flow, ACTION_REFRESH), "Back to Trade", "primary"),
                back_row()[0],
            ]],
            color=COLOR_ERROR,
            is_error=True,
        )

    fields = [ScreenField("Token", f"`{config.token_address}`", inline=False)]
    if result.tx_id:
        link = f"[{result.tx_id[:12]}…]({result.explorer_url})" if result.explorer_url else result.tx_id
        fields.append(ScreenField("Transaction", link, inline=False))
    if result.output_amount is not None:
        fields.append(ScreenField("Received", f"{result.output_amount:,.6g}"))
    return Screen(
        title=f"{'Buy' if wizard.has('amount') else 'Sell'} Successful",
        fields=fields,
        rows=[[
            Button(wizard_id(flow, ACTION_OPEN), "Trade Again", "primary"),
            back_row()[0],
        ]],
        color=COLOR_SUCCESS,
    )

