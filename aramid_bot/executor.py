"""
Trade executor: turns a completed session config into one trade request
against the external trading API and interprets the response.

CONFIGURING -> SUBMITTING -> SUCCEEDED | FAILED. Nothing is retried.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import httpx

from . import market_data
from .config import config as app_config
from .database import DatabaseService
from .encryption import DecryptionError, EncryptionKeyMissingError, decrypt_private_key
from .models import NATIVE_SYMBOL, Chain, TradeSide
from .sessions import TradeSessionConfig

logger = logging.getLogger(__name__)

CONFIRMED_MESSAGE = "Transaction confirmed"
REDACTED = "[REDACTED]"
SECRET_FIELDS = {"private_key", "seed"}

TX_ID_KEYS = ("txid", "signature", "hash", "tx_hash")
OUTPUT_KEYS = ("tokensPurchased", "solReceived", "xrpReceived", "amountReceived")


class ExecutionState(str, Enum):
    CONFIGURING = "configuring"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TradeExecutionError(Exception):
    """A trade could not be submitted or was rejected."""


@dataclass
class TradeResult:
    state: ExecutionState
    tx_id: Optional[str] = None
    explorer_url: Optional[str] = None
    output_amount: Optional[float] = None
    error: Optional[str] = None
    amount: Optional[float] = None
    response: dict = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.state == ExecutionState.SUCCEEDED


def redact_payload(payload: dict) -> dict:
    """Copy of a request payload that is safe to log."""
    return {k: (REDACTED if k in SECRET_FIELDS else v) for k, v in payload.items()}


def classify_response(data: dict) -> bool:
    """
    Decide whether a trade API response means success.

    An `error` field always fails. `success: true` succeeds; the older
    `message: "Transaction confirmed"` shape also succeeds but is logged.
    """
    if not isinstance(data, dict):
        return False
    if data.get("error") is not None:
        return False
    if data.get("success") is True:
        return True
    if data.get("message") == CONFIRMED_MESSAGE:
        logger.warning("Trade API returned legacy confirmation message without a success flag")
        return True
    return False


def explorer_url(chain: Chain, tx_id: str) -> str:
    if chain == Chain.SOLANA:
        return f"https://solscan.io/tx/{tx_id}"
    return f"https://livenet.xrpl.org/transactions/{tx_id}"


def _extract(data: dict, keys) -> Optional[object]:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class TradeExecutor:
    def __init__(self, db_service: DatabaseService, timeout: float = 60.0):
        self.db = db_service
        self.timeout = timeout

    # =========================================================================
    # PRECONDITIONS
    # =========================================================================

    def _check_config(self, config: TradeSessionConfig) -> None:
        if not config.token_address:
            raise TradeExecutionError("Select a token first.")
        if not market_data.is_valid_address(config.chain, config.token_address):
            raise TradeExecutionError("The selected token address is not valid.")
        if config.side == TradeSide.BUY:
            if not config.amount or config.amount <= 0:
                raise TradeExecutionError("Set an amount to spend first.")
        else:
            if not config.sell_percentage or not 0 < config.sell_percentage <= 100:
                raise TradeExecutionError("Set a sell percentage between 1 and 100 first.")
        if not config.wallet_public_key or not config.wallet_private_key_ref:
            raise TradeExecutionError("No wallet found. Generate a wallet first.")

    async def _native_balance(self, config: TradeSessionConfig) -> float:
        if config.chain == Chain.SOLANA:
            return await market_data.get_sol_balance(config.wallet_public_key)
        return await market_data.get_xrp_balance(config.wallet_public_key)

    async def _held_tokens(self, config: TradeSessionConfig) -> float:
        if config.chain == Chain.SOLANA:
            return await market_data.get_token_balance(config.wallet_public_key, config.token_address)
        return await market_data.get_xrp_token_balance(config.wallet_public_key, config.token_address)

    # =========================================================================
    # REQUESTS
    # =========================================================================

    async def _fee_fields(self, user_id: str) -> dict:
        fields = {}
        if app_config.ENABLE_PLATFORM_FEE and app_config.PLATFORM_PUBLIC_KEY:
            fields["platformPublicKey"] = app_config.PLATFORM_PUBLIC_KEY
            fields["platformPercentage"] = app_config.PLATFORM_FEE_PERCENTAGE
        if app_config.ENABLE_REFERRAL_FEE:
            referral_key = await self.db.get_referral_public_key(user_id)
            if referral_key:
                fields["referralPublicKey"] = referral_key
                fields["referralPercentage"] = app_config.REFERRAL_FEE_PERCENTAGE
        return fields

    async def build_request(self, config: TradeSessionConfig, private_key: str, amount: float) -> tuple:
        """Return (url, payload) for the trade."""
        if config.chain == Chain.SOLANA and config.side == TradeSide.BUY:
            payload = {
                "private_key": private_key,
                "outputMint": config.token_address,
                "amount": amount,
                "slippage": config.slippage_bps,
                "priorityFee": config.priority_fee,
            }
            payload.update(await self._fee_fields(config.user_id))
            return f"{app_config.TRADE_API_URL}/jupiterBuy", payload

        if config.chain == Chain.SOLANA:
            payload = {
                "private_key": private_key,
                "inputMint": config.token_address,
                "amount": amount,
                "slippage": config.slippage_bps,
                "priority_fee": config.priority_fee,
            }
            return f"{app_config.TRADE_API_URL}/jupiterSell", payload

        if config.side == TradeSide.BUY:
            payload = {"seed": private_key, "issuer": config.token_address, "amountXRP": amount}
            return f"{app_config.XRP_TRADE_API_URL}/buy", payload

        payload = {"seed": private_key, "issuer": config.token_address, "amount": amount}
        return f"{app_config.XRP_TRADE_API_URL}/sell", payload

    async def _submit(self, url: str, payload: dict) -> dict:
        logger.info(f"Submitting trade to {url}: {redact_payload(payload)}")
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(url, json=payload, timeout=self.timeout)
        except httpx.TimeoutException:
            raise TradeExecutionError("The trading service timed out. Check your wallet before retrying.")
        except httpx.HTTPError as e:
            raise TradeExecutionError(f"Could not reach the trading service: {e}")

        try:
            data = response.json()
        except ValueError:
            raise TradeExecutionError(f"Trading service returned an invalid response ({response.status_code}).")

        if not isinstance(data, dict):
            raise TradeExecutionError("Trading service returned an unexpected response.")
        if response.status_code >= 400 and not data.get("error"):
            data["error"] = f"Trading service error ({response.status_code})"
        return data

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute(self, config: TradeSessionConfig) -> TradeResult:
        """
        Execute the trade described by a session config.

        Failures are returned as a FAILED result, never raised.
        """
        state = ExecutionState.CONFIGURING
        native = NATIVE_SYMBOL[config.chain]
        amount: Optional[float] = None
        try:
            self._check_config(config)

            if config.side == TradeSide.BUY:
                amount = config.amount
                balance = await self._native_balance(config)
                if balance < amount:
                    raise TradeExecutionError(
                        f"Insufficient balance. You have {balance:.4f} {native} but tried to spend {amount:g} {native}."
                    )
            else:
                held = await self._held_tokens(config)
                if held <= 0:
                    raise TradeExecutionError("You don't hold any of this token.")
                amount = held * config.sell_percentage / 100

            try:
                private_key = decrypt_private_key(config.wallet_private_key_ref)
            except (DecryptionError, EncryptionKeyMissingError) as e:
                logger.error(f"Could not unlock wallet for {config.user_id}: {e}")
                raise TradeExecutionError("Your wallet key could not be unlocked.")

            url, payload = await self.build_request(config, private_key, amount)
            state = ExecutionState.SUBMITTING
            data = await self._submit(url, payload)

            if not classify_response(data):
                error = data.get("error") or data.get("message") or "Trade was not confirmed."
                raise TradeExecutionError(str(error))

            tx_id = _extract(data, TX_ID_KEYS)
            output = _extract(data, OUTPUT_KEYS)
            result = TradeResult(
                state=ExecutionState.SUCCEEDED,
                tx_id=str(tx_id) if tx_id else None,
                explorer_url=explorer_url(config.chain, str(tx_id)) if tx_id else None,
                output_amount=_to_float(output),
                amount=amount,
                response=data,
            )
            logger.info(f"{config.chain.value} {config.side.value} succeeded for {config.user_id}: {result.tx_id}")
        except TradeExecutionError as e:
            logger.warning(f"{config.chain.value} {config.side.value} failed for {config.user_id} while {state.value}: {e}")
            result = TradeResult(state=ExecutionState.FAILED, error=str(e), amount=amount)
            if state == ExecutionState.CONFIGURING:
                return result

        await self._record(config, result)
        return result

    async def _record(self, config: TradeSessionConfig, result: TradeResult) -> None:
        try:
            await self.db.store_trade(
                user_id=config.user_id,
                chain=config.chain.value,
                side=config.side.value,
                token_address=config.token_address,
                amount=result.amount or 0.0,
                success=result.success,
                tx_id=result.tx_id,
                output_amount=result.output_amount,
                error=result.error,
            )
        except Exception as e:
            logger.error(f"Failed to store trade for {config.user_id}: {e}")
