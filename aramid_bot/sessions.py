"""
In-process session store for multi-step trading wizards.

Sessions are keyed by (user_id, FlowKind) and expire after a TTL. They are
never persisted: a restart drops every in-progress wizard.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from .models import (
    Chain,
    TradeSide,
    DEFAULT_PRIORITY_FEE_TIER,
    DEFAULT_SLIPPAGE_BPS,
    LAMPORTS_PER_SOL,
)

logger = logging.getLogger(__name__)


class FlowKind(str, Enum):
    SOL_BUY = "sol_buy"
    SOL_SELL = "sol_sell"
    XRP_BUY = "xrp_buy"
    XRP_SELL = "xrp_sell"
    MARKET_MAKING = "mm"
    RESEARCH = "research"

    @property
    def chain(self) -> Chain:
        return Chain.XRP if self.value.startswith("xrp") else Chain.SOLANA

    @property
    def side(self) -> Optional[TradeSide]:
        if self.value.endswith("_buy"):
            return TradeSide.BUY
        if self.value.endswith("_sell"):
            return TradeSide.SELL
        return None


class ConfigNotFoundError(LookupError):
    """Raised when updating a session that was never initialised (or has expired)."""

    def __init__(self, user_id: str, flow: FlowKind):
        self.user_id = user_id
        self.flow = flow
        super().__init__(f"No {flow.value} session for user {user_id}")


@dataclass
class TradeSessionConfig:
    """Mutable configuration for one in-progress buy or sell."""
    user_id: str
    chain: Chain
    side: TradeSide
    token_address: str = ""
    token_name: str = ""
    token_symbol: str = ""
    amount: Optional[float] = None
    sell_percentage: Optional[float] = None
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    priority_fee_tier: str = DEFAULT_PRIORITY_FEE_TIER
    priority_fee: int = 0
    wallet_public_key: str = ""
    # Encrypted stored value; decrypted only when the trade request is signed
    wallet_private_key_ref: str = field(default="", repr=False)

    @property
    def priority_fee_sol(self) -> float:
        return self.priority_fee / LAMPORTS_PER_SOL


@dataclass
class _Entry:
    value: Any
    touched_at: float


class SessionStore:
    """
    Per-user, per-flow session storage with TTL eviction.

    Reading or updating a session refreshes its TTL.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, FlowKind], _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, entry: _Entry, now: float) -> bool:
        return self.ttl_seconds is not None and now - entry.touched_at > self.ttl_seconds

    def get(self, user_id: str, flow: FlowKind) -> Optional[Any]:
        key = (user_id, flow)
        entry = self._entries.get(key)
        if entry is None:
            return None
        now = self._clock()
        if self._expired(entry, now):
            del self._entries[key]
            logger.debug(f"Session {flow.value} for {user_id} expired")
            return None
        entry.touched_at = now
        return entry.value

    def init(self, user_id: str, flow: FlowKind, seed: Any) -> Any:
        """Start a session, replacing any previous one for the same flow."""
        self._entries[(user_id, flow)] = _Entry(value=seed, touched_at=self._clock())
        return seed

    def update(self, user_id: str, flow: FlowKind, **patch) -> Any:
        """
        Apply a patch to an existing session.

        All keys are checked before anything is written, so a bad key leaves
        the session untouched.

        Raises:
            ConfigNotFoundError: no session exists for (user_id, flow)
            AttributeError: the patch names a field the session does not have
        """
        value = self.get(user_id, flow)
        if value is None:
            raise ConfigNotFoundError(user_id, flow)

        if isinstance(value, dict):
            value.update(patch)
            return value

        known = {f.name for f in fields(value)}
        unknown = set(patch) - known
        if unknown:
            raise AttributeError(f"{type(value).__name__} has no field(s) {', '.join(sorted(unknown))}")
        for name, new_value in patch.items():
            setattr(value, name, new_value)
        return value

    def clear(self, user_id: str, flow: FlowKind) -> bool:
        return self._entries.pop((user_id, flow), None) is not None

    def evict_expired(self) -> int:
        """Drop every expired session. Returns the number evicted."""
        if self.ttl_seconds is None:
            return 0
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)


class SessionSweeper:
    """Background task that periodically evicts expired sessions."""

    def __init__(self, store: SessionStore, interval_seconds: int = 300):
        self.store = store
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        if self._running:
            logger.warning("Session sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Session sweeper started (interval: {self.interval_seconds}s)")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Session sweeper stopped")

    async def _run_loop(self):
        while self._running:
            try:
                evicted = self.store.evict_expired()
                if evicted:
                    logger.info(f"Evicted {evicted} expired sessions ({len(self.store)} active)")
            except Exception as e:
                logger.error(f"Session sweep error: {e}", exc_info=True)

            await asyncio.sleep(self.interval_seconds)
