"""
Market making session controller.

Manages the active flag on a user's saved config and an in-memory counters
record for the running session. No orders are placed here.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from .database import DatabaseService
from .models import MarketMakingConfig, format_duration

logger = logging.getLogger(__name__)


@dataclass
class ActiveSession:
    token_mint: str
    start_time: datetime
    orders_filled: int = 0
    volume_sold: float = 0.0
    volume_bought: float = 0.0
    profit_loss: float = 0.0


@dataclass
class MarketMakingResult:
    status: str     # started | stopped | not_running | configuration_required | no_configuration
    config: Optional[MarketMakingConfig] = None
    stats: Optional[ActiveSession] = None
    duration: str = ""

    @property
    def ok(self) -> bool:
        return self.status in ("started", "stopped")


class MarketMakingController:
    def __init__(self, db_service: DatabaseService, clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db_service
        self._clock = clock
        self._active_sessions: Dict[str, ActiveSession] = {}

    def active_session(self, user_id: str) -> Optional[ActiveSession]:
        return self._active_sessions.get(user_id)

    async def start(self, user_id: str) -> MarketMakingResult:
        """
        Start a session for a user.

        Without a saved config that has a token nothing is written and the
        result asks the user to configure first.
        """
        mm_config = await self.db.get_market_making_config(user_id)
        if mm_config is None or not mm_config.token_mint:
            logger.info(f"Market making start for {user_id} needs configuration")
            return MarketMakingResult(status="configuration_required", config=mm_config)

        now = self._clock()
        token_mint = mm_config.token_mint
        mm_config = await self.db.save_market_making_config(
            user_id,
            {"token_mint": token_mint, "active": True, "started_at": now},
        ) or mm_config
        self._active_sessions[user_id] = ActiveSession(token_mint=token_mint, start_time=now)
        logger.info(f"Market making started for {user_id} on {token_mint}")
        return MarketMakingResult(status="started", config=mm_config, stats=self._active_sessions[user_id])

    async def stop(self, user_id: str) -> MarketMakingResult:
        """
        Stop a session and summarise it.

        A missing counters record (e.g. after a restart) reports zeros. Stopping
        a config that is not running writes nothing.
        """
        mm_config = await self.db.get_market_making_config(user_id)
        if mm_config is None:
            return MarketMakingResult(status="no_configuration")
        if not mm_config.active:
            self._active_sessions.pop(user_id, None)
            logger.info(f"Market making stop for {user_id} ignored: not running")
            return MarketMakingResult(status="not_running", config=mm_config)

        now = self._clock()
        started_at = mm_config.started_at
        mm_config = await self.db.save_market_making_config(user_id, {"active": False, "stopped_at": now}) or mm_config

        stats = self._active_sessions.pop(user_id, None)
        if stats is None:
            stats = ActiveSession(token_mint=mm_config.token_mint or "", start_time=started_at or now)

        duration = format_duration(started_at, now)
        logger.info(
            f"Market making stopped for {user_id} after {duration}: "
            f"{stats.orders_filled} orders, P&L {stats.profit_loss:.4f} SOL"
        )
        return MarketMakingResult(status="stopped", config=mm_config, stats=stats, duration=duration)

    async def stats(self, user_id: str) -> Tuple[Optional[MarketMakingConfig], Optional[ActiveSession]]:
        """Saved config plus live counters (when a session is running)."""
        mm_config = await self.db.get_market_making_config(user_id)
        session = self._active_sessions.get(user_id) if mm_config and mm_config.active else None
        return mm_config, session
