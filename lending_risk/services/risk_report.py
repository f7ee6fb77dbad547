"""Account health report for every configured account."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from ..config import AccountConfig, AppConfig
from ..engine.risk_engine import RiskEngine
from ..errors import Error
from ..fixed_point import EXP_SCALE
from ..models import SegregatedLiquidity
from .builder import Deployment, apply_risk_parameters, build_deployment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountHealth:
    """Health of one account under the regime active when it was evaluated."""

    label: str
    address: str
    error: Error
    segregated: bool
    liquidity: int = 0
    shortfall: int = 0
    buckets: SegregatedLiquidity | None = None

    @property
    def healthy(self) -> bool:
        return self.error == Error.NO_ERROR and self.shortfall == 0


def format_usd(value: int) -> str:
    """Render a 1e18-scaled USD amount."""
    return f"${value / EXP_SCALE:,.2f}"


class RiskReport:
    """Prepare a configured deployment and report on its accounts."""

    def __init__(
        self,
        config: AppConfig,
        deployment: Deployment | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._config = config
        self.deployment = deployment or build_deployment(config, clock)
        self._prepared = False

    @property
    def engine(self) -> RiskEngine:
        return self.deployment.engine

    async def refresh_prices(self) -> int:
        """Pull the latest Pyth updates for every configured feed id."""
        feed_ids = [m.price.pyth_feed_id for m in self._config.markets]
        return await self.deployment.board.refresh(feed_ids)

    async def prepare(self, refresh: bool = True) -> None:
        """Refresh prices (optionally) and apply risk parameters once."""
        if refresh:
            await self.refresh_prices()
        if not self._prepared:
            refused = apply_risk_parameters(self.deployment, self._config)
            if refused:
                logger.warning(
                    "Markets without a usable price at setup: %s", ", ".join(refused)
                )
            self._prepared = True

    def evaluate_account(self, account: AccountConfig) -> AccountHealth:
        engine = self.engine
        if not engine.segregation_mode:
            err, liquidity, shortfall = engine.get_account_liquidity(account.address)
            return AccountHealth(
                label=account.label,
                address=account.address,
                error=err,
                segregated=False,
                liquidity=liquidity,
                shortfall=shortfall,
            )

        err, liq_a, short_a, liq_b, short_b = engine.get_segregated_account_liquidity(
            account.address
        )
        return AccountHealth(
            label=account.label,
            address=account.address,
            error=err,
            segregated=True,
            liquidity=liq_a + liq_b,
            shortfall=short_a + short_b,
            buckets=SegregatedLiquidity(liq_a, short_a, liq_b, short_b),
        )

    @staticmethod
    def _log_health(health: AccountHealth) -> None:
        if health.error != Error.NO_ERROR:
            logger.error("%s (%s): %s", health.label, health.address, health.error.name)
            return

        status = "✅ Healthy" if health.healthy else "🚨 SHORTFALL"
        if health.buckets is None:
            logger.info(
                "%s · %s · liquidity %s · shortfall %s",
                health.label, status,
                format_usd(health.liquidity), format_usd(health.shortfall),
            )
        else:
            b = health.buckets
            logger.info(
                "%s · %s · A: liquidity %s shortfall %s · B: liquidity %s shortfall %s",
                health.label, status,
                format_usd(b.liquidity_a), format_usd(b.shortfall_a),
                format_usd(b.liquidity_b), format_usd(b.shortfall_b),
            )

    async def check_accounts(self, refresh: bool = True) -> list[AccountHealth]:
        """Evaluate every configured account and log the result."""
        await self.prepare(refresh)

        results = [self.evaluate_account(a) for a in self._config.accounts]
        for health in results:
            self._log_health(health)

        unhealthy = sum(1 for h in results if not h.healthy)
        logger.info(
            "Checked %d accounts (%s regime): %d unhealthy",
            len(results),
            "segregated" if self.engine.segregation_mode else "pooled",
            unhealthy,
        )
        return results
