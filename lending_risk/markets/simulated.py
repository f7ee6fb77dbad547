"""In-memory lending market that consults the risk engine before every change.

Balances are plain integers: market tokens for supply, underlying units for
debt. There is no interest accrual; the exchange rate and reserve factor
are set directly.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import Error
from ..fixed_point import EXP_SCALE, Exp, mul_scalar_truncate
from ..models import AccountSnapshot

if TYPE_CHECKING:
    from ..engine.risk_engine import RiskEngine

logger = logging.getLogger(__name__)


class SimulatedMarket:
    """Ledger-only market implementing the ``MarketToken`` protocol."""

    is_market_token = True

    def __init__(
        self,
        address: str,
        underlying: str,
        risk_engine: RiskEngine | None = None,
        exchange_rate_mantissa: int = EXP_SCALE,
        reserve_factor_mantissa: int = 0,
    ) -> None:
        self.address = address
        self.underlying = underlying
        self.risk_engine = risk_engine
        self.exchange_rate_mantissa = exchange_rate_mantissa
        self._reserve_factor_mantissa = reserve_factor_mantissa
        self.fail_snapshots = False
        self._balances: dict[str, int] = {}
        self._borrows: dict[str, int] = {}
        self._total_borrows = 0

    def __repr__(self) -> str:
        return f"SimulatedMarket({self.address!r})"

    # ------------------------------------------------------------------
    # MarketToken reads
    # ------------------------------------------------------------------

    @property
    def total_borrows(self) -> int:
        return self._total_borrows

    @property
    def reserve_factor_mantissa(self) -> int:
        return self._reserve_factor_mantissa

    def set_reserve_factor(self, mantissa: int) -> None:
        self._reserve_factor_mantissa = mantissa

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def borrow_balance_stored(self, account: str) -> int:
        return self._borrows.get(account, 0)

    def exchange_rate_stored(self) -> int:
        return self.exchange_rate_mantissa

    def get_account_snapshot(self, account: str) -> AccountSnapshot:
        if self.fail_snapshots:
            return AccountSnapshot(Error.SNAPSHOT_ERROR, 0, 0, 0)
        return AccountSnapshot(
            error=Error.NO_ERROR,
            token_balance=self.balance_of(account),
            borrow_balance=self.borrow_balance_stored(account),
            exchange_rate_mantissa=self.exchange_rate_mantissa,
        )

    def set_position(self, account: str, tokens: int = 0, borrows: int = 0) -> None:
        """Seed balances directly, bypassing the engine."""
        self._total_borrows += borrows - self.borrow_balance_stored(account)
        self._balances[account] = tokens
        self._borrows[account] = borrows

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _engine(self) -> RiskEngine:
        if self.risk_engine is None:
            raise RuntimeError(f"Market {self.address} has no risk engine")
        return self.risk_engine

    def mint(self, minter: str, mint_amount: int) -> Error:
        engine = self._engine()
        err = engine.mint_allowed(self.address, minter, mint_amount)
        if err != Error.NO_ERROR:
            return err

        mint_tokens = mint_amount * EXP_SCALE // self.exchange_rate_mantissa
        self._balances[minter] = self.balance_of(minter) + mint_tokens
        engine.mint_verify(self.address, minter, mint_amount, mint_tokens)
        return Error.NO_ERROR

    def redeem(self, redeemer: str, redeem_tokens: int) -> Error:
        engine = self._engine()
        if redeem_tokens > self.balance_of(redeemer):
            return Error.REJECTION
        err = engine.redeem_allowed(self.address, redeemer, redeem_tokens)
        if err != Error.NO_ERROR:
            return err

        redeem_amount = mul_scalar_truncate(Exp(self.exchange_rate_mantissa), redeem_tokens)
        self._balances[redeemer] = self.balance_of(redeemer) - redeem_tokens
        engine.redeem_verify(self.address, redeemer, redeem_amount, redeem_tokens)
        return Error.NO_ERROR

    def borrow(self, borrower: str, borrow_amount: int) -> Error:
        engine = self._engine()
        err = engine.borrow_allowed(self.address, self.address, borrower, borrow_amount)
        if err != Error.NO_ERROR:
            return err

        self._borrows[borrower] = self.borrow_balance_stored(borrower) + borrow_amount
        self._total_borrows += borrow_amount
        engine.borrow_verify(self.address, borrower, borrow_amount)
        return Error.NO_ERROR

    def repay_borrow(self, payer: str, borrower: str, repay_amount: int) -> Error:
        engine = self._engine()
        err = engine.repay_borrow_allowed(self.address, payer, borrower, repay_amount)
        if err != Error.NO_ERROR:
            return err

        actual = min(repay_amount, self.borrow_balance_stored(borrower))
        self._borrows[borrower] = self.borrow_balance_stored(borrower) - actual
        self._total_borrows -= actual
        engine.repay_borrow_verify(self.address, payer, borrower, actual, EXP_SCALE)
        return Error.NO_ERROR

    def transfer(self, src: str, dst: str, tokens: int) -> Error:
        engine = self._engine()
        if src == dst or tokens > self.balance_of(src):
            return Error.REJECTION
        err = engine.transfer_allowed(self.address, src, dst, tokens)
        if err != Error.NO_ERROR:
            return err

        self._balances[src] = self.balance_of(src) - tokens
        self._balances[dst] = self.balance_of(dst) + tokens
        engine.transfer_verify(self.address, src, dst, tokens)
        return Error.NO_ERROR

    def liquidate_borrow(
        self,
        liquidator: str,
        borrower: str,
        repay_amount: int,
        collateral: SimulatedMarket,
    ) -> Error:
        """Repay ``borrower``'s debt here and seize their ``collateral`` tokens."""
        engine = self._engine()
        if liquidator == borrower or repay_amount == 0:
            return Error.REJECTION

        err = engine.liquidate_borrow_allowed(
            self.address, collateral.address, liquidator, borrower, repay_amount
        )
        if err != Error.NO_ERROR:
            return err

        err, seize_tokens = engine.liquidate_calculate_seize_tokens(
            self.address, collateral.address, repay_amount
        )
        if err != Error.NO_ERROR:
            return err
        if seize_tokens > collateral.balance_of(borrower):
            return Error.TOO_MUCH_REPAY

        err = collateral.seize(self, liquidator, borrower, seize_tokens)
        if err != Error.NO_ERROR:
            return err

        self._borrows[borrower] = self.borrow_balance_stored(borrower) - repay_amount
        self._total_borrows -= repay_amount
        engine.liquidate_borrow_verify(
            self.address, collateral.address, liquidator, borrower,
            repay_amount, seize_tokens,
        )
        logger.info(
            "Liquidated %s: repaid %d on %s, seized %d %s tokens",
            borrower, repay_amount, self.address, seize_tokens, collateral.address,
        )
        return Error.NO_ERROR

    def seize(
        self, seizer: SimulatedMarket, liquidator: str, borrower: str, seize_tokens: int
    ) -> Error:
        engine = self._engine()
        err = engine.seize_allowed(
            self.address, seizer.address, liquidator, borrower, seize_tokens
        )
        if err != Error.NO_ERROR:
            return err

        self._balances[borrower] = self.balance_of(borrower) - seize_tokens
        self._balances[liquidator] = self.balance_of(liquidator) + seize_tokens
        engine.seize_verify(
            self.address, seizer.address, liquidator, borrower, seize_tokens
        )
        return Error.NO_ERROR
