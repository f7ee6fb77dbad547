"""Risk engine — market registry, membership and solvency decisions.

Markets call the ``*_allowed`` hooks before mutating balances and halt the
action on any code other than ``Error.NO_ERROR``. Ordinary health failures
are returned as codes; only authorization on the legacy admin paths and
broken internal invariants raise.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Sequence

from ..errors import Error, FailureInfo, InvariantViolation, UnauthorizedError, fail
from ..fixed_point import EXP_SCALE, Exp, mul_scalar_truncate
from ..interfaces.market import MarketToken
from ..interfaces.price_oracle import PriceOracle
from ..models import Action, Classification, Market, PooledLiquidity, SegregatedLiquidity
from . import liquidity
from .liquidity import Hypothetical
from .membership import MembershipIndex

logger = logging.getLogger(__name__)

COLLATERAL_FACTOR_MAX_MANTISSA = 9 * 10**17  # 0.9


class RiskEngine:
    """Decide whether account actions keep every account solvent.

    Runs either the pooled regime (one ledger for all assets) or, when
    ``segregation_mode`` is on, the segregated regime in which TypeA
    collateral only backs TypeB debt and the reverse.
    """

    def __init__(
        self,
        admin: str,
        oracle: PriceOracle,
        close_factor_mantissa: int = 0,
        liquidation_incentive_mantissa: int = EXP_SCALE,
        segregation_mode: bool = False,
    ) -> None:
        self.admin = admin
        self.oracle = oracle
        self.close_factor_mantissa = close_factor_mantissa
        self.liquidation_incentive_mantissa = liquidation_incentive_mantissa
        self.segregation_mode = segregation_mode
        self.pause_guardian: str | None = None
        self.borrow_cap_guardian: str | None = None

        self.markets: dict[str, Market] = {}
        self._all_markets: list[str] = []
        self._membership = MembershipIndex()

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    def get_assets_in(self, account: str) -> tuple[str, ...]:
        return self._membership.assets_of(account)

    def check_membership(self, account: str, market: str) -> bool:
        return self._membership.is_member(account, market)

    def get_all_markets(self) -> tuple[str, ...]:
        return tuple(self._all_markets)

    def is_listed(self, market: str) -> bool:
        entry = self.markets.get(market)
        return entry is not None and entry.is_listed

    def is_deprecated(self, market: str) -> bool:
        """Zero collateral factor, borrowing paused and a 100% reserve factor."""
        entry = self.markets.get(market)
        if entry is None:
            return False
        return (
            entry.collateral_factor_mantissa == 0
            and entry.is_paused(Action.BORROW)
            and entry.token.reserve_factor_mantissa == EXP_SCALE
        )

    def _price(self, market: str) -> int:
        return liquidity.safe_price(self.oracle, market)

    def _rejected_by_segregation(self, market: str) -> bool:
        return (
            self.segregation_mode
            and self.markets[market].classification is Classification.UNCLASSIFIED
        )

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def enter_markets(self, account: str, markets: Iterable[str]) -> list[Error]:
        """Add ``account`` to each market. One result code per market."""
        return [self._add_to_market(market, account) for market in markets]

    def _add_to_market(self, market: str, account: str) -> Error:
        if not self.is_listed(market):
            return Error.MARKET_NOT_LISTED

        if self._membership.join(account, market):
            logger.info("Market entered: %s by %s", market, account)
        return Error.NO_ERROR

    def exit_market(self, account: str, market: str) -> Error:
        """Leave ``market`` if nothing is owed there and a full withdrawal stays healthy."""
        if not self.is_listed(market):
            return Error.MARKET_NOT_LISTED

        snapshot = self.markets[market].token.get_account_snapshot(account)
        if snapshot.error != Error.NO_ERROR:
            return fail(Error.SNAPSHOT_ERROR, FailureInfo.EXIT_MARKET_SNAPSHOT_FAILED)

        if snapshot.borrow_balance != 0:
            return fail(Error.NONZERO_BORROW_BALANCE, FailureInfo.EXIT_MARKET_BALANCE_OWED)

        allowed = self._redeem_allowed(market, account, snapshot.token_balance)
        if allowed != Error.NO_ERROR:
            return fail(Error.REJECTION, FailureInfo.EXIT_MARKET_REJECTION)

        if self._membership.leave(account, market):
            logger.info("Market exited: %s by %s", market, account)
        return Error.NO_ERROR

    # ------------------------------------------------------------------
    # Liquidity queries
    # ------------------------------------------------------------------

    def _pooled(self, account: str, change: Hypothetical) -> tuple[Error, PooledLiquidity]:
        return liquidity.pooled_liquidity(
            account, self.get_assets_in(account), self.markets, self.oracle, change
        )

    def _segregated(
        self, account: str, change: Hypothetical
    ) -> tuple[Error, SegregatedLiquidity]:
        return liquidity.segregated_liquidity(
            account, self.get_assets_in(account), self.markets, self.oracle, change
        )

    def get_account_liquidity(self, account: str) -> tuple[Error, int, int]:
        """(error, liquidity, shortfall) under the pooled regime."""
        return self.get_hypothetical_account_liquidity(account, None, 0, 0)

    def get_hypothetical_account_liquidity(
        self,
        account: str,
        market: str | None,
        redeem_tokens: int,
        borrow_amount: int,
    ) -> tuple[Error, int, int]:
        err, result = self._pooled(
            account, Hypothetical(market, redeem_tokens, borrow_amount)
        )
        return err, result.liquidity, result.shortfall

    def get_segregated_account_liquidity(
        self, account: str
    ) -> tuple[Error, int, int, int, int]:
        """(error, liquidity_a, shortfall_a, liquidity_b, shortfall_b)."""
        return self.get_hypothetical_segregated_account_liquidity(account, None, 0, 0)

    def get_hypothetical_segregated_account_liquidity(
        self,
        account: str,
        market: str | None,
        redeem_tokens: int,
        borrow_amount: int,
    ) -> tuple[Error, int, int, int, int]:
        err, result = self._segregated(
            account, Hypothetical(market, redeem_tokens, borrow_amount)
        )
        return (
            err,
            result.liquidity_a,
            result.shortfall_a,
            result.liquidity_b,
            result.shortfall_b,
        )

    def _check_liquidity(
        self, account: str, market: str, redeem_tokens: int, borrow_amount: int
    ) -> Error:
        """Health check for a hypothetical change under the active regime."""
        change = Hypothetical(market, redeem_tokens, borrow_amount)

        if not self.segregation_mode:
            err, pooled = self._pooled(account, change)
            if err != Error.NO_ERROR:
                return err
            if pooled.shortfall > 0:
                return Error.INSUFFICIENT_LIQUIDITY
            return Error.NO_ERROR

        classification = self.markets[market].classification
        if classification is Classification.UNCLASSIFIED:
            return Error.REJECTION

        err, segregated = self._segregated(account, change)
        if err != Error.NO_ERROR:
            return err
        if segregated.shortfall_backing(classification) > 0:
            return Error.INSUFFICIENT_LIQUIDITY
        return Error.NO_ERROR

    def _liquidation_shortfall(self, borrower: str, market_borrowed: str) -> tuple[Error, int]:
        if not self.segregation_mode:
            err, pooled = self._pooled(borrower, liquidity.NO_CHANGE)
            return err, pooled.shortfall

        err, segregated = self._segregated(borrower, liquidity.NO_CHANGE)
        classification = self.markets[market_borrowed].classification
        return err, segregated.shortfall_backing(classification)

    # ------------------------------------------------------------------
    # Policy hooks
    # ------------------------------------------------------------------

    def mint_allowed(self, market: str, minter: str, mint_amount: int) -> Error:
        if not self.is_listed(market):
            return Error.MARKET_NOT_LISTED
        if self.markets[market].is_paused(Action.MINT):
            logger.info("Mint rejected on %s: paused", market)
            return Error.REJECTION
        return Error.NO_ERROR

    def mint_verify(
        self, market: str, minter: str, actual_mint_amount: int, mint_tokens: int
    ) -> None:
        pass

    def redeem_allowed(self, market: str, redeemer: str, redeem_tokens: int) -> Error:
        return self._redeem_allowed(market, redeemer, redeem_tokens)

    def _redeem_allowed(self, market: str, redeemer: str, redeem_tokens: int) -> Error:
        if not self.is_listed(market):
            return Error.MARKET_NOT_LISTED

        if self._rejected_by_segregation(market):
            logger.info("Redeem rejected on unclassified market %s", market)
            return Error.REJECTION

        # Tokens outside the account's entered markets back nothing.
        if not self._membership.is_member(redeemer, market):
            return Error.NO_ERROR

        return self._check_liquidity(redeemer, market, redeem_tokens, 0)

    def redeem_verify(
        self, market: str, redeemer: str, redeem_amount: int, redeem_tokens: int
    ) -> None:
        if redeem_tokens == 0 and redeem_amount > 0:
            raise InvariantViolation("redeemTokens zero")

    def borrow_allowed(
        self, caller: str, market: str, borrower: str, borrow_amount: int
    ) -> Error:
        if not self.is_listed(market):
            return Error.MARKET_NOT_LISTED

        entry = self.markets[market]
        if entry.is_paused(Action.BORROW):
            logger.info("Borrow rejected on %s: paused", market)
            return Error.REJECTION

        if self._rejected_by_segregation(market):
            logger.info("Borrow rejected on unclassified market %s", market)
            return Error.REJECTION

        auto_entered = False
        if not self._membership.is_member(borrower, market):
            # Only the market itself may enter an account on its behalf.
            if caller != market:
                raise UnauthorizedError("sender must be the market")

            err = self._add_to_market(market, borrower)
            if err != Error.NO_ERROR:
                return err
            if not self._membership.is_member(borrower, market):
                raise InvariantViolation(
                    f"{borrower} not a member of {market} after entering"
                )
            auto_entered = True

        err = self._borrow_checks(entry, borrower, borrow_amount)
        if err != Error.NO_ERROR and auto_entered:
            # A denied borrow leaves membership as it found it.
            self._membership.leave(borrower, market)
            logger.info("Market entry undone: %s by %s (%s)", market, borrower, err.name)
        return err

    def _borrow_checks(self, entry: Market, borrower: str, borrow_amount: int) -> Error:
        market = entry.address
        if self._price(market) == 0:
            return Error.PRICE_ERROR

        if entry.borrow_cap != 0:
            next_total_borrows = entry.token.total_borrows + borrow_amount
            if next_total_borrows >= entry.borrow_cap:
                logger.info(
                    "Borrow rejected on %s: cap %d reached", market, entry.borrow_cap
                )
                return Error.BORROW_CAP_REACHED

        return self._check_liquidity(borrower, market, 0, borrow_amount)

    def borrow_verify(self, market: str, borrower: str, borrow_amount: int) -> None:
        pass

    def repay_borrow_allowed(
        self, market: str, payer: str, borrower: str, repay_amount: int
    ) -> Error:
        if not self.is_listed(market):
            return Error.MARKET_NOT_LISTED
        return Error.NO_ERROR

    def repay_borrow_verify(
        self,
        market: str,
        payer: str,
        borrower: str,
        actual_repay_amount: int,
        borrower_index: int,
    ) -> None:
        pass

    def liquidate_borrow_allowed(
        self,
        market_borrowed: str,
        market_collateral: str,
        liquidator: str,
        borrower: str,
        repay_amount: int,
    ) -> Error:
        if not self.is_listed(market_borrowed) or not self.is_listed(market_collateral):
            return Error.MARKET_NOT_LISTED

        borrow_balance = self.markets[market_borrowed].token.borrow_balance_stored(borrower)

        if self.is_deprecated(market_borrowed):
            if repay_amount > borrow_balance:
                return Error.TOO_MUCH_REPAY
            return Error.NO_ERROR

        err, shortfall = self._liquidation_shortfall(borrower, market_borrowed)
        if err != Error.NO_ERROR:
            return err
        if shortfall == 0:
            return Error.INSUFFICIENT_SHORTFALL

        max_close = mul_scalar_truncate(Exp(self.close_factor_mantissa), borrow_balance)
        if repay_amount > max_close:
            return Error.TOO_MUCH_REPAY
        return Error.NO_ERROR

    def liquidate_borrow_verify(
        self,
        market_borrowed: str,
        market_collateral: str,
        liquidator: str,
        borrower: str,
        actual_repay_amount: int,
        seize_tokens: int,
    ) -> None:
        pass

    def seize_allowed(
        self,
        market_collateral: str,
        market_borrowed: str,
        liquidator: str,
        borrower: str,
        seize_tokens: int,
    ) -> Error:
        if not self.is_listed(market_collateral) or not self.is_listed(market_borrowed):
            return Error.MARKET_NOT_LISTED

        collateral = self.markets[market_collateral]
        if collateral.is_paused(Action.SEIZE):
            logger.info("Seize rejected on %s: paused", market_collateral)
            return Error.REJECTION

        borrowed = self.markets[market_borrowed]
        if collateral.token.risk_engine is not borrowed.token.risk_engine:
            return Error.ENGINE_MISMATCH
        return Error.NO_ERROR

    def seize_verify(
        self,
        market_collateral: str,
        market_borrowed: str,
        liquidator: str,
        borrower: str,
        seize_tokens: int,
    ) -> None:
        pass

    def transfer_allowed(
        self, market: str, src: str, dst: str, transfer_tokens: int
    ) -> Error:
        if not self.is_listed(market):
            return Error.MARKET_NOT_LISTED
        if self.markets[market].is_paused(Action.TRANSFER):
            logger.info("Transfer rejected on %s: paused", market)
            return Error.REJECTION
        return self._redeem_allowed(market, src, transfer_tokens)

    def transfer_verify(
        self, market: str, src: str, dst: str, transfer_tokens: int
    ) -> None:
        pass

    # ------------------------------------------------------------------
    # Liquidation math
    # ------------------------------------------------------------------

    def liquidate_calculate_seize_tokens(
        self, market_borrowed: str, market_collateral: str, actual_repay_amount: int
    ) -> tuple[Error, int]:
        if not self.is_listed(market_borrowed) or not self.is_listed(market_collateral):
            return Error.MARKET_NOT_LISTED, 0

        return liquidity.seize_tokens(
            price_borrowed=self._price(market_borrowed),
            price_collateral=self._price(market_collateral),
            exchange_rate_mantissa=self.markets[market_collateral].token.exchange_rate_stored(),
            liquidation_incentive_mantissa=self.liquidation_incentive_mantissa,
            repay_amount=actual_repay_amount,
        )

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def set_price_oracle(self, caller: str, oracle: PriceOracle) -> Error:
        if caller != self.admin:
            return fail(Error.UNAUTHORIZED, FailureInfo.SET_PRICE_ORACLE_OWNER_CHECK)
        self.oracle = oracle
        logger.info("New price oracle: %r", oracle)
        return Error.NO_ERROR

    def set_close_factor(self, caller: str, new_close_factor_mantissa: int) -> Error:
        if caller != self.admin:
            raise UnauthorizedError("only admin can set close factor")
        old = self.close_factor_mantissa
        self.close_factor_mantissa = new_close_factor_mantissa
        logger.info("New close factor: %d -> %d", old, new_close_factor_mantissa)
        return Error.NO_ERROR

    def set_liquidation_incentive(
        self, caller: str, new_liquidation_incentive_mantissa: int
    ) -> Error:
        if caller != self.admin:
            return fail(Error.UNAUTHORIZED, FailureInfo.SET_LIQUIDATION_INCENTIVE_OWNER_CHECK)
        old = self.liquidation_incentive_mantissa
        self.liquidation_incentive_mantissa = new_liquidation_incentive_mantissa
        logger.info(
            "New liquidation incentive: %d -> %d", old, new_liquidation_incentive_mantissa
        )
        return Error.NO_ERROR

    def set_collateral_factor(
        self, caller: str, market: str, new_collateral_factor_mantissa: int
    ) -> Error:
        if caller != self.admin:
            return fail(Error.UNAUTHORIZED, FailureInfo.SET_COLLATERAL_FACTOR_OWNER_CHECK)

        if not self.is_listed(market):
            return fail(Error.MARKET_NOT_LISTED, FailureInfo.SET_COLLATERAL_FACTOR_NO_EXISTS)

        if not 0 <= new_collateral_factor_mantissa <= COLLATERAL_FACTOR_MAX_MANTISSA:
            return fail(
                Error.INVALID_COLLATERAL_FACTOR, FailureInfo.SET_COLLATERAL_FACTOR_VALIDATION
            )

        if new_collateral_factor_mantissa != 0 and self._price(market) == 0:
            return fail(Error.PRICE_ERROR, FailureInfo.SET_COLLATERAL_FACTOR_WITHOUT_PRICE)

        entry = self.markets[market]
        self.markets[market] = replace(
            entry, collateral_factor_mantissa=new_collateral_factor_mantissa
        )
        logger.info(
            "New collateral factor for %s: %d -> %d",
            market, entry.collateral_factor_mantissa, new_collateral_factor_mantissa,
        )
        return Error.NO_ERROR

    def support_market(self, caller: str, token: MarketToken) -> Error:
        """List ``token`` as a market with zero collateral factor."""
        if caller != self.admin:
            return fail(Error.UNAUTHORIZED, FailureInfo.SUPPORT_MARKET_OWNER_CHECK)

        if self.is_listed(token.address):
            return fail(Error.MARKET_ALREADY_LISTED, FailureInfo.SUPPORT_MARKET_EXISTS)

        if not getattr(token, "is_market_token", False):
            return fail(Error.INVALID_MARKET, FailureInfo.SUPPORT_MARKET_INVALID)

        self.markets[token.address] = Market(address=token.address, token=token)
        if token.address not in self._all_markets:
            self._all_markets.append(token.address)
        logger.info("Market listed: %s (underlying %s)", token.address, token.underlying)
        return Error.NO_ERROR

    def set_classification(
        self, caller: str, market: str, classification: Classification
    ) -> Error:
        if caller != self.admin:
            return fail(Error.UNAUTHORIZED, FailureInfo.SET_CLASSIFICATION_OWNER_CHECK)
        if not self.is_listed(market):
            return fail(Error.MARKET_NOT_LISTED, FailureInfo.SET_CLASSIFICATION_NO_EXISTS)

        entry = self.markets[market]
        self.markets[market] = replace(entry, classification=classification)
        logger.info(
            "New classification for %s: %s -> %s",
            market, entry.classification.name, classification.name,
        )
        return Error.NO_ERROR

    def set_segregation_mode(self, caller: str, enabled: bool) -> Error:
        if caller != self.admin:
            return fail(Error.UNAUTHORIZED, FailureInfo.SET_SEGREGATION_MODE_OWNER_CHECK)
        self.segregation_mode = enabled
        logger.info("Segregation mode %s", "enabled" if enabled else "disabled")
        return Error.NO_ERROR

    def set_borrow_cap_guardian(self, caller: str, guardian: str | None) -> None:
        if caller != self.admin:
            raise UnauthorizedError("only admin can set borrow cap guardian")
        self.borrow_cap_guardian = guardian
        logger.info("New borrow cap guardian: %s", guardian)

    def set_pause_guardian(self, caller: str, guardian: str | None) -> None:
        if caller != self.admin:
            raise UnauthorizedError("only admin can set pause guardian")
        self.pause_guardian = guardian
        logger.info("New pause guardian: %s", guardian)

    def set_market_borrow_caps(
        self, caller: str, markets: Sequence[str], borrow_caps: Sequence[int]
    ) -> None:
        """Set per-market borrow caps. A cap of 0 means unlimited."""
        if caller != self.admin and caller != self.borrow_cap_guardian:
            raise UnauthorizedError("only admin or borrow cap guardian can set borrow caps")
        if not markets or len(markets) != len(borrow_caps):
            raise ValueError("invalid input")
        for market in markets:
            if not self.is_listed(market):
                raise ValueError(f"market {market} is not listed")

        for market, cap in zip(markets, borrow_caps):
            self.markets[market] = replace(self.markets[market], borrow_cap=cap)
            logger.info("New borrow cap for %s: %d", market, cap)

    def set_action_paused(
        self, caller: str, market: str, action: Action, paused: bool
    ) -> bool:
        """Pause (admin or guardian) or unpause (admin only) ``action`` on ``market``."""
        if not self.is_listed(market):
            raise ValueError("cannot pause a market that is not listed")
        if caller != self.admin and caller != self.pause_guardian:
            raise UnauthorizedError("only pause guardian and admin can pause")
        if not paused and caller != self.admin:
            raise UnauthorizedError("only admin can unpause")

        entry = self.markets[market]
        flags = entry.paused | {action} if paused else entry.paused - {action}
        self.markets[market] = replace(entry, paused=frozenset(flags))
        logger.info(
            "Action %s %s on %s", action.value, "paused" if paused else "unpaused", market
        )
        return paused
