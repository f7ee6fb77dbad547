"""Account membership index: ordered per-account list plus per-market set."""
from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class MembershipIndex:
    """Two synchronized views of which accounts entered which markets.

    An account is in a market's set iff the market is in the account's list.
    """

    def __init__(self) -> None:
        self._assets_in: dict[str, list[str]] = {}
        self._members: dict[str, set[str]] = {}

    def is_member(self, account: str, market: str) -> bool:
        return account in self._members.get(market, ())

    def assets_of(self, account: str) -> tuple[str, ...]:
        return tuple(self._assets_in.get(account, ()))

    def join(self, account: str, market: str) -> bool:
        """Add ``account`` to ``market``. Returns False if already a member."""
        if self.is_member(account, market):
            return False
        self._members.setdefault(market, set()).add(account)
        self._assets_in.setdefault(account, []).append(market)
        return True

    def leave(self, account: str, market: str) -> bool:
        """Remove ``account`` from ``market``. Returns False if not a member.

        The account's list is not kept in entry order: the removed slot is
        filled by the last element.
        """
        if not self.is_member(account, market):
            return False

        assets = self._assets_in[account]
        idx = assets.index(market)
        assets[idx] = assets[-1]
        assets.pop()
        if not assets:
            del self._assets_in[account]

        self._members[market].discard(account)
        return True
