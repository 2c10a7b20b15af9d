"""
Settlement engine: turns a room's ledger snapshot into P&L and a list of
directed payments that nets the session out.

All amounts are integer cents. Everything here is pure: no I/O, no shared
state, safe to call concurrently on independent snapshots.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, Sequence


@dataclass(frozen=True)
class PlayerLedger:
    identifier: str
    buy_in: int = 0
    cash_out: int | None = None  # None = not recorded yet, 0 = busted

    @property
    def cash_out_recorded(self) -> bool:
        return self.cash_out is not None


@dataclass(frozen=True)
class PlayerPnL:
    identifier: str
    buy_in: int
    cash_out: int | None
    pnl: int


@dataclass(frozen=True)
class Settlement:
    from_player: str
    to_player: str
    amount: int


@dataclass(frozen=True)
class RoomSettlementResult:
    total_buy_in: int = 0
    total_cash_out: int = 0
    mismatch: int = 0
    players: list[PlayerPnL] = field(default_factory=list)
    settlements: list[Settlement] = field(default_factory=list)

    @property
    def total_settled(self) -> int:
        return sum(s.amount for s in self.settlements)


def compute_pnl(ledgers: Iterable[PlayerLedger]) -> list[PlayerPnL]:
    """pnl = cash_out - buy_in, winners first. Equal pnl keeps input order."""
    rows = [
        PlayerPnL(
            identifier=ledger.identifier,
            buy_in=ledger.buy_in,
            cash_out=ledger.cash_out,
            pnl=(ledger.cash_out or 0) - ledger.buy_in,
        )
        for ledger in ledgers
    ]
    # list.sort is stable, also with reverse=True
    rows.sort(key=lambda r: r.pnl, reverse=True)
    return rows


def compute_settlements(pnls: Sequence[PlayerPnL]) -> list[Settlement]:
    """
    Greedy debt netting: largest debtor pays largest creditor until one side
    runs out. Produces at most (winners + losers - 1) transfers.

    When winners and losers do not balance (a mismatch), the shorter side is
    exhausted first and the remainder on the other side is left unsettled.
    """
    winners = [[p.identifier, p.pnl] for p in pnls if p.pnl > 0]
    losers = [[p.identifier, -p.pnl] for p in pnls if p.pnl < 0]
    winners.sort(key=lambda w: w[1], reverse=True)
    losers.sort(key=lambda loser: loser[1], reverse=True)

    out: list[Settlement] = []
    i = j = 0
    while i < len(losers) and j < len(winners):
        loser, winner = losers[i], winners[j]
        amount = min(loser[1], winner[1])
        if amount > 0:
            out.append(Settlement(from_player=loser[0], to_player=winner[0], amount=amount))
        loser[1] -= amount
        winner[1] -= amount
        if loser[1] <= 0:
            i += 1
        if winner[1] <= 0:
            j += 1
    return out


def calculate_settlement(ledgers: Sequence[PlayerLedger]) -> RoomSettlementResult:
    """Totals, per-player P&L and settlements for one snapshot of active players."""
    total_buy_in = sum(ledger.buy_in for ledger in ledgers)
    total_cash_out = sum(ledger.cash_out or 0 for ledger in ledgers)
    players = compute_pnl(ledgers)
    return RoomSettlementResult(
        total_buy_in=total_buy_in,
        total_cash_out=total_cash_out,
        mismatch=total_cash_out - total_buy_in,
        players=players,
        settlements=compute_settlements(players),
    )


def pending_cash_outs(ledgers: Iterable[PlayerLedger]) -> list[str]:
    """Players who bought in but have no cash-out on record yet."""
    return [ledger.identifier for ledger in ledgers if ledger.buy_in > 0 and not ledger.cash_out_recorded]
