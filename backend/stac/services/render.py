"""Plain-text views of a room, the way the chat bot used to print them."""
from __future__ import annotations
from stac.services.money import format_money, format_signed
from stac.services.rooms import BuyInShare
from stac.services.settlement import RoomSettlementResult


def _short(name: str, width: int = 10) -> str:
    return name if len(name) <= width else name[:width] + ".."


def render_settlement(room_id: str, result: RoomSettlementResult) -> str:
    lines: list[str] = [f"SETTLEMENT - room {room_id}", ""]

    lines.append(f"{'PLAYER':<12}  {'BUY IN':>12}  {'P&L':>12}")
    for p in result.players:
        lines.append(f"{_short(p.identifier):<12}  {format_money(p.buy_in):>12}  {format_signed(p.pnl):>12}")
    lines.append("")
    lines.append(f"total buy-in: {format_money(result.total_buy_in)}")
    lines.append(f"total cash-out: {format_money(result.total_cash_out)}")

    if result.mismatch != 0:
        lines.append("")
        lines.append(f"warning: mismatch of {format_money(result.mismatch)} recorded.")

    if result.settlements:
        lines.append("")
        lines.append("SETTLEMENTS")
        # dicts keep insertion order: winners appear in the order they are first paid
        by_winner: dict[str, list[tuple[str, int]]] = {}
        for s in result.settlements:
            by_winner.setdefault(s.to_player, []).append((s.from_player, s.amount))
        for winner, payments in by_winner.items():
            lines.append(f"@{winner} wins {format_money(sum(a for _, a in payments))} in total")
            for payer, amount in payments:
                lines.append(f"  @{payer} owes {format_money(amount)}")
    return "\n".join(lines)


def render_summary(room_id: str, owner_username: str, rows: list[BuyInShare], total: int) -> str:
    lines = [f"room summary: {room_id}", f"owner: @{owner_username}", ""]
    if not rows:
        lines.append("no players with buy-ins yet.")
        return "\n".join(lines)
    lines.append(f"players ({len(rows)})")
    for r in rows:
        pending = "" if r.joined else " (invited)"
        lines.append(f"@{r.username}{pending}: {format_money(r.buy_in)} ({r.share_pct:.1f}%)")
    lines.append("")
    lines.append(f"total: {format_money(total)}")
    return "\n".join(lines)
