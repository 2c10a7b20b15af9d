from __future__ import annotations
from dataclasses import dataclass
from sqlalchemy import select, update, exists, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
import structlog

from stac.config import settings
from stac.models.room import Room, Player, BuyInHistory
from stac.models.user import User
from stac.services.room_ids import generate_room_id, is_valid_room_id, normalize_username
from stac.services.money import InvalidAmount
from stac.services.settlement import (
    PlayerLedger,
    RoomSettlementResult,
    calculate_settlement,
    pending_cash_outs,
)

log = structlog.get_logger()


class RoomError(Exception):
    pass

class NotRoomMember(RoomError):
    pass

class NotRoomOwner(RoomError):
    pass

class NotJoined(RoomError):
    pass

class RoomSettled(RoomError):
    pass

class InsufficientBuyIn(RoomError):
    pass

class AlreadyInvited(RoomError):
    pass

class NotInvited(RoomError):
    pass

class AlreadyJoined(RoomError):
    pass

class PendingCashOuts(RoomError):
    def __init__(self, usernames: list[str]):
        super().__init__("waiting for cashouts from: " + ", ".join(f"@{u}" for u in usernames))
        self.usernames = usernames


# ---------- rooms ----------

async def create_room(session: AsyncSession, owner: User) -> Room:
    """New room owned by `owner`; the owner is seated as a joined player."""
    for _ in range(10):
        room_id = generate_room_id(settings.room_id_length)
        if await session.get(Room, room_id) is None:
            break
    else:
        raise RoomError("could not allocate a room id")

    room = Room(
        id=room_id,
        owner_id=owner.id,
        owner_username=owner.username,
        settled=False,
        players=[Player(room_id=room_id, user_id=owner.id, username=owner.username,
                        buy_in=0, cash_out=None, joined=True, history=[])],
    )
    session.add(room)
    await session.flush()
    log.info("room_created", room_id=room.id, owner=owner.username)
    return room


async def get_room(session: AsyncSession, room_id: str, for_update: bool = False) -> Room | None:
    """`for_update` row-locks the room until commit on backends that support it."""
    room_id = room_id.strip().lower()
    if not is_valid_room_id(room_id, settings.room_id_length):
        return None
    return await session.get(Room, room_id, with_for_update=for_update)


async def delete_room(session: AsyncSession, room_id: str, user: User) -> bool:
    room = await get_room(session, room_id)
    if room is None:
        return False
    if room.owner_id != user.id:
        raise NotRoomOwner("only the owner can delete this room")
    await session.delete(room)
    await session.flush()
    log.info("room_deleted", room_id=room.id, owner=user.username)
    return True


async def rooms_for_user(session: AsyncSession, user: User) -> list[tuple[str, str]]:
    """[(room_id, role)] with owned rooms first, then rooms joined as a player."""
    owned = (await session.execute(
        select(Room.id).where(Room.owner_id == user.id).order_by(Room.created_at.asc())
    )).scalars().all()
    playing = (await session.execute(
        select(Player.room_id, Room.created_at)
        .join(Room, Room.id == Player.room_id)
        .where(Player.joined.is_(True), or_(Player.user_id == user.id, Player.username == user.username))
        .distinct()
        .order_by(Room.created_at.asc(), Player.room_id.asc())
    )).scalars().all()

    out = [(rid, "owner") for rid in owned]
    seen = set(owned)
    for rid in playing:
        if rid not in seen:
            out.append((rid, "player"))
            seen.add(rid)
    return out


async def set_room_settled(session: AsyncSession, room: Room, settled: bool = True) -> bool:
    """
    Flip the flag in SQL; False when it already had that value.
    On SQLite the UPDATE also takes the database write lock, so reads after it
    see every committed buy-in and cash-out.
    """
    res = await session.execute(
        update(Room)
        .where(Room.id == room.id, Room.settled.is_(not settled))
        .values(settled=settled)
        .execution_options(synchronize_session=False)
    )
    set_committed_value(room, "settled", settled)
    if res.rowcount == 0:
        return False
    log.info("room_settled", room_id=room.id, settled=settled)
    return True


async def _reload(session: AsyncSession, room: Room) -> None:
    """Overwrite the in-memory room, seats and history with committed rows."""
    await session.execute(
        select(Room).where(Room.id == room.id).execution_options(populate_existing=True)
    )
    await session.execute(
        select(Player).where(Player.room_id == room.id).execution_options(populate_existing=True)
    )


def _not_settled(room_id: str):
    return ~exists().where(Room.id == room_id, Room.settled.is_(True))


# ---------- membership ----------

def find_player(room: Room, user: User) -> Player | None:
    for p in room.players:
        if p.user_id == user.id or p.username == user.username:
            return p
    return None


def is_owner(room: Room, user: User) -> bool:
    return room.owner_id == user.id


def require_access(room: Room, user: User) -> Player | None:
    """Owner or joined player; returns the caller's seat if any."""
    player = find_player(room, user)
    if is_owner(room, user):
        return player
    if player is None or not player.joined:
        raise NotRoomMember("you don't have access to this room")
    return player


async def invite_player(session: AsyncSession, room: Room, inviter: User, username: str) -> Player:
    if not is_owner(room, inviter):
        raise NotRoomOwner("only the owner can invite players")
    name = normalize_username(username)
    if not name:
        raise RoomError("username is required")
    if any(p.username == name for p in room.players):
        raise AlreadyInvited(f"@{name} is already in this room")
    player = Player(room_id=room.id, user_id=None, username=name, buy_in=0, cash_out=None, joined=False, history=[])
    room.players.append(player)
    await session.flush()
    log.info("player_invited", room_id=room.id, username=name, by=inviter.username)
    return player


async def join_room(session: AsyncSession, room: Room, user: User) -> Player:
    player = next((p for p in room.players if p.username == user.username), None)
    if player is None:
        raise NotInvited("you have not been invited to this room")
    if player.joined:
        raise AlreadyJoined("you already joined this room")
    player.joined = True
    player.user_id = user.id
    await session.flush()
    log.info("player_joined", room_id=room.id, username=user.username)
    return player


def _own_seat(room: Room, user: User) -> Player:
    player = find_player(room, user)
    if player is None:
        if not is_owner(room, user):
            raise NotRoomMember("you are not a member of this room")
        # rooms created before the owner was auto-seated
        player = Player(room_id=room.id, user_id=user.id, username=user.username,
                        buy_in=0, cash_out=None, joined=True, history=[])
        room.players.append(player)
    if not player.joined:
        raise NotJoined("you need to join the room first")
    return player


# ---------- buy-ins & cash-outs ----------

async def update_buy_in(session: AsyncSession, room: Room, user: User, amount: int, action: str) -> Player:
    """Add to or remove from the caller's own buy-in; every change is kept in history."""
    if action not in ("add", "remove"):
        raise ValueError(f"unknown buy-in action: {action}")
    if amount <= 0:
        raise InvalidAmount("amount must be a positive number")
    if room.settled:
        raise RoomSettled("this room has already been settled")
    player = _own_seat(room, user)
    if player.id is None:
        await session.flush()

    # arithmetic happens in the UPDATE so concurrent changes to one seat add up
    delta = amount if action == "add" else -amount
    res = await session.execute(
        update(Player)
        .where(Player.id == player.id, Player.buy_in + delta >= 0, _not_settled(room.id))
        .values(buy_in=Player.buy_in + delta)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        settled, current = (await session.execute(
            select(Room.settled, Player.buy_in).join(Player, Player.room_id == Room.id).where(Player.id == player.id)
        )).one()
        if settled:
            raise RoomSettled("this room has already been settled")
        if current == 0:
            raise InsufficientBuyIn("you have no buy-in to remove")
        raise InsufficientBuyIn("insufficient buy-in")

    total = await session.scalar(select(Player.buy_in).where(Player.id == player.id))
    set_committed_value(player, "buy_in", total)
    player.history.insert(0, BuyInHistory(room_id=room.id, amount=amount, action=action))
    await session.flush()
    log.info("buy_in_updated", room_id=room.id, username=player.username, action=action,
             amount=amount, total=player.buy_in)
    return player


async def record_cash_out(session: AsyncSession, room: Room, user: User, amount: int) -> Player:
    """Overwrite the caller's final chip count. 0 is a valid cash-out (busted)."""
    if amount < 0:
        raise InvalidAmount("amount must be a non-negative number")
    if room.settled:
        raise RoomSettled("this room has already been settled")
    player = _own_seat(room, user)
    if player.id is None:
        await session.flush()

    res = await session.execute(
        update(Player)
        .where(Player.id == player.id, _not_settled(room.id))
        .values(cash_out=amount)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise RoomSettled("this room has already been settled")
    set_committed_value(player, "cash_out", amount)
    set_committed_value(player, "buy_in", await session.scalar(select(Player.buy_in).where(Player.id == player.id)))
    log.info("cash_out_recorded", room_id=room.id, username=player.username,
             cash_out=amount, pnl=amount - player.buy_in)
    return player


# ---------- settlement ----------

def active_players(room: Room) -> list[Player]:
    """Joined players and anyone with money on the table, largest buy-in first."""
    active = [p for p in room.players if p.joined or p.buy_in > 0]
    active.sort(key=lambda p: (-p.buy_in, p.id or 0))
    return active


def active_ledgers(room: Room) -> list[PlayerLedger]:
    return [PlayerLedger(identifier=p.username, buy_in=p.buy_in, cash_out=p.cash_out) for p in active_players(room)]


async def calculate_room_settlement(session: AsyncSession, room_id: str) -> RoomSettlementResult | None:
    """None when the room does not exist."""
    room = await get_room(session, room_id)
    if room is None:
        return None
    return calculate_settlement(active_ledgers(room))


async def settle_room(session: AsyncSession, room: Room, user: User) -> RoomSettlementResult:
    """
    Compute the settlement for a room the caller can see.
    Refuses while anyone with a buy-in has no recorded cash-out.
    The owner settling marks the room as settled.
    """
    require_access(room, user)
    if is_owner(room, user) and not room.settled:
        # flag first, then read: the snapshot cannot miss a cash-out committed meanwhile.
        # PendingCashOuts leaves the flag to the caller's rollback.
        await set_room_settled(session, room, True)
        await _reload(session, room)
    ledgers = active_ledgers(room)
    pending = pending_cash_outs(ledgers)
    if pending:
        raise PendingCashOuts(pending)
    result = calculate_settlement(ledgers)
    log.info("settlement_computed", room_id=room.id, players=len(result.players),
             transfers=len(result.settlements), mismatch=result.mismatch)
    return result


# ---------- summary ----------

@dataclass(frozen=True)
class BuyInShare:
    username: str
    buy_in: int
    share_pct: float
    joined: bool


def buy_in_summary(room: Room) -> tuple[list[BuyInShare], int]:
    active = active_players(room)
    total = sum(p.buy_in for p in active)
    rows = [
        BuyInShare(
            username=p.username,
            buy_in=p.buy_in,
            share_pct=round(p.buy_in / total * 100, 1) if total > 0 else 0.0,
            joined=p.joined,
        )
        for p in active
    ]
    return rows, total
