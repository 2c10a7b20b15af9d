from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Query, Path, Response
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from stac.db import get_session
from stac.auth_deps import get_current_user
from stac.models.room import Room, Player
from stac.models.user import User
from stac.schemas.room import (
    InviteRequest, BuyInRequest, CashOutRequest, RoomPublic, PlayerPublic, BuyInEntryPublic,
    RoomListItem, BuyInResult, CashOutResult, RoomSummary, SummaryRow,
)
from stac.schemas.settlement import RoomSettlement, PlayerPnLPublic, SettlementPublic
from stac.services import rooms as svc
from stac.services.money import InvalidAmount, from_cents, to_cents
from stac.services.render import render_settlement, render_summary
from stac.services.settlement import RoomSettlementResult, pending_cash_outs

router = APIRouter(prefix="/rooms", tags=["rooms"])

_STATUS = {
    svc.NotRoomMember: 403,
    svc.NotRoomOwner: 403,
    svc.NotJoined: 403,
    svc.NotInvited: 403,
    svc.RoomSettled: 409,
    svc.InsufficientBuyIn: 409,
    svc.AlreadyInvited: 409,
    svc.AlreadyJoined: 409,
}

def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, svc.PendingCashOuts):
        return HTTPException(status_code=409, detail={"message": str(exc), "pending": exc.usernames})
    if isinstance(exc, InvalidAmount):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=_STATUS.get(type(exc), 400), detail=str(exc))

async def _load_room(session: AsyncSession, room_id: str, for_update: bool = False) -> Room:
    room = await svc.get_room(session, room_id, for_update=for_update)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room

def _player_public(p: Player) -> PlayerPublic:
    return PlayerPublic(
        username=p.username,
        joined=p.joined,
        buy_in=from_cents(p.buy_in),
        cash_out=from_cents(p.cash_out) if p.cash_out is not None else None,
        history=[
            BuyInEntryPublic(amount=from_cents(h.amount), action=h.action, created_at=h.created_at)
            for h in p.history
        ],
    )

def _room_public(room: Room, user: User) -> RoomPublic:
    return RoomPublic(
        id=room.id,
        owner_username=room.owner_username,
        settled=room.settled,
        created_at=room.created_at,
        is_owner=svc.is_owner(room, user),
        players=[_player_public(p) for p in room.players],
    )

def _settlement_public(room: Room, result: RoomSettlementResult, pending: list[str]) -> RoomSettlement:
    return RoomSettlement(
        room_id=room.id,
        settled=room.settled,
        total_buy_in=from_cents(result.total_buy_in),
        total_cash_out=from_cents(result.total_cash_out),
        mismatch=from_cents(result.mismatch),
        players=[
            PlayerPnLPublic(
                username=p.identifier,
                buy_in=from_cents(p.buy_in),
                cash_out=from_cents(p.cash_out) if p.cash_out is not None else None,
                pnl=from_cents(p.pnl),
            ) for p in result.players
        ],
        settlements=[
            SettlementPublic(from_username=s.from_player, to_username=s.to_player, amount=from_cents(s.amount))
            for s in result.settlements
        ],
        pending=pending,
    )

# ---------- rooms ----------

@router.post("", response_model=RoomPublic, status_code=201)
async def create_room(session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    try:
        room = await svc.create_room(session, user)
    except svc.RoomError as e:
        raise _http_error(e)
    await session.commit()
    return _room_public(room, user)

@router.get("", response_model=list[RoomListItem])
async def my_rooms(session: AsyncSession = Depends(get_session), user: User = Depends(get_current_user)):
    return [RoomListItem(id=rid, role=role) for rid, role in await svc.rooms_for_user(session, user)]

@router.get("/{room_id}", response_model=RoomPublic)
async def get_room(
    room_id: str = Path(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    room = await _load_room(session, room_id)
    # invited players may look before joining
    if not svc.is_owner(room, user) and svc.find_player(room, user) is None:
        raise HTTPException(status_code=403, detail="you don't have access to this room")
    return _room_public(room, user)

@router.delete("/{room_id}", status_code=204)
async def delete_room(
    room_id: str = Path(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    try:
        deleted = await svc.delete_room(session, room_id, user)
    except svc.RoomError as e:
        raise _http_error(e)
    if not deleted:
        raise HTTPException(status_code=404, detail="Room not found")
    await session.commit()
    return Response(status_code=204)

# ---------- membership ----------

@router.post("/{room_id}/invite", response_model=PlayerPublic, status_code=201)
async def invite(
    payload: InviteRequest,
    room_id: str = Path(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    room = await _load_room(session, room_id, for_update=True)
    try:
        player = await svc.invite_player(session, room, user, payload.username)
    except svc.RoomError as e:
        raise _http_error(e)
    await session.commit()
    return _player_public(player)

@router.post("/{room_id}/join", response_model=RoomPublic)
async def join(
    room_id: str = Path(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    room = await _load_room(session, room_id, for_update=True)
    try:
        await svc.join_room(session, room, user)
    except svc.RoomError as e:
        raise _http_error(e)
    await session.commit()
    return _room_public(room, user)

# ---------- money ----------

async def _buy_in(session: AsyncSession, room_id: str, user: User, payload: BuyInRequest, action: str) -> BuyInResult:
    room = await _load_room(session, room_id, for_update=True)
    amount = to_cents(payload.amount)
    try:
        player = await svc.update_buy_in(session, room, user, amount, action)
    except (svc.RoomError, InvalidAmount) as e:
        raise _http_error(e)
    await session.commit()
    return BuyInResult(room_id=room.id, username=player.username, action=action,
                       amount=from_cents(amount), total=from_cents(player.buy_in))

@router.post("/{room_id}/buyins", response_model=BuyInResult)
async def add_buy_in(
    payload: BuyInRequest,
    room_id: str = Path(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return await _buy_in(session, room_id, user, payload, "add")

@router.post("/{room_id}/buyins/remove", response_model=BuyInResult)
async def remove_buy_in(
    payload: BuyInRequest,
    room_id: str = Path(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return await _buy_in(session, room_id, user, payload, "remove")

@router.put("/{room_id}/cashout", response_model=CashOutResult)
async def cash_out(
    payload: CashOutRequest,
    room_id: str = Path(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    room = await _load_room(session, room_id, for_update=True)
    try:
        player = await svc.record_cash_out(session, room, user, to_cents(payload.amount))
    except (svc.RoomError, InvalidAmount) as e:
        raise _http_error(e)
    await session.commit()
    return CashOutResult(
        room_id=room.id,
        username=player.username,
        buy_in=from_cents(player.buy_in),
        cash_out=from_cents(player.cash_out),
        pnl=from_cents(player.cash_out - player.buy_in),
    )

# ---------- views ----------

@router.get("/{room_id}/summary", response_model=RoomSummary)
async def summary(
    room_id: str = Path(...),
    format: str = Query("json", pattern="^(json|text)$"),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    room = await _load_room(session, room_id)
    try:
        svc.require_access(room, user)
    except svc.RoomError as e:
        raise _http_error(e)
    rows, total = svc.buy_in_summary(room)
    if format == "text":
        return PlainTextResponse(render_summary(room.id, room.owner_username, rows, total))
    return RoomSummary(
        room_id=room.id,
        owner_username=room.owner_username,
        total_buy_in=from_cents(total),
        players=[SummaryRow(username=r.username, buy_in=from_cents(r.buy_in), share_pct=r.share_pct, joined=r.joined)
                 for r in rows],
    )

@router.get("/{room_id}/settlement", response_model=RoomSettlement)
async def preview_settlement(
    room_id: str = Path(...),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    """Settlement as it stands now, with anyone still missing a cash-out. Changes nothing."""
    room = await _load_room(session, room_id)
    try:
        svc.require_access(room, user)
    except svc.RoomError as e:
        raise _http_error(e)
    result = await svc.calculate_room_settlement(session, room.id)
    if result is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return _settlement_public(room, result, pending_cash_outs(svc.active_ledgers(room)))

@router.post("/{room_id}/settle", response_model=RoomSettlement)
async def settle(
    room_id: str = Path(...),
    format: str = Query("json", pattern="^(json|text)$"),
    session: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
):
    room = await _load_room(session, room_id, for_update=True)
    try:
        result = await svc.settle_room(session, room, user)
    except svc.RoomError as e:
        raise _http_error(e)
    await session.commit()
    if format == "text":
        return PlainTextResponse(render_settlement(room.id, result))
    return _settlement_public(room, result, [])
