from __future__ import annotations
from decimal import Decimal
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field

class InviteRequest(BaseModel):
    username: str = Field(min_length=1, max_length=33)

class BuyInRequest(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)

class CashOutRequest(BaseModel):
    amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)

class BuyInEntryPublic(BaseModel):
    amount: Decimal
    action: Literal["add", "remove"]
    created_at: datetime

class PlayerPublic(BaseModel):
    username: str
    joined: bool
    buy_in: Decimal
    cash_out: Decimal | None = None
    history: list[BuyInEntryPublic] = []

class RoomPublic(BaseModel):
    id: str
    owner_username: str
    settled: bool
    created_at: datetime
    is_owner: bool
    players: list[PlayerPublic]

class RoomListItem(BaseModel):
    id: str
    role: Literal["owner", "player"]

class BuyInResult(BaseModel):
    room_id: str
    username: str
    action: Literal["add", "remove"]
    amount: Decimal
    total: Decimal

class CashOutResult(BaseModel):
    room_id: str
    username: str
    buy_in: Decimal
    cash_out: Decimal
    pnl: Decimal

class SummaryRow(BaseModel):
    username: str
    buy_in: Decimal
    share_pct: float
    joined: bool

class RoomSummary(BaseModel):
    room_id: str
    owner_username: str
    total_buy_in: Decimal
    players: list[SummaryRow]
