from __future__ import annotations
from decimal import Decimal
from pydantic import BaseModel, Field

class PlayerPnLPublic(BaseModel):
    username: str
    buy_in: Decimal
    cash_out: Decimal | None = None
    pnl: Decimal

class SettlementPublic(BaseModel):
    from_username: str = Field(serialization_alias="from")
    to_username: str = Field(serialization_alias="to")
    amount: Decimal

class RoomSettlement(BaseModel):
    room_id: str
    settled: bool
    total_buy_in: Decimal
    total_cash_out: Decimal
    mismatch: Decimal
    players: list[PlayerPnLPublic]
    settlements: list[SettlementPublic]
    pending: list[str] = []
