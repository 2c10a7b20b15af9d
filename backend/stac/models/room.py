from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, BigInteger, Boolean, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, func
from stac.db import Base, utcnow

class Room(Base):
    __tablename__ = "rooms"
    id: Mapped[str] = mapped_column(String(12), primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    owner_username: Mapped[str] = mapped_column(String(32), nullable=False)
    settled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    players: Mapped[list["Player"]] = relationship(
        back_populates="room", cascade="all, delete-orphan", order_by="Player.id", lazy="selectin"
    )

class Player(Base):
    """
    A seat in a room. Money columns are integer cents.
      - buy_in   => running total of add/remove events (see BuyInHistory)
      - cash_out => last recorded final chip count; NULL until recorded, 0 = busted
    """
    __tablename__ = "players"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    room_id: Mapped[str] = mapped_column(String(12), ForeignKey("rooms.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)
    username: Mapped[str] = mapped_column(String(32), nullable=False)
    buy_in: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    cash_out: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    joined: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    room: Mapped[Room] = relationship(back_populates="players")
    history: Mapped[list["BuyInHistory"]] = relationship(
        back_populates="player", cascade="all, delete-orphan",
        order_by="BuyInHistory.id.desc()", lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("room_id", "username", name="uq_players_room_username"),
        CheckConstraint("buy_in >= 0", name="ck_players_buy_in_nonneg"),
        CheckConstraint("cash_out IS NULL OR cash_out >= 0", name="ck_players_cash_out_nonneg"),
    )

class BuyInHistory(Base):
    __tablename__ = "buyin_history"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    room_id: Mapped[str] = mapped_column(String(12), ForeignKey("rooms.id", ondelete="CASCADE"), index=True, nullable=False)
    player_id: Mapped[int] = mapped_column(Integer, ForeignKey("players.id", ondelete="CASCADE"), index=True, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(String(8), nullable=False)  # add | remove
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    player: Mapped[Player] = relationship(back_populates="history")

    __table_args__ = (
        CheckConstraint("action IN ('add', 'remove')", name="ck_buyin_history_action"),
    )
