from __future__ import annotations
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(length=32), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=64), nullable=True),
        sa.Column("last_name", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_seen", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "rooms",
        sa.Column("id", sa.String(length=12), primary_key=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("owner_username", sa.String(length=32), nullable=False),
        sa.Column("settled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_rooms_owner_id", "rooms", ["owner_id"])

    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room_id", sa.String(length=12), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("username", sa.String(length=32), nullable=False),
        sa.Column("buy_in", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("cash_out", sa.BigInteger(), nullable=True),
        sa.Column("joined", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("room_id", "username", name="uq_players_room_username"),
        sa.CheckConstraint("buy_in >= 0", name="ck_players_buy_in_nonneg"),
        sa.CheckConstraint("cash_out IS NULL OR cash_out >= 0", name="ck_players_cash_out_nonneg"),
    )
    op.create_index("ix_players_room_id", "players", ["room_id"])
    op.create_index("ix_players_user_id", "players", ["user_id"])

    op.create_table(
        "buyin_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("room_id", sa.String(length=12), sa.ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("players.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("action", sa.String(length=8), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("action IN ('add', 'remove')", name="ck_buyin_history_action"),
    )
    op.create_index("ix_buyin_history_room_id", "buyin_history", ["room_id"])
    op.create_index("ix_buyin_history_player_id", "buyin_history", ["player_id"])

def downgrade() -> None:
    op.drop_index("ix_buyin_history_player_id", table_name="buyin_history")
    op.drop_index("ix_buyin_history_room_id", table_name="buyin_history")
    op.drop_table("buyin_history")
    op.drop_index("ix_players_user_id", table_name="players")
    op.drop_index("ix_players_room_id", table_name="players")
    op.drop_table("players")
    op.drop_index("ix_rooms_owner_id", table_name="rooms")
    op.drop_table("rooms")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
