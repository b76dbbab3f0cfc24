"""Telemetry tables: tracks, track points, flights, flight samples

Revision ID: 3f1c9a2b7d4e
Revises:
Create Date: 2026-10-17 09:12:41.118204
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a2b7d4e'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "ship_tracks",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("start_time", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_update", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("total_points", sa.Integer(), server_default="0", nullable=False),
    )
    op.create_index("ix_ship_tracks_last_update", "ship_tracks", ["last_update"])

    op.create_table(
        "track_points",
        sa.Column("track_id", sa.String(24), sa.ForeignKey("ship_tracks.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("seq", sa.Integer(), primary_key=True),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
    )

    op.create_table(
        "flights",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("track_id", sa.String(24), sa.ForeignKey("ship_tracks.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "flight_samples",
        sa.Column("flight_id", sa.String(24), sa.ForeignKey("flights.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("seq", sa.Integer(), primary_key=True),
        sa.Column("battery_capacity", sa.Float(), nullable=False),
        sa.Column("estimated_remaining_usage_time", sa.Float(), nullable=False),
        sa.Column("cabin_temperature", sa.Float(), nullable=False),
        sa.Column("aircraft_altitude", sa.Float(), nullable=False),
        sa.Column("distance_to_fan", sa.Float(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("flight_samples")
    op.drop_table("flights")
    op.drop_table("track_points")
    op.drop_index("ix_ship_tracks_last_update", table_name="ship_tracks")
    op.drop_table("ship_tracks")
