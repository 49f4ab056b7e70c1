"""add_phase_windows

Create `phase_windows` and `phase_window_track_locks`.

On PostgreSQL the per-track non-overlap rule is also enforced by an
exclusion constraint, so two writers racing past the track lock still
cannot both commit intersecting intervals.

Revision ID: 7c1e4a9b2d30
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e4a9b2d30"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())
    is_postgres = bind.dialect.name == "postgresql"

    if "phase_windows" not in existing_tables:
        op.create_table(
            "phase_windows",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("phase_kind", sa.String(length=20), nullable=False),
            sa.Column("track", sa.String(length=20), nullable=False),
            sa.Column("cycle", sa.String(length=20), nullable=True),
            sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("enforced", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("start_at < end_at", name="ck_phase_windows_start_before_end"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_phase_windows_lookup", "phase_windows", ["phase_kind", "track", "cycle"],
        )
        op.create_index(
            "ix_phase_windows_track_range", "phase_windows", ["track", "start_at", "end_at"],
        )

        if is_postgres:
            op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
            op.execute(
                "ALTER TABLE phase_windows ADD CONSTRAINT ex_phase_windows_track_no_overlap "
                "EXCLUDE USING gist (track WITH =, tstzrange(start_at, end_at, '[)') WITH &&)"
            )

    if "phase_window_track_locks" not in existing_tables:
        op.create_table(
            "phase_window_track_locks",
            sa.Column("track", sa.String(length=20), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("track"),
        )
        op.bulk_insert(
            sa.table("phase_window_track_locks", sa.column("track", sa.String)),
            [{"track": t} for t in ("IDP", "UROP", "CAPSTONE")],
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "phase_window_track_locks" in existing_tables:
        op.drop_table("phase_window_track_locks")

    if "phase_windows" in existing_tables:
        if bind.dialect.name == "postgresql":
            op.execute(
                "ALTER TABLE phase_windows DROP CONSTRAINT IF EXISTS ex_phase_windows_track_no_overlap"
            )
        op.drop_index("ix_phase_windows_track_range", table_name="phase_windows")
        op.drop_index("ix_phase_windows_lookup", table_name="phase_windows")
        op.drop_table("phase_windows")
