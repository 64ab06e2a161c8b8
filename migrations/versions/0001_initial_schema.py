"""initial_schema

Revision ID: 0001_initial_schema
Revises: None
Create Date: 2026-10-19
"""

from alembic import context, op

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _metadata():
    from app.db import Base
    from app.models import counters, donor, queue, session, settings  # noqa: F401

    return Base.metadata


def upgrade() -> None:
    if context.is_offline_mode():
        raise RuntimeError("Initial schema migration requires online mode (DB connection).")

    bind = op.get_bind()
    _metadata().create_all(bind=bind, checkfirst=True)


def downgrade() -> None:
    if context.is_offline_mode():
        raise RuntimeError("Initial schema migration requires online mode (DB connection).")

    bind = op.get_bind()
    _metadata().drop_all(bind=bind, checkfirst=True)
