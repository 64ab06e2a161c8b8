"""orphan payments

Revision ID: 0002_orphan_payments
Revises: 0001_initial_schema
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002_orphan_payments"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    if "orphan_payments" in sa.inspect(bind).get_table_names():
        # 0001 builds the schema from the current models and may already have it
        return

    op.create_table(
        "orphan_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("namespace_id", sa.Integer(), nullable=False),
        sa.Column("streamer_id", sa.String(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(), nullable=False, server_default="IDR"),
        sa.Column("payment_method", sa.String(), nullable=True),
        sa.Column("registration", sa.JSON(), nullable=False),
        sa.Column("custom_data", sa.JSON(), nullable=False),
        sa.Column("payment_status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("queue_entry_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["namespace_id"], ["mabar_settings.id"]),
        sa.ForeignKeyConstraint(["queue_entry_id"], ["queue_entries.id"]),
    )
    op.create_index("ix_orphan_payments_id", "orphan_payments", ["id"])
    op.create_index("ix_orphan_payments_order_id", "orphan_payments", ["order_id"], unique=True)
    op.create_index("ix_orphan_payments_namespace_id", "orphan_payments", ["namespace_id"])
    op.create_index("ix_orphan_payments_streamer_id", "orphan_payments", ["streamer_id"])
    op.create_index("ix_orphan_payments_payment_status", "orphan_payments", ["payment_status"])


def downgrade():
    op.drop_index("ix_orphan_payments_payment_status", table_name="orphan_payments")
    op.drop_index("ix_orphan_payments_streamer_id", table_name="orphan_payments")
    op.drop_index("ix_orphan_payments_namespace_id", table_name="orphan_payments")
    op.drop_index("ix_orphan_payments_order_id", table_name="orphan_payments")
    op.drop_index("ix_orphan_payments_id", table_name="orphan_payments")
    op.drop_table("orphan_payments")
