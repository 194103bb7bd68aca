"""Scheduled purchase deliveries

Revision ID: 20261019_purchase_delivery
Revises: 20261019_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_purchase_delivery"
down_revision = "20261019_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("purchases", schema=None) as batch_op:
        batch_op.add_column(sa.Column("expected_delivery_at", sa.DateTime(), nullable=True))
        batch_op.create_index("ix_purchases_status_delivery", ["status", "expected_delivery_at"], unique=False)


def downgrade():
    with op.batch_alter_table("purchases", schema=None) as batch_op:
        batch_op.drop_index("ix_purchases_status_delivery")
        batch_op.drop_column("expected_delivery_at")
