"""one active subscription per user

Revision ID: 8b51e0c4d2a7
Revises: 3f0c2a7d91b4
Create Date: 2026-10-20 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b51e0c4d2a7'
down_revision: Union[str, Sequence[str], None] = '3f0c2a7d91b4'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "subscriptions",
        sa.Column("refund_due", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.alter_column("subscriptions", "refund_due", server_default=None)

    op.create_index(
        "uq_subscriptions_one_active_per_user",
        "subscriptions",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'Active'"),
        sqlite_where=sa.text("status = 'Active'"),
    )


def downgrade() -> None:
    op.drop_index("uq_subscriptions_one_active_per_user", table_name="subscriptions")
    op.drop_column("subscriptions", "refund_due")
