"""create_restaurants

Public-schema tenant registry. Per-tenant tables are not managed here:
they live in ``tenant_<slug>`` schemas created by the tenant provisioner.

Revision ID: 3f9a1c7e2b40
Revises:
Create Date: 2026-09-28 10:12:41.503917

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f9a1c7e2b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the restaurants table."""
    op.create_table(
        "restaurants",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("restaurant_code", sa.String(length=16), nullable=False),
        sa.Column("email", sa.String(length=254), nullable=True),
        sa.Column(
            "is_active", sa.Boolean(), server_default=sa.true(), nullable=False
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_restaurants_slug"), "restaurants", ["slug"], unique=True)
    op.create_index(
        op.f("ix_restaurants_restaurant_code"),
        "restaurants",
        ["restaurant_code"],
        unique=True,
    )


def downgrade() -> None:
    """Drop the restaurants table."""
    op.drop_index(op.f("ix_restaurants_restaurant_code"), table_name="restaurants")
    op.drop_index(op.f("ix_restaurants_slug"), table_name="restaurants")
    op.drop_table("restaurants")
