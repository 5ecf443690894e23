"""Investor firm and NDA consent columns; nda_templates table.

Revision ID: c3f84b17e25a
Revises: a7c1e9d2b4f0
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "c3f84b17e25a"
down_revision: Union[str, Sequence[str], None] = "a7c1e9d2b4f0"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "nda_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.now()),
    )

    # batch mode: SQLite cannot add a foreign key with ALTER TABLE.
    with op.batch_alter_table("investors") as batch_op:
        batch_op.add_column(sa.Column("firm", sa.String(255), nullable=True))
        batch_op.add_column(sa.Column("nda_required", sa.Boolean(), nullable=False, server_default=sa.true()))
        batch_op.add_column(sa.Column("nda_ip_address", sa.String(64), nullable=True))
        batch_op.add_column(sa.Column("nda_user_agent", sa.String(512), nullable=True))
        batch_op.add_column(sa.Column("nda_template_id", sa.Integer(), nullable=True))
        batch_op.create_foreign_key(
            "fk_investors_nda_template_id",
            "nda_templates",
            ["nda_template_id"],
            ["id"],
            ondelete="SET NULL",
        )


def downgrade() -> None:
    with op.batch_alter_table("investors") as batch_op:
        batch_op.drop_constraint("fk_investors_nda_template_id", type_="foreignkey")
        batch_op.drop_column("nda_template_id")
        batch_op.drop_column("nda_user_agent")
        batch_op.drop_column("nda_ip_address")
        batch_op.drop_column("nda_required")
        batch_op.drop_column("firm")
    op.drop_table("nda_templates")
