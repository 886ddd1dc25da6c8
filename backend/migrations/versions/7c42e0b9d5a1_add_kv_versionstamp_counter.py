"""Add kv_versionstamp counter

Revision ID: 7c42e0b9d5a1
Revises: 3a1f9c2d7e10
Create Date: 2026-10-20 09:41:07.118302
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c42e0b9d5a1'
down_revision: Union[str, Sequence[str], None] = '3a1f9c2d7e10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'kv_versionstamp',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('value', sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    # start above every stamp already handed out
    op.execute(
        "INSERT INTO kv_versionstamp (id, value) "
        "SELECT 1, COALESCE(MAX(versionstamp), 0) FROM kv_entries"
    )


def downgrade() -> None:
    op.drop_table('kv_versionstamp')
