"""Create kv_entries

Revision ID: 3a1f9c2d7e10
Revises:
Create Date: 2026-10-19 10:12:31.204518
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3a1f9c2d7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'kv_entries',
        sa.Column('key', sa.String(), nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('versionstamp', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.PrimaryKeyConstraint('key'),
    )
    op.create_index('ix_kv_entries_versionstamp', 'kv_entries', ['versionstamp'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_kv_entries_versionstamp', table_name='kv_entries')
    op.drop_table('kv_entries')
