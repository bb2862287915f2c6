"""create_prs_table

Revision ID: 3f1c2a9e7d41
Revises:
Create Date: 2026-01-12 09:00:00.000000+00:00

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c2a9e7d41"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Apply migration changes."""
    op.create_table(
        'prs',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('repo', sa.String(200), nullable=False),
        sa.Column('owner', sa.String(200), nullable=False),
        sa.Column('comment_count', sa.Integer(), nullable=False),
        sa.Column('bot_comments', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lines_changed', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('scraped_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_prs_owner_repo', 'prs', ['owner', 'repo'])


def downgrade() -> None:
    """Revert migration changes."""
    op.drop_index('ix_prs_owner_repo', table_name='prs')
    op.drop_table('prs')
