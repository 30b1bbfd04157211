"""Create notes table

Revision ID: 4f1d2c7a9b30
Revises:
Create Date: 2025-10-02 18:05:11.204117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from cloudnotes.core.models.types import GUID


# revision identifiers, used by Alembic.
revision: str = '4f1d2c7a9b30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - notes collection."""
    op.create_table(
        'notes',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('length(text) > 0', name='ck_notes_text_not_empty'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_notes_created_at', 'notes', ['created_at'])
    op.create_index('idx_notes_user_created', 'notes', ['user_id', 'created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_notes_user_created', table_name='notes')
    op.drop_index('idx_notes_created_at', table_name='notes')
    op.drop_table('notes')
