"""create_organizations_table

Revision ID: 3f1a9c2d7e10
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create organizations table with self-referencing parent pointer."""
    op.create_table(
        'organizations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('slug', sa.String(length=50), nullable=False),
        sa.Column('parent_organization_id', UUID(as_uuid=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delete_scheduled_for', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False),
    )

    op.create_foreign_key(
        'organizations_parent_organization_id_fkey',
        'organizations', 'organizations',
        ['parent_organization_id'], ['id'],
        ondelete='SET NULL'
    )

    # Create indexes
    op.create_index('idx_organizations_slug', 'organizations', ['slug'], unique=True)
    op.create_index('idx_organizations_parent_organization_id', 'organizations', ['parent_organization_id'])
    op.create_index('idx_organizations_created_at', 'organizations', ['created_at'])


def downgrade() -> None:
    """Drop organizations table."""
    op.drop_index('idx_organizations_created_at', table_name='organizations')
    op.drop_index('idx_organizations_parent_organization_id', table_name='organizations')
    op.drop_index('idx_organizations_slug', table_name='organizations')
    op.drop_constraint('organizations_parent_organization_id_fkey', 'organizations', type_='foreignkey')
    op.drop_table('organizations')
