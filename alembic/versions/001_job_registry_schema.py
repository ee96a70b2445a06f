"""Job registry table

Revision ID: 001
Revises: 
Create Date: 2026-10-16 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create job_registry table
    op.create_table('job_registry',
        sa.Column('job_id', sa.Text(), nullable=False),
        sa.Column('callback_url', sa.Text(), nullable=False),
        sa.Column('signing_secret', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('job_id')
    )
    op.create_index('ix_job_registry_created_at', 'job_registry', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_job_registry_created_at', table_name='job_registry')
    op.drop_table('job_registry')
