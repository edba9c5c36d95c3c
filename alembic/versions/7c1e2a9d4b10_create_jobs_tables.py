"""create_jobs_tables

Revision ID: 7c1e2a9d4b10
Revises:
Create Date: 2026-10-16 09:12:44.108213

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c1e2a9d4b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('host', sa.String(length=255), nullable=False),
        sa.Column('api_key', sa.String(length=128), nullable=True),
        sa.Column('automatic_failure_threshold', sa.Integer(), nullable=False),
        sa.Column('labels', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('last_reported_at', sa.DateTime(), nullable=True),
        sa.Column('last_status', sa.String(length=16), nullable=True),
        sa.Column('last_duration', sa.Float(), nullable=True),
        sa.Column('last_labels', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.current_timestamp(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('api_key')
    )

    # (name, host) is unique among non-retired jobs only
    op.create_index(
        'uq_jobs_name_host_live', 'jobs', ['name', 'host'], unique=True,
        sqlite_where=sa.text("status != 'retired'"),
        postgresql_where=sa.text("status != 'retired'"),
    )
    op.create_index('idx_jobs_status', 'jobs', ['status'])
    op.create_index('idx_jobs_last_reported', 'jobs', ['last_reported_at'])

    op.create_table('job_results',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('labels', sa.JSON(), nullable=False),
        sa.Column('duration', sa.Float(), nullable=False),
        sa.Column('output', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp(), nullable=False),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_job_results_job_ts', 'job_results', ['job_id', 'timestamp'])
    op.create_index('idx_job_results_status', 'job_results', ['status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_job_results_status', 'job_results')
    op.drop_index('idx_job_results_job_ts', 'job_results')
    op.drop_table('job_results')

    op.drop_index('idx_jobs_last_reported', 'jobs')
    op.drop_index('idx_jobs_status', 'jobs')
    op.drop_index('uq_jobs_name_host_live', 'jobs')
    op.drop_table('jobs')
