"""Create payroll job and row tables

Revision ID: 3f1c2a9d7e10
Revises:
Create Date: 2026-10-18 10:12:44.318205

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('payroll_jobs',
        sa.Column('id', sa.String(length=50), nullable=False),
        sa.Column('uploader_id', sa.String(length=100), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('total_rows', sa.Integer(), nullable=False),
        sa.Column('valid_row_count', sa.Integer(), nullable=False),
        sa.Column('invalid_row_count', sa.Integer(), nullable=False),
        sa.Column('processed_row_count', sa.Integer(), nullable=False),
        sa.Column('failed_row_count', sa.Integer(), nullable=False),
        sa.Column('raw_payload_json', sa.Text(), nullable=True),
        sa.Column('error_summary_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payroll_jobs_uploader_id'), 'payroll_jobs', ['uploader_id'], unique=False)
    op.create_index(op.f('ix_payroll_jobs_status'), 'payroll_jobs', ['status'], unique=False)
    op.create_index(op.f('ix_payroll_jobs_created_at'), 'payroll_jobs', ['created_at'], unique=False)

    op.create_table('payroll_rows',
        sa.Column('id', sa.String(length=50), nullable=False),
        sa.Column('job_id', sa.String(length=50), nullable=False),
        sa.Column('row_index', sa.Integer(), nullable=False),
        sa.Column('input_json', sa.Text(), nullable=False),
        sa.Column('normalized_json', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('max_retries', sa.Integer(), nullable=False),
        sa.Column('provider_response_json', sa.Text(), nullable=True),
        sa.Column('error_message', sa.String(length=1000), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['job_id'], ['payroll_jobs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('job_id', 'row_index', name='uq_payroll_rows_job_row_index')
    )
    op.create_index(op.f('ix_payroll_rows_job_id'), 'payroll_rows', ['job_id'], unique=False)
    op.create_index(op.f('ix_payroll_rows_status'), 'payroll_rows', ['status'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_payroll_rows_status'), table_name='payroll_rows')
    op.drop_index(op.f('ix_payroll_rows_job_id'), table_name='payroll_rows')
    op.drop_table('payroll_rows')
    op.drop_index(op.f('ix_payroll_jobs_created_at'), table_name='payroll_jobs')
    op.drop_index(op.f('ix_payroll_jobs_status'), table_name='payroll_jobs')
    op.drop_index(op.f('ix_payroll_jobs_uploader_id'), table_name='payroll_jobs')
    op.drop_table('payroll_jobs')
