"""initial matching schema

Revision ID: 3c1f0a9d2b47
Revises:
Create Date: 2026-10-19 09:12:40.118302

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f0a9d2b47'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LIVE_TASK = "status IN ('pending', 'processing')"


def upgrade() -> None:
    op.create_table(
        'candidate_profiles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('zip_code', sa.String(10)),
        sa.Column('travel_radius', sa.Integer()),
        sa.Column('availability_days', sa.JSON()),
        sa.Column('availability_shifts', sa.JSON()),
        sa.Column('job_types', sa.JSON()),
        sa.Column('skills', sa.JSON()),
        sa.Column('career_goal', sa.String(32)),
        sa.Column('opt_in_email_alerts', sa.Boolean()),
        sa.Column('opt_in_sms_alerts', sa.Boolean()),
        sa.Column('resume_text', sa.Text()),
        sa.Column('resume_updated_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_candidate_profiles_user_id', 'candidate_profiles', ['user_id'], unique=True)

    op.create_table(
        'resume_embeddings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('model', sa.String(128), nullable=False),
        sa.Column('dim', sa.Integer(), nullable=False),
        sa.Column('vector', sa.LargeBinary(), nullable=False),
        sa.Column('skills', sa.JSON()),
        sa.Column('job_titles', sa.JSON()),
        sa.Column('industries', sa.JSON()),
        sa.Column('education', sa.JSON()),
        sa.Column('processed_text', sa.Text()),
        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index('ix_resume_embeddings_user_id', 'resume_embeddings', ['user_id'], unique=True)
    op.create_index('ix_resume_embeddings_updated_at', 'resume_embeddings', ['updated_at'])

    op.create_table(
        'jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('company', sa.String(255)),
        sa.Column('description', sa.Text()),
        sa.Column('location', sa.String(255)),
        sa.Column('skills', sa.JSON()),
        sa.Column('job_type', sa.String(64)),
        sa.Column('industry', sa.String(128)),
        sa.Column('requirements', sa.Text()),
        sa.Column('benefits', sa.Text()),
        sa.Column('salary_min', sa.Float()),
        sa.Column('salary_max', sa.Float()),
        sa.Column('status', sa.String(16)),
        sa.Column('featured', sa.Boolean()),
        sa.Column('posted_at', sa.DateTime()),
        sa.Column('deleted_at', sa.DateTime()),
    )
    for col in ('title', 'company', 'status', 'featured', 'posted_at'):
        op.create_index(f'ix_jobs_{col}', 'jobs', [col])

    op.create_table(
        'embeddings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ref_type', sa.String(16), nullable=False),
        sa.Column('ref_id', sa.String(36), nullable=False),
        sa.Column('model', sa.String(128), nullable=False),
        sa.Column('dim', sa.Integer(), nullable=False),
        sa.Column('vector', sa.LargeBinary(), nullable=False),
        sa.Column('created_at', sa.DateTime()),
        sa.UniqueConstraint('ref_type', 'ref_id', name='uq_embedding_ref'),
    )
    op.create_index('ix_embeddings_ref_type', 'embeddings', ['ref_type'])
    op.create_index('ix_embeddings_ref_id', 'embeddings', ['ref_id'])

    op.create_table(
        'job_matches',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_id', sa.String(36), sa.ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('profile_id', sa.String(36),
                  sa.ForeignKey('candidate_profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('reasons', sa.JSON()),
        sa.Column('email_sent', sa.Boolean()),
        sa.Column('email_sent_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
        sa.UniqueConstraint('job_id', 'profile_id', name='uq_job_match_pair'),
    )
    for col in ('job_id', 'profile_id', 'created_at'):
        op.create_index(f'ix_job_matches_{col}', 'job_matches', [col])

    op.create_table(
        'queue_tasks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('payload', sa.JSON()),
        sa.Column('dedup_key', sa.String(128)),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text()),
        sa.Column('result', sa.JSON()),
        sa.Column('claimed_at', sa.DateTime()),
        sa.Column('scheduled_for', sa.DateTime()),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('completed_at', sa.DateTime()),
    )
    op.create_index('ix_queue_tasks_type', 'queue_tasks', ['type'])
    op.create_index('ix_queue_status_sched', 'queue_tasks', ['status', 'scheduled_for'])
    op.create_index(
        'uq_queue_live_dedup', 'queue_tasks', ['dedup_key'], unique=True,
        sqlite_where=sa.text(LIVE_TASK), postgresql_where=sa.text(LIVE_TASK),
    )

    op.create_table(
        'user_preferences',
        sa.Column('user_id', sa.String(64), primary_key=True),
        sa.Column('job_types', sa.JSON()),
        sa.Column('industries', sa.JSON()),
        sa.Column('locations', sa.JSON()),
        sa.Column('companies', sa.JSON()),
        sa.Column('skills', sa.JSON()),
        sa.Column('salary_range', sa.JSON()),
        sa.Column('updated_at', sa.DateTime()),
    )

    op.create_table(
        'feedback_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('job_id', sa.String(36), sa.ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.String(16), nullable=False),
        sa.Column('rating', sa.Integer()),
        sa.Column('note', sa.Text()),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index('ix_feedback_events_user_id', 'feedback_events', ['user_id'])
    op.create_index('ix_feedback_events_created_at', 'feedback_events', ['created_at'])
    op.create_index('ix_feedback_job_created', 'feedback_events', ['job_id', 'created_at'])


def downgrade() -> None:
    for table in ('feedback_events', 'user_preferences', 'queue_tasks', 'job_matches',
                  'embeddings', 'jobs', 'resume_embeddings', 'candidate_profiles'):
        op.drop_table(table)
