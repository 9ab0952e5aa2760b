"""create claim pipeline tables

Revision ID: 3f1c9a2b7d40
Revises:
Create Date: 2026-10-18 09:12:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f1c9a2b7d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('email', sa.String(), nullable=False),
    sa.Column('full_name', sa.String(), nullable=True),
    sa.Column('role', sa.String(length=32), nullable=False),
    sa.Column('status', sa.String(length=32), nullable=False),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_table('insurers',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(), nullable=False),
    sa.Column('email', sa.String(), nullable=True),
    sa.Column('user_id', sa.UUID(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['user_id'], ['users.id']),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_table('policies',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('policy_number', sa.String(), nullable=False),
    sa.Column('farmer_id', sa.UUID(), nullable=False),
    sa.Column('service_provider_id', sa.UUID(), nullable=True),
    sa.Column('status', sa.String(length=32), nullable=False),
    sa.Column('crop_type', sa.String(), nullable=True),
    sa.Column('start_date', sa.Date(), nullable=False),
    sa.Column('end_date', sa.Date(), nullable=False),
    sa.Column('sum_insured', sa.Numeric(precision=14, scale=2), nullable=False),
    sa.Column('policy_images', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['farmer_id'], ['users.id']),
    sa.ForeignKeyConstraint(['service_provider_id'], ['insurers.id']),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_policies_policy_number'), 'policies', ['policy_number'], unique=False)
    op.create_index(op.f('ix_policies_farmer_id'), 'policies', ['farmer_id'], unique=False)

    op.create_table('claims',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('claim_id', sa.String(length=32), nullable=False),
    sa.Column('farmer_id', sa.UUID(), nullable=False),
    sa.Column('policy_id', sa.UUID(), nullable=False),
    sa.Column('chosen_policy_id', sa.UUID(), nullable=False),
    sa.Column('assigned_to_id', sa.UUID(), nullable=False, comment='Insurer the claim is routed to'),
    sa.Column('description', sa.Text(), nullable=False),
    sa.Column('location_of_incident', sa.String(), nullable=True),
    sa.Column('date_of_incident', sa.Date(), nullable=False),
    sa.Column('date_of_claim', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('amount_claimed', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('status', sa.String(length=32), nullable=False),
    sa.Column('verification_status', sa.String(length=32), nullable=False),
    sa.Column('ai_damage_percent', sa.Float(), nullable=True),
    sa.Column('ai_recommended_amount', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('ai_validation_flags', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('ai_report', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('ai_processed_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('admin_override_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('admin_override_reason', sa.Text(), nullable=True),
    sa.Column('notes', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('verification_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('inspection_report', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('fraud_flagged_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('payout_status', sa.String(length=16), nullable=True),
    sa.Column('payout_transaction_id', sa.String(), nullable=True),
    sa.Column('payout_amount', sa.Numeric(precision=14, scale=2), nullable=True),
    sa.Column('payout_date', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('resolution_details', sa.Text(), nullable=True),
    sa.Column('resolution_date', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['farmer_id'], ['users.id']),
    sa.ForeignKeyConstraint(['policy_id'], ['policies.id']),
    sa.ForeignKeyConstraint(['chosen_policy_id'], ['policies.id']),
    sa.ForeignKeyConstraint(['assigned_to_id'], ['insurers.id']),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('claim_id')
    )
    op.create_index(op.f('ix_claims_farmer_id'), 'claims', ['farmer_id'], unique=False)
    op.create_index('ix_claims_verification_status', 'claims', ['verification_status'], unique=False)
    op.create_index('ix_claims_assigned_to_status', 'claims', ['assigned_to_id', 'status'], unique=False)

    op.create_table('claim_documents',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('claim_id', sa.UUID(), nullable=False),
    sa.Column('path', sa.String(), nullable=False),
    sa.Column('kind', sa.String(length=16), nullable=False, comment='document | image'),
    sa.Column('file_name', sa.String(), nullable=True),
    sa.Column('mime_type', sa.String(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['claim_id'], ['claims.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_claim_documents_claim_id'), 'claim_documents', ['claim_id'], unique=False)

    op.create_table('ai_tasks',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('claim_id', sa.UUID(), nullable=False),
    sa.Column('task_type', sa.String(length=32), nullable=False, comment='ocr | satellite | fraud_detection'),
    sa.Column('status', sa.String(length=32), nullable=False),
    sa.Column('input_data', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('output_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('retry_count', sa.Integer(), nullable=False),
    sa.Column('max_retries', sa.Integer(), nullable=False),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('next_attempt_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('processed_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['claim_id'], ['claims.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_ai_tasks_claim_status', 'ai_tasks', ['claim_id', 'status'], unique=False)
    op.create_index('ix_ai_tasks_status_created', 'ai_tasks', ['status', 'created_at'], unique=False)

    op.create_table('idempotency_records',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('key', sa.String(length=255), nullable=False),
    sa.Column('status', sa.String(length=32), nullable=False),
    sa.Column('request_hash', sa.String(length=64), nullable=True, comment='SHA-256 of the canonical request'),
    sa.Column('request_body', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('response_body', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('claim_id', sa.UUID(), nullable=True),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('key')
    )
    op.create_index(op.f('ix_idempotency_records_expires_at'), 'idempotency_records', ['expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_idempotency_records_expires_at'), table_name='idempotency_records')
    op.drop_table('idempotency_records')
    op.drop_index('ix_ai_tasks_status_created', table_name='ai_tasks')
    op.drop_index('ix_ai_tasks_claim_status', table_name='ai_tasks')
    op.drop_table('ai_tasks')
    op.drop_index(op.f('ix_claim_documents_claim_id'), table_name='claim_documents')
    op.drop_table('claim_documents')
    op.drop_index('ix_claims_assigned_to_status', table_name='claims')
    op.drop_index('ix_claims_verification_status', table_name='claims')
    op.drop_index(op.f('ix_claims_farmer_id'), table_name='claims')
    op.drop_table('claims')
    op.drop_index(op.f('ix_policies_farmer_id'), table_name='policies')
    op.drop_index(op.f('ix_policies_policy_number'), table_name='policies')
    op.drop_table('policies')
    op.drop_table('insurers')
    op.drop_table('users')
