"""complaints, history, attachments, comments, audit log

Revision ID: 0001_complaints
Revises: 
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_complaints'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('complaints',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('ticket_code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False, server_default='other'),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='medium'),
        sa.Column('department', sa.String(length=100), nullable=False, server_default='General'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('contact_name', sa.String(length=100), nullable=False),
        sa.Column('contact_email', sa.String(length=254), nullable=False),
        sa.Column('contact_phone', sa.String(length=32), nullable=True),
        sa.Column('assigned_to', sa.String(length=64), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_by', sa.String(length=64), nullable=True),
        sa.Column('resolution_note', sa.Text(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_by', sa.String(length=64), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
    )
    op.create_index('ix_complaints_ticket_code', 'complaints', ['ticket_code'])
    op.create_index('ix_complaints_category', 'complaints', ['category'])
    op.create_index('ix_complaints_priority', 'complaints', ['priority'])
    op.create_index('ix_complaints_status', 'complaints', ['status'])
    op.create_index('ix_complaints_owner_id', 'complaints', ['owner_id'])
    op.create_index('ix_complaints_contact_email', 'complaints', ['contact_email'])
    op.create_index('ix_complaints_assigned_to', 'complaints', ['assigned_to'])
    op.create_index('ix_complaints_is_deleted', 'complaints', ['is_deleted'])
    op.create_index('ix_complaints_owner_status', 'complaints', ['owner_id', 'status'])
    op.create_index('ix_complaints_deleted_created', 'complaints', ['is_deleted', 'created_at'])

    op.create_table('complaint_attachments',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('complaint_id', sa.String(length=32), sa.ForeignKey('complaints.id', ondelete='CASCADE'), nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('original_name', sa.String(length=255), nullable=False),
        sa.Column('locator', sa.String(length=512), nullable=False),
        sa.Column('mimetype', sa.String(length=128), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_complaint_attachments_complaint_id', 'complaint_attachments', ['complaint_id'])

    op.create_table('complaint_comments',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('complaint_id', sa.String(length=32), sa.ForeignKey('complaints.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.String(length=64), nullable=False),
        sa.Column('text', sa.String(length=500), nullable=False),
        sa.Column('is_staff_comment', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_edited', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_complaint_comments_complaint_id', 'complaint_comments', ['complaint_id'])
    op.create_index('ix_complaint_comments_author_id', 'complaint_comments', ['author_id'])

    op.create_table('complaint_status_history',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('complaint_id', sa.String(length=32), sa.ForeignKey('complaints.id', ondelete='CASCADE'), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('previous_status', sa.String(length=32), nullable=False),
        sa.Column('new_status', sa.String(length=32), nullable=False),
        sa.Column('changed_by', sa.String(length=64), nullable=False),
        sa.Column('note', sa.String(length=500), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('complaint_id', 'seq', name='uq_history_complaint_seq'),
    )
    op.create_index('ix_complaint_status_history_complaint_id', 'complaint_status_history', ['complaint_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_id', sa.String(length=64), nullable=False),
        sa.Column('actor_role', sa.String(length=16), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('complaint_status_history')
    op.drop_table('complaint_comments')
    op.drop_table('complaint_attachments')
    op.drop_table('complaints')
