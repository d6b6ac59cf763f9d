"""Connection codes, scan tracking and invitations

Revision ID: 0001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto;')

    # Profiles are written by the profile service; this table mirrors its columns
    op.create_table('profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('job_title', sa.String(length=200), nullable=True),
        sa.Column('company', sa.String(length=200), nullable=True),
        sa.Column('profile_image', sa.Text(), nullable=True),
        sa.Column('bio', sa.JSON(), nullable=True),
        sa.Column('interests', sa.JSON(), nullable=True),
        sa.Column('social_links', sa.JSON(), nullable=True),
        sa.Column('public_profile', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    op.create_table('connection_codes',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('owner_user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('scan_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_scanned_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_scan_location', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['owner_user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code')
    )
    op.create_index(
        'uq_connection_codes_owner_active', 'connection_codes', ['owner_user_id'],
        unique=True, postgresql_where=sa.text('is_active')
    )
    op.create_index('idx_connection_codes_expires_at', 'connection_codes', ['expires_at'])

    op.create_table('qr_scan_tracking',
        sa.Column('scan_id', sa.String(length=64), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('owner_user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('scanned_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('location', sa.JSON(), nullable=True),
        sa.Column('device_info', sa.JSON(), nullable=True),
        sa.Column('referrer', sa.Text(), nullable=True),
        sa.Column('session_id', sa.String(length=128), nullable=True),
        sa.PrimaryKeyConstraint('scan_id')
    )
    op.create_index('idx_qr_scan_tracking_owner_scanned', 'qr_scan_tracking', ['owner_user_id', 'scanned_at'])

    op.create_table('email_invitations',
        sa.Column('invitation_id', sa.String(length=64), nullable=False),
        sa.Column('recipient_email', sa.String(length=320), nullable=False),
        sa.Column('sender_user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('connection_code', sa.String(length=64), nullable=False),
        sa.Column('scan_data', sa.JSON(), nullable=True),
        sa.Column('email_sent_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('delivery_attempts', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_delivery_error', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='sent'),
        sa.Column('registered_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('registration_completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['sender_user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('invitation_id'),
        sa.CheckConstraint("status IN ('sent', 'registered', 'expired')", name='ck_email_invitations_status')
    )
    op.create_index('idx_email_invitations_recipient_status', 'email_invitations', ['recipient_email', 'status'])
    op.create_index(
        'uq_email_invitations_code_recipient_sent',
        'email_invitations',
        ['connection_code', 'recipient_email'],
        unique=True,
        postgresql_where=sa.text("status = 'sent'")
    )

    op.create_table('connection_requests',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('requester_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('requester_email', sa.String(length=320), nullable=True),
        sa.Column('target_user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()')),
        sa.Column('responded_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['target_user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("status IN ('pending', 'accepted', 'declined')", name='ck_connection_requests_status')
    )
    op.create_index('idx_connection_requests_target_status', 'connection_requests', ['target_user_id', 'status'])

    op.create_table('contacts',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner_user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('contact_user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_user_id', 'contact_user_id', name='uq_contacts_owner_contact')
    )


def downgrade() -> None:
    op.drop_table('contacts')
    op.drop_index('idx_connection_requests_target_status', table_name='connection_requests')
    op.drop_table('connection_requests')
    op.drop_index('uq_email_invitations_code_recipient_sent', table_name='email_invitations')
    op.drop_index('idx_email_invitations_recipient_status', table_name='email_invitations')
    op.drop_table('email_invitations')
    op.drop_index('idx_qr_scan_tracking_owner_scanned', table_name='qr_scan_tracking')
    op.drop_table('qr_scan_tracking')
    op.drop_index('idx_connection_codes_expires_at', table_name='connection_codes')
    op.drop_index('uq_connection_codes_owner_active', table_name='connection_codes')
    op.drop_table('connection_codes')
    op.drop_table('profiles')
