"""identity initial schema: users, otps, otp_attempts

Revision ID: 20251019_01
Revises:
Create Date: 2025-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = '20251019_01'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('phone_number', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_phone_number', 'users', ['phone_number'], unique=True)

    op.create_table(
        'otps',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('phone_number', sa.String(length=32), nullable=False),
        sa.Column('code', sa.String(length=6), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('is_used', sa.Boolean(), nullable=False),
    )
    op.create_index('ix_otps_phone_number', 'otps', ['phone_number'])
    op.create_index('ix_otps_expires_at', 'otps', ['expires_at'])
    op.create_index('ix_otps_phone_code', 'otps', ['phone_number', 'code'])

    op.create_table(
        'otp_attempts',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('phone_number', sa.String(length=32), nullable=False),
        sa.Column('attempt_time', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_otp_attempts_phone_number', 'otp_attempts', ['phone_number'])
    op.create_index('ix_otp_attempts_attempt_time', 'otp_attempts', ['attempt_time'])


def downgrade() -> None:
    op.drop_index('ix_otp_attempts_attempt_time', table_name='otp_attempts')
    op.drop_index('ix_otp_attempts_phone_number', table_name='otp_attempts')
    op.drop_table('otp_attempts')
    op.drop_index('ix_otps_phone_code', table_name='otps')
    op.drop_index('ix_otps_expires_at', table_name='otps')
    op.drop_index('ix_otps_phone_number', table_name='otps')
    op.drop_table('otps')
    op.drop_index('ix_users_phone_number', table_name='users')
    op.drop_table('users')
