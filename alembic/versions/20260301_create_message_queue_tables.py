"""
Create outbound message queue, template and SMS blast tables

Customer, billing, application and job order tables are owned by the
operations schema and are only read here.
"""
from alembic import op
import sqlalchemy as sa

revision = "20260301_message_queue"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'message_queue',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('channel', sa.String(10), nullable=False),
        sa.Column('recipient', sa.String(255), nullable=False),
        sa.Column('subject', sa.String(200), nullable=True),
        sa.Column('body', sa.Text, nullable=False),
        sa.Column('cc', sa.Text, nullable=True),
        sa.Column('bcc', sa.Text, nullable=True),
        sa.Column('reply_to', sa.String(255), nullable=True),
        sa.Column('email_sender', sa.String(255), nullable=True),
        sa.Column('sender_name', sa.String(255), nullable=True),
        sa.Column('related_account_no', sa.String(50), nullable=True),
        sa.Column('status', sa.String(10), nullable=False, server_default='pending'),
        sa.Column('attempt_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('claim_token', sa.String(36), nullable=True),
        sa.Column('claimed_at', sa.DateTime, nullable=True),
        sa.Column('sent_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_message_queue_status_created', 'message_queue', ['status', 'created_at'])
    op.create_index('ix_message_queue_related_account_no', 'message_queue', ['related_account_no'])
    op.create_index('ix_message_queue_claim_token', 'message_queue', ['claim_token'])

    op.create_table(
        'message_templates',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('code', sa.String(100), nullable=False),
        sa.Column('channel', sa.String(10), nullable=False),
        sa.Column('subject_template', sa.String(255), nullable=True),
        sa.Column('body_template', sa.Text, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('cc', sa.Text, nullable=True),
        sa.Column('bcc', sa.Text, nullable=True),
        sa.Column('reply_to', sa.String(255), nullable=True),
        sa.Column('email_sender', sa.String(255), nullable=True),
        sa.Column('sender_name', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index('ix_message_templates_code', 'message_templates', ['code'], unique=True)

    op.create_table(
        'sms_config',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('password', sa.String(255), nullable=True),
        sa.Column('api_code', sa.String(100), nullable=True),
        sa.Column('sender_id', sa.String(50), nullable=True),
    )

    op.create_table(
        'sms_blast_logs',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('filter_kind', sa.String(20), nullable=False),
        sa.Column('filter_value', sa.String(100), nullable=False),
        sa.Column('message_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, server_default=sa.func.now()),
    )

def downgrade():
    op.drop_table('sms_blast_logs')
    op.drop_table('sms_config')
    op.drop_index('ix_message_templates_code', table_name='message_templates')
    op.drop_table('message_templates')
    op.drop_index('ix_message_queue_claim_token', table_name='message_queue')
    op.drop_index('ix_message_queue_related_account_no', table_name='message_queue')
    op.drop_index('ix_message_queue_status_created', table_name='message_queue')
    op.drop_table('message_queue')
