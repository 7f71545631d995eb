"""Create event hub tables"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '3a7d1c52e9b0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create event_types table
    op.create_table(
        'event_types',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('parent_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.ForeignKeyConstraint(['parent_id'], ['event_types.id'], ondelete='SET NULL')
    )
    op.create_index(op.f('ix_event_types_name'), 'event_types', ['name'])

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('auth_subject', sa.String(255), nullable=False),
        sa.Column('username', sa.String(20), nullable=False),
        sa.Column('profile_picture_url', sa.Text(), nullable=True),
        sa.Column('role', sa.String(10), nullable=False, server_default='user'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('auth_subject')
    )
    op.create_index(op.f('ix_users_auth_subject'), 'users', ['auth_subject'])

    op.create_table(
        'user_interested_event_types',
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('event_type_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'event_type_id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['event_type_id'], ['event_types.id'], ondelete='CASCADE')
    )

    # Create bans table
    op.create_table(
        'bans',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE')
    )
    op.create_index(op.f('ix_bans_user_id'), 'bans', ['user_id'])

    # Create events table
    op.create_table(
        'events',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('activity_hours', sa.Float(), nullable=False),
        sa.Column('total_seats', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('location', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_deactivated', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('qr_code_string', sa.Text(), nullable=True),
        sa.Column('qr_code_iv', sa.String(64), nullable=True),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
        sa.CheckConstraint('total_seats >= 1', name='ck_events_total_seats_positive')
    )
    op.create_index(op.f('ix_events_name'), 'events', ['name'])
    op.create_index('ix_events_active_end_time', 'events', ['is_active', 'end_time'])

    op.create_table(
        'event_event_types',
        sa.Column('event_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('event_type_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.PrimaryKeyConstraint('event_id', 'event_type_id'),
        sa.ForeignKeyConstraint(['event_id'], ['events.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['event_type_id'], ['event_types.id'], ondelete='CASCADE')
    )

    # Create participations table
    op.create_table(
        'participations',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('event_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_confirmed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['event_id'], ['events.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE')
    )
    op.create_index('ix_participations_event_active', 'participations', ['event_id', 'is_active'])
    # At most one active participation per (user, event)
    op.create_index(
        'uq_participations_active_user_event',
        'participations',
        ['user_id', 'event_id'],
        unique=True,
        postgresql_where=sa.text('is_active')
    )


def downgrade():
    op.drop_index('uq_participations_active_user_event', table_name='participations')
    op.drop_index('ix_participations_event_active', table_name='participations')
    op.drop_table('participations')
    op.drop_table('event_event_types')
    op.drop_index('ix_events_active_end_time', table_name='events')
    op.drop_index(op.f('ix_events_name'), table_name='events')
    op.drop_table('events')
    op.drop_index(op.f('ix_bans_user_id'), table_name='bans')
    op.drop_table('bans')
    op.drop_table('user_interested_event_types')
    op.drop_index(op.f('ix_users_auth_subject'), table_name='users')
    op.drop_table('users')
    op.drop_index(op.f('ix_event_types_name'), table_name='event_types')
    op.drop_table('event_types')
