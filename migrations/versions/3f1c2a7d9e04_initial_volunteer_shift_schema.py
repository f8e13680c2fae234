"""Initial volunteer shift schema

Revision ID: 3f1c2a7d9e04
Revises:
Create Date: 2026-10-19 10:12:31.204117

"""

# revision identifiers, used by Alembic.
revision = '3f1c2a7d9e04'
down_revision = None

from alembic import op
import sqlalchemy as sa


def upgrade():
    op.create_table('user',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('email', sa.String(), nullable=False),
    sa.Column('name', sa.String(), nullable=False),
    sa.Column('phone', sa.String(), nullable=True),
    sa.Column('blocked', sa.Boolean(), nullable=False),
    sa.Column('blocked_reason', sa.String(), nullable=True),
    sa.Column('blocked_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_user'))
    )
    op.create_index(op.f('ix_user_email'), 'user', ['email'], unique=True)
    op.create_index(op.f('ix_user_name'), 'user', ['name'], unique=False)
    op.create_index('ix_user_email_lower', 'user', [sa.text('lower(email)')], unique=True)

    op.create_table('permission',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(), nullable=False),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_permission'))
    )
    op.create_index(op.f('ix_permission_name'), 'permission', ['name'], unique=True)

    op.create_table('user_permission',
    sa.Column('user_id', sa.Integer(), nullable=False),
    sa.Column('permission_id', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['permission_id'], ['permission.id'], name=op.f('fk_user_permission_permission_id_permission')),
    sa.ForeignKeyConstraint(['user_id'], ['user.id'], name=op.f('fk_user_permission_user_id_user'), ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('user_id', 'permission_id', name=op.f('pk_user_permission'))
    )

    op.create_table('volunteer_shift',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('title', sa.String(), nullable=False),
    sa.Column('description', sa.String(), nullable=True),
    sa.Column('notes', sa.String(), nullable=True),
    sa.Column('date', sa.Date(), nullable=False),
    sa.Column('start_time', sa.String(), nullable=True),
    sa.Column('end_time', sa.String(), nullable=True),
    sa.Column('max_volunteers', sa.Integer(), nullable=False),
    sa.Column('type', sa.Enum('MORNING', 'EVENING', name='shifttype'), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_volunteer_shift'))
    )
    op.create_index(op.f('ix_volunteer_shift_date'), 'volunteer_shift', ['date'], unique=False)

    op.create_table('volunteer_signup',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('shift_id', sa.Integer(), nullable=False),
    sa.Column('user_id', sa.Integer(), nullable=False),
    sa.Column('status', sa.Enum('CONFIRMED', 'CANCELLED', name='signupstatus'), nullable=False),
    sa.Column('comment', sa.String(), nullable=True),
    sa.Column('worked_minutes', sa.Integer(), nullable=True),
    sa.Column('confirmed_at', sa.TIMESTAMP(), nullable=True),
    sa.Column('cancelled_at', sa.TIMESTAMP(), nullable=True),
    sa.Column('reminder_sent_at', sa.TIMESTAMP(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
    sa.ForeignKeyConstraint(['shift_id'], ['volunteer_shift.id'], name=op.f('fk_volunteer_signup_shift_id_volunteer_shift'), ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['user_id'], ['user.id'], name=op.f('fk_volunteer_signup_user_id_user'), ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_volunteer_signup')),
    sa.UniqueConstraint('shift_id', 'user_id', name=op.f('uq_volunteer_signup_shift_id'))
    )
    op.create_index(op.f('ix_volunteer_signup_shift_id'), 'volunteer_signup', ['shift_id'], unique=False)
    op.create_index(op.f('ix_volunteer_signup_user_id'), 'volunteer_signup', ['user_id'], unique=False)

    op.create_table('volunteer_waitlist_entry',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('shift_id', sa.Integer(), nullable=False),
    sa.Column('user_id', sa.Integer(), nullable=False),
    sa.Column('comment', sa.String(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
    sa.ForeignKeyConstraint(['shift_id'], ['volunteer_shift.id'], name=op.f('fk_volunteer_waitlist_entry_shift_id_volunteer_shift'), ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['user_id'], ['user.id'], name=op.f('fk_volunteer_waitlist_entry_user_id_user'), ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_volunteer_waitlist_entry')),
    sa.UniqueConstraint('shift_id', 'user_id', name=op.f('uq_volunteer_waitlist_entry_shift_id'))
    )
    op.create_index(op.f('ix_volunteer_waitlist_entry_created_at'), 'volunteer_waitlist_entry', ['created_at'], unique=False)
    op.create_index(op.f('ix_volunteer_waitlist_entry_shift_id'), 'volunteer_waitlist_entry', ['shift_id'], unique=False)
    op.create_index(op.f('ix_volunteer_waitlist_entry_user_id'), 'volunteer_waitlist_entry', ['user_id'], unique=False)

    op.create_table('volunteer_application',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('name', sa.String(), nullable=False),
    sa.Column('email', sa.String(), nullable=False),
    sa.Column('phone', sa.String(), nullable=True),
    sa.Column('message', sa.String(), nullable=True),
    sa.Column('state', sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='applicationstate'), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.Column('decided_at', sa.DateTime(), nullable=True),
    sa.Column('decided_by_id', sa.Integer(), nullable=True),
    sa.Column('user_id', sa.Integer(), nullable=True),
    sa.ForeignKeyConstraint(['decided_by_id'], ['user.id'], name=op.f('fk_volunteer_application_decided_by_id_user'), ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['user_id'], ['user.id'], name=op.f('fk_volunteer_application_user_id_user'), ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id', name=op.f('pk_volunteer_application'))
    )
    op.create_index(op.f('ix_volunteer_application_email'), 'volunteer_application', ['email'], unique=False)
    op.create_index(op.f('ix_volunteer_application_state'), 'volunteer_application', ['state'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_volunteer_application_state'), table_name='volunteer_application')
    op.drop_index(op.f('ix_volunteer_application_email'), table_name='volunteer_application')
    op.drop_table('volunteer_application')
    op.drop_index(op.f('ix_volunteer_waitlist_entry_user_id'), table_name='volunteer_waitlist_entry')
    op.drop_index(op.f('ix_volunteer_waitlist_entry_shift_id'), table_name='volunteer_waitlist_entry')
    op.drop_index(op.f('ix_volunteer_waitlist_entry_created_at'), table_name='volunteer_waitlist_entry')
    op.drop_table('volunteer_waitlist_entry')
    op.drop_index(op.f('ix_volunteer_signup_user_id'), table_name='volunteer_signup')
    op.drop_index(op.f('ix_volunteer_signup_shift_id'), table_name='volunteer_signup')
    op.drop_table('volunteer_signup')
    op.drop_index(op.f('ix_volunteer_shift_date'), table_name='volunteer_shift')
    op.drop_table('volunteer_shift')
    op.drop_table('user_permission')
    op.drop_index(op.f('ix_permission_name'), table_name='permission')
    op.drop_table('permission')
    op.drop_index('ix_user_email_lower', table_name='user')
    op.drop_index(op.f('ix_user_name'), table_name='user')
    op.drop_index(op.f('ix_user_email'), table_name='user')
    op.drop_table('user')
    sa.Enum(name='applicationstate').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='signupstatus').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='shifttype').drop(op.get_bind(), checkfirst=True)
