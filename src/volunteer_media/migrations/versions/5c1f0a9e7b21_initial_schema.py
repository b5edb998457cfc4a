"""Initial schema

Revision ID: 5c1f0a9e7b21
Revises:
Create Date: 2026-01-12 09:14:02.118734

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '5c1f0a9e7b21'
down_revision = None
branch_labels = None
depends_on = None

Metadata = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps(deleted: bool = True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]
    if deleted:
        columns.append(sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True))
    return columns


def upgrade() -> None:
    """Upgrade database schema."""

    # Create groups table
    op.create_table('groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=False),
        sa.Column('hero_image_url', sa.String(length=500), nullable=False),
        sa.Column('has_protocols', sa.Boolean(), nullable=False),
        sa.Column('groupme_bot_id', sa.String(length=64), nullable=False),
        sa.Column('groupme_enabled', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_groups_id'), 'groups', ['id'], unique=False)
    op.create_index(op.f('ix_groups_name'), 'groups', ['name'], unique=True)
    op.create_index(op.f('ix_groups_deleted_at'), 'groups', ['deleted_at'], unique=False)

    # Create users table
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password', sa.String(length=255), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False),
        sa.Column('phone_number', sa.String(length=20), nullable=False),
        sa.Column('hide_email', sa.Boolean(), nullable=False),
        sa.Column('hide_phone_number', sa.Boolean(), nullable=False),
        sa.Column('default_group_id', sa.Integer(), nullable=True),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reset_token', sa.String(length=255), nullable=False),
        sa.Column('reset_token_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reset_token_lookup', sa.String(length=16), nullable=False),
        sa.Column('setup_token', sa.String(length=255), nullable=False),
        sa.Column('setup_token_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('setup_token_lookup', sa.String(length=16), nullable=False),
        sa.Column('requires_password_setup', sa.Boolean(), nullable=False),
        sa.Column('email_notifications_enabled', sa.Boolean(), nullable=False),
        sa.Column('show_length_of_stay', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['default_group_id'], ['groups.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_username'), 'users', ['username'], unique=True)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_default_group_id'), 'users', ['default_group_id'], unique=False)
    op.create_index(op.f('ix_users_reset_token_lookup'), 'users', ['reset_token_lookup'], unique=False)
    op.create_index(op.f('ix_users_setup_token_lookup'), 'users', ['setup_token_lookup'], unique=False)
    op.create_index(op.f('ix_users_created_at'), 'users', ['created_at'], unique=False)
    op.create_index(op.f('ix_users_deleted_at'), 'users', ['deleted_at'], unique=False)

    # Create user_groups table
    op.create_table('user_groups',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('is_group_admin', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id', 'group_id')
    )
    op.create_index(op.f('ix_user_groups_group_id'), 'user_groups', ['group_id'], unique=False)

    # Create animals table
    op.create_table('animals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('species', sa.String(length=100), nullable=False),
        sa.Column('breed', sa.String(length=255), nullable=False),
        sa.Column('age', sa.Integer(), nullable=False),
        sa.Column('estimated_birth_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('trainer_notes', sa.Text(), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('arrival_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('foster_start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('quarantine_start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archived_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_status_change', sa.DateTime(timezone=True), nullable=True),
        sa.Column('return_count', sa.Integer(), nullable=False),
        sa.Column('is_returned', sa.Boolean(), nullable=False),
        sa.Column('protocol_document_url', sa.String(length=500), nullable=False),
        sa.Column('protocol_document_name', sa.String(length=255), nullable=False),
        sa.Column('protocol_document_data', sa.LargeBinary(), nullable=True),
        sa.Column('protocol_document_type', sa.String(length=100), nullable=False),
        sa.Column('protocol_document_size', sa.Integer(), nullable=False),
        sa.Column('protocol_document_user_id', sa.Integer(), nullable=True),
        sa.Column('protocol_document_provider', sa.String(length=20), nullable=False),
        sa.Column('protocol_document_blob_identifier', sa.String(length=100), nullable=False),
        sa.Column('protocol_document_blob_extension', sa.String(length=10), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['protocol_document_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_animals_id'), 'animals', ['id'], unique=False)
    op.create_index(op.f('ix_animals_deleted_at'), 'animals', ['deleted_at'], unique=False)
    op.create_index('idx_animal_group_status', 'animals', ['group_id', 'status'], unique=False)

    # Create animal_tags table
    op.create_table('animal_tags',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('color', sa.String(length=20), nullable=False),
        *_timestamps(deleted=False),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'name', name='idx_animal_tag_group_name')
    )
    op.create_index(op.f('ix_animal_tags_id'), 'animal_tags', ['id'], unique=False)
    op.create_index(op.f('ix_animal_tags_group_id'), 'animal_tags', ['group_id'], unique=False)

    op.create_table('animal_animal_tags',
        sa.Column('animal_id', sa.Integer(), nullable=False),
        sa.Column('animal_tag_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['animal_id'], ['animals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['animal_tag_id'], ['animal_tags.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('animal_id', 'animal_tag_id')
    )

    op.create_table('animal_name_histories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('animal_id', sa.Integer(), nullable=False),
        sa.Column('old_name', sa.String(length=255), nullable=False),
        sa.Column('new_name', sa.String(length=255), nullable=False),
        sa.Column('changed_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['animal_id'], ['animals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['changed_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_animal_name_histories_id'), 'animal_name_histories', ['id'], unique=False)
    op.create_index(op.f('ix_animal_name_histories_animal_id'), 'animal_name_histories', ['animal_id'], unique=False)

    # Create comment tables
    op.create_table('comment_tags',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('color', sa.String(length=20), nullable=False),
        sa.Column('is_system', sa.Boolean(), nullable=False),
        *_timestamps(deleted=False),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'name', name='idx_comment_tag_group_name')
    )
    op.create_index(op.f('ix_comment_tags_id'), 'comment_tags', ['id'], unique=False)
    op.create_index(op.f('ix_comment_tags_group_id'), 'comment_tags', ['group_id'], unique=False)

    op.create_table('animal_comments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('animal_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=False),
        sa.Column('metadata', Metadata, nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['animal_id'], ['animals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_animal_comments_id'), 'animal_comments', ['id'], unique=False)
    op.create_index(op.f('ix_animal_comments_user_id'), 'animal_comments', ['user_id'], unique=False)
    op.create_index(op.f('ix_animal_comments_deleted_at'), 'animal_comments', ['deleted_at'], unique=False)
    op.create_index('idx_comment_animal_created', 'animal_comments', ['animal_id', 'created_at'], unique=False)

    op.create_table('animal_comment_tags',
        sa.Column('animal_comment_id', sa.Integer(), nullable=False),
        sa.Column('comment_tag_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['animal_comment_id'], ['animal_comments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['comment_tag_id'], ['comment_tags.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('animal_comment_id', 'comment_tag_id')
    )

    op.create_table('comment_histories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('comment_id', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=False),
        sa.Column('metadata', Metadata, nullable=True),
        sa.Column('edited_by', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['comment_id'], ['animal_comments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['edited_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_comment_histories_id'), 'comment_histories', ['id'], unique=False)
    op.create_index(op.f('ix_comment_histories_comment_id'), 'comment_histories', ['comment_id'], unique=False)

    # Create published content tables
    op.create_table('updates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=False),
        sa.Column('send_email', sa.Boolean(), nullable=False),
        sa.Column('send_groupme', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_updates_id'), 'updates', ['id'], unique=False)
    op.create_index(op.f('ix_updates_user_id'), 'updates', ['user_id'], unique=False)
    op.create_index(op.f('ix_updates_deleted_at'), 'updates', ['deleted_at'], unique=False)
    op.create_index('idx_update_group_created', 'updates', ['group_id', 'created_at'], unique=False)

    op.create_table('announcements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('send_email', sa.Boolean(), nullable=False),
        sa.Column('send_groupme', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_announcements_id'), 'announcements', ['id'], unique=False)
    op.create_index(op.f('ix_announcements_user_id'), 'announcements', ['user_id'], unique=False)
    op.create_index(op.f('ix_announcements_created_at'), 'announcements', ['created_at'], unique=False)
    op.create_index(op.f('ix_announcements_deleted_at'), 'announcements', ['deleted_at'], unique=False)

    op.create_table('protocols',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_protocols_id'), 'protocols', ['id'], unique=False)
    op.create_index(op.f('ix_protocols_deleted_at'), 'protocols', ['deleted_at'], unique=False)
    op.create_index('idx_protocols_group_order', 'protocols', ['group_id', 'order_index'], unique=False)

    op.create_table('site_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        *_timestamps(deleted=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_site_settings_id'), 'site_settings', ['id'], unique=False)
    op.create_index(op.f('ix_site_settings_key'), 'site_settings', ['key'], unique=True)

    # Create animal_images table
    op.create_table('animal_images',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('animal_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=False),
        sa.Column('image_data', sa.LargeBinary(), nullable=True),
        sa.Column('mime_type', sa.String(length=100), nullable=False),
        sa.Column('caption', sa.Text(), nullable=False),
        sa.Column('is_profile_picture', sa.Boolean(), nullable=False),
        sa.Column('width', sa.Integer(), nullable=False),
        sa.Column('height', sa.Integer(), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('storage_provider', sa.String(length=20), nullable=False),
        sa.Column('blob_identifier', sa.String(length=100), nullable=False),
        sa.Column('blob_extension', sa.String(length=10), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['animal_id'], ['animals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_animal_images_id'), 'animal_images', ['id'], unique=False)
    op.create_index(op.f('ix_animal_images_animal_id'), 'animal_images', ['animal_id'], unique=False)
    op.create_index(op.f('ix_animal_images_user_id'), 'animal_images', ['user_id'], unique=False)
    op.create_index(op.f('ix_animal_images_image_url'), 'animal_images', ['image_url'], unique=False)
    op.create_index(op.f('ix_animal_images_deleted_at'), 'animal_images', ['deleted_at'], unique=False)
    op.create_index('idx_animal_images_profile', 'animal_images', ['animal_id', 'is_profile_picture'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    for table in (
        'animal_images',
        'site_settings',
        'protocols',
        'announcements',
        'updates',
        'comment_histories',
        'animal_comment_tags',
        'animal_comments',
        'comment_tags',
        'animal_name_histories',
        'animal_animal_tags',
        'animal_tags',
        'animals',
        'user_groups',
        'users',
        'groups',
    ):
        op.drop_table(table)
