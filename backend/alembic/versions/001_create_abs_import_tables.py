"""Create ABS import reconciliation tables

Revision ID: 001_create_abs_import_tables
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision = '001_create_abs_import_tables'
down_revision = None
branch_labels = None
depends_on = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def _mapping_columns() -> list:
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('import_id', sa.String(64), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=False),
        sa.Column('internal_id', sa.String(255), nullable=True),
        sa.Column('mapped_at', sa.DateTime(), nullable=True),
        sa.Column('session_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('confidence', sa.Float(), nullable=False, server_default='0.0'),
        sa.Column('match_reason', sa.Text(), nullable=False, server_default=''),
        sa.Column('suggestions', sa.Text(), nullable=False, server_default='[]'),
    ]


def _mapping_constraints(table: str) -> list:
    return [
        sa.ForeignKeyConstraint(['import_id'], ['abs_imports.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('import_id', 'external_id', name=f'uq_{table}_external'),
        sa.CheckConstraint('confidence >= 0 AND confidence <= 1', name=f'ck_{table}_confidence'),
        sa.CheckConstraint('(internal_id IS NULL) = (mapped_at IS NULL)', name=f'ck_{table}_mapped_at'),
    ]


def upgrade() -> None:
    if not table_exists('abs_imports'):
        op.create_table(
            'abs_imports',
            sa.Column('id', sa.String(64), nullable=False),
            sa.Column('name', sa.String(255), nullable=False),
            sa.Column('backup_path', sa.String(1024), nullable=False, server_default=''),
            sa.Column('status', sa.String(20), nullable=False, server_default='active'),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('completed_at', sa.DateTime(), nullable=True),
            sa.Column('total_users', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_books', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_sessions', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('users_mapped', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('books_mapped', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('sessions_imported', sa.Integer(), nullable=False, server_default='0'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_abs_imports_status', 'abs_imports', ['status'])
        op.create_index('ix_abs_imports_created_at', 'abs_imports', ['created_at'])

    if not table_exists('abs_import_users'):
        op.create_table(
            'abs_import_users',
            *_mapping_columns(),
            sa.Column('username', sa.String(255), nullable=False, server_default=''),
            sa.Column('email', sa.String(255), nullable=False, server_default=''),
            sa.Column('internal_email', sa.String(255), nullable=True),
            sa.Column('internal_display_name', sa.String(255), nullable=True),
            sa.Column('total_listen_ms', sa.BigInteger(), nullable=False, server_default='0'),
            *_mapping_constraints('abs_import_users'),
        )
        op.create_index('ix_abs_import_users_import_id', 'abs_import_users', ['import_id'])
        op.create_index('ix_abs_import_users_internal_id', 'abs_import_users', ['internal_id'])
        op.create_index('ix_abs_import_users_username', 'abs_import_users', ['username'])

    if not table_exists('abs_import_books'):
        op.create_table(
            'abs_import_books',
            *_mapping_columns(),
            sa.Column('title', sa.String(500), nullable=False, server_default=''),
            sa.Column('author', sa.String(500), nullable=False, server_default=''),
            sa.Column('duration_ms', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('asin', sa.String(20), nullable=False, server_default=''),
            sa.Column('isbn', sa.String(20), nullable=False, server_default=''),
            sa.Column('internal_title', sa.String(500), nullable=True),
            sa.Column('internal_author', sa.String(500), nullable=True),
            *_mapping_constraints('abs_import_books'),
        )
        op.create_index('ix_abs_import_books_import_id', 'abs_import_books', ['import_id'])
        op.create_index('ix_abs_import_books_internal_id', 'abs_import_books', ['internal_id'])
        op.create_index('ix_abs_import_books_title', 'abs_import_books', ['title'])

    if not table_exists('abs_import_sessions'):
        op.create_table(
            'abs_import_sessions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('import_id', sa.String(64), nullable=False),
            sa.Column('external_session_id', sa.String(255), nullable=False),
            sa.Column('external_user_id', sa.String(255), nullable=False),
            sa.Column('external_media_id', sa.String(255), nullable=False),
            sa.Column('start_time', sa.DateTime(), nullable=False),
            sa.Column('duration_ms', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('start_position_ms', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('end_position_ms', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('status', sa.String(20), nullable=False, server_default='pending_user'),
            sa.Column('imported_at', sa.DateTime(), nullable=True),
            sa.Column('skip_reason', sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(['import_id'], ['abs_imports.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('import_id', 'external_session_id', name='uq_abs_import_session'),
        )
        op.create_index('ix_abs_import_sessions_import_id', 'abs_import_sessions', ['import_id'])
        op.create_index('ix_abs_import_sessions_external_user_id', 'abs_import_sessions', ['external_user_id'])
        op.create_index('ix_abs_import_sessions_external_media_id', 'abs_import_sessions', ['external_media_id'])
        op.create_index('ix_abs_import_sessions_start_time', 'abs_import_sessions', ['start_time'])
        op.create_index('ix_abs_import_sessions_import_status', 'abs_import_sessions', ['import_id', 'status'])

    if not table_exists('abs_import_progress'):
        op.create_table(
            'abs_import_progress',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('import_id', sa.String(64), nullable=False),
            sa.Column('external_user_id', sa.String(255), nullable=False),
            sa.Column('external_media_id', sa.String(255), nullable=False),
            sa.Column('current_time_ms', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('duration_ms', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('progress', sa.Float(), nullable=False, server_default='0.0'),
            sa.Column('is_finished', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('finished_at', sa.DateTime(), nullable=True),
            sa.Column('last_update', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('status', sa.String(20), nullable=False, server_default='pending_user'),
            sa.Column('imported_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['import_id'], ['abs_imports.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint(
                'import_id', 'external_user_id', 'external_media_id', name='uq_abs_import_progress'
            ),
            sa.CheckConstraint('progress >= 0 AND progress <= 1', name='ck_abs_import_progress_range'),
        )
        op.create_index('ix_abs_import_progress_import_id', 'abs_import_progress', ['import_id'])
        op.create_index('ix_abs_import_progress_external_user_id', 'abs_import_progress', ['external_user_id'])
        op.create_index('ix_abs_import_progress_external_media_id', 'abs_import_progress', ['external_media_id'])
        op.create_index('ix_abs_import_progress_last_update', 'abs_import_progress', ['last_update'])


def downgrade() -> None:
    op.drop_table('abs_import_progress')
    op.drop_table('abs_import_sessions')
    op.drop_table('abs_import_books')
    op.drop_table('abs_import_users')
    op.drop_table('abs_imports')
