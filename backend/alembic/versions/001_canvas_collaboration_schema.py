"""Canvas 협업 엔진 스키마

Revision ID: 001_canvas_collaboration_schema
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_canvas_collaboration_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """프로젝트, op 로그, 요소 projection, 스냅샷, 미디어 테이블 생성"""

    # 프로젝트 테이블
    op.create_table('canvas_projects',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('owner_id', sa.String(length=128), nullable=False),
        sa.Column('settings', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('last_snapshot_op_index', sa.Integer(), nullable=True),
        sa.Column('last_snapshot_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_canvas_projects_owner_id'), 'canvas_projects', ['owner_id'], unique=False)

    # 협업자 테이블
    op.create_table('canvas_project_collaborators',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('project_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['canvas_projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_id', 'user_id', name='uq_canvas_collaborator_project_user')
    )
    op.create_index('ix_canvas_collaborator_user', 'canvas_project_collaborators', ['user_id'], unique=False)

    # Op 로그 테이블 (append-only)
    op.create_table('canvas_ops',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('project_id', sa.String(length=64), nullable=False),
        sa.Column('op_index', sa.Integer(), nullable=False),
        sa.Column('op_type', sa.String(length=20), nullable=False),
        sa.Column('element_id', sa.String(length=128), nullable=True),
        sa.Column('element_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('inverse', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('actor_id', sa.String(length=128), nullable=False),
        sa.Column('request_id', sa.String(length=255), nullable=True),
        sa.Column('client_ts', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['canvas_projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('project_id', 'op_index', name='uq_canvas_ops_project_index'),
        sa.UniqueConstraint('project_id', 'request_id', name='uq_canvas_ops_project_request')
    )
    op.create_index('ix_canvas_ops_project_index', 'canvas_ops', ['project_id', 'op_index'], unique=False)

    # 프로젝트별 op_index 카운터
    op.create_table('canvas_op_counters',
        sa.Column('project_id', sa.String(length=64), nullable=False),
        sa.Column('value', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['canvas_projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('project_id')
    )
    op.create_index('ix_canvas_op_counters_updated', 'canvas_op_counters', ['updated_at'], unique=False)

    # 요소 projection
    op.create_table('canvas_elements',
        sa.Column('project_id', sa.String(length=64), nullable=False),
        sa.Column('id', sa.String(length=128), nullable=False),
        sa.Column('element_type', sa.String(length=20), nullable=False),
        sa.Column('x', sa.Float(), nullable=True),
        sa.Column('y', sa.Float(), nullable=True),
        sa.Column('width', sa.Float(), nullable=True),
        sa.Column('height', sa.Float(), nullable=True),
        sa.Column('rotation', sa.Float(), nullable=True),
        sa.Column('scale_x', sa.Float(), nullable=True),
        sa.Column('scale_y', sa.Float(), nullable=True),
        sa.Column('opacity', sa.Float(), nullable=True),
        sa.Column('visible', sa.Boolean(), nullable=True),
        sa.Column('locked', sa.Boolean(), nullable=True),
        sa.Column('z_index', sa.Integer(), nullable=True),
        sa.Column('meta', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('attrs', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['canvas_projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('project_id', 'id')
    )
    op.create_index('ix_canvas_elements_project_type', 'canvas_elements', ['project_id', 'element_type'], unique=False)

    # 스냅샷
    op.create_table('canvas_snapshots',
        sa.Column('project_id', sa.String(length=64), nullable=False),
        sa.Column('snapshot_key', sa.String(length=32), nullable=False),
        sa.Column('snapshot_op_index', sa.Integer(), nullable=False),
        sa.Column('elements', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('format_version', sa.String(length=10), nullable=False),
        sa.Column('element_count', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['project_id'], ['canvas_projects.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('project_id', 'snapshot_key')
    )
    op.create_index('ix_canvas_snapshots_project_index', 'canvas_snapshots', ['project_id', 'snapshot_op_index'], unique=False)

    # 미디어
    op.create_table('canvas_media',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('storage_path', sa.Text(), nullable=True),
        sa.Column('origin', sa.String(length=20), nullable=False),
        sa.Column('project_id', sa.String(length=64), nullable=True),
        sa.Column('referenced_by_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unreferenced_since', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('referenced_by_count >= 0', name='ck_canvas_media_refcount_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_canvas_media_project_id'), 'canvas_media', ['project_id'], unique=False)
    op.create_index('ix_canvas_media_refcount', 'canvas_media', ['referenced_by_count', 'unreferenced_since'], unique=False)


def downgrade() -> None:
    """Canvas 협업 테이블 삭제"""
    op.drop_index('ix_canvas_media_refcount', table_name='canvas_media')
    op.drop_index(op.f('ix_canvas_media_project_id'), table_name='canvas_media')
    op.drop_table('canvas_media')
    op.drop_index('ix_canvas_snapshots_project_index', table_name='canvas_snapshots')
    op.drop_table('canvas_snapshots')
    op.drop_index('ix_canvas_elements_project_type', table_name='canvas_elements')
    op.drop_table('canvas_elements')
    op.drop_index('ix_canvas_op_counters_updated', table_name='canvas_op_counters')
    op.drop_table('canvas_op_counters')
    op.drop_index('ix_canvas_ops_project_index', table_name='canvas_ops')
    op.drop_table('canvas_ops')
    op.drop_index('ix_canvas_collaborator_user', table_name='canvas_project_collaborators')
    op.drop_table('canvas_project_collaborators')
    op.drop_index(op.f('ix_canvas_projects_owner_id'), table_name='canvas_projects')
    op.drop_table('canvas_projects')
