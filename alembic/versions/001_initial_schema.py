"""Initial town pulse schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

Tables created:
- pulse_signals: append-only weighted observations per scope
- pulse_models: last computed model per (scope_ref, model_kind)
- scope_timezones: IANA timezone per town or brand
"""
from alembic import op
import sqlalchemy as sa
import logging

logger = logging.getLogger('alembic.runtime.migration')

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create initial town pulse schema."""
    logger.info("Step 1/3: Creating pulse_signals table...")
    op.create_table(
        'pulse_signals',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=True),
        sa.Column('scope_ref', sa.String(), nullable=False),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('signal_kind', sa.String(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('hour', sa.Integer(), nullable=True),
        sa.Column('weight', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_pulse_signals_tenant_id', 'pulse_signals', ['tenant_id'])
    op.create_index('ix_pulse_signals_scope_ref', 'pulse_signals', ['scope_ref'])
    op.create_index('ix_pulse_signals_created_at', 'pulse_signals', ['created_at'])
    op.create_index('ix_pulse_signals_scope_created', 'pulse_signals', ['scope_ref', 'created_at'])
    logger.info("✓ pulse_signals table created")

    logger.info("Step 2/3: Creating pulse_models table...")
    op.create_table(
        'pulse_models',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=True),
        sa.Column('scope_ref', sa.String(), nullable=False),
        sa.Column('model_kind', sa.String(), nullable=False),
        sa.Column('model', sa.JSON(), nullable=False),
        sa.Column('computed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('scope_ref', 'model_kind', name='uq_pulse_models_scope_kind')
    )
    op.create_index('ix_pulse_models_tenant_id', 'pulse_models', ['tenant_id'])
    logger.info("✓ pulse_models table created")

    logger.info("Step 3/3: Creating scope_timezones table...")
    op.create_table(
        'scope_timezones',
        sa.Column('scope_ref', sa.String(), nullable=False),
        sa.Column('timezone', sa.String(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('scope_ref')
    )
    logger.info("✓ scope_timezones table created")


def downgrade() -> None:
    """Drop town pulse schema."""
    op.drop_table('scope_timezones')
    op.drop_index('ix_pulse_models_tenant_id', table_name='pulse_models')
    op.drop_table('pulse_models')
    op.drop_index('ix_pulse_signals_scope_created', table_name='pulse_signals')
    op.drop_index('ix_pulse_signals_created_at', table_name='pulse_signals')
    op.drop_index('ix_pulse_signals_scope_ref', table_name='pulse_signals')
    op.drop_index('ix_pulse_signals_tenant_id', table_name='pulse_signals')
    op.drop_table('pulse_signals')
