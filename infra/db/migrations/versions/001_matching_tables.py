"""registry cache and learned COA mapping tables

Revision ID: 001_matching_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_matching_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Persistent layer of the CMS registry cache (shared by API and workers)
    op.create_table(
        'registry_cache',
        sa.Column('cache_key', sa.Text, primary_key=True, comment='operation:normalized:params'),
        sa.Column('operation', sa.Text, nullable=False, comment='search, provider, penalties, deficiencies'),
        sa.Column('payload', sa.JSON, comment='Raw registry rows; null for a cached not-found'),
        sa.Column('fetched_at', sa.DateTime, nullable=False, comment='UTC; entries older than the TTL are refetched'),
    )
    op.create_index('idx_registry_cache_fetched_at', 'registry_cache', ['fetched_at'])

    # Deal-scoped learned mappings (plus automatic outcomes for statistics)
    op.create_table(
        'deal_coa_mappings',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),

        # Scope + source
        sa.Column('deal_id', sa.Text, nullable=False),
        sa.Column('facility_id', sa.Text),
        sa.Column('document_id', sa.Text),
        sa.Column('source_label', sa.Text, nullable=False, comment='Label exactly as extracted'),
        sa.Column('normalized_label', sa.Text, nullable=False, comment='Underscore-joined normalized label'),

        # Mapping
        sa.Column('coa_code', sa.Text),
        sa.Column('coa_name', sa.Text),
        sa.Column('mapping_method', sa.Text, nullable=False, comment='manual, auto, unmapped'),
        sa.Column('mapping_confidence', sa.Float),
        sa.Column('is_mapped', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('usage_count', sa.Integer, nullable=False, server_default='1'),

        # Review metadata
        sa.Column('reviewed_by', sa.Text),
        sa.Column('reviewed_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False),

        sa.UniqueConstraint('deal_id', 'source_label', name='uq_deal_coa_mappings_deal_label'),
    )
    op.create_index('idx_deal_coa_mappings_deal', 'deal_coa_mappings', ['deal_id'])

    # Global learned mappings (cross-deal, one row per normalized label)
    op.create_table(
        'global_coa_mappings',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('normalized_label', sa.Text, nullable=False, unique=True),
        sa.Column('coa_code', sa.Text, nullable=False),
        sa.Column('coa_name', sa.Text),
        sa.Column('category', sa.Text, comment='Coarse category from the code prefix'),
        sa.Column('confidence', sa.Float, nullable=False, comment='0.90 on creation, reinforced up to 0.98'),
        sa.Column('usage_count', sa.Integer, nullable=False, server_default='1'),

        # Conflict tracking
        sa.Column('challenger_code', sa.Text, comment='Disagreeing code counted toward an override'),
        sa.Column('challenger_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('disagreement_count', sa.Integer, nullable=False, server_default='0'),

        sa.Column('source_deal_id', sa.Text, comment='Deal that first taught this mapping'),
        sa.Column('last_reviewed_by', sa.Text),
        sa.Column('last_reviewed_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )


def downgrade() -> None:
    op.drop_table('global_coa_mappings')
    op.drop_index('idx_deal_coa_mappings_deal', table_name='deal_coa_mappings')
    op.drop_table('deal_coa_mappings')
    op.drop_index('idx_registry_cache_fetched_at', table_name='registry_cache')
    op.drop_table('registry_cache')
