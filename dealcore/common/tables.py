"""
Table definitions shared by the repositories and the Alembic migration.

Two independently keyed learned-mapping tables:
- deal_coa_mappings: deal-scoped corrections, keyed by (deal_id, source_label)
- global_coa_mappings: cross-deal patterns, keyed by normalized_label

Keeping the tiers in separate tables makes "deal first, then global" an
explicit lookup step rather than a filter on a scope column.
"""
import sqlalchemy as sa

metadata = sa.MetaData()


registry_cache = sa.Table(
    "registry_cache",
    metadata,
    sa.Column("cache_key", sa.Text, primary_key=True),
    sa.Column("operation", sa.Text, nullable=False),
    sa.Column("payload", sa.JSON, nullable=True),
    sa.Column("fetched_at", sa.DateTime, nullable=False),
)

sa.Index("idx_registry_cache_fetched_at", registry_cache.c.fetched_at)


deal_coa_mappings = sa.Table(
    "deal_coa_mappings",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("deal_id", sa.Text, nullable=False),
    sa.Column("facility_id", sa.Text, nullable=True),
    sa.Column("document_id", sa.Text, nullable=True),
    sa.Column("source_label", sa.Text, nullable=False),
    sa.Column("normalized_label", sa.Text, nullable=False),
    sa.Column("coa_code", sa.Text, nullable=True),
    sa.Column("coa_name", sa.Text, nullable=True),
    sa.Column("mapping_method", sa.Text, nullable=False),
    sa.Column("mapping_confidence", sa.Float, nullable=True),
    sa.Column("is_mapped", sa.Boolean, nullable=False, default=False),
    sa.Column("usage_count", sa.Integer, nullable=False, default=1),
    sa.Column("reviewed_by", sa.Text, nullable=True),
    sa.Column("reviewed_at", sa.DateTime, nullable=True),
    sa.Column("created_at", sa.DateTime, nullable=False),
    sa.UniqueConstraint("deal_id", "source_label", name="uq_deal_coa_mappings_deal_label"),
)

sa.Index("idx_deal_coa_mappings_deal", deal_coa_mappings.c.deal_id)


global_coa_mappings = sa.Table(
    "global_coa_mappings",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("normalized_label", sa.Text, nullable=False, unique=True),
    sa.Column("coa_code", sa.Text, nullable=False),
    sa.Column("coa_name", sa.Text, nullable=True),
    sa.Column("category", sa.Text, nullable=True),
    sa.Column("confidence", sa.Float, nullable=False),
    sa.Column("usage_count", sa.Integer, nullable=False, default=1),
    sa.Column("challenger_code", sa.Text, nullable=True),
    sa.Column("challenger_count", sa.Integer, nullable=False, default=0),
    sa.Column("disagreement_count", sa.Integer, nullable=False, default=0),
    sa.Column("source_deal_id", sa.Text, nullable=True),
    sa.Column("last_reviewed_by", sa.Text, nullable=True),
    sa.Column("last_reviewed_at", sa.DateTime, nullable=True),
    sa.Column("created_at", sa.DateTime, nullable=False),
)
