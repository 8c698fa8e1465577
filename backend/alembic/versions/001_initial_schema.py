"""Initial schema: dimension tables, campaign link tables, ad_performances, import_jobs.

Revision ID: 001
Revises:
Create Date: 2025-12-08

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    existing = insp.get_table_names()

    if "ad_performances" in existing:
        return  # Already applied (e.g. from create_all)

    op.create_table(
        "vendors",
        sa.Column("vendor_id", sa.String(255), nullable=False),
        sa.Column("vendor_name", sa.String(512), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("vendor_id"),
    )
    op.create_table(
        "products",
        sa.Column("product_id", sa.String(255), nullable=False),
        sa.Column("product_name", sa.String(512), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("product_id"),
    )
    op.create_table(
        "campaigns",
        sa.Column("campaign_id", sa.String(255), nullable=False),
        sa.Column("campaign_name", sa.String(512), nullable=True),
        sa.Column("campaign_type", sa.String(20), nullable=True, server_default="LISTING"),
        sa.Column("campaign_start_date", sa.Date(), nullable=True),
        sa.Column("campaign_end_date", sa.Date(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("campaign_id"),
    )
    op.create_index("ix_campaigns_campaign_type", "campaigns", ["campaign_type"], unique=False)
    op.create_index("ix_campaigns_updated_at", "campaigns", ["updated_at"], unique=False)

    op.create_table(
        "categories",
        sa.Column("category_id", sa.String(255), nullable=False),
        sa.Column("category_name", sa.String(512), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("category_id"),
    )
    op.create_table(
        "keywords",
        sa.Column("keyword_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("keyword", sa.String(512), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("keyword_id"),
        sa.UniqueConstraint("keyword", name="uq_keywords_keyword"),
    )

    op.create_table(
        "import_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("filename", sa.String(512), nullable=True),
        sa.Column("file_format", sa.String(10), nullable=False),
        sa.Column("status", sa.String(20), nullable=True, server_default="pending"),
        sa.Column("rows_read", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("rows_imported", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("rows_skipped", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("flush_count", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("stats", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_import_jobs_status", "import_jobs", ["status"], unique=False)
    op.create_index("ix_import_jobs_created_at", "import_jobs", ["created_at"], unique=False)

    op.create_table(
        "campaign_categories",
        sa.Column("campaign_id", sa.String(255), nullable=False),
        sa.Column("category_id", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["campaign_id"], ["campaigns.campaign_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.category_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("campaign_id", "category_id"),
    )
    op.create_index("ix_campaign_categories_category_id", "campaign_categories", ["category_id"], unique=False)

    op.create_table(
        "campaign_keywords",
        sa.Column("campaign_id", sa.String(255), nullable=False),
        sa.Column("keyword_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["campaign_id"], ["campaigns.campaign_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["keyword_id"], ["keywords.keyword_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("campaign_id", "keyword_id"),
    )
    op.create_index("ix_campaign_keywords_keyword_id", "campaign_keywords", ["keyword_id"], unique=False)

    op.create_table(
        "ad_performances",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("date", sa.Date(), nullable=True),
        sa.Column("product_id", sa.String(255), nullable=True),
        sa.Column("vendor_id", sa.String(255), nullable=True),
        sa.Column("campaign_id", sa.String(255), nullable=True),
        sa.Column("keyword_id", sa.Integer(), nullable=True),
        sa.Column("category_id", sa.String(255), nullable=True),
        sa.Column("import_job_id", sa.Uuid(), nullable=True),
        sa.Column("impressions", sa.Integer(), nullable=True),
        sa.Column("clicks", sa.Integer(), nullable=True),
        sa.Column("orders", sa.Integer(), nullable=True),
        sa.Column("unit_sold", sa.Integer(), nullable=True),
        sa.Column("ctr", sa.Float(), nullable=True),
        sa.Column("cvr", sa.Float(), nullable=True),
        sa.Column("avg_ad_position", sa.Float(), nullable=True),
        sa.Column("sales_revenue", sa.Float(), nullable=True),
        sa.Column("total_ad_spend", sa.Float(), nullable=True),
        sa.Column("cpa", sa.Float(), nullable=True),
        sa.Column("cpc", sa.Float(), nullable=True),
        sa.Column("roas", sa.Float(), nullable=True),
        sa.Column("extra_attributes", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.product_id"]),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.vendor_id"]),
        sa.ForeignKeyConstraint(["campaign_id"], ["campaigns.campaign_id"]),
        sa.ForeignKeyConstraint(["keyword_id"], ["keywords.keyword_id"]),
        sa.ForeignKeyConstraint(["category_id"], ["categories.category_id"]),
        sa.ForeignKeyConstraint(["import_job_id"], ["import_jobs.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "category_id IS NULL OR keyword_id IS NULL",
            name="ck_ad_performances_category_xor_keyword",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ad_performances_campaign_id", "ad_performances", ["campaign_id"], unique=False)
    op.create_index("ix_ad_performances_product_id", "ad_performances", ["product_id"], unique=False)
    op.create_index("ix_ad_performances_keyword_id", "ad_performances", ["keyword_id"], unique=False)
    op.create_index("ix_ad_performances_category_id", "ad_performances", ["category_id"], unique=False)
    op.create_index("ix_ad_performances_date", "ad_performances", ["date"], unique=False)


def downgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    if "ad_performances" not in insp.get_table_names():
        return

    op.drop_table("ad_performances")
    op.drop_table("campaign_keywords")
    op.drop_table("campaign_categories")
    op.drop_table("import_jobs")
    op.drop_table("keywords")
    op.drop_table("categories")
    op.drop_table("campaigns")
    op.drop_table("products")
    op.drop_table("vendors")
