"""
Ad Performance Dashboard — Database Models
Star schema: vendor / product / campaign / category / keyword dimensions,
one ad_performances fact row per uploaded spreadsheet row, plus the
import_jobs table tracking background ingestion.
"""

import uuid
import enum
from datetime import date, datetime, timezone
from sqlalchemy import (
    String, Text, Float, Integer, Date, DateTime, Uuid,
    JSON, ForeignKey, Index, UniqueConstraint, CheckConstraint,
    Table, Column,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from adperf.database import Base


def _utcnow() -> datetime:
    """Naive UTC now — matches DB columns (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class CampaignType(str, enum.Enum):
    SEARCH = "SEARCH"
    LISTING = "LISTING"


class ImportStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# ══════════════════════════════════════════════════════════════════════
#  JOIN TABLES — campaign ↔ category (LISTING), campaign ↔ keyword (SEARCH)
# ══════════════════════════════════════════════════════════════════════

campaign_categories = Table(
    "campaign_categories",
    Base.metadata,
    Column("campaign_id", String(255), ForeignKey("campaigns.campaign_id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", String(255), ForeignKey("categories.category_id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime, default=_utcnow),
    Index("ix_campaign_categories_category_id", "category_id"),
)

campaign_keywords = Table(
    "campaign_keywords",
    Base.metadata,
    Column("campaign_id", String(255), ForeignKey("campaigns.campaign_id", ondelete="CASCADE"), primary_key=True),
    Column("keyword_id", Integer, ForeignKey("keywords.keyword_id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime, default=_utcnow),
    Index("ix_campaign_keywords_keyword_id", "keyword_id"),
)


# ══════════════════════════════════════════════════════════════════════
#  DIMENSIONS — created lazily during ingestion, first write wins
# ══════════════════════════════════════════════════════════════════════

class Vendor(Base):
    __tablename__ = "vendors"

    vendor_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    vendor_name: Mapped[str] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    ad_performances: Mapped[list["AdPerformance"]] = relationship("AdPerformance", back_populates="vendor")


class Product(Base):
    __tablename__ = "products"

    product_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    product_name: Mapped[str] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    ad_performances: Mapped[list["AdPerformance"]] = relationship("AdPerformance", back_populates="product")


class Campaign(Base):
    """Advertising campaign. `updated_at` is bumped each time an import touches it."""
    __tablename__ = "campaigns"

    campaign_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    campaign_name: Mapped[str] = mapped_column(String(512), nullable=True)  # cleaned: text before the first "("
    campaign_type: Mapped[str] = mapped_column(String(20), default=CampaignType.LISTING.value)
    campaign_start_date: Mapped[date] = mapped_column(Date, nullable=True)
    campaign_end_date: Mapped[date] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    categories: Mapped[list["Category"]] = relationship(
        "Category", secondary=campaign_categories, back_populates="campaigns",
    )
    keywords: Mapped[list["Keyword"]] = relationship(
        "Keyword", secondary=campaign_keywords, back_populates="campaigns",
    )
    ad_performances: Mapped[list["AdPerformance"]] = relationship("AdPerformance", back_populates="campaign")

    __table_args__ = (
        Index("ix_campaigns_campaign_type", "campaign_type"),
        Index("ix_campaigns_updated_at", "updated_at"),
    )


class Category(Base):
    __tablename__ = "categories"

    category_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    category_name: Mapped[str] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    campaigns: Mapped[list["Campaign"]] = relationship(
        "Campaign", secondary=campaign_categories, back_populates="categories",
    )
    ad_performances: Mapped[list["AdPerformance"]] = relationship("AdPerformance", back_populates="category")


class Keyword(Base):
    """Search keyword, deduplicated by exact text; keyword_id is a surrogate key."""
    __tablename__ = "keywords"

    keyword_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    keyword: Mapped[str] = mapped_column(String(512), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    campaigns: Mapped[list["Campaign"]] = relationship(
        "Campaign", secondary=campaign_keywords, back_populates="keywords",
    )
    ad_performances: Mapped[list["AdPerformance"]] = relationship("AdPerformance", back_populates="keyword")

    __table_args__ = (
        UniqueConstraint("keyword", name="uq_keywords_keyword"),
    )


# ══════════════════════════════════════════════════════════════════════
#  AD PERFORMANCE — one fact row per spreadsheet row (no dedupe)
# ══════════════════════════════════════════════════════════════════════

class AdPerformance(Base):
    """
    One measured observation for a vendor/product/campaign combination.
    category_id is set for LISTING campaigns, keyword_id for SEARCH, never both.
    """
    __tablename__ = "ad_performances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[date] = mapped_column(Date, nullable=True)
    product_id: Mapped[str] = mapped_column(String(255), ForeignKey("products.product_id"), nullable=True)
    vendor_id: Mapped[str] = mapped_column(String(255), ForeignKey("vendors.vendor_id"), nullable=True)
    campaign_id: Mapped[str] = mapped_column(String(255), ForeignKey("campaigns.campaign_id"), nullable=True)
    keyword_id: Mapped[int] = mapped_column(Integer, ForeignKey("keywords.keyword_id"), nullable=True)  # NULL for LISTING
    category_id: Mapped[str] = mapped_column(String(255), ForeignKey("categories.category_id"), nullable=True)  # NULL for SEARCH
    import_job_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("import_jobs.id", ondelete="SET NULL"), nullable=True)

    # Metrics
    impressions: Mapped[int] = mapped_column(Integer, nullable=True)
    clicks: Mapped[int] = mapped_column(Integer, nullable=True)
    orders: Mapped[int] = mapped_column(Integer, nullable=True)
    unit_sold: Mapped[int] = mapped_column(Integer, nullable=True)
    ctr: Mapped[float] = mapped_column(Float, nullable=True)
    cvr: Mapped[float] = mapped_column(Float, nullable=True)
    avg_ad_position: Mapped[float] = mapped_column(Float, nullable=True)
    sales_revenue: Mapped[float] = mapped_column(Float, nullable=True)
    total_ad_spend: Mapped[float] = mapped_column(Float, nullable=True)
    cpa: Mapped[float] = mapped_column(Float, nullable=True)
    cpc: Mapped[float] = mapped_column(Float, nullable=True)
    roas: Mapped[float] = mapped_column(Float, nullable=True)

    # Columns present in the upload that have no place in the fixed schema
    extra_attributes: Mapped[dict] = mapped_column(JSON(none_as_null=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    vendor: Mapped["Vendor"] = relationship("Vendor", back_populates="ad_performances")
    product: Mapped["Product"] = relationship("Product", back_populates="ad_performances")
    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="ad_performances")
    category: Mapped["Category"] = relationship("Category", back_populates="ad_performances")
    keyword: Mapped["Keyword"] = relationship("Keyword", back_populates="ad_performances")

    __table_args__ = (
        CheckConstraint(
            "category_id IS NULL OR keyword_id IS NULL",
            name="ck_ad_performances_category_xor_keyword",
        ),
        Index("ix_ad_performances_campaign_id", "campaign_id"),
        Index("ix_ad_performances_product_id", "product_id"),
        Index("ix_ad_performances_keyword_id", "keyword_id"),
        Index("ix_ad_performances_category_id", "category_id"),
        Index("ix_ad_performances_date", "date"),
    )


# ══════════════════════════════════════════════════════════════════════
#  IMPORT JOBS — Upload → background ingestion progress and outcome
# ══════════════════════════════════════════════════════════════════════

class ImportJob(Base):
    """One uploaded spreadsheet and the outcome of ingesting it."""
    __tablename__ = "import_jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    filename: Mapped[str] = mapped_column(String(512), nullable=True)
    file_format: Mapped[str] = mapped_column(String(10), nullable=False)  # csv / xls / xlsx
    status: Mapped[str] = mapped_column(String(20), default=ImportStatus.PENDING.value)
    rows_read: Mapped[int] = mapped_column(Integer, default=0)
    rows_imported: Mapped[int] = mapped_column(Integer, default=0)
    rows_skipped: Mapped[int] = mapped_column(Integer, default=0)
    flush_count: Mapped[int] = mapped_column(Integer, default=0)
    stats: Mapped[dict] = mapped_column(JSON, nullable=True)
    # stats: {"created": {...}, "updated_campaigns": {id: name}, "skipped": [...]}
    error_message: Mapped[str] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_import_jobs_status", "status"),
        Index("ix_import_jobs_created_at", "created_at"),
    )
