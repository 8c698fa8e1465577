"""
Entity Resolver — Looks up or creates the dimension rows a spreadsheet row
references (vendor, product, campaign, category, keyword) and links
categories / keywords to their campaign.

All dedupe state lives in an ImportContext owned by one import run. It is
seeded with a bulk query of existing natural keys, so a key already in the
database or already seen earlier in the file costs no query at all. Writes
are insert-if-absent, so two imports racing on the same key never error and
never overwrite: the first writer's attributes stay.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from adperf.database import insert_if_absent
from adperf.exceptions import RowProcessingError
from adperf.models import (
    Vendor, Product, Campaign, Category, Keyword, CampaignType,
    campaign_categories, campaign_keywords,
)
from adperf.services.row_mapping import (
    UNCATEGORIZED_ID, UNCATEGORIZED_NAME, KEYWORD_NOT_SET,
    clean_campaign_name, derive_campaign_type, parse_row_date,
)
from adperf.utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class KnownCampaign:
    name: Optional[str]
    campaign_type: CampaignType


@dataclass
class ImportContext:
    """Per-import index of natural keys known to exist. Not shared between imports."""

    vendors: set = field(default_factory=set)
    products: set = field(default_factory=set)
    categories: set = field(default_factory=set)
    campaigns: dict = field(default_factory=dict)  # campaign_id → KnownCampaign
    keywords: dict = field(default_factory=dict)  # keyword text → keyword_id
    campaign_categories: set = field(default_factory=set)  # (campaign_id, category_id)
    campaign_keywords: set = field(default_factory=set)  # (campaign_id, keyword_id)
    touched_campaigns: dict = field(default_factory=dict)  # campaign_id → name, first-seen order
    created: Counter = field(default_factory=Counter)

    @classmethod
    async def load(cls, db: AsyncSession) -> "ImportContext":
        """Seed the index from the current contents of the dimension and link tables."""
        ctx = cls()
        ctx.vendors = set((await db.execute(select(Vendor.vendor_id))).scalars().all())
        ctx.products = set((await db.execute(select(Product.product_id))).scalars().all())
        ctx.categories = set((await db.execute(select(Category.category_id))).scalars().all())

        rows = await db.execute(select(Campaign.campaign_id, Campaign.campaign_name, Campaign.campaign_type))
        for campaign_id, name, campaign_type in rows.all():
            ctx.campaigns[campaign_id] = KnownCampaign(name, CampaignType(campaign_type))

        rows = await db.execute(select(Keyword.keyword, Keyword.keyword_id))
        ctx.keywords = {text: keyword_id for text, keyword_id in rows.all()}

        rows = await db.execute(select(campaign_categories.c.campaign_id, campaign_categories.c.category_id))
        ctx.campaign_categories = {tuple(r) for r in rows.all()}
        rows = await db.execute(select(campaign_keywords.c.campaign_id, campaign_keywords.c.keyword_id))
        ctx.campaign_keywords = {tuple(r) for r in rows.all()}

        logger.info(
            f"Import context loaded: {len(ctx.vendors)} vendors, {len(ctx.products)} products, "
            f"{len(ctx.campaigns)} campaigns, {len(ctx.categories)} categories, {len(ctx.keywords)} keywords"
        )
        return ctx


class EntityResolver:
    """Resolves one canonical row at a time against an ImportContext."""

    def __init__(self, db: AsyncSession, context: ImportContext):
        self.db = db
        self.ctx = context

    async def resolve(self, row: dict, row_number: Optional[int] = None) -> dict:
        """
        Ensure every dimension the row references exists and return the
        foreign-key half of its fact record. Category is resolved only for
        LISTING campaigns and keyword only for SEARCH, so at most one is set.
        """
        campaign_id = row.get("campaign_id")
        if not campaign_id:
            raise RowProcessingError("missing campaign_id", row_number)

        # Parse dates up front so a malformed row writes nothing
        start_date = parse_row_date(row, "campaign_start_date", row_number)
        end_date = parse_row_date(row, "campaign_end_date", row_number)

        vendor_id = row.get("vendor_id")
        if vendor_id:
            await self._ensure_vendor(vendor_id, row.get("vendor_name"))
        product_id = row.get("product_id")
        if product_id:
            await self._ensure_product(product_id, row.get("product_name"))

        campaign = await self._ensure_campaign(
            campaign_id,
            name=clean_campaign_name(row.get("campaign_name")),
            campaign_type=derive_campaign_type(row.get("asset_type")),
            start_date=start_date,
            end_date=end_date,
        )

        category_id = None
        keyword_id = None
        if campaign.campaign_type == CampaignType.LISTING:
            category_id = row.get("category_id")
            category_name = row.get("category_name_l2")
            if not category_id:
                category_id, category_name = UNCATEGORIZED_ID, category_name or UNCATEGORIZED_NAME
            await self._ensure_category(category_id, category_name)
            await self._link_category(campaign_id, category_id)
        else:
            keyword_id = await self._keyword_id(row.get("keyword") or KEYWORD_NOT_SET)
            await self._link_keyword(campaign_id, keyword_id)

        return {
            "vendor_id": vendor_id or None,
            "product_id": product_id or None,
            "campaign_id": campaign_id,
            "category_id": category_id,
            "keyword_id": keyword_id,
        }

    # ── Vendor / product / category: insert-if-absent ─────────────────

    async def _ensure_vendor(self, vendor_id: str, vendor_name: Optional[str]):
        if vendor_id in self.ctx.vendors:
            return
        stmt = insert_if_absent(self.db, Vendor).values(vendor_id=vendor_id, vendor_name=vendor_name)
        result = await self.db.execute(stmt)
        self.ctx.created["vendors"] += result.rowcount or 0
        self.ctx.vendors.add(vendor_id)

    async def _ensure_product(self, product_id: str, product_name: Optional[str]):
        if product_id in self.ctx.products:
            return
        stmt = insert_if_absent(self.db, Product).values(product_id=product_id, product_name=product_name)
        result = await self.db.execute(stmt)
        self.ctx.created["products"] += result.rowcount or 0
        self.ctx.products.add(product_id)

    async def _ensure_category(self, category_id: str, category_name: Optional[str]):
        if category_id in self.ctx.categories:
            return
        stmt = insert_if_absent(self.db, Category).values(category_id=category_id, category_name=category_name)
        result = await self.db.execute(stmt)
        self.ctx.created["categories"] += result.rowcount or 0
        self.ctx.categories.add(category_id)

    # ── Campaign ──────────────────────────────────────────────────────

    async def _ensure_campaign(
        self,
        campaign_id: str,
        name: Optional[str],
        campaign_type: CampaignType,
        start_date=None,
        end_date=None,
    ) -> KnownCampaign:
        """
        Create the campaign on first sight, then bump updated_at once per
        import so the UI can highlight recently imported campaigns. Attributes
        of an existing campaign are never changed.
        """
        known = self.ctx.campaigns.get(campaign_id)
        if known is None:
            stmt = insert_if_absent(self.db, Campaign).values(
                campaign_id=campaign_id,
                campaign_name=name,
                campaign_type=campaign_type.value,
                campaign_start_date=start_date,
                campaign_end_date=end_date,
            )
            result = await self.db.execute(stmt)
            if result.rowcount:
                self.ctx.created["campaigns"] += 1
                known = KnownCampaign(name, campaign_type)
            else:
                # Another import created it first; its attributes win
                stored = await self.db.execute(
                    select(Campaign.campaign_name, Campaign.campaign_type)
                    .where(Campaign.campaign_id == campaign_id)
                )
                stored_name, stored_type = stored.one()
                known = KnownCampaign(stored_name, CampaignType(stored_type))
            self.ctx.campaigns[campaign_id] = known

        if campaign_id not in self.ctx.touched_campaigns:
            await self.db.execute(
                update(Campaign)
                .where(Campaign.campaign_id == campaign_id)
                .values(updated_at=utcnow())
            )
            self.ctx.touched_campaigns[campaign_id] = known.name
        return known

    # ── Keyword: surrogate id needed for linking ──────────────────────

    async def _keyword_id(self, text: str) -> int:
        keyword_id = self.ctx.keywords.get(text)
        if keyword_id is not None:
            return keyword_id
        result = await self.db.execute(insert_if_absent(self.db, Keyword).values(keyword=text))
        self.ctx.created["keywords"] += result.rowcount or 0
        keyword_id = (
            await self.db.execute(select(Keyword.keyword_id).where(Keyword.keyword == text))
        ).scalar_one()
        self.ctx.keywords[text] = keyword_id
        return keyword_id

    # ── Campaign links (deduplicated pairs) ───────────────────────────

    async def _link_category(self, campaign_id: str, category_id: str):
        pair = (campaign_id, category_id)
        if pair in self.ctx.campaign_categories:
            return
        await self.db.execute(
            insert_if_absent(self.db, campaign_categories).values(campaign_id=campaign_id, category_id=category_id)
        )
        self.ctx.campaign_categories.add(pair)

    async def _link_keyword(self, campaign_id: str, keyword_id: int):
        pair = (campaign_id, keyword_id)
        if pair in self.ctx.campaign_keywords:
            return
        await self.db.execute(
            insert_if_absent(self.db, campaign_keywords).values(campaign_id=campaign_id, keyword_id=keyword_id)
        )
        self.ctx.campaign_keywords.add(pair)
