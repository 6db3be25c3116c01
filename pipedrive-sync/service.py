from typing import Dict, Iterable, List, Optional, Sequence

import httpx

import deal_fields
import products
from config import PipedriveSettings
from deal_search import DealSearch
from models import NormalizedLine, OwnerInfo, PipedriveDealSummary, ReplaceResult
from pipedrive_client import DealId, PipedriveClient
from reference_data import FieldOptions, ReferenceDataCache


class PipedriveService:
    """One CRM account: an HTTP client plus the reference data cached for it."""

    def __init__(
        self,
        settings: Optional[PipedriveSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or PipedriveSettings.from_env()
        self.client = PipedriveClient(self.settings, http_client)
        self.cache = ReferenceDataCache(self.client, self.settings)
        self.search = DealSearch(self.client, self.cache, self.settings)

    async def aclose(self) -> None:
        await self.client.aclose()

    # --- Products ---

    async def find_product_id_by_sku(self, sku: str) -> Optional[int]:
        return await products.find_product_id_by_sku(self.client, sku)

    async def replace_deal_products(self, deal_id: DealId, lines: Sequence[NormalizedLine]) -> ReplaceResult:
        return await products.replace_deal_products(self.client, deal_id, lines)

    # --- Custom fields ---

    async def update_one_shot_and_url(
        self,
        deal_id: DealId,
        one_shot: Optional[float] = None,
        proposal_url: Optional[str] = None,
    ) -> Dict[str, bool]:
        return await deal_fields.update_one_shot_and_url(self.client, self.settings, deal_id, one_shot, proposal_url)

    async def update_tech_sale_scope(self, deal_id: DealId, scope_url: str) -> None:
        await deal_fields.update_tech_sale_scope(self.client, self.settings, deal_id, scope_url)

    async def assign_deal_to_mapache(self, deal_id: DealId, mapache_name: str) -> int:
        return await deal_fields.assign_deal_to_mapache(self.client, self.cache, self.settings, deal_id, mapache_name)

    # --- Reference data ---

    async def ensure_mapache_field_options(self) -> FieldOptions:
        return await self.cache.ensure_mapache_field_options()

    async def ensure_stage_name_map(self) -> Dict[int, str]:
        return await self.cache.ensure_stage_name_map()

    async def resolve_owner_infos(self, ids: Iterable[int]) -> Dict[int, Optional[OwnerInfo]]:
        return await self.cache.resolve_owner_infos(ids)

    # --- Search ---

    async def search_deals_by_mapache_assigned(self, name: str) -> List[PipedriveDealSummary]:
        return await self.search.search_deals_by_mapache_assigned(name)

    async def search_deals_by_mapache_assigned_many(self, names: Iterable[str]) -> List[PipedriveDealSummary]:
        return await self.search.search_deals_by_mapache_assigned_many(names)

    async def search_deals_by_owner_name(self, name: str) -> List[PipedriveDealSummary]:
        return await self.search.search_deals_by_owner_name(name)

    async def search_deals_by_owner_emails(self, emails: Iterable[str]) -> List[PipedriveDealSummary]:
        return await self.search.search_deals_by_owner_emails(emails)

    async def search_won_deals_by_mapache_assigned(self, name: str, year: int, quarter: int) -> List[PipedriveDealSummary]:
        return await self.search.search_won_deals_by_mapache_assigned(name, year, quarter)

    async def search_won_deals_by_owner_email(self, email: str, year: int, quarter: int) -> List[PipedriveDealSummary]:
        return await self.search.search_won_deals_by_owner_email(email, year, quarter)

    async def fetch_all_deals_for_analytics(self, statuses: Optional[Sequence[str]] = None) -> List[PipedriveDealSummary]:
        return await self.search.fetch_all_deals_for_analytics(statuses)


_service: Optional[PipedriveService] = None


def get_service() -> PipedriveService:
    """Process-wide service used by the API routes (FastAPI dependency)."""
    global _service
    if _service is None:
        _service = PipedriveService()
    return _service


async def close_service() -> None:
    global _service
    if _service is not None:
        await _service.aclose()
        _service = None
