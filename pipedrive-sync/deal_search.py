"""
Deal search over the configured pipeline.

Every entry point runs the same pipeline: page through all deals of the
requested statuses, drop deals from other pipelines and deals sitting in
the excluded stage, apply a predicate, then resolve owners and map the
survivors to `PipedriveDealSummary`.
"""
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

import config
from config import PipedriveSettings
from models import OwnerInfo, PipedriveDealSummary
from pipedrive_client import PipedriveClient
from reference_data import FieldOptions, ReferenceDataCache
from utils import (
    custom_field_value,
    normalize_search_text,
    parse_pipedrive_time,
    quarter_from_date,
    quarter_range,
    to_finite_number,
)

logger = structlog.get_logger(__name__)

Deal = Dict
DealPredicate = Callable[[Deal], bool]


def _owner_id(deal: Deal) -> Optional[int]:
    # v2 returns owner_id as an int, v1 embeds a user object in user_id
    for key in ("owner_id", "user_id"):
        raw = deal.get(key)
        if isinstance(raw, dict):
            raw = raw.get("id") or raw.get("value")
        number = to_finite_number(raw)
        if number is not None:
            return int(number)
    return None


def _raw_owner_name(deal: Deal) -> Optional[str]:
    if deal.get("owner_name"):
        return deal["owner_name"]
    user = deal.get("user_id")
    if isinstance(user, dict):
        return user.get("name")
    return None


def _text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _option_label(value, options: Optional[FieldOptions], fallback: Dict[str, str]) -> Optional[str]:
    number = to_finite_number(value)
    if number is None:
        return _text(value)
    option_id = str(int(number))
    if options is not None:
        label = options.label_for(option_id)
        if label:
            return label
    return fallback.get(option_id) or option_id


class DealSearch:
    def __init__(self, client: PipedriveClient, cache: ReferenceDataCache, settings: PipedriveSettings):
        self._client = client
        self._cache = cache
        self._settings = settings

    # --- Fetching ---

    async def fetch_all_deals(self, statuses: Optional[Sequence[str]] = None) -> List[Deal]:
        """All deals of the configured pipeline for the given statuses, following next_cursor."""
        statuses = tuple(statuses or self._settings.statuses)
        custom_fields = list(self._settings.custom_field_keys)
        deals: List[Deal] = []

        for status in statuses:
            cursor = None
            pages = 0
            while True:
                page = await self._client.list_deals_page(
                    status,
                    pipeline_id=self._settings.pipeline_id,
                    cursor=cursor,
                    custom_fields=custom_fields,
                )
                pages += 1
                deals.extend(page.deals)
                cursor = page.next_cursor
                if not cursor:
                    break
            logger.debug("pipedrive.deals_fetched", status=status, pages=pages)

        in_pipeline = [d for d in deals if self._in_pipeline(d)]
        if len(in_pipeline) != len(deals):
            logger.info("pipedrive.foreign_pipeline_deals_dropped", dropped=len(deals) - len(in_pipeline))
        return in_pipeline

    def _in_pipeline(self, deal: Deal) -> bool:
        return to_finite_number(deal.get("pipeline_id")) == float(self._settings.pipeline_id)

    def _is_excluded_stage(self, deal: Deal, stage_names: Dict[int, str]) -> bool:
        excluded = (self._settings.excluded_stage_name or "").strip().lower()
        if not excluded:
            return False
        stage_id = to_finite_number(deal.get("stage_id"))
        if stage_id is None:
            return False
        name = stage_names.get(int(stage_id))
        return bool(name) and name.strip().lower() == excluded

    async def _eligible_deals(self, statuses: Optional[Sequence[str]] = None) -> Tuple[List[Deal], Dict[int, str]]:
        deals = await self.fetch_all_deals(statuses)
        stage_names = await self._cache.ensure_stage_name_map()
        return [d for d in deals if not self._is_excluded_stage(d, stage_names)], stage_names

    # --- Mapping ---

    def _summarize(
        self,
        deal: Deal,
        stage_names: Dict[int, str],
        owners: Dict[int, Optional[OwnerInfo]],
        mapache: FieldOptions,
    ) -> PipedriveDealSummary:
        s = self._settings
        deal_id = int(deal["id"])
        stage_number = to_finite_number(deal.get("stage_id"))
        stage_id = int(stage_number) if stage_number is not None else None
        owner_id = _owner_id(deal)
        owner = owners.get(owner_id) if owner_id is not None else None

        added = parse_pipedrive_time(deal.get("add_time"))
        won = parse_pipedrive_time(deal.get("won_time"))
        lost = parse_pipedrive_time(deal.get("lost_time"))
        closed = won or lost
        sales_cycle_days = (closed - added).days if closed and added else None

        assigned = to_finite_number(custom_field_value(deal, s.field_mapache_assigned))

        return PipedriveDealSummary(
            id=deal_id,
            title=deal.get("title") or f"Deal {deal_id}",
            value=to_finite_number(deal.get("value")),
            stage_id=stage_id,
            stage_name=stage_names.get(stage_id) if stage_id is not None else None,
            owner_id=owner_id,
            owner_name=(owner.name if owner else None) or _raw_owner_name(deal),
            owner_email=owner.email if owner else None,
            status=deal.get("status"),
            created_at=deal.get("add_time"),
            won_at=deal.get("won_time"),
            lost_at=deal.get("lost_time"),
            won_quarter=quarter_from_date(won) if won else None,
            mapache_assigned=mapache.label_for(int(assigned)) if assigned is not None else None,
            fee_mensual=to_finite_number(custom_field_value(deal, s.field_fee_mensual)),
            proposal_url=_text(custom_field_value(deal, s.field_proposal_url)),
            doc_context_deal=_text(custom_field_value(deal, s.field_doc_context_deal)),
            tech_sale_scope_url=_text(custom_field_value(deal, s.field_tech_sale_scope)),
            deal_url=f"{s.base_url}/deal/{deal_id}",
            deal_type=_option_label(
                custom_field_value(deal, s.field_deal_type),
                self._cache.picklist(s.field_deal_type),
                config.DEAL_TYPE_LABELS,
            ),
            country=_option_label(
                custom_field_value(deal, s.field_country),
                self._cache.picklist(s.field_country),
                config.COUNTRY_OPTIONS,
            ),
            origin=_option_label(
                custom_field_value(deal, s.field_origin),
                self._cache.picklist(s.field_origin),
                config.ORIGEN_OPTIONS,
            ),
            sales_cycle_days=sales_cycle_days,
        )

    async def _to_summaries(
        self,
        deals: Iterable[Deal],
        stage_names: Dict[int, str],
        owners: Optional[Dict[int, Optional[OwnerInfo]]] = None,
    ) -> List[PipedriveDealSummary]:
        deals = list(deals)
        mapache = await self._cache.ensure_mapache_field_options()
        if owners is None:
            owners = await self._cache.resolve_owner_infos(
                oid for oid in (_owner_id(d) for d in deals) if oid is not None
            )
        return [self._summarize(d, stage_names, owners, mapache) for d in deals]

    # --- Predicates ---

    def _assigned_to(self, option_ids: Iterable[int]) -> DealPredicate:
        wanted = {float(oid) for oid in option_ids}
        key = self._settings.field_mapache_assigned

        def predicate(deal: Deal) -> bool:
            value = to_finite_number(custom_field_value(deal, key))
            return value is not None and value in wanted

        return predicate

    async def _resolve_option_ids(self, names: Iterable[str]) -> List[int]:
        options = await self._cache.ensure_mapache_field_options()
        resolved: List[int] = []
        for name in names:
            option_id = options.find_id(name)
            if option_id is None:
                logger.warning("pipedrive.mapache_option_not_found", name=name)
            elif option_id not in resolved:
                resolved.append(option_id)
        return resolved

    # --- Entry points ---

    async def search_deals_by_mapache_assigned(self, name: str) -> List[PipedriveDealSummary]:
        option_ids = await self._resolve_option_ids([name])
        if not option_ids:
            return []
        deals, stage_names = await self._eligible_deals()
        predicate = self._assigned_to(option_ids)
        matched = [d for d in deals if predicate(d)]
        logger.info("pipedrive.search_by_mapache", name=name, option_id=option_ids[0], matched=len(matched))
        return await self._to_summaries(matched, stage_names)

    async def search_deals_by_mapache_assigned_many(self, names: Iterable[str]) -> List[PipedriveDealSummary]:
        names = [n for n in (str(n or "").strip() for n in names) if n]
        option_ids = await self._resolve_option_ids(names)
        if not option_ids:
            return []
        predicate = self._assigned_to(option_ids)
        deals, stage_names = await self._eligible_deals()
        matched = [d for d in deals if predicate(d)]
        logger.info("pipedrive.search_by_mapache_many", names=len(names), resolved=len(option_ids), matched=len(matched))
        return await self._to_summaries(matched, stage_names)

    async def search_deals_by_owner_name(self, name: str) -> List[PipedriveDealSummary]:
        target = normalize_search_text(name)
        if not target:
            return []
        deals, stage_names = await self._eligible_deals()
        owners = await self._cache.resolve_owner_infos(
            oid for oid in (_owner_id(d) for d in deals) if oid is not None
        )

        def matches(deal: Deal) -> bool:
            owner_id = _owner_id(deal)
            owner = owners.get(owner_id) if owner_id is not None else None
            candidates = (owner.name if owner else None, _raw_owner_name(deal))
            return any(c and normalize_search_text(c) == target for c in candidates)

        matched = [d for d in deals if matches(d)]
        logger.info("pipedrive.search_by_owner_name", name=name, matched=len(matched))
        return await self._to_summaries(matched, stage_names, owners)

    async def search_deals_by_owner_emails(
        self,
        emails: Iterable[str],
        statuses: Optional[Sequence[str]] = None,
    ) -> List[PipedriveDealSummary]:
        wanted = {e.strip().lower() for e in emails if e and e.strip()}
        if not wanted:
            return []
        deals, stage_names = await self._eligible_deals(statuses)
        owners = await self._cache.resolve_owner_infos(
            oid for oid in (_owner_id(d) for d in deals) if oid is not None
        )

        def matches(deal: Deal) -> bool:
            owner_id = _owner_id(deal)
            owner = owners.get(owner_id) if owner_id is not None else None
            return bool(owner and owner.email and owner.email.strip().lower() in wanted)

        matched = [d for d in deals if matches(d)]
        logger.info("pipedrive.search_by_owner_emails", emails=len(wanted), matched=len(matched))
        return await self._to_summaries(matched, stage_names, owners)

    async def search_won_deals_by_mapache_assigned(
        self, name: str, year: int, quarter: int
    ) -> List[PipedriveDealSummary]:
        option_ids = await self._resolve_option_ids([name])
        if not option_ids:
            return []
        deals, stage_names = await self._eligible_deals(["won"])
        in_quarter = self._won_in(year, quarter)
        assigned = self._assigned_to(option_ids)
        matched = [d for d in deals if assigned(d) and in_quarter(d)]
        return await self._to_summaries(matched, stage_names)

    async def search_won_deals_by_owner_email(
        self, email: str, year: int, quarter: int
    ) -> List[PipedriveDealSummary]:
        summaries = await self.search_deals_by_owner_emails([email], statuses=["won"])
        start, end = quarter_range(year, quarter)
        result = []
        for summary in summaries:
            won = parse_pipedrive_time(summary.won_at)
            if won and start <= won < end:
                result.append(summary)
        return result

    async def fetch_all_deals_for_analytics(
        self, statuses: Optional[Sequence[str]] = None
    ) -> List[PipedriveDealSummary]:
        deals, stage_names = await self._eligible_deals(statuses)
        return await self._to_summaries(deals, stage_names)

    def _won_in(self, year: int, quarter: int) -> DealPredicate:
        start, end = quarter_range(year, quarter)

        def predicate(deal: Deal) -> bool:
            won = parse_pipedrive_time(deal.get("won_time"))
            return won is not None and start <= won < end

        return predicate
