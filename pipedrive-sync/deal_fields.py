from typing import Any, Dict, Optional

import structlog

from config import PipedriveSettings
from pipedrive_client import DealId, PipedriveClient, PipedriveConfigError, PipedriveError
from reference_data import ReferenceDataCache
from utils import to_finite_number

logger = structlog.get_logger(__name__)


def _require(key: str, env_name: str) -> str:
    if not key:
        raise PipedriveConfigError(f"{env_name} is not configured")
    return key


async def update_one_shot_and_url(
    client: PipedriveClient,
    settings: PipedriveSettings,
    deal_id: DealId,
    one_shot: Optional[float] = None,
    proposal_url: Optional[str] = None,
) -> Dict[str, bool]:
    """Writes the one-shot amount and proposal URL custom fields. Empty payloads are skipped."""
    payload: Dict[str, Any] = {}

    amount = to_finite_number(one_shot)
    if amount is not None:
        payload[_require(settings.field_one_shot, "PIPEDRIVE_FIELD_ONE_SHOT")] = amount
    if proposal_url:
        payload[_require(settings.field_proposal_url, "PIPEDRIVE_FIELD_PROPOSAL_URL")] = str(proposal_url)

    if not payload:
        logger.info("pipedrive.update_skipped", deal_id=deal_id, reason="empty_payload")
        return {"skipped": True}

    await client.update_deal(deal_id, payload)
    logger.info("pipedrive.one_shot_and_url_updated", deal_id=deal_id, fields=sorted(payload))
    return {"skipped": False}


async def update_tech_sale_scope(
    client: PipedriveClient,
    settings: PipedriveSettings,
    deal_id: DealId,
    scope_url: str,
) -> None:
    key = _require(settings.field_tech_sale_scope, "PIPEDRIVE_FIELD_TECH_SALE_SCOPE")
    await client.update_deal(deal_id, {key: scope_url})
    logger.info("pipedrive.tech_sale_scope_updated", deal_id=deal_id)


async def assign_deal_to_mapache(
    client: PipedriveClient,
    cache: ReferenceDataCache,
    settings: PipedriveSettings,
    deal_id: DealId,
    mapache_name: str,
) -> int:
    """Sets the assigned team-member picklist on a deal. Returns the option id written."""
    key = _require(settings.field_mapache_assigned, "PIPEDRIVE_FIELD_MAPACHE_ASSIGNED")
    option_id = await cache.find_option_id(mapache_name)
    if option_id is None:
        raise PipedriveError(f"'{mapache_name}' is not a valid option for the assigned team member field")

    await client.update_deal(deal_id, {key: option_id})
    logger.info("pipedrive.deal_assigned", deal_id=deal_id, option_id=option_id)
    return option_id
