"""
Deal product reconciliation.

`replace_deal_products` is a full replace: every attachment currently on
the deal is removed and the desired lines are added back. Lines are
fault-isolated, a bad SKU never blocks the rest of the batch. Deletes are
not: the first failing delete aborts the call before anything is added,
leaving the deal partially emptied. Re-running the replace converges.
"""
from typing import List, Optional, Sequence

import httpx
import structlog

from models import LineAdded, LineFailed, LineMissingSku, LineOutcome, NormalizedLine, ReplaceResult
from pipedrive_client import DealId, PipedriveClient, PipedriveError

logger = structlog.get_logger(__name__)


async def find_product_id_by_sku(client: PipedriveClient, sku: str) -> Optional[int]:
    """Returns the product id whose code equals `sku` (case-insensitive), else None."""
    wanted = sku.strip().lower()
    if not wanted:
        return None
    for item in await client.search_products(sku.strip(), exact=True, limit=5):
        # exact_match=1 still falls back to fuzzy hits on some accounts
        if item.code and item.code.strip().lower() == wanted:
            return item.id
    return None


async def _sync_line(client: PipedriveClient, deal_id: DealId, line: NormalizedLine) -> LineOutcome:
    try:
        product_id = await find_product_id_by_sku(client, line.sku)
    except (PipedriveError, httpx.HTTPError) as e:
        return LineFailed(sku=line.sku, error=f"lookup failed: {e}")
    if product_id is None:
        return LineMissingSku(sku=line.sku)

    try:
        await client.add_deal_product(
            deal_id,
            product_id=product_id,
            item_price=line.unit_price,
            quantity=line.quantity,
            tax_method="none",
            discount_type="percentage",
        )
    except (PipedriveError, httpx.HTTPError) as e:
        logger.warning("pipedrive.add_deal_product_failed", deal_id=deal_id, sku=line.sku, error=str(e))
        return LineFailed(sku=line.sku, error=str(e))
    return LineAdded(sku=line.sku, product_id=product_id)


async def replace_deal_products(
    client: PipedriveClient,
    deal_id: DealId,
    lines: Sequence[NormalizedLine],
) -> ReplaceResult:
    current = await client.list_deal_products(deal_id)

    deleted = 0
    for attachment in current:
        try:
            await client.delete_deal_product(deal_id, attachment.id)
        except PipedriveError:
            logger.error(
                "pipedrive.delete_deal_product_failed",
                deal_id=deal_id,
                attachment_id=attachment.id,
                deleted=deleted,
                remaining=len(current) - deleted,
            )
            raise
        deleted += 1

    outcomes: List[LineOutcome] = []
    for line in lines:
        outcomes.append(await _sync_line(client, deal_id, line))

    result = ReplaceResult.from_outcomes(deleted, outcomes)
    logger.info(
        "pipedrive.replace_deal_products",
        deal_id=deal_id,
        deleted=result.deleted,
        added=result.added,
        missing_skus=result.missing_skus,
        failed_skus=result.failed_skus,
    )
    return result
