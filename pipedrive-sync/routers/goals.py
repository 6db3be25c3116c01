from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

import config
from service import PipedriveService, get_service
from utils import ExpiringCache, parse_pipedrive_time, quarter_from_date

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/goals", tags=["Goals"])

my_deals_cache = ExpiringCache(config.ROUTE_CACHE_TTL_SECONDS)

@router.get("/my-deals")
async def get_my_won_deals(
    year: Optional[int] = None,
    quarter: Optional[int] = None,
    mode: str = "mapache",
    name: str = "",
    email: str = "",
    force: bool = False,
    service: PipedriveService = Depends(get_service),
):
    """
    Won deals of one person for a given quarter, either by the assigned
    team-member field (mode=mapache) or by deal owner email (mode=owner).
    """
    if not year or not quarter or quarter < 1 or quarter > 4:
        return JSONResponse({"ok": False, "error": "Year and quarter are required"}, status_code=400)

    name = name.strip()
    email = email.strip().lower()
    if mode == "owner" and not email:
        return JSONResponse({"ok": False, "error": "Could not resolve your email"}, status_code=400)
    if mode != "owner" and not name:
        return JSONResponse({"ok": False, "error": "Could not resolve your name"}, status_code=400)

    identifier = email if mode == "owner" else name
    cache_key = f"goals:{mode}:{year}:{quarter}:{identifier}"
    if not force:
        cached = my_deals_cache.get(cache_key)
        if cached is not None:
            logger.info("goals.cache_hit", cache_key=cache_key, count=len(cached))
            return {"ok": True, "deals": cached}

    try:
        if mode == "owner":
            deals = await service.search_won_deals_by_owner_email(email, year, quarter)
        else:
            deals = await service.search_won_deals_by_mapache_assigned(name, year, quarter)
    except Exception as e:
        logger.error("goals.my_deals_failed", mode=mode, year=year, quarter=quarter, error=str(e))
        return JSONResponse({"ok": False, "error": "Could not load Pipedrive deals"}, status_code=500)

    filtered = []
    for deal in deals:
        won = parse_pipedrive_time(deal.won_at)
        if won and won.year == year and (deal.won_quarter == quarter or quarter_from_date(won) == quarter):
            filtered.append(deal.model_dump(by_alias=True))

    my_deals_cache.set(cache_key, filtered)
    logger.info(
        "goals.my_deals_complete",
        mode=mode,
        year=year,
        quarter=quarter,
        total_fetched=len(deals),
        filtered_count=len(filtered),
    )
    return {"ok": True, "deals": filtered}
