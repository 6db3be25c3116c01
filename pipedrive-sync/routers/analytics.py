from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

import config
from service import PipedriveService, get_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/analytics", tags=["Analytics"])

@router.get("/deals")
async def get_analytics_deals(statuses: str = "", service: PipedriveService = Depends(get_service)):
    requested = [s.strip() for s in statuses.split(",") if s.strip()] or list(config.DEAL_STATUSES)
    unknown = [s for s in requested if s not in config.DEAL_STATUSES]
    if unknown:
        return JSONResponse({"ok": False, "error": f"Unknown statuses: {', '.join(unknown)}"}, status_code=400)

    try:
        deals = await service.fetch_all_deals_for_analytics(requested)
    except Exception as e:
        logger.error("analytics.deals_failed", error=str(e))
        return JSONResponse({"ok": False, "error": "Could not load Pipedrive deals"}, status_code=500)

    logger.info("analytics.deals_fetched", total_deals=len(deals))
    return {
        "ok": True,
        "deals": [d.model_dump(by_alias=True) for d in deals],
        "syncedAt": datetime.now(timezone.utc).isoformat(),
        "count": len(deals),
    }
