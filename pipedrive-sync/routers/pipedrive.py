import math
import re
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import config
from models import NormalizedLine
from service import PipedriveService, get_service
from utils import ExpiringCache, to_finite_number

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/pipedrive", tags=["Pipedrive"])

team_deals_cache = ExpiringCache(config.ROUTE_CACHE_TTL_SECONDS)

# --- Pydantic Models ---
class SyncRequest(BaseModel):
    dealId: Optional[Union[int, str]] = None
    proposalUrl: Optional[str] = None
    oneShot: Optional[float] = None
    items: Optional[List[Dict[str, Any]]] = None

class TeamDealsRequest(BaseModel):
    names: List[Any] = []

class AssignRequest(BaseModel):
    dealLink: Optional[str] = None
    name: Optional[str] = None

class TechSaleScopeRequest(BaseModel):
    dealId: Optional[Union[int, str]] = None
    scopeUrl: Optional[str] = None

# --- Helpers ---
def normalize_lines(items: Optional[List[Dict[str, Any]]]) -> List[NormalizedLine]:
    """Accepts `sku` or `code`, `unitNet` or `unit_price`; drops lines that cannot be synced."""
    lines: List[NormalizedLine] = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        sku = str(item.get("sku") or item.get("code") or "").strip()
        quantity = to_finite_number(item.get("quantity"))
        price = item.get("unitNet")
        if price is None:
            price = item.get("unit_price")
        price = to_finite_number(price)
        if not sku or quantity is None or quantity <= 0 or price is None or price < 0:
            continue
        lines.append(NormalizedLine(sku=sku, quantity=quantity, unit_price=price))
    return lines

def extract_deal_id(link: Optional[str]) -> Optional[int]:
    if not link:
        return None
    match = re.search(r"deal/(\d+)", link, re.IGNORECASE)
    if match:
        return int(match.group(1))
    digits = re.sub(r"\D+", "", link)
    return int(digits) if digits else None

def parse_deal_id(value: Any) -> Optional[int]:
    number = to_finite_number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)

def normalize_scope_url(value: str) -> str:
    trimmed = value.strip()
    if not trimmed:
        raise ValueError("The link cannot be empty.")
    parsed = urlparse(trimmed)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid URL")
    return parsed.geturl()

def _error(message: str, status_code: int, **extra) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message, **extra}, status_code=status_code)

# --- API Endpoints ---
@router.post("/sync")
async def sync_deal(body: SyncRequest, service: PipedriveService = Depends(get_service)):
    if not body.dealId:
        return JSONResponse({"ok": False, "reason": "missing_deal_id"}, status_code=400)

    lines = normalize_lines(body.items)
    logger.info(
        "pipedrive.sync_requested",
        deal_id=body.dealId,
        items=len(lines),
        has_one_shot=body.oneShot is not None,
        has_url=body.proposalUrl is not None,
    )
    one_shot = body.oneShot if body.oneShot is not None and math.isfinite(body.oneShot) else None

    try:
        result = await service.replace_deal_products(body.dealId, lines)
        await service.update_one_shot_and_url(body.dealId, one_shot=one_shot, proposal_url=body.proposalUrl)
    except Exception as e:
        logger.error("pipedrive.sync_failed", deal_id=body.dealId, error=str(e))
        return _error(f"Pipedrive error ({e}).", 500)

    return {"ok": True, "products": result.model_dump(by_alias=True)}

@router.get("/deals")
async def get_assigned_deals(name: str = "", service: PipedriveService = Depends(get_service)):
    name = name.strip()
    if not name:
        return _error("Could not resolve your name", 400)
    try:
        deals = await service.search_deals_by_mapache_assigned(name)
    except Exception as e:
        logger.error("pipedrive.search_failed", mapache=name, error=str(e))
        return _error("Could not load Pipedrive deals", 500)
    return {"ok": True, "deals": [d.model_dump(by_alias=True) for d in deals]}

@router.post("/team-deals")
async def get_team_deals(
    body: TeamDealsRequest,
    mode: str = "mapache",
    force: bool = False,
    service: PipedriveService = Depends(get_service),
):
    names = [str(n).strip() for n in body.names if n is not None and str(n).strip()]
    if not names:
        return _error("No team members received", 400)

    cache_key = f"{mode}:{'|'.join(sorted(names))}"
    if not force:
        cached = team_deals_cache.get(cache_key)
        if cached is not None:
            return {"ok": True, "deals": cached}

    try:
        if mode == "owner":
            deals = await service.search_deals_by_owner_emails(names)
        else:
            deals = await service.search_deals_by_mapache_assigned_many(names)
    except Exception as e:
        logger.error("pipedrive.team_search_failed", mode=mode, error=str(e))
        return _error("Could not load the team's deals", 500)

    payload = [d.model_dump(by_alias=True) for d in deals]
    team_deals_cache.set(cache_key, payload)
    return {"ok": True, "deals": payload}

@router.post("/assign")
async def assign_deal(body: AssignRequest, service: PipedriveService = Depends(get_service)):
    name = (body.name or "").strip()
    if not name:
        return _error("Could not resolve your user name.", 400)

    deal_id = extract_deal_id(body.dealLink)
    if not deal_id:
        return _error("Invalid Pipedrive link. Use https://.../deal/{id}", 400)

    try:
        await service.assign_deal_to_mapache(deal_id, name)
    except Exception as e:
        return _error(str(e), 400)
    return {"ok": True, "dealId": deal_id}

@router.post("/tech-sale-scope")
async def set_tech_sale_scope(body: TechSaleScopeRequest, service: PipedriveService = Depends(get_service)):
    deal_id = parse_deal_id(body.dealId)
    if deal_id is None:
        return _error("Invalid deal ID", 400)

    try:
        scope_url = normalize_scope_url(body.scopeUrl or "")
    except ValueError as e:
        return _error(str(e), 400)

    try:
        await service.update_tech_sale_scope(deal_id, scope_url)
    except Exception as e:
        return _error(str(e), 400)
    return {"ok": True, "scopeUrl": scope_url}
