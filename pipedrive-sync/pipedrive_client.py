import json
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from config import PipedriveSettings
from models import (
    DealField,
    DealProductAttachment,
    DealsPage,
    PipedriveUser,
    ProductSearchItem,
    Stage,
)

logger = structlog.get_logger(__name__)

V1 = "/api/v1"
V2 = "/api/v2"

DealId = Union[int, str]

_attachments = TypeAdapter(List[DealProductAttachment])
_deal_fields = TypeAdapter(List[DealField])
_stages = TypeAdapter(List[Stage])
_search_items = TypeAdapter(List[ProductSearchItem])
_user = TypeAdapter(PipedriveUser)
_deals_page = TypeAdapter(DealsPage)


class PipedriveError(Exception):
    """Non-2xx response or a body carrying `success: false`."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PipedriveParseError(PipedriveError):
    """Response body that is not JSON."""

    def __init__(self, body: str, status_code: Optional[int] = None):
        self.body_excerpt = body[:300]
        super().__init__(f"Pipedrive parse error: {self.body_excerpt}", status_code)


class PipedriveConfigError(PipedriveError):
    """A custom field key needed for an update is not configured."""


def _validate(adapter: TypeAdapter, data: Any, path: str) -> Any:
    """Validates a response payload, reporting schema mismatches as parse errors."""
    try:
        return adapter.validate_python(data)
    except ValidationError as e:
        logger.warning("pipedrive.unexpected_payload", path=path, errors=e.error_count())
        raise PipedriveParseError(f"{path}: {e}") from None


def build_query(params: Mapping[str, Any]) -> httpx.QueryParams:
    """Drops None values and stringifies the rest."""
    cleaned: Dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            cleaned[key] = "true" if value else "false"
        else:
            cleaned[key] = str(value)
    return httpx.QueryParams(cleaned)


class PipedriveClient:
    """Thin async wrapper over the Pipedrive REST API (v1 + v2 endpoints)."""

    def __init__(self, settings: PipedriveSettings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.timeout)

    async def __aenter__(self) -> "PipedriveClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def raw_fetch(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        query = build_query({"api_token": self.settings.api_token, **(params or {})})
        url = f"{self.settings.base_url}{path}?{query}"
        content = json.dumps(json_body) if json_body is not None else None

        resp = await self._http.request(
            method,
            url,
            content=content,
            headers={"Content-Type": "application/json"},
        )

        text = resp.text
        try:
            body = json.loads(text) if text else {}
        except ValueError:
            raise PipedriveParseError(text, resp.status_code) from None
        if not isinstance(body, dict):
            body = {"data": body}

        api_ok = body.get("success")
        if resp.is_error or api_ok is False:
            message = body.get("error") or f"HTTP {resp.status_code}"
            logger.warning(
                "pipedrive.request_failed",
                method=method,
                path=path,
                status_code=resp.status_code,
                error=message,
            )
            raise PipedriveError(message, resp.status_code)
        return body

    # --- Deal products (v2) ---

    async def list_deal_products(self, deal_id: DealId) -> List[DealProductAttachment]:
        body = await self.raw_fetch("GET", f"{V2}/deals/{deal_id}/products", {"limit": 100})
        return _validate(_attachments, body.get("data") or [], "deal products")

    async def delete_deal_product(self, deal_id: DealId, attachment_id: int) -> None:
        await self.raw_fetch("DELETE", f"{V2}/deals/{deal_id}/products/{attachment_id}")

    async def add_deal_product(
        self,
        deal_id: DealId,
        product_id: int,
        item_price: float,
        quantity: float,
        tax: float = 0,
        discount: float = 0,
        discount_type: str = "percentage",
        tax_method: str = "none",
        is_enabled: bool = True,
        comments: Optional[str] = None,
    ) -> Optional[int]:
        payload: Dict[str, Any] = {
            "product_id": product_id,
            "item_price": item_price,
            "quantity": quantity,
            "tax": tax,
            "discount": discount,
            "discount_type": discount_type,
            "tax_method": tax_method,
            "is_enabled": is_enabled,
        }
        if comments is not None:
            payload["comments"] = comments
        body = await self.raw_fetch("POST", f"{V2}/deals/{deal_id}/products", json_body=payload)
        data = body.get("data") or {}
        return data.get("id") if isinstance(data, dict) else None

    # --- Products (v1 search) ---

    async def search_products(self, term: str, exact: bool = True, limit: int = 5) -> List[ProductSearchItem]:
        body = await self.raw_fetch(
            "GET",
            f"{V1}/products/search",
            {"term": term, "fields": "code", "exact_match": 1 if exact else None, "limit": limit},
        )
        data = body.get("data") or {}
        items = (data.get("items") if isinstance(data, dict) else None) or []
        found = [x for x in (it.get("item") if isinstance(it, dict) else it for it in items) if x]
        return _validate(_search_items, found, "product search")

    # --- Deals ---

    async def update_deal(self, deal_id: DealId, fields: Mapping[str, Any]) -> Dict[str, Any]:
        body = await self.raw_fetch("PUT", f"{V1}/deals/{deal_id}", json_body=dict(fields))
        return body.get("data") or {}

    async def list_deals_page(
        self,
        status: str,
        pipeline_id: Optional[int] = None,
        cursor: Optional[str] = None,
        custom_fields: Optional[List[str]] = None,
        limit: int = 100,
    ) -> DealsPage:
        params = {
            "status": status,
            "limit": limit,
            "pipeline_id": pipeline_id,
            "cursor": cursor,
            "custom_fields": ",".join(custom_fields) if custom_fields else None,
        }
        body = await self.raw_fetch("GET", f"{V2}/deals", params)
        return _validate(
            _deals_page,
            {
                "deals": [d for d in (body.get("data") or []) if d],
                "next_cursor": (body.get("additional_data") or {}).get("next_cursor"),
            },
            "deals",
        )

    # --- Reference data (v1) ---

    async def get_deal_fields(self) -> List[DealField]:
        body = await self.raw_fetch("GET", f"{V1}/dealFields")
        return _validate(_deal_fields, body.get("data") or [], "deal fields")

    async def get_stages(self) -> List[Stage]:
        body = await self.raw_fetch("GET", f"{V1}/stages")
        return _validate(_stages, body.get("data") or [], "stages")

    async def get_user(self, user_id: int) -> PipedriveUser:
        body = await self.raw_fetch("GET", f"{V1}/users/{user_id}")
        data = body.get("data")
        if not data:
            raise PipedriveError(f"User {user_id} not found", 404)
        return _validate(_user, data, f"user {user_id}")
