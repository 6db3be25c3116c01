# models.py
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# --- Caller-side input ---

class NormalizedLine(BaseModel):
    """Desired state of one product line on a deal."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    sku: str = Field(min_length=1)
    quantity: float = Field(gt=0)
    unit_price: float = Field(ge=0, alias="unitPrice")

# --- CRM boundary schemas ---

class DealProductAttachment(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    deal_id: Optional[int] = None
    product_id: Optional[int] = None
    name: Optional[str] = None
    item_price: Optional[float] = None
    quantity: Optional[float] = None

class ProductSearchItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: Optional[str] = None
    code: Optional[str] = None

class FieldOption(BaseModel):
    id: Union[int, str]
    label: str

class DealField(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    key: str
    name: Optional[str] = None
    field_type: Optional[str] = None
    options: Optional[List[FieldOption]] = None

class Stage(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    pipeline_id: Optional[int] = None

class PipedriveUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: Optional[str] = None
    email: Optional[str] = None

class DealsPage(BaseModel):
    deals: List[Dict[str, Any]] = Field(default_factory=list)
    next_cursor: Optional[str] = None

class OwnerInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    email: Optional[str] = None

# --- Search output ---

class PipedriveDealSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    title: str
    value: Optional[float] = None
    stage_id: Optional[int] = None
    stage_name: Optional[str] = None
    owner_id: Optional[int] = None
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[str] = None
    won_at: Optional[str] = None
    lost_at: Optional[str] = None
    won_quarter: Optional[int] = None
    mapache_assigned: Optional[str] = None
    fee_mensual: Optional[float] = None
    proposal_url: Optional[str] = None
    doc_context_deal: Optional[str] = None
    tech_sale_scope_url: Optional[str] = None
    deal_url: str
    deal_type: Optional[str] = None
    country: Optional[str] = None
    origin: Optional[str] = None
    sales_cycle_days: Optional[int] = None

# --- Reconciliation outcomes ---

class LineAdded(BaseModel):
    kind: Literal["added"] = "added"
    sku: str
    product_id: int

class LineMissingSku(BaseModel):
    kind: Literal["missing_sku"] = "missing_sku"
    sku: str

class LineFailed(BaseModel):
    kind: Literal["failed"] = "failed"
    sku: str
    error: str

LineOutcome = Union[LineAdded, LineMissingSku, LineFailed]

class ReplaceResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    deleted: int
    added: int
    missing_skus: List[str] = Field(default_factory=list)
    failed_skus: List[str] = Field(default_factory=list)
    outcomes: List[LineOutcome] = Field(default_factory=list, exclude=True)

    @classmethod
    def from_outcomes(cls, deleted: int, outcomes: List[LineOutcome]) -> "ReplaceResult":
        return cls(
            deleted=deleted,
            added=sum(1 for o in outcomes if isinstance(o, LineAdded)),
            missing_skus=[o.sku for o in outcomes if isinstance(o, LineMissingSku)],
            failed_skus=[o.sku for o in outcomes if isinstance(o, LineFailed)],
            outcomes=outcomes,
        )
