# pipedrive-sync/config.py

"""
Central configuration for the Pipedrive deal sync.
-- Environment-driven CRM settings plus static picklist maps --
"""
import os
from dataclasses import dataclass, field
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()

# --- Runtime ---
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
ROUTE_CACHE_TTL_SECONDS = float(os.getenv("PIPEDRIVE_ROUTE_CACHE_TTL", "60"))

# --- Deal statuses searched by default ---
DEAL_STATUSES: Tuple[str, ...] = ("open", "won", "lost")

# --- Custom field keys (fallbacks used when the env var is missing) ---
DEFAULT_FIELD_KEYS = {
    "one_shot": "3c4ba5a6f9f0e0a2d7f2b1cbbd1e7b5b1c0d5f11",
    "proposal_url": "5f7e2a9d0c4b1f3e8a6d2c9b7e1f4a3d6c8b0e22",
    "mapache_assigned": "d1a6b0c3e5f7a9b2c4d6e8f0a1b3c5d7e9f1a233",
    "fee_mensual": "8b2d4f6a0c1e3a5c7e9b1d3f5a7c9e1b3d5f7a44",
    "doc_context_deal": "a7c9e1b3d5f7a9c1e3b5d7f9a1c3e5b7d9f1a355",
    "tech_sale_scope": "c5e7a9b1d3f5c7e9a1b3d5f7c9e1a3b5d7f9c166",
    "deal_type": "e9b1d3f5a7c9e1b3d5f7a9c1e3b5d7f9a1c3e577",
    "country": "f3a5c7e9b1d3f5a7c9e1b3d5f7a9c1e3b5d7f988",
    "origin": "b7d9f1a3c5e7b9d1f3a5c7e9b1d3f5a7c9e1b399",
}

# --- Picklists that rarely change, kept static ---
DEAL_TYPES = {
    "NEW_CUSTOMER": "13",
    "UPSELLING": "14",
}

PROPOSAL_STAGES = [4, 64, 30]

COUNTRY_OPTIONS = {
    "265": "Argentina",
    "574": "Brasil",
    "274": "Bolivia",
    "575": "Canadá",
    "268": "Chile",
    "267": "Colombia",
    "600": "Costa Rica",
    "272": "España",
    "273": "Ecuador",
    "601": "El Salvador",
    "602": "Guatemala",
    "603": "Honduras",
    "266": "Peru",
    "269": "Mexico",
    "594": "Nicaragua",
    "275": "Otros",
    "271": "Paraguay",
    "391": "Panama",
    "563": "República Dominicana",
    "270": "Uruguay",
    "604": "Venezuela",
}

ORIGEN_OPTIONS = {
    "375": "Directo",
    "15": "Directo Inbound",
    "230": "Directo Outbound",
    "741": "Netlife",
    "16": "Telefonica ARG",
    "18": "Telefónica CO",
    "40": "Telefónica PE",
    "171": "Telefonica Chile",
    "368": "Telefonica UY",
    "239": "Telefonica España - TTech",
    "664": "Telefonica España - Acens",
    "762": "Nods",
    "17": "Apex",
    "37": "Ricoh",
    "577": "Solu",
    "578": "Teleperformance",
    "586": "Link Solution",
    "605": "Atento",
    "610": "E3",
    "616": "Telefónica México",
    "617": "Telefónica Ecuador",
    "618": "Agata",
    "619": "Outsourcing",
    "626": "Jelou",
    "628": "Teknio",
    "638": "Lop",
    "649": "Konecta",
    "651": "Pontech",
    "750": "Vtex Colombia",
    "748": "Santex",
    "655": "Tatt",
    "656": "Orsonia",
    "763": "Tecnicom",
    "657": "Idata",
    "666": "Nexa BPO",
    "678": "Intellecta",
    "172": "Agencia COMLatam",
    "718": "AMG Consulting",
    "751": "Vtex - Otros",
    "758": "Patagonia - Franco Roccuzo",
    "759": "Avansa",
    "761": "WoowUp",
    "765": "Mak21",
    "772": "Solvis",
    "773": "Integratel",
    "740": "Govtech - Luciano",
}

DEAL_TYPE_LABELS = {
    DEAL_TYPES["NEW_CUSTOMER"]: "New Customer",
    DEAL_TYPES["UPSELLING"]: "Upselling",
}


def _field(name: str) -> str:
    return os.getenv(f"PIPEDRIVE_FIELD_{name.upper()}", DEFAULT_FIELD_KEYS[name])


@dataclass(frozen=True)
class PipedriveSettings:
    base_url: str = "https://wcx.pipedrive.com"
    api_token: str = ""
    pipeline_id: int = 1
    excluded_stage_name: str = "Qualified"
    timeout: float = 30.0
    field_one_shot: str = DEFAULT_FIELD_KEYS["one_shot"]
    field_proposal_url: str = DEFAULT_FIELD_KEYS["proposal_url"]
    field_mapache_assigned: str = DEFAULT_FIELD_KEYS["mapache_assigned"]
    field_fee_mensual: str = DEFAULT_FIELD_KEYS["fee_mensual"]
    field_doc_context_deal: str = DEFAULT_FIELD_KEYS["doc_context_deal"]
    field_tech_sale_scope: str = DEFAULT_FIELD_KEYS["tech_sale_scope"]
    field_deal_type: str = DEFAULT_FIELD_KEYS["deal_type"]
    field_country: str = DEFAULT_FIELD_KEYS["country"]
    field_origin: str = DEFAULT_FIELD_KEYS["origin"]
    statuses: Tuple[str, ...] = field(default=DEAL_STATUSES)

    @classmethod
    def from_env(cls) -> "PipedriveSettings":
        return cls(
            base_url=os.getenv("PIPEDRIVE_BASE_URL", "https://wcx.pipedrive.com").rstrip("/"),
            api_token=os.getenv("PIPEDRIVE_API_TOKEN", ""),
            pipeline_id=int(os.getenv("PIPEDRIVE_PIPELINE_ID", "1")),
            excluded_stage_name=os.getenv("PIPEDRIVE_EXCLUDED_STAGE", "Qualified"),
            timeout=float(os.getenv("PIPEDRIVE_TIMEOUT", "30")),
            field_one_shot=_field("one_shot"),
            field_proposal_url=_field("proposal_url"),
            field_mapache_assigned=_field("mapache_assigned"),
            field_fee_mensual=_field("fee_mensual"),
            field_doc_context_deal=_field("doc_context_deal"),
            field_tech_sale_scope=_field("tech_sale_scope"),
            field_deal_type=_field("deal_type"),
            field_country=_field("country"),
            field_origin=_field("origin"),
        )

    @property
    def custom_field_keys(self) -> Tuple[str, ...]:
        """Keys requested through the deals listing `custom_fields` parameter."""
        keys = (
            self.field_one_shot,
            self.field_proposal_url,
            self.field_mapache_assigned,
            self.field_fee_mensual,
            self.field_doc_context_deal,
            self.field_tech_sale_scope,
            self.field_deal_type,
            self.field_country,
            self.field_origin,
        )
        return tuple(k for k in keys if k)
