"""
Process-lifetime lookup tables built from Pipedrive metadata.

Each table is fetched on first use and kept until `invalidate()` is called.
Nothing here expires on its own: if an admin edits a picklist in Pipedrive
the service keeps the old labels until it restarts.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import structlog

from config import PipedriveSettings
from models import DealField, OwnerInfo
from pipedrive_client import PipedriveClient
from utils import normalize_search_text

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FieldOptions:
    """Both directions of a single-option field, built from the same snapshot.

    Every id keeps its label for display. When two labels normalize to the
    same name the first option wins the name lookup and the collision is
    logged.
    """
    option_by_id: Dict[str, str] = field(default_factory=dict)
    option_id_by_name: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_field(cls, deal_field: Optional[DealField]) -> "FieldOptions":
        by_id: Dict[str, str] = {}
        by_name: Dict[str, int] = {}
        for option in (deal_field.options if deal_field else None) or []:
            try:
                option_id = int(option.id)
            except (TypeError, ValueError):
                continue
            by_id[str(option_id)] = option.label
            name = normalize_search_text(option.label)
            if name in by_name:
                logger.warning(
                    "pipedrive.option_label_collision",
                    field_key=deal_field.key,
                    label=option.label,
                    kept_option_id=by_name[name],
                    dropped_option_id=option_id,
                )
                continue
            by_name[name] = option_id
        return cls(option_by_id=by_id, option_id_by_name=by_name)

    def find_id(self, label: Optional[str]) -> Optional[int]:
        return self.option_id_by_name.get(normalize_search_text(label))

    def label_for(self, option_id) -> Optional[str]:
        if option_id is None:
            return None
        return self.option_by_id.get(str(option_id).strip())


class ReferenceDataCache:
    def __init__(self, client: PipedriveClient, settings: PipedriveSettings):
        self._client = client
        self._settings = settings
        self._mapache_options: Optional[FieldOptions] = None
        self._picklists: Dict[str, FieldOptions] = {}
        self._stage_names: Optional[Dict[int, str]] = None
        self._owners: Dict[int, Optional[OwnerInfo]] = {}

    def invalidate(self) -> None:
        self._mapache_options = None
        self._picklists = {}
        self._stage_names = None
        self._owners = {}

    async def ensure_mapache_field_options(self) -> FieldOptions:
        if self._mapache_options is not None:
            return self._mapache_options

        fields = await self._client.get_deal_fields()
        by_key = {f.key: f for f in fields}

        mapache_field = by_key.get(self._settings.field_mapache_assigned)
        if mapache_field is None:
            logger.warning(
                "pipedrive.mapache_field_missing",
                field_key=self._settings.field_mapache_assigned,
            )
        options = FieldOptions.from_field(mapache_field)

        # Same snapshot also feeds the other single-option fields we display
        self._picklists = {
            key: FieldOptions.from_field(by_key.get(key))
            for key in (
                self._settings.field_country,
                self._settings.field_origin,
                self._settings.field_deal_type,
            )
            if key and key in by_key
        }
        self._mapache_options = options
        logger.info("pipedrive.mapache_options_loaded", options=len(options.option_by_id))
        return options

    def picklist(self, field_key: str) -> Optional[FieldOptions]:
        """Options of a secondary picklist, available after ensure_mapache_field_options()."""
        return self._picklists.get(field_key)

    async def find_option_id(self, name: Optional[str]) -> Optional[int]:
        options = await self.ensure_mapache_field_options()
        return options.find_id(name)

    async def ensure_stage_name_map(self) -> Dict[int, str]:
        if self._stage_names is not None:
            return self._stage_names
        stages = await self._client.get_stages()
        self._stage_names = {stage.id: stage.name for stage in stages}
        return self._stage_names

    async def resolve_owner_infos(self, ids: Iterable[int]) -> Dict[int, Optional[OwnerInfo]]:
        wanted: List[int] = []
        for owner_id in ids:
            if owner_id is None or owner_id in wanted:
                continue
            wanted.append(owner_id)

        missing = [oid for oid in wanted if oid not in self._owners]
        if missing:
            results = await asyncio.gather(
                *(self._client.get_user(oid) for oid in missing),
                return_exceptions=True,
            )
            for owner_id, result in zip(missing, results):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, BaseException):
                    logger.warning("pipedrive.owner_lookup_failed", owner_id=owner_id, error=str(result))
                    self._owners[owner_id] = None
                else:
                    self._owners[owner_id] = OwnerInfo(name=result.name, email=result.email)

        return {oid: self._owners.get(oid) for oid in wanted}
