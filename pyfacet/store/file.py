import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from ..errors import StoreError
from ..filters import Filter, FilterInstance, parse_filter_json
from .http import FilterPage

log = logging.getLogger("pyfacet.store")


class FileFilterStore:
    """
    Filter store backed by a local YAML or JSON file of the form
    {"filters": [...]}. Writes go back to the same file.
    """

    def __init__(self, path: Path, *, validate: bool = True):
        self.path = Path(path)
        self.validate = validate
        self.filters: Dict[str, Filter] = {}

    def load(self) -> None:
        if not self.path.exists():
            raise RuntimeError(f"Filters file not found: {self.path}")
        with self.path.open("r", encoding="utf-8") as f:
            if self.path.suffix.lower() in (".yaml", ".yml"):
                cfg = yaml.safe_load(f) or {}
            else:
                cfg = json.load(f)
        items = cfg.get("filters", [])
        loaded: Dict[str, Filter] = {}
        for raw in items:
            if not isinstance(raw, dict) or raw.get("id") in (None, ""):
                raise RuntimeError(f"Bad filter entry in {self.path}: {raw}")
            flt = parse_filter_json(raw, validate=self.validate)
            loaded[flt.id] = flt
        self.filters = loaded
        log.info("Loaded %d filters from %s", len(loaded), self.path)

    def save(self) -> None:
        payload = {"filters": [f.to_dict() for f in self.filters.values()]}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            if self.path.suffix.lower() in (".yaml", ".yml"):
                yaml.safe_dump(payload, f, sort_keys=False)
            else:
                json.dump(payload, f, indent=2)
        tmp.replace(self.path)

    def _require(self, filter_id: str) -> Filter:
        flt = self.filters.get(str(filter_id))
        if flt is None or flt.deleted_at:
            raise StoreError(f"Filter not found: {filter_id}", status_code=404)
        return flt

    async def get_filter(self, filter_id: str) -> Filter:
        return self._require(filter_id)

    async def list_filters(
        self,
        *,
        search: Optional[str] = None,
        status: Optional[str] = None,
        sort_by: str = "name",
        page: int = 1,
        page_size: int = 20,
    ) -> FilterPage:
        items: List[Filter] = [f for f in self.filters.values() if not f.deleted_at]
        if search:
            needle = search.lower()
            items = [f for f in items if needle in f.name.lower() or needle in f.description.lower()]
        if status and status != "all":
            items = [f for f in items if f.status == status]
        if sort_by in ("name", "version"):
            items.sort(key=lambda f: getattr(f, sort_by))
        start = max(page - 1, 0) * page_size
        return FilterPage(items=items[start:start + page_size], total=len(items))

    async def create_filter(self, flt: Filter) -> Filter:
        created = Filter.from_dict(flt.to_dict())
        created.id = str(uuid.uuid4())
        self.filters[created.id] = created
        self.save()
        return created

    async def update_filter(self, flt: Filter) -> Filter:
        if flt.id is None:
            raise ValueError("Cannot update a filter without an id")
        self._require(flt.id)
        stored = Filter.from_dict(flt.to_dict())
        self.filters[stored.id] = stored
        self.save()
        return stored

    async def save_draft(self, flt: Filter) -> Filter:
        if flt.id is None:
            return await self.create_filter(flt)
        return await self.update_filter(flt)

    async def delete_filter(self, filter_id: str) -> None:
        flt = self._require(filter_id)
        flt.deleted_at = datetime.now(timezone.utc).isoformat()
        self.save()

    async def clone_filter(self, filter_id: str) -> Filter:
        return await self.create_filter(self._require(filter_id).clone())

    async def create_instance(self, filter_id: str, instance: FilterInstance) -> FilterInstance:
        flt = self._require(filter_id)
        created = FilterInstance.from_dict(instance.to_dict())
        created.id = str(uuid.uuid4())
        created.filter_id = str(filter_id)
        flt.instances = [
            i for i in flt.instances
            if not (i.id is None and i.target_ref == created.target_ref and i.placement == created.placement)
        ] + [created]
        self.save()
        return created

    async def update_instance(self, instance: FilterInstance) -> FilterInstance:
        if instance.id is None:
            raise ValueError("Cannot update an instance without an id")
        flt = self._require(instance.filter_id)
        stored = FilterInstance.from_dict(instance.to_dict())
        flt.instances = [stored if i.id == stored.id else i for i in flt.instances]
        if not any(i.id == stored.id for i in flt.instances):
            flt.instances.append(stored)
        self.save()
        return stored


__all__ = ["FileFilterStore"]
