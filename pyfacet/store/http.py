from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

import httpx

from ..errors import StoreError
from ..filters import Filter, FilterInstance
from ..settings import Settings
from .query import to_query_params

log = logging.getLogger("pyfacet.store")


@dataclass
class FilterPage:
    items: List[Filter] = field(default_factory=list)
    total: int = 0


class HttpFilterStore:
    """
    Client for the remote filter API. Every call is one request; nothing
    is retried and nothing is cached here.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpFilterStore":
        return cls(
            settings.api_base_url,
            token=settings.api_token,
            timeout=settings.api_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, body_or_params: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        kwargs: Dict[str, Any] = {"headers": self._headers()}
        if method == "GET" and body_or_params:
            kwargs["params"] = to_query_params(body_or_params)
        elif body_or_params is not None:
            kwargs["json"] = body_or_params

        log.debug("%s %s", method, url)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            log.warning("%s %s failed: %s", method, url, e)
            raise StoreError(f"Request failed: {e}") from e

        if response.is_error:
            try:
                message = response.json().get("message")
            except (ValueError, AttributeError):
                message = None
            message = message or f"HTTP {response.status_code}"
            log.warning("%s %s -> %s: %s", method, url, response.status_code, message)
            raise StoreError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(f"Invalid JSON from {method} {path}", status_code=response.status_code) from e

    async def _request_record(self, method: str, path: str, body: Any = None) -> Dict[str, Any]:
        """Like _request, for endpoints that must answer with a JSON object."""
        data = await self._request(method, path, body)
        if not isinstance(data, dict):
            kind = "Empty response" if data is None else "Unexpected response"
            raise StoreError(f"{kind} from {method} {path}", status_code=502)
        return data

    # ---- Filters ------------------------------------------------------------

    async def get_filter(self, filter_id: str) -> Filter:
        data = await self._request_record("GET", f"/filters/{filter_id}")
        return Filter.from_dict(data)

    async def list_filters(
        self,
        *,
        search: Optional[str] = None,
        status: Optional[str] = None,
        sort_by: str = "name",
        page: int = 1,
        page_size: int = 20,
    ) -> FilterPage:
        data = await self._request("GET", "/filters", {
            "search": search or None,
            "status": status if status and status != "all" else None,
            "sortBy": sort_by,
            "page": page,
            "pageSize": page_size,
        }) or {}
        if not isinstance(data, dict) or not isinstance(data.get("items", []), list):
            raise StoreError("Unexpected response from GET /filters", status_code=502)
        return FilterPage(
            items=[Filter.from_dict(f) for f in data.get("items", [])],
            total=int(data.get("total", 0) or 0),
        )

    async def create_filter(self, flt: Filter) -> Filter:
        data = await self._request_record("POST", "/filters", flt.to_dict())
        return Filter.from_dict(data)

    async def update_filter(self, flt: Filter) -> Filter:
        if flt.id is None:
            raise ValueError("Cannot update a filter without an id")
        data = await self._request_record("PUT", f"/filters/{flt.id}", flt.to_dict())
        return Filter.from_dict(data)

    async def save_draft(self, flt: Filter) -> Filter:
        if flt.id is None:
            return await self.create_filter(flt)
        return await self.update_filter(flt)

    async def delete_filter(self, filter_id: str) -> None:
        await self._request("DELETE", f"/filters/{filter_id}")

    async def clone_filter(self, filter_id: str) -> Filter:
        original = await self.get_filter(filter_id)
        return await self.create_filter(original.clone())

    # ---- Instances ----------------------------------------------------------

    async def create_instance(self, filter_id: str, instance: FilterInstance) -> FilterInstance:
        data = await self._request("POST", f"/filters/{filter_id}/instances", instance.to_dict())
        return FilterInstance.from_dict(data) if isinstance(data, dict) and data else instance

    async def update_instance(self, instance: FilterInstance) -> FilterInstance:
        if instance.id is None:
            raise ValueError("Cannot update an instance without an id")
        data = await self._request("PUT", f"/filter-instances/{instance.id}", instance.to_dict())
        return FilterInstance.from_dict(data) if isinstance(data, dict) and data else instance


__all__ = ["HttpFilterStore", "FilterPage"]
