"""Clients for the collaborators this core reads but does not own.

The package/service catalog supplies prices and ``maxSlotPerPeriod``; the user
directory resolves free-text searches to user ids. Both speak the clinic API
envelope ``{"code", "msg", "data"}``.
"""
import asyncio
import logging
from typing import Any, Protocol

import httpx

from app.core.errors import Timeout, Unavailable
from app.models.catalog import CatalogPackage, CatalogService, UserIdentity

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 100


class Catalog(Protocol):
    async def get_package(self, package_id: str) -> CatalogPackage | None: ...

    async def get_services(self, service_ids: list[str]) -> dict[str, CatalogService]: ...

    async def search_packages(self, text: str) -> list[str]: ...


class UserDirectory(Protocol):
    async def get_user(self, user_id: str) -> UserIdentity | None: ...

    async def search_users(self, text: str) -> list[str]: ...


def _items(payload: Any) -> list[dict]:
    # "many" endpoints answer either a bare list or a paginated {"data": [...]}
    if isinstance(payload, dict):
        payload = payload.get("data") or []
    return list(payload or [])


class _ApiClient:
    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def _get_data(self, path: str, params: dict | None = None) -> Any | None:
        url = f"{self._base_url}{path}"
        try:
            resp = await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            logger.warning("Request to %s timed out", url)
            raise Timeout(f"{url} timed out") from e
        except httpx.TransportError as e:
            logger.warning("Request to %s failed: %s", url, e)
            raise Unavailable(f"{url} unreachable: {type(e).__name__}") from e
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            logger.warning("Request to %s failed: status=%s body=%s", url, resp.status_code, resp.text[:500])
            raise Unavailable(f"{url} answered {resp.status_code}")
        return resp.json().get("data")


class HttpCatalog(_ApiClient):
    async def get_package(self, package_id: str) -> CatalogPackage | None:
        data = await self._get_data(f"/consultation-package/{package_id}")
        return CatalogPackage.model_validate(data) if data else None

    async def _get_service(self, service_id: str) -> CatalogService | None:
        data = await self._get_data(f"/consultation-service/{service_id}")
        return CatalogService.model_validate(data) if data else None

    async def get_services(self, service_ids: list[str]) -> dict[str, CatalogService]:
        unique_ids = list(dict.fromkeys(service_ids))
        found = await asyncio.gather(*(self._get_service(sid) for sid in unique_ids))
        return {s.id: s for s in found if s is not None}

    async def search_packages(self, text: str) -> list[str]:
        data = await self._get_data("/consultation-package/many", {"search": text, "limit": SEARCH_LIMIT})
        return [CatalogPackage.model_validate(item).id for item in _items(data)]


class HttpUserDirectory(_ApiClient):
    async def get_user(self, user_id: str) -> UserIdentity | None:
        data = await self._get_data(f"/user/{user_id}")
        return UserIdentity.model_validate(data) if data else None

    async def search_users(self, text: str) -> list[str]:
        data = await self._get_data("/user/many", {"search": text, "limit": SEARCH_LIMIT})
        return [UserIdentity.model_validate(item).id for item in _items(data)]
