"""
Row-level access to the backend's REST data layer (profiles, orders, order items).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from storefront.backend.types import BackendResult

if TYPE_CHECKING:
    from storefront.backend.client import BackendClient

REST_PATH = "/rest/v1"


def _eq_filters(filters: dict[str, Any]) -> dict[str, str]:
    return {column: f"eq.{value}" for column, value in filters.items()}


class TableClient:
    """
    Gateway to one table.

    Usage:
        result = await client.table("profiles").select_one(id=user_id)
        if result.error: ...          # query failed
        elif result.data is None: ... # not found
    """

    def __init__(self, backend: "BackendClient", name: str):
        self._backend = backend
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def _path(self) -> str:
        return f"{REST_PATH}/{self._name}"

    async def select_one(self, columns: str = "*", **filters: Any) -> BackendResult[dict[str, Any]]:
        """First row matching all equality filters; ``data`` is None when nothing matches."""
        params = {"select": columns, **_eq_filters(filters), "limit": "1"}
        result = await self._backend.request("GET", self._path, params=params, authenticated=True)
        if result.error:
            return BackendResult(error=result.error)
        rows = result.data or []
        return BackendResult(data=rows[0] if rows else None)

    async def insert(self, rows: dict[str, Any] | list[dict[str, Any]]) -> BackendResult[list[dict[str, Any]]]:
        """Insert one or many rows and return them as stored."""
        payload = rows if isinstance(rows, list) else [rows]
        result = await self._backend.request(
            "POST",
            self._path,
            json=payload,
            headers={"Prefer": "return=representation"},
            authenticated=True,
        )
        if result.error:
            return BackendResult(error=result.error)
        return BackendResult(data=list(result.data or []))

    async def update(self, values: dict[str, Any], **filters: Any) -> BackendResult[list[dict[str, Any]]]:
        if not filters:
            raise ValueError("update() requires at least one filter")
        result = await self._backend.request(
            "PATCH",
            self._path,
            params=_eq_filters(filters),
            json=values,
            headers={"Prefer": "return=representation"},
            authenticated=True,
        )
        if result.error:
            return BackendResult(error=result.error)
        return BackendResult(data=list(result.data or []))
