"""
HTTP client for the hosted backend's auto-generated REST interface.

Talks PostgREST (as exposed by Supabase under /rest/v1): one endpoint per
table, rows filtered with ``?id=eq.<id>``. Every call either returns the
affected rows or raises a BackendError subclass.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from backend.exceptions import (
    BackendError,
    BackendPermanentError,
    error_from_response,
    translate_http_error,
)
from shared.log import create_logger
from sync_queue.models import Operation

log_trace, log_debug, log_info, log_warn, log_error = create_logger("Backend")

REST_PREFIX = "/rest/v1"


class BackendClient:
    """
    PostgREST client with per-table CRUD verbs.

    Args:
        url: Project URL (e.g., https://abc.supabase.co)
        api_key: Key sent as both ``apikey`` and bearer token
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests pass httpx.MockTransport)

    Usage:
        with BackendClient(url, key) as client:
            rows = client.insert("batches", {"batch_number": "B-100"})
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url.rstrip('/')
        self.timeout = timeout
        self._client = httpx.Client(
            base_url=f"{self.url}{REST_PREFIX}",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> 'BackendClient':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[dict] = None,
        json: Any = None,
        prefer: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> list[dict]:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self._client.request(
                method,
                f"/{table}",
                params=params,
                json=json,
                headers=headers,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.HTTPError as exc:
            raise translate_http_error(exc) from exc

        if response.is_error:
            raise error_from_response(response)

        log_trace(f"{method} {table} -> {response.status_code}")
        if response.status_code == 204 or not response.content:
            return []
        body = response.json()
        return body if isinstance(body, list) else [body]

    def insert(self, table: str, data: dict) -> list[dict]:
        """Create a row."""
        return self._request("POST", table, json=data, prefer="return=representation")

    def update(self, table: str, row_id: Any, data: dict) -> list[dict]:
        """Update the row with the given id."""
        return self._request(
            "PATCH", table,
            params={"id": f"eq.{row_id}"},
            json=data,
            prefer="return=representation",
        )

    def upsert(self, table: str, data: dict) -> list[dict]:
        """Create or replace a row by primary key."""
        return self._request(
            "POST", table,
            json=data,
            prefer="return=representation,resolution=merge-duplicates",
        )

    def delete(self, table: str, row_id: Any) -> list[dict]:
        """Delete the row with the given id."""
        return self._request("DELETE", table, params={"id": f"eq.{row_id}"}, prefer="return=minimal")

    def execute(self, table: str, operation: Operation | str, data: dict) -> list[dict]:
        """
        Dispatch one write by operation name.

        update strips ``id`` from the payload and uses it as the row filter;
        update and delete without an id raise BackendPermanentError.

        Raises:
            BackendError: Any failure
        """
        op = Operation(operation)

        if op is Operation.INSERT:
            return self.insert(table, data)

        if op is Operation.UPSERT:
            return self.upsert(table, data)

        row_id = data.get('id')
        if row_id is None or row_id == '':
            raise BackendPermanentError(f"{op.value.capitalize()} requires an id field")

        if op is Operation.UPDATE:
            update_data = {k: v for k, v in data.items() if k != 'id'}
            return self.update(table, row_id, update_data)

        return self.delete(table, row_id)

    def ping(self, timeout: float = 5.0) -> None:
        """
        Hit the REST root; raises BackendError unless the API answers.

        The root serves the OpenAPI description, which needs the database
        schema cache, so it only succeeds when the API is really up.
        """
        try:
            response = self._client.get("/", timeout=timeout)
        except httpx.HTTPError as exc:
            raise translate_http_error(exc) from exc
        if response.is_error:
            raise error_from_response(response)


__all__ = ['BackendClient', 'BackendError', 'REST_PREFIX']
