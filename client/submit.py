"""
HTTP transport for the offline queue: posts a request payload to the
`/api/requests` endpoint and reads its `{data, error}` envelope.
"""
from __future__ import annotations

import os
from typing import Any, Optional

import httpx

from client.offline_queue import SubmissionResult

DEFAULT_BASE_URL = "http://localhost:8000"


class RequestSubmitter:
    def __init__(self, base_url: str | None = None, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or os.getenv("PUBLIC_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def __aenter__(self) -> "RequestSubmitter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def submit(self, payload: Any) -> SubmissionResult:
        """
        Network errors (httpx.HTTPError) propagate; the queue treats them as
        transient. Any response without `data` or with an `error` is a failure.
        """
        response = await self._client.post("/api/requests", json=payload)
        fallback_code = f"HTTP_{response.status_code}"
        try:
            body = response.json()
        except ValueError:
            return SubmissionResult(success=False, error_code=fallback_code, error_message="Response was not JSON")
        if not isinstance(body, dict):
            return SubmissionResult(success=False, error_code=fallback_code)

        data = body.get("data")
        error = body.get("error")
        if data and not error:
            return SubmissionResult(success=True, data=data)

        error = error if isinstance(error, dict) else {}
        return SubmissionResult(
            success=False,
            data=data,
            error_code=error.get("code") or fallback_code,
            error_message=error.get("message"),
        )

    async def is_reachable(self) -> bool:
        try:
            response = await self._client.get("/api/health")
        except httpx.HTTPError:
            return False
        return response.status_code < 500


__all__ = ["DEFAULT_BASE_URL", "RequestSubmitter"]
