"""HTTP client for the remote progress store."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from progress_sync.config.settings import Settings
from progress_sync.exceptions import (
    ProgressAPIError,
    ProgressConflictError,
    ProgressNetworkError,
    ProgressNotFoundError,
    ProgressTimeoutError,
)

from .models import ProgressRecord, utc_now
from .schemas import ProgressCreate, ProgressEnvelope, ProgressHealth, ProgressUpdate


logger = logging.getLogger(__name__)

FUNCTION_KEY_HEADER = "x-functions-key"
PROGRESS_PATH = "/progress"


class ProgressClient:
    """Thin asynchronous client for GET/POST/PUT/DELETE on /progress.

    Owns timeouts and response parsing. Holds no cache and no business rules;
    callers decide what a failure means.
    """

    def __init__(
        self,
        base_url: str,
        *,
        function_key: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if function_key:
            headers[FUNCTION_KEY_HEADER] = function_key
        self._timeout = timeout
        self._has_function_key = bool(function_key)
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> ProgressClient:
        """Build a client from engine settings."""
        return cls(
            settings.PROGRESS_API_URL,
            function_key=settings.PROGRESS_FUNCTION_KEY,
            timeout=settings.PROGRESS_REQUEST_TIMEOUT,
            **kwargs,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> ProgressClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # === Core operations ===

    async def list_progress(self, **filters: str | None) -> list[ProgressRecord]:
        """GET /progress filtered by userId, resourceId, resourceType, courseId, materialId.

        A 404 means "no records" rather than an error.
        """
        params = {key: value for key, value in filters.items() if value is not None}
        response = await self._request("GET", PROGRESS_PATH, params=params)

        if response.status_code == 404:
            logger.debug(f"No progress records found (404) for {params}")
            return []

        envelope = self._parse(response)
        if not response.is_success:
            if response.status_code == 400:
                msg = envelope.error_text or "Invalid query parameters"
            elif response.status_code == 401:
                msg = "Authentication required. Please check your function key."
            else:
                msg = envelope.error_text or "Failed to fetch progress"
            raise ProgressAPIError(msg, response.status_code, envelope.model_dump())

        records = [self._to_record(item, response) for item in envelope.data or []]
        logger.debug(f"Fetched {len(records)} progress records")
        return records

    async def get_progress(self, progress_id: str) -> ProgressRecord | None:
        """GET /progress/{progressId}; returns None on 404."""
        response = await self._request("GET", f"{PROGRESS_PATH}/{progress_id}")
        if response.status_code == 404:
            return None

        envelope = self._parse(response)
        if not response.is_success:
            msg = envelope.error_text or "Failed to get progress"
            raise ProgressAPIError(msg, response.status_code, envelope.model_dump())
        return self._to_record(envelope.data, response)

    async def create_progress(self, payload: ProgressCreate) -> ProgressRecord:
        """POST /progress.

        A 409 that carries the existing record is treated as success.
        """
        body = payload.to_wire()
        response = await self._request("POST", PROGRESS_PATH, json=body)
        envelope = self._parse(response)

        if response.status_code == 409:
            if envelope.data:
                logger.info(f"Progress for {payload.resource_id} already exists, using existing record")
                return self._to_record(envelope.data, response)
            raise ProgressConflictError(payload=envelope.model_dump())

        if not response.is_success:
            if response.status_code == 400:
                msg = envelope.error_text or "Invalid progress data"
            elif response.status_code == 401:
                msg = "Authentication required"
            else:
                msg = envelope.error_text or "Failed to create progress"
            raise ProgressAPIError(msg, response.status_code, envelope.model_dump())

        record = self._to_record(envelope.data, response)
        logger.info(f"Created progress {record.progress_id} for {record.resource_type.value} {record.resource_id}")
        return record

    async def update_progress(self, progress_id: str, update: ProgressUpdate) -> ProgressRecord:
        """PUT /progress/{progressId} with a partial body; 404 is a hard error."""
        if not progress_id:
            msg = "Progress ID is required"
            raise ProgressAPIError(msg, 400, {"progressId": progress_id})

        body = update.to_wire()
        body["lastUpdated"] = utc_now().isoformat()
        response = await self._request("PUT", f"{PROGRESS_PATH}/{progress_id}", json=body)

        if response.status_code == 404:
            raise ProgressNotFoundError(payload={"progressId": progress_id})

        envelope = self._parse(response)
        if not response.is_success:
            msg = envelope.error_text or "Failed to update progress"
            raise ProgressAPIError(msg, response.status_code, envelope.model_dump())
        return self._to_record(envelope.data, response)

    async def delete_progress(self, progress_id: str) -> None:
        """DELETE /progress/{progressId}; succeeds on 200 or 204."""
        if not progress_id:
            msg = "Progress ID is required"
            raise ProgressAPIError(msg, 400, {"progressId": progress_id})

        response = await self._request("DELETE", f"{PROGRESS_PATH}/{progress_id}")
        if response.status_code == 404:
            raise ProgressNotFoundError(payload={"progressId": progress_id})
        if response.status_code not in (200, 204):
            envelope = self._parse(response)
            msg = envelope.error_text or "Failed to delete progress"
            raise ProgressAPIError(msg, response.status_code, envelope.model_dump())
        logger.info(f"Deleted progress {progress_id}")

    async def check_health(self) -> ProgressHealth:
        """Check the list endpoint with a throwaway user id.

        A 404 is the expected healthy answer.
        """
        check_user = f"health-check-{int(utc_now().timestamp() * 1000)}"
        endpoint = f"{self._http.base_url}{PROGRESS_PATH}?userId={check_user}"
        try:
            response = await self._request("GET", PROGRESS_PATH, params={"userId": check_user})
        except (ProgressTimeoutError, ProgressNetworkError) as e:
            logger.warning(f"Progress API health check failed: {e.message}")
            return ProgressHealth(
                is_healthy=False,
                timestamp=utc_now(),
                has_function_key=self._has_function_key,
                endpoint=endpoint,
                error=e.message,
            )

        is_healthy = response.status_code == 404 or response.is_success
        logger.info(f"Progress API health check: {'healthy' if is_healthy else 'unhealthy'} ({response.status_code})")
        return ProgressHealth(
            is_healthy=is_healthy,
            status_code=response.status_code,
            timestamp=utc_now(),
            has_function_key=self._has_function_key,
            endpoint=endpoint,
        )

    # === Transport helpers ===

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        logger.debug(f"{method} {path} {kwargs.get('params') or kwargs.get('json') or ''}")
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            msg = f"{method} {path} timed out after {self._timeout}s"
            raise ProgressTimeoutError(msg) from e
        except httpx.TransportError as e:
            logger.warning(f"Progress request {method} {path} failed: {e}")
            raise ProgressNetworkError from e
        logger.debug(f"Progress response: {response.status_code} {response.reason_phrase}")
        return response

    @staticmethod
    def _parse(response: httpx.Response) -> ProgressEnvelope:
        text = response.text
        if not text:
            return ProgressEnvelope(success=response.is_success)
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            msg = "Invalid JSON response from server"
            raise ProgressAPIError(msg, response.status_code, {"rawResponse": text[:500]}) from e

        if not isinstance(raw, dict):
            return ProgressEnvelope(success=response.is_success, data=raw)
        envelope = ProgressEnvelope.model_validate(raw)
        if envelope.success is None:
            envelope.success = response.is_success
        return envelope

    @staticmethod
    def _to_record(data: Any, response: httpx.Response) -> ProgressRecord:
        try:
            return ProgressRecord.model_validate(data)
        except ValidationError as e:
            msg = f"Malformed progress record in response: {e.error_count()} validation error(s)"
            raise ProgressAPIError(msg, response.status_code, {"data": data}) from e
