"""
Open-data portal client for city service request lookups.
Queries a Socrata-style dataset: GET {base_url}/resource/{dataset_id}.json
"""

from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote, urlencode

import httpx
import structlog
from pydantic import ValidationError

from civic_assistant.config import Settings, get_settings
from civic_assistant.core.errors import LookupServiceUnavailable
from civic_assistant.models import ServiceRequestFilter, ServiceRequestRecord

logger = structlog.get_logger(__name__)

NOT_SPECIFIED = "Not specified"


class ServiceRequestDataService(ABC):
    """Lookup contract for service request data."""

    @abstractmethod
    async def lookup_by_request_number(self, request_number: str) -> ServiceRequestRecord | None:
        """
        Fetch one request by number.

        Returns:
            The record, or None when no request has that number

        Raises:
            LookupServiceUnavailable: if the service cannot be reached
        """

    @abstractmethod
    async def search_by_location_or_type(self, filter: ServiceRequestFilter) -> list[ServiceRequestRecord]:
        """Search requests by location and/or type, newest first."""

    async def close(self) -> None:
        """Release any held resources."""


class OpenDataClient(ServiceRequestDataService):
    """Client for the city's open-data service request dataset."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.base_url = self.settings.open_data.base_url.rstrip("/")
        self.dataset_id = self.settings.open_data.dataset_id
        self.number_field = self.settings.open_data.request_number_field
        self._client = client

    @property
    def resource_path(self) -> str:
        return f"/resource/{self.dataset_id}.json"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.settings.open_data.app_token:
                headers["X-App-Token"] = self.settings.open_data.app_token
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.settings.conversation.lookup_timeout_seconds,
            )
        return self._client

    async def _query(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        client = await self._get_client()
        try:
            response = await client.get(self.resource_path, params=params)
            if response.status_code == 404:
                return []
            response.raise_for_status()
            rows = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("open_data_api_error", status=e.response.status_code, detail=str(e))
            raise LookupServiceUnavailable(f"Open data returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("open_data_request_failed", error=str(e))
            raise LookupServiceUnavailable(f"Open data request failed: {e}") from e
        except ValueError as e:
            logger.error("open_data_invalid_json", error=str(e))
            raise LookupServiceUnavailable("Open data returned invalid JSON") from e

        if not isinstance(rows, list):
            raise LookupServiceUnavailable("Open data response is not a list of rows")
        return rows

    async def lookup_by_request_number(self, request_number: str) -> ServiceRequestRecord | None:
        logger.info("open_data_lookup", request_number=request_number)

        rows = await self._query({self.number_field: request_number, "$limit": 1})
        if not rows:
            logger.info("open_data_not_found", request_number=request_number)
            return None
        return self._to_record(rows[0])

    async def search_by_location_or_type(self, filter: ServiceRequestFilter) -> list[ServiceRequestRecord]:
        conditions = []
        if filter.location:
            conditions.append(f"upper(incident_address) like '%{_soql_escape(filter.location.upper())}%'")
        if filter.request_type:
            conditions.append(f"upper(complaint_type) like '%{_soql_escape(filter.request_type.upper())}%'")
        if filter.status:
            conditions.append(f"status = '{_soql_escape(filter.status)}'")

        params: dict[str, Any] = {
            "$order": "created_date DESC",
            "$limit": min(filter.limit, self.settings.open_data.search_limit),
        }
        if conditions:
            params["$where"] = " AND ".join(conditions)

        logger.info("open_data_search", conditions=len(conditions), limit=params["$limit"])
        rows = await self._query(params)
        return [self._to_record(row) for row in rows]

    def _to_record(self, row: dict[str, Any]) -> ServiceRequestRecord:
        location = row.get("incident_address")
        if not location and row.get("intersection_street_1"):
            location = f"{row['intersection_street_1']} & {row.get('intersection_street_2', '')}".strip(" &")

        request_number = str(row.get(self.number_field, ""))
        try:
            return ServiceRequestRecord(
                request_number=request_number,
                request_type=row.get("complaint_type") or NOT_SPECIFIED,
                location=location or NOT_SPECIFIED,
                status=row.get("status") or NOT_SPECIFIED,
                created_at=row.get("created_date"),
                updated_at=row.get("resolution_action_updated_date") or row.get("closed_date"),
                agency=row.get("agency_name") or row.get("agency"),
                resolution=row.get("resolution_description"),
                details_url=self.details_url(request_number) if request_number else None,
            )
        except ValidationError as e:
            logger.error("open_data_invalid_row", request_number=request_number, error=str(e))
            raise LookupServiceUnavailable("Open data returned a malformed record") from e

    def details_url(self, request_number: str) -> str:
        """Public link to a request, from the portal template or the dataset row itself."""
        template = self.settings.open_data.details_url_template
        if template:
            return template.format(request_number=quote(request_number))
        query = urlencode({self.number_field: request_number})
        return f"{self.base_url}{self.resource_path}?{query}"

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()


def _soql_escape(value: str) -> str:
    return value.replace("'", "''")
