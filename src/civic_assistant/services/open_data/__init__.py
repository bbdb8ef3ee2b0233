"""Open-data service request lookups."""

from civic_assistant.services.open_data.client import OpenDataClient, ServiceRequestDataService

__all__ = ["OpenDataClient", "ServiceRequestDataService"]
