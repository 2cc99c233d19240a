from data_ingestion.api.base_client import Page, PaginatedAPIClient
from data_ingestion.api.octopus_client import OctopusClient

__all__ = [
    "Page",
    "PaginatedAPIClient",
    "OctopusClient",
]
