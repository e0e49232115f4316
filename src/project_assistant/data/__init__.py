"""Data provider contract and implementations."""

from project_assistant.data.filters import Filter, date_range, date_range_filters
from project_assistant.data.memory import InMemoryDataProvider
from project_assistant.data.postgrest import PostgrestDataProvider
from project_assistant.data.provider import (
    DataProvider,
    DataProviderError,
    DataProviderTimeout,
    Row,
)

__all__ = [
    "DataProvider",
    "DataProviderError",
    "DataProviderTimeout",
    "Row",
    "Filter",
    "date_range",
    "date_range_filters",
    "InMemoryDataProvider",
    "PostgrestDataProvider",
]
