"""
Connectors Package for the Inactivity Engine.

This package provides the directory connector contract, an in-memory mock
directory, and the Microsoft Graph implementation.
"""

from .base_connector import (
    BaseDirectoryConnector,
    ConnectorResult,
    DirectoryConnectionError,
    DirectoryError,
    MockDirectoryConnector,
)


# Lazy import so the mock path does not need the Azure SDK
def get_connector_class(mock: bool = False):
    """Get the directory connector class for the requested mode."""
    if mock:
        return MockDirectoryConnector

    from .graph_connector import GraphDirectoryConnector

    return GraphDirectoryConnector


__all__ = [
    "BaseDirectoryConnector",
    "ConnectorResult",
    "DirectoryConnectionError",
    "DirectoryError",
    "MockDirectoryConnector",
    "get_connector_class",
]
