"""
HTTP API for the preservation registry.

- RegistryServicer: submit calls, poll receipts, read records
- create_app: FastAPI application over a servicer
"""

from .http_server import create_app
from .servicer import RegistryServicer
from .settings import Settings

__all__ = ["RegistryServicer", "Settings", "create_app"]
