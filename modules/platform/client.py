"""
Platform Module - Client Facade
==================================
One entry point for tables, auth and storage, mirroring a hosted
backend-as-a-service client. Built from configuration per request.
"""

from typing import Callable, Optional

import httpx
from sqlalchemy.orm import Session

from config.database import SessionLocal
from modules.platform.auth import AuthClient
from modules.platform.storage import StorageClient
from modules.platform.tables import TableClient


class PlatformClient:

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        access_token: Optional[str] = None,
        storage: Optional[StorageClient] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._session_factory = session_factory
        self.auth = AuthClient(session_factory, access_token=access_token, http_transport=http_transport)
        self.storage = storage or StorageClient()

    def table(self, name: str) -> TableClient:
        return TableClient(name, self._session_factory)


def create_client(access_token: Optional[str] = None) -> PlatformClient:
    """Client bound to the configured database and storage root."""
    return PlatformClient(access_token=access_token)
