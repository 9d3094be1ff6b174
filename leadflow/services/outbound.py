"""Shared httpx plumbing for services that call external APIs."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from leadflow.core.config import Settings


class OutboundService:
    """Base for provider clients.

    A client passed at construction is reused and never closed here;
    otherwise each call opens a short-lived `httpx.AsyncClient`.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.client = client

    @asynccontextmanager
    async def http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.client is not None:
            yield self.client
        else:
            async with httpx.AsyncClient(timeout=self.settings.outbound_timeout) as client:
                yield client
