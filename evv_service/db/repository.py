"""Shared repository base helpers."""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text


class BaseRepository:
    """Base repository with common DB helpers."""

    def __init__(self, db: AsyncSession, tenant_schema: Optional[str] = None):
        self.db = db
        self.tenant_schema = tenant_schema

    async def _set_search_path(self):
        """Set PostgreSQL search_path to the tenant schema (no-op without one)."""
        if not self.tenant_schema:
            return
        await self.db.execute(text(f'SET search_path TO "{self.tenant_schema}", public'))
