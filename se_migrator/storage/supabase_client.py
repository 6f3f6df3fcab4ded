# se_migrator/storage/supabase_client.py
from typing import Any, Dict, List, Optional

from loguru import logger
from postgrest import APIResponse
from postgrest.exceptions import APIError
from supabase import AsyncClient, create_async_client

from se_migrator.config.settings import AppSettings

from .sink import RelationalSink, Row, SinkError

# Module-level storage for the async client instance
_async_supabase_client: Optional[AsyncClient] = None


async def initialize_supabase(app_settings: AppSettings) -> AsyncClient:
    """Initializes the global ASYNC Supabase client and returns it."""
    global _async_supabase_client
    if _async_supabase_client:
        logger.debug("Async Supabase client already initialized.")
        return _async_supabase_client

    if not app_settings.supabase_url or not app_settings.supabase_key:
        logger.critical("Supabase URL or Key not configured in settings.")
        raise SystemExit("Supabase configuration missing.")

    logger.debug(
        f"Attempting to initialize Async Supabase client with URL: {app_settings.supabase_url}"
    )
    try:
        client: AsyncClient = await create_async_client(
            app_settings.supabase_url, app_settings.supabase_key
        )
    except Exception as e:
        logger.exception(f"Failed to initialize Async Supabase client: {e}")
        raise SinkError("Could not connect to Supabase") from e

    _async_supabase_client = client
    logger.success("Async Supabase client initialized successfully.")
    return client


class SupabaseSink(RelationalSink):
    """RelationalSink backed by PostgREST tables in a Supabase project."""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def _execute(self, table: str, operation: str, query) -> List[Row]:
        try:
            response: APIResponse = await query.execute()
        except APIError as e:
            logger.error(f"Error during async {operation} on {table}: {e.message}")
            logger.debug(f"Full APIError details: {e}")
            raise SinkError(f"{operation} on {table} failed: {e.message}") from e
        return response.data or []

    async def insert(self, table: str, row: Row) -> Row:
        rows = await self._execute(table, "insert", self.client.table(table).insert(row))
        if not rows:
            raise SinkError(f"insert on {table} returned no row")
        logger.debug(f"Inserted into {table}: id={rows[0].get('id')}")
        return rows[0]

    def _filtered(self, table: str, filters: Dict[str, Any]):
        query = self.client.table(table).select("*")
        for column, value in filters.items():
            query = query.eq(column, value)
        return query

    async def select_one(self, table: str, filters: Row) -> Optional[Row]:
        rows = await self._execute(table, "select", self._filtered(table, filters).limit(1))
        return rows[0] if rows else None

    async def select(
        self,
        table: str,
        filters: Row,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Row]:
        query = self._filtered(table, filters)
        if order_by:
            query = query.order(order_by, desc=descending)
        return await self._execute(table, "select", query)
