# =============================================================================
# lib/supabase_client.py - Supabase Document Store Wrapper
# =============================================================================
# This module provides a typed wrapper around the Supabase PostgREST client.
# Every table is used as a document collection: rows are plain dicts keyed by
# an "id" column, JSON columns hold nested data (participant info, files).
#
# Unlike a module-level singleton, a SupabaseStore is constructed explicitly
# at application startup (see app/main.py lifespan) and handed to the
# services that need it. Tests swap in an in-memory store with the same
# methods.
#
# Usage:
#   store = SupabaseStore.from_settings(settings)
#   order = store.get("orders", order_id)
#   store.update("orders", {"id": order_id}, {"status": "delivered"})
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

from supabase import create_client, Client

# Set up logging for this module
logger = logging.getLogger(__name__)


class SupabaseClientError(Exception):
    """
    Error during Supabase operations.

    Provides actionable error messages: what failed, and how to fix it.
    """

    def __init__(
        self,
        message: str,
        code: str = "SUPABASE_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result


class SupabaseStore:
    """
    Document-style access to Supabase tables.

    Methods take the table name first and return plain dicts, so services
    never touch the PostgREST query builder directly.

    Example:
        store = SupabaseStore(create_client(url, key))
        conv = store.get("conversations", "uid-a_uid-b")
        msgs = store.find("messages", eq={"conversation_id": conv["id"]},
                          order_by="sent_at")
    """

    def __init__(self, client: Client):
        self._client = client

    @classmethod
    def from_settings(cls, settings: Any) -> "SupabaseStore":
        """
        Build a store from application settings.

        Uses the service_role key which bypasses Row Level Security (RLS);
        access checks are done by the services.

        Raises:
            SupabaseClientError: If client creation fails
        """
        try:
            client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to create Supabase client: {e}",
                code="CLIENT_INIT_FAILED",
                suggestion="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in your .env file"
            )
        logger.info("Supabase client initialized successfully")
        return cls(client)

    @property
    def client(self) -> Client:
        """The underlying Supabase client (storage and health checks use it)."""
        return self._client

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, table: str, key: str, column: str = "id") -> dict[str, Any] | None:
        """
        Fetch a single document by key.

        Args:
            table: Table name
            key: Value of the key column
            column: Key column name (default: "id")

        Returns:
            The document dict, or None if not found

        Raises:
            SupabaseClientError: If the query fails
        """
        try:
            response = (
                self._client.table(table)
                .select("*")
                .eq(column, key)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to fetch from {table}: {e}",
                code="FETCH_FAILED",
                details={"table": table, column: key},
            )

        rows = response.data or []
        return rows[0] if rows else None

    def find(
        self,
        table: str,
        *,
        eq: dict[str, Any] | None = None,
        contains: dict[str, list[Any]] | None = None,
        lt: dict[str, Any] | None = None,
        order_by: str | None = None,
        desc: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Query documents with simple filters.

        Args:
            table: Table name
            eq: column -> value equality filters
            contains: column -> values the JSON/array column must contain
            lt: column -> value "less than" filters
            order_by: Column to sort by
            desc: Sort descending
            limit: Maximum number of rows

        Returns:
            List of matching documents (possibly empty)

        Raises:
            SupabaseClientError: If the query fails
        """
        try:
            query = self._client.table(table).select("*")
            for column, value in (eq or {}).items():
                query = query.eq(column, value)
            for column, values in (contains or {}).items():
                query = query.contains(column, values)
            for column, value in (lt or {}).items():
                query = query.lt(column, value)
            if order_by:
                query = query.order(order_by, desc=desc)
            if limit is not None:
                query = query.limit(limit)

            response = query.execute()

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to query {table}: {e}",
                code="QUERY_FAILED",
                details={"table": table, "eq": eq or {}, "contains": contains or {}},
            )

        rows = response.data or []
        logger.debug(f"Fetched {len(rows)} rows from {table}")
        return rows

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """
        Append a document.

        Columns omitted from `data` (id, created_at) take their database
        defaults, so timestamps are server-assigned.

        Returns:
            The inserted document

        Raises:
            SupabaseClientError: If the insert fails or returns nothing
        """
        try:
            response = self._client.table(table).insert(data).execute()
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to insert into {table}: {e}",
                code="INSERT_FAILED",
                details={"table": table},
            )

        if not response.data:
            raise SupabaseClientError(
                message=f"Insert into {table} returned no data",
                code="INSERT_NO_DATA",
                details={"table": table},
            )
        return response.data[0]

    def insert_if_absent(
        self,
        table: str,
        data: dict[str, Any],
        on_conflict: str = "id",
    ) -> bool:
        """
        Insert a document unless one with the same key already exists.

        Runs as a single `INSERT ... ON CONFLICT DO NOTHING`, so two racing
        callers cannot both create the document.

        Returns:
            True if a new document was created, False if it already existed
        """
        try:
            response = (
                self._client.table(table)
                .upsert(data, on_conflict=on_conflict, ignore_duplicates=True)
                .execute()
            )
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to insert into {table}: {e}",
                code="INSERT_FAILED",
                details={"table": table, "on_conflict": on_conflict},
            )

        return bool(response.data)

    def upsert(
        self,
        table: str,
        data: dict[str, Any],
        on_conflict: str = "id",
    ) -> dict[str, Any]:
        """
        Create or overwrite a document at a fixed key.

        Returns:
            The stored document
        """
        try:
            response = (
                self._client.table(table)
                .upsert(data, on_conflict=on_conflict)
                .execute()
            )
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to upsert into {table}: {e}",
                code="UPSERT_FAILED",
                details={"table": table, "on_conflict": on_conflict},
            )

        return response.data[0] if response.data else data

    def update(
        self,
        table: str,
        match: dict[str, Any],
        data: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """
        Update every document matching all `match` equality filters.

        Returns:
            The updated documents (empty if nothing matched)
        """
        try:
            query = self._client.table(table).update(data)
            for column, value in match.items():
                query = query.eq(column, value)
            response = query.execute()
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to update {table}: {e}",
                code="UPDATE_FAILED",
                details={"table": table, "match": match},
            )

        return response.data or []

    def delete(self, table: str, match: dict[str, Any]) -> int:
        """
        Delete documents matching all `match` equality filters.

        Returns:
            Number of deleted documents
        """
        try:
            query = self._client.table(table).delete()
            for column, value in match.items():
                query = query.eq(column, value)
            response = query.execute()
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to delete from {table}: {e}",
                code="DELETE_FAILED",
                details={"table": table, "match": match},
            )

        return len(response.data or [])

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    def ping(self, table: str) -> None:
        """Run a trivial query against `table`; raises if the database is unreachable."""
        self._client.table(table).select("id").limit(1).execute()
