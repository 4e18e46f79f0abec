"""Shared database client contract.

Both PostgresClient and SqliteClient accept %s placeholders and return rows
as plain dicts, so services are written once against this protocol.
"""

from typing import Any, Dict, List, Protocol, Tuple


class DatabaseError(Exception):
    """Driver-level failure (connection, constraint, lock timeout)."""


class DatabaseClient(Protocol):
    """Minimal query surface used by services."""

    def execute(self, query: str, params: Tuple | None = None) -> List[Dict[str, Any]]:
        ...

    def execute_single(self, query: str, params: Tuple | None = None) -> Dict[str, Any] | None:
        ...

    def execute_returning(self, query: str, params: Tuple | None = None) -> List[Dict[str, Any]]:
        ...

    def execute_script(self, script: str) -> None:
        ...
