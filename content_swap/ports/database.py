# content_swap/ports/database.py

from __future__ import annotations

from typing import Protocol, Any, ContextManager, Mapping, Optional


from sqlalchemy.engine import Engine, Connection
from sqlalchemy.sql.elements import TextClause


class Database(Protocol):
    engine: Engine
    schema: str

    def table_exists(self, table: str) -> bool: ...

    def begin(self) -> ContextManager[Connection]: ...
    def connect(self) -> ContextManager[Connection]: ...

    def execute(
            self,
            stmt: TextClause,
            params: Optional[Mapping[str, Any]] = None,
    ) -> Any: ...
