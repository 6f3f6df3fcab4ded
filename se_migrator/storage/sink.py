from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from se_migrator.backends.base_backend import MigratorError

Row = Dict[str, Any]


class SinkError(MigratorError):
    """An insert or select against the relational store failed."""

    pass


class RelationalSink(ABC):
    """The only storage operations the migration needs: insert a row, select rows by equality."""

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """Insert `row` and return it as stored (including its generated `id`)."""

    @abstractmethod
    async def select_one(self, table: str, filters: Row) -> Optional[Row]:
        pass

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Row,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Row]:
        pass
