"""
Table Repository

Dining table CRUD, status changes and floor statistics.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from gestro.models import Table, TableStatus, row_to_dict
from gestro.schemas import TableCreate, TableUpdate
from gestro.services.context import ServiceContext
from gestro.services.realtime import ChangeType

logger = logging.getLogger(__name__)


class TableRepository:

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.db = ctx.session

    async def get_all_tables(self) -> list[Table]:
        try:
            result = await self.db.execute(select(Table).order_by(Table.table_number.asc()))
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Failed to load tables")
            return []

    async def get_tables_by_status(self, status: TableStatus) -> list[Table]:
        try:
            result = await self.db.execute(
                select(Table).where(Table.status == status).order_by(Table.table_number.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception(f"Failed to load {status.value} tables")
            return []

    async def get_table_by_id(self, table_id: str) -> Optional[Table]:
        try:
            return await self.db.get(Table, table_id)
        except SQLAlchemyError:
            logger.exception(f"Failed to load table {table_id}")
            return None

    async def get_table_by_number(self, table_number: int) -> Optional[Table]:
        try:
            result = await self.db.execute(select(Table).where(Table.table_number == table_number))
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception(f"Failed to load table #{table_number}")
            return None

    async def create_table(self, data: TableCreate) -> Optional[Table]:
        table = Table(**data.model_dump())
        try:
            self.db.add(table)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create table #{data.table_number}: {e}")
            return None
        logger.info(f"Table #{table.table_number} created (capacity {table.capacity})")
        return table

    async def update_table(self, table_id: str, data: TableUpdate) -> Optional[Table]:
        table = await self.get_table_by_id(table_id)
        if table is None:
            return None
        previous = row_to_dict(table)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(table, field, value)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update table {table_id}: {e}")
            return None
        await self.ctx.publish("tables", ChangeType.UPDATE, row_to_dict(table), old=previous)
        return table

    async def update_table_status(self, table_id: str, status: TableStatus) -> Optional[Table]:
        return await self.update_table(table_id, TableUpdate(status=status))

    async def delete_table(self, table_id: str) -> bool:
        table = await self.get_table_by_id(table_id)
        if table is None:
            return False
        try:
            await self.db.delete(table)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to delete table {table_id}")
            return False
        logger.info(f"Table #{table.table_number} deleted")
        return True

    async def get_table_stats(self) -> dict[str, int]:
        """Count tables per status, plus the total."""
        stats = {status.value: 0 for status in TableStatus}
        try:
            result = await self.db.execute(
                select(Table.status, func.count(Table.id)).group_by(Table.status)
            )
            for status, count in result.all():
                stats[status.value] = count
        except SQLAlchemyError:
            logger.exception("Failed to compute table stats")
        stats["total"] = sum(stats.values())
        return stats
