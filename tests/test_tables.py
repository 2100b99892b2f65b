from gestro.models import TableStatus
from gestro.schemas import TableCreate, TableUpdate
from gestro.services.realtime import ChangeType
from gestro.services.tables import TableRepository


async def test_list_and_lookup(ctx, tables):
    repo = TableRepository(ctx)

    assert [t.table_number for t in await repo.get_all_tables()] == [1, 2, 3]
    assert [t.table_number for t in await repo.get_tables_by_status(TableStatus.MAINTENANCE)] == [3]
    assert (await repo.get_table_by_number(2)).capacity == 4
    assert (await repo.get_table_by_id(tables[0].id)).location == "Window"
    assert await repo.get_table_by_number(99) is None


async def test_create_table(ctx):
    table = await TableRepository(ctx).create_table(TableCreate(table_number=7, capacity=8, location="Patio"))
    assert table.id
    assert table.status == TableStatus.AVAILABLE


async def test_duplicate_table_number_fails(ctx, tables):
    assert await TableRepository(ctx).create_table(TableCreate(table_number=1, capacity=2)) is None


async def test_status_change_is_published(ctx, feed, tables):
    events = []
    feed.subscribe("tables", ChangeType.UPDATE, events.append)

    table = await TableRepository(ctx).update_table_status(tables[0].id, TableStatus.OCCUPIED)

    assert table.status == TableStatus.OCCUPIED
    assert events[0].old["status"] == "available"
    assert events[0].new["status"] == "occupied"


async def test_partial_update(ctx, tables):
    table = await TableRepository(ctx).update_table(tables[1].id, TableUpdate(capacity=6))
    assert table.capacity == 6
    assert table.location == "Terrace"
    assert await TableRepository(ctx).update_table("missing", TableUpdate(capacity=2)) is None


async def test_delete_table(ctx, tables):
    repo = TableRepository(ctx)
    assert await repo.delete_table(tables[2].id) is True
    assert await repo.delete_table(tables[2].id) is False
    assert len(await repo.get_all_tables()) == 2


async def test_table_stats(ctx, tables):
    await TableRepository(ctx).update_table_status(tables[0].id, TableStatus.RESERVED)

    stats = await TableRepository(ctx).get_table_stats()
    assert stats == {
        "available": 1,
        "occupied": 0,
        "reserved": 1,
        "maintenance": 1,
        "total": 3,
    }


async def test_stats_on_empty_floor(ctx):
    stats = await TableRepository(ctx).get_table_stats()
    assert stats["total"] == 0
    assert stats["available"] == 0
