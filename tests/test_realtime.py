from gestro.services.context import ServiceContext
from gestro.services.realtime import (
    ChangeEvent,
    ChangeType,
    InMemoryChangeFeed,
    get_change_feed,
)


def order_event(event_type=ChangeType.INSERT, **row):
    return ChangeEvent(table="orders", event_type=event_type, new={"id": "o-1", "status": "pending", **row})


async def test_subscribers_receive_matching_events(feed):
    inserts, everything, other_table = [], [], []
    feed.subscribe("orders", ChangeType.INSERT, inserts.append)
    feed.subscribe("orders", None, everything.append)
    feed.subscribe("reservations", None, other_table.append)

    await feed.publish(order_event())
    await feed.publish(order_event(ChangeType.UPDATE, status="ready"))

    assert len(inserts) == 1
    assert len(everything) == 2
    assert other_table == []
    assert feed.published_count == 2


async def test_row_filters(feed):
    seen = []
    feed.subscribe("orders", ChangeType.UPDATE, seen.append, filters={"customer_id": "user-ana"})

    await feed.publish(order_event(ChangeType.UPDATE, customer_id="user-bob"))
    await feed.publish(order_event(ChangeType.UPDATE, customer_id="user-ana"))

    assert [e.new["customer_id"] for e in seen] == ["user-ana"]


async def test_filters_fall_back_to_old_row_for_deletes(feed):
    seen = []
    feed.subscribe("tables", ChangeType.DELETE, seen.append, filters={"table_number": 4})

    await feed.publish(ChangeEvent(table="tables", event_type=ChangeType.DELETE, new={}, old={"table_number": 4}))

    assert len(seen) == 1


async def test_unsubscribe_stops_delivery(feed):
    seen = []
    subscription = feed.subscribe("orders", None, seen.append)
    subscription.unsubscribe()
    subscription.unsubscribe()

    await feed.publish(order_event())

    assert seen == []
    assert feed.subscriber_count == 0


async def test_async_callbacks_are_awaited(feed):
    seen = []

    async def on_insert(event):
        seen.append(event.new["id"])

    feed.subscribe("orders", ChangeType.INSERT, on_insert)
    await feed.publish(order_event())

    assert seen == ["o-1"]


async def test_failing_subscriber_does_not_block_others(feed):
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    feed.subscribe("orders", None, broken)
    feed.subscribe("orders", None, seen.append)

    await feed.publish(order_event())

    assert len(seen) == 1


def test_event_serialization():
    event = order_event(total_amount=12.5)
    restored = ChangeEvent.from_dict(event.to_dict())

    assert restored.table == "orders"
    assert restored.event_type == ChangeType.INSERT
    assert restored.new == event.new
    assert restored.committed_at == event.committed_at


async def test_context_without_feed_is_silent(session):
    ctx = ServiceContext(session=session)
    await ctx.publish("orders", ChangeType.INSERT, {"id": "o-1"})


async def test_development_feed_is_in_memory():
    feed = get_change_feed()
    assert isinstance(feed, InMemoryChangeFeed)
    assert feed.provider_name == "memory"
    assert await feed.health_check() is True
    assert get_change_feed() is feed
