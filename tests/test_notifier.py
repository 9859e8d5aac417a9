"""
Tests for the change notifier.
"""
import asyncio
import threading
from datetime import datetime
from decimal import Decimal

from app.schemas import ComparisonItem, ComparisonRecord, VendorRef
from app.services import ChangeNotifier


def _record(record_id="r1", status="completed"):
    now = datetime(2026, 2, 1)
    return ComparisonRecord(
        id=record_id,
        title="Q1 materials",
        status=status,
        items=[ComparisonItem(name="Steel Plates", prices={"A": Decimal("1250"), "B": Decimal("1180")})],
        vendors=[VendorRef(id="A", name="Acme"), VendorRef(id="B", name="Bolt")],
        created_at=now,
        updated_at=now,
    )


class TestChangeNotifier:
    def test_publish_reaches_subscribers_of_the_topic(self):
        notifier = ChangeNotifier()

        async def scenario():
            mine = notifier.subscribe("r1")
            other = notifier.subscribe("r2")
            assert notifier.publish(_record("r1")) == 1
            payload = await asyncio.wait_for(mine.get(), timeout=1)
            assert other._queue.empty()
            mine.close()
            other.close()
            return payload

        payload = asyncio.run(scenario())
        assert payload["id"] == "r1"
        assert payload["status"] == "completed"
        assert payload["total_value"] == "1180.00"
        assert payload["price_ranges"][0]["min_vendors"] == ["B"]

    def test_publish_without_subscribers(self):
        assert ChangeNotifier().publish(_record()) == 0

    def test_publish_from_another_thread(self):
        notifier = ChangeNotifier()

        async def scenario():
            sub = notifier.subscribe("r1")
            worker = threading.Thread(target=notifier.publish, args=(_record("r1", "failed"),))
            worker.start()
            payload = await asyncio.wait_for(sub.get(), timeout=2)
            worker.join()
            sub.close()
            return payload

        assert asyncio.run(scenario())["status"] == "failed"

    def test_close_unsubscribes(self):
        notifier = ChangeNotifier()

        async def scenario():
            sub = notifier.subscribe("r1")
            assert notifier.subscriber_count("r1") == 1
            sub.close()
            sub.close()
            assert notifier.subscriber_count("r1") == 0
            return notifier.publish(_record("r1"))

        assert asyncio.run(scenario()) == 0

    def test_full_queue_keeps_newest(self):
        notifier = ChangeNotifier(queue_size=2)

        async def scenario():
            sub = notifier.subscribe("t")
            for n in range(5):
                notifier.broadcast("t", {"n": n})
            await asyncio.sleep(0)
            received = [await sub.get(), await sub.get()]
            sub.close()
            return received

        assert [p["n"] for p in asyncio.run(scenario())] == [3, 4]

    def test_dead_loop_is_dropped(self):
        notifier = ChangeNotifier()

        async def scenario():
            return notifier.subscribe("r1")

        asyncio.run(scenario())  # loop closes when run() returns
        assert notifier.publish(_record("r1")) == 0
        assert notifier.subscriber_count("r1") == 0
