import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from aiswatch.core.config import Settings
from aiswatch.services.store import PositionStore
from ingester.feed import FeedSubscriptionError
from ingester.main import IngestionWorker, build_feed
from tests.conftest import FakeFeed, feed_message


async def _run(worker: IngestionWorker) -> None:
    assert await worker.start()
    await asyncio.wait_for(worker.ingest_task, timeout=2.0)


@pytest.mark.asyncio
async def test_bad_message_does_not_stop_ingestion(store, settings):
    feed = FakeFeed([feed_message(mmsi=1), '{"MessageType": broken', feed_message(mmsi=2)])
    worker = IngestionWorker(store, settings, feed=feed)

    await _run(worker)

    assert await store.count() == 2
    assert worker.stats["received"] == 3
    assert worker.stats["stored"] == 2
    assert worker.stats["discarded"] == 1


@pytest.mark.asyncio
async def test_repeated_reports_keep_latest_only(store, settings):
    feed = FakeFeed(
        [
            feed_message(mmsi=7, lat=41.0, ship_name="OLD NAME"),
            feed_message(mmsi=7, lat=41.3, ship_name="NEW NAME"),
        ]
    )
    worker = IngestionWorker(store, settings, feed=feed)

    await _run(worker)

    assert await store.count() == 1
    doc = await store.get(7)
    assert doc["metadata"]["shipName"] == "NEW NAME"
    assert doc["metadata"]["latitude"] == 41.3


@pytest.mark.asyncio
async def test_store_failure_is_counted_and_ingestion_continues(settings):
    store = AsyncMock(spec=PositionStore)
    store.upsert.side_effect = [RuntimeError("db down"), None]
    feed = FakeFeed([feed_message(mmsi=1), feed_message(mmsi=2)])
    worker = IngestionWorker(store, settings, feed=feed)

    await _run(worker)

    assert store.upsert.await_count == 2
    assert worker.stats["errors"] == 1
    assert worker.stats["stored"] == 1


@pytest.mark.asyncio
async def test_feed_end_is_terminal_and_reported(store, settings):
    on_exit = MagicMock()
    worker = IngestionWorker(store, settings, feed=FakeFeed([]), on_exit=on_exit)

    await _run(worker)

    on_exit.assert_called_once()
    assert worker.stats["status"] == "feed closed"


@pytest.mark.asyncio
async def test_subscription_error_stops_ingestion(store, settings):
    class RejectingFeed(FakeFeed):
        async def messages(self):
            raise FeedSubscriptionError("Api Key Is Not Valid")
            yield  # pragma: no cover

    on_exit = MagicMock()
    worker = IngestionWorker(store, settings, feed=RejectingFeed([]), on_exit=on_exit)

    await _run(worker)

    on_exit.assert_called_once()
    assert worker.stats["status"] == "stream error (Api Key Is Not Valid)"
    assert worker.stats["errors"] == 1


@pytest.mark.asyncio
async def test_stop_closes_feed_without_exit_callback(store, settings):
    class EndlessFeed(FakeFeed):
        async def messages(self):
            while True:
                await asyncio.sleep(3600)
                yield ""  # pragma: no cover

    feed = EndlessFeed([])
    on_exit = MagicMock()
    worker = IngestionWorker(store, settings, feed=feed, on_exit=on_exit)
    assert await worker.start()
    await asyncio.sleep(0)

    await worker.stop()

    assert feed.closed
    on_exit.assert_not_called()
    assert worker.stats["status"] == "stopped"


@pytest.mark.asyncio
async def test_missing_api_key_does_not_connect(store):
    feed = FakeFeed([feed_message()])
    worker = IngestionWorker(store, Settings(AISSTREAM_API_KEY=""), feed=feed)

    assert await worker.start() is False
    assert worker.ingest_task is None
    assert worker.stats["status"].startswith("auth error")


@pytest.mark.asyncio
async def test_missing_api_key_is_terminal_when_embedded(store):
    on_exit = MagicMock()
    worker = IngestionWorker(
        store, Settings(AISSTREAM_API_KEY="  "), feed=FakeFeed([]), on_exit=on_exit
    )

    assert await worker.start() is False
    on_exit.assert_called_once()


def test_build_feed_uses_lat_first_zone():
    cfg = Settings(
        AISSTREAM_API_KEY="k",
        ZONE_LAT_MIN=40.0,
        ZONE_LAT_MAX=42.0,
        ZONE_LON_MIN=-68.0,
        ZONE_LON_MAX=-74.5,
    )
    sub = build_feed(cfg).subscription()
    assert sub["BoundingBoxes"] == [[[40.0, -74.5], [42.0, -68.0]]]
    assert sub["FilterMessageTypes"] == ["PositionReport"]
