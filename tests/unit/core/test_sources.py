"""Unit tests for SourceStore.

Feeds are served through httpx.MockTransport; nothing touches the network.
"""

import asyncio
import json
import threading
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from portalctl.core.credentials import CredentialStore, source_token_key
from portalctl.core.errors import PersistenceError, RecordNotFoundError
from portalctl.core.sources import SOURCE_ORDER_MIGRATION_KEY, SourceStore
from portalctl.core.state import StateManager
from portalctl.models.source import PLACEHOLDER_NAME, UNORDERED, SourceRecord

FEED_URL = "https://repo.example.com/feed.json"


def _feed_transport(feed: dict | None = None, status: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=feed or {"name": "Example Repo"})

    return httpx.MockTransport(handler)


def _seed(store: SourceStore, records: list[SourceRecord]) -> None:
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_text(json.dumps({"version": 1, "records": [r.to_dict() for r in records]}))


def _legacy(identifier: str, added_at: str) -> SourceRecord:
    return SourceRecord(
        identifier=identifier,
        name=identifier.upper(),
        source_url=f"https://{identifier}.example.com",
        added_at=added_at,
    )


class TestAddSource:
    """Tests for SourceStore.add_source."""

    def test_add_uses_feed_details(self, tmp_path: Path) -> None:
        """Name, identifier and icon come from the feed."""
        feed = {
            "name": "Example Repo",
            "identifier": "com.example.repo",
            "iconURL": "https://repo.example.com/icon.png",
            "apps": [{"name": "App", "bundleIdentifier": "com.example.app"}],
        }
        store = SourceStore(state_dir=tmp_path, transport=_feed_transport(feed))

        record = asyncio.run(store.add_source(FEED_URL))

        assert record is not None
        assert record.identifier == "com.example.repo"
        assert record.name == "Example Repo"
        assert record.icon_url == "https://repo.example.com/icon.png"
        assert record.order == 0
        assert store.source_exists("com.example.repo")

    def test_orders_increase(self, tmp_path: Path) -> None:
        """Each new source is placed after the last one."""
        store = SourceStore(state_dir=tmp_path, transport=_feed_transport())

        first = asyncio.run(store.add_source("https://a.example.com"))
        second = asyncio.run(store.add_source("https://b.example.com"))

        assert first is not None and second is not None
        assert (first.order, second.order) == (0, 1)

    def test_duplicate_is_noop(self, tmp_path: Path) -> None:
        """Adding a source twice stores it once."""
        store = SourceStore(state_dir=tmp_path, transport=_feed_transport())

        asyncio.run(store.add_source(FEED_URL))
        again = asyncio.run(store.add_source(FEED_URL))

        assert again is None
        assert len(store.list_sources()) == 1

    def test_duplicate_feed_identifier_is_noop(self, tmp_path: Path) -> None:
        """Two URLs serving the same feed identifier are stored once."""
        store = SourceStore(
            state_dir=tmp_path,
            transport=_feed_transport({"name": "Repo", "identifier": "com.example.repo"}),
        )

        asyncio.run(store.add_source("https://a.example.com"))
        again = asyncio.run(store.add_source("https://mirror.example.com"))

        assert again is None
        assert [r.identifier for r in store.list_sources()] == ["com.example.repo"]

    def test_server_error_stores_placeholder(self, tmp_path: Path) -> None:
        """A failing feed still adds a placeholder source."""
        store = SourceStore(state_dir=tmp_path, transport=_feed_transport(status=500))

        record = asyncio.run(store.add_source(FEED_URL))

        assert record is not None
        assert record.name == PLACEHOLDER_NAME
        assert record.identifier == FEED_URL
        assert record.source_url == FEED_URL

    def test_invalid_feed_stores_placeholder_with_hints(self, tmp_path: Path) -> None:
        """An unparseable feed uses the name and identifier hints."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>not a feed</html>")

        store = SourceStore(state_dir=tmp_path, transport=httpx.MockTransport(handler))

        record = asyncio.run(
            store.add_source(FEED_URL, name_hint="My Repo", identifier_hint="my.repo")
        )

        assert record is not None
        assert record.name == "My Repo"
        assert record.identifier == "my.repo"

    def test_transport_error_stores_placeholder(self, tmp_path: Path) -> None:
        """Connection failures downgrade to a placeholder."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        store = SourceStore(state_dir=tmp_path, transport=httpx.MockTransport(handler))

        record = asyncio.run(store.add_source(FEED_URL))

        assert record is not None
        assert record.name == PLACEHOLDER_NAME

    def test_invalid_url_returns_none(self, tmp_path: Path) -> None:
        """A URL that cannot be parsed adds nothing."""
        store = SourceStore(state_dir=tmp_path, transport=_feed_transport())

        assert asyncio.run(store.add_source("https://example.com:notaport")) is None
        assert store.list_sources() == []

    def test_feed_token_is_sent(self, tmp_path: Path) -> None:
        """A stored token for the feed host is sent as a bearer token."""
        seen: list[str | None] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={"name": "Private"})

        credentials = CredentialStore(path=tmp_path / "credentials.toml")
        credentials.save(source_token_key("repo.example.com"), "tok")
        store = SourceStore(
            state_dir=tmp_path,
            credentials=credentials,
            transport=httpx.MockTransport(handler),
        )

        asyncio.run(store.add_source(FEED_URL))

        assert seen == ["Bearer tok"]


class TestListAndRemove:
    """Tests for listing, lookup and removal."""

    def test_ordered_before_unordered(self, tmp_path: Path) -> None:
        """Ordered sources come first, legacy ones follow by creation time."""
        store = SourceStore(state_dir=tmp_path)
        _seed(
            store,
            [
                _legacy("late", "2024-03-01T00:00:00+00:00"),
                _legacy("early", "2024-01-01T00:00:00+00:00"),
                _legacy("second", "2024-05-01T00:00:00+00:00").with_order(1),
                _legacy("first", "2024-06-01T00:00:00+00:00").with_order(0),
            ],
        )

        identifiers = [r.identifier for r in store.list_sources()]

        assert identifiers == ["first", "second", "early", "late"]

    def test_get_and_remove(self, tmp_path: Path) -> None:
        """get_source finds records; remove_source deletes them."""
        store = SourceStore(state_dir=tmp_path)
        _seed(store, [_legacy("a", "2024-01-01T00:00:00+00:00")])

        assert store.get_source("a").name == "A"
        assert store.remove_source("a") is True
        assert store.remove_source("a") is False
        with pytest.raises(RecordNotFoundError):
            store.get_source("a")


class TestReorder:
    """Tests for SourceStore.reorder."""

    @pytest.fixture
    def store(self, tmp_path: Path) -> SourceStore:
        """Store holding sources a, b, c in that order."""
        store = SourceStore(state_dir=tmp_path)
        _seed(
            store,
            [
                _legacy("a", "2024-01-01T00:00:00+00:00").with_order(0),
                _legacy("b", "2024-01-02T00:00:00+00:00").with_order(1),
                _legacy("c", "2024-01-03T00:00:00+00:00").with_order(2),
            ],
        )
        return store

    def test_dense_orders(self, store: SourceStore) -> None:
        """Named sources come first; the rest keep their relative order."""
        result = store.reorder(["c", "a"])

        assert [(r.identifier, r.order) for r in result] == [("c", 0), ("a", 1), ("b", 2)]
        assert [r.identifier for r in store.list_sources()] == ["c", "a", "b"]

    def test_duplicates_rejected(self, store: SourceStore) -> None:
        """Repeated identifiers raise ValueError."""
        with pytest.raises(ValueError):
            store.reorder(["a", "a"])

    def test_unknown_identifier_changes_nothing(self, store: SourceStore) -> None:
        """An unknown identifier aborts without writing."""
        before = store.path.read_bytes()

        with pytest.raises(RecordNotFoundError):
            store.reorder(["c", "zzz"])

        assert store.path.read_bytes() == before

    def test_persistence_failure_rolls_back(self, store: SourceStore) -> None:
        """A failed save leaves every order unchanged."""
        with (
            patch("portalctl.core.records.write_json_atomic", side_effect=OSError("full")),
            pytest.raises(PersistenceError),
        ):
            store.reorder(["c", "b", "a"])

        assert [(r.identifier, r.order) for r in store.list_sources()] == [
            ("a", 0),
            ("b", 1),
            ("c", 2),
        ]


class CountingStateManager(StateManager):
    """StateManager recording how often flags are written."""

    def __init__(self, state_dir: Path) -> None:
        super().__init__(state_dir)
        self.writes = 0
        self._count_lock = threading.Lock()

    def set_flag(self, name: str, value: bool = True) -> None:
        with self._count_lock:
            self.writes += 1
        super().set_flag(name, value)


class TestInitializeOrders:
    """Tests for the one-time order migration."""

    def _legacy_store(self, tmp_path: Path, state: StateManager | None = None) -> SourceStore:
        store = SourceStore(state_dir=tmp_path, state=state)
        _seed(
            store,
            [
                _legacy("late", "2024-03-01T00:00:00+00:00"),
                _legacy("early", "2024-01-01T00:00:00+00:00"),
            ],
        )
        return store

    def test_assigns_orders_by_creation_time(self, tmp_path: Path) -> None:
        """Legacy records are numbered by creation time and the flag is set."""
        store = self._legacy_store(tmp_path)

        assert store.initialize_orders() is True

        assert [(r.identifier, r.order) for r in store.list_sources()] == [
            ("early", 0),
            ("late", 1),
        ]
        assert StateManager(tmp_path).get_flag(SOURCE_ORDER_MIGRATION_KEY)

    def test_runs_once(self, tmp_path: Path) -> None:
        """A second call does nothing once the flag is set."""
        store = self._legacy_store(tmp_path)
        store.initialize_orders()

        assert store.initialize_orders() is False

    def test_nothing_to_migrate_still_sets_flag(self, tmp_path: Path) -> None:
        """An empty store completes the migration without changes."""
        store = SourceStore(state_dir=tmp_path)

        assert store.initialize_orders() is False
        assert StateManager(tmp_path).get_flag(SOURCE_ORDER_MIGRATION_KEY)

    def test_failed_save_is_retried(self, tmp_path: Path) -> None:
        """When saving fails the flag stays unset and the next call retries."""
        store = self._legacy_store(tmp_path)

        with patch("portalctl.core.records.write_json_atomic", side_effect=OSError("full")):
            assert store.initialize_orders() is False

        assert not StateManager(tmp_path).get_flag(SOURCE_ORDER_MIGRATION_KEY)
        assert all(r.order == UNORDERED for r in store.list_sources())

        assert store.initialize_orders() is True
        assert [r.order for r in store.list_sources()] == [0, 1]

    def test_migration_keeps_undecodable_entries(self, tmp_path: Path) -> None:
        """Entries that fail to decode are written back by the migration."""
        store = self._legacy_store(tmp_path)
        document = json.loads(store.path.read_text())
        document["records"].append({"identifier": "half"})
        store.path.write_text(json.dumps(document))

        assert store.initialize_orders() is True

        assert {"identifier": "half"} in json.loads(store.path.read_text())["records"]
        assert [r.order for r in store.list_sources()] == [0, 1]

    def test_concurrent_calls_migrate_once(self, tmp_path: Path) -> None:
        """Parallel callers run the migration exactly once."""
        state = CountingStateManager(tmp_path)
        store = self._legacy_store(tmp_path, state=state)
        barrier = threading.Barrier(4)
        results: list[bool] = []
        results_lock = threading.Lock()

        def worker() -> None:
            other = SourceStore(state_dir=tmp_path, state=state)
            barrier.wait()
            outcome = other.initialize_orders()
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == [False, False, False, True]
        assert state.writes == 1
        assert [r.order for r in store.list_sources()] == [0, 1]
