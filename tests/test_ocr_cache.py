from unittest.mock import Mock

import pytest

from Tools.document_indexer.ocr_cache import (
    InMemoryKeyValueStore,
    OcrPageCache,
    RedisKeyValueStore,
    make_doc_key,
    make_page_key,
    ttl_seconds_from_env,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return OcrPageCache(InMemoryKeyValueStore(clock=clock), ttl_seconds=600)


class TestKeys:
    """Tests for cache key helpers."""

    def test_doc_key_is_stable(self):
        """Test doc key depends on name, subtype and role."""
        key = make_doc_key("inscripcion.pdf", "inscripcion", "vendedor")
        assert key == make_doc_key("inscripcion.pdf", "inscripcion", "vendedor")
        assert len(key) == 16
        assert key != make_doc_key("inscripcion.pdf", "inscripcion", "comprador")

    def test_page_key_layout(self):
        """Test page key format."""
        assert make_page_key("t1", "abc", 3) == "preaviso:ocr:t1:abc:p:3"


class TestOcrPageCache:
    """Tests for OcrPageCache."""

    def test_document_text_in_page_order(self, cache):
        """Test pages are joined with form feed in page order."""
        cache.upsert_page("t1", "inscripcion.pdf", 2, "Página dos", doc_subtype="inscripcion")
        cache.upsert_page("t1", "inscripcion.pdf", 1, "Página uno", doc_subtype="inscripcion")

        text = cache.get_document_text("t1", "inscripcion.pdf", doc_subtype="inscripcion")

        assert text == "Página uno\fPágina dos"

    def test_upsert_replaces_page(self, cache):
        """Test writing the same page twice keeps the last text."""
        cache.upsert_page("t1", "ine.jpg", 1, "borrador")
        cache.upsert_page("t1", "ine.jpg", 1, "final")

        pages = cache.list_pages("t1")

        assert len(pages) == 1
        assert pages[0].text == "final"

    def test_pages_are_scoped_by_tramite(self, cache):
        """Test other tramites are not listed."""
        cache.upsert_page("t1", "ine.jpg", 1, "uno")
        cache.upsert_page("t2", "ine.jpg", 1, "dos")
        assert [p.text for p in cache.list_pages("t1")] == ["uno"]

    def test_entries_expire(self, cache, clock):
        """Test entries vanish after the TTL."""
        cache.upsert_page("t1", "ine.jpg", 1, "uno")
        clock.now += 601
        assert cache.list_pages("t1") == []
        assert cache.get_document_text("t1", "ine.jpg") == ""

    def test_invalid_page_raises(self, cache):
        """Test page numbers start at 1."""
        with pytest.raises(ValueError):
            cache.upsert_page("t1", "ine.jpg", 0, "uno")

    def test_corrupt_entry_is_skipped(self, clock):
        """Test non-JSON values are ignored."""
        store = InMemoryKeyValueStore(clock=clock)
        store.set(make_page_key("t1", "abc", 1), "{no json", 600)
        assert OcrPageCache(store, ttl_seconds=600).list_pages("t1") == []


class TestTtlFromEnv:
    """Tests for ttl_seconds_from_env."""

    @pytest.mark.parametrize("raw,expected", [
        (None, 7200),
        ("", 7200),
        ("abc", 7200),
        ("-5", 7200),
        ("10", 300),
        ("3600", 3600),
        ("999999", 86400),
    ])
    def test_bounds(self, monkeypatch, raw, expected):
        """Test default and clamping of the TTL."""
        if raw is None:
            monkeypatch.delenv("PREAVISO_OCR_CACHE_TTL_SECONDS", raising=False)
        else:
            monkeypatch.setenv("PREAVISO_OCR_CACHE_TTL_SECONDS", raw)
        assert ttl_seconds_from_env() == expected


class TestRedisKeyValueStore:
    """Tests for the redis-backed store with a mocked client."""

    def test_set_uses_expiry(self):
        """Test set passes the TTL as ex."""
        client = Mock()
        RedisKeyValueStore(client=client).set("k", "v", 300)
        client.set.assert_called_once_with("k", "v", ex=300)

    def test_scan_follows_cursor(self):
        """Test scan iterates until the cursor returns to zero."""
        client = Mock()
        client.scan.side_effect = [(5, ["a", "b"]), (0, ["c"])]

        keys = RedisKeyValueStore(client=client).scan("preaviso:ocr:t1:")

        assert keys == ["a", "b", "c"]
        assert client.scan.call_count == 2

    def test_scan_respects_max_keys(self):
        """Test scan stops at max_keys."""
        client = Mock()
        client.scan.return_value = (7, ["a", "b", "c"])
        assert RedisKeyValueStore(client=client).scan("p", max_keys=2) == ["a", "b"]

    def test_requires_url_without_client(self):
        """Test missing configuration is reported."""
        with pytest.raises(RuntimeError):
            RedisKeyValueStore(url="")
