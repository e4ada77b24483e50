"""Tests for the JSON generation-history store."""

import json

import pytest

from qrforge.history import HistoryStore
from qrforge.style import StyleDescriptor, resolve


@pytest.fixture
def store(tmp_path):
    return HistoryStore(tmp_path / "history.json")


@pytest.fixture
def filled(store):
    store.save("https://shop.example/menu", resolve(None), label="Menu")
    store.save("WIFI:T:WPA;S:Cafe;P:secret;;", resolve(None), label="Guest wifi")
    store.save("hello world", resolve({"moduleShape": "dots"}))
    return store


class TestHistoryStore:
    def test_save_and_get(self, store):
        style = resolve({"eyeShape": "leaf", "errorCorrectionLevel": "Q"})
        item_id = store.save("tel:+15550100", style, label="Desk")
        item = store.get(item_id)
        assert item.content == "tel:+15550100"
        assert item.qr_type == "phone"
        assert item.label == "Desk"
        assert item.style == style
        assert item.created_at

    def test_explicit_type_is_kept(self, store):
        assert store.get(store.save("abc", resolve(None), qr_type="text")).qr_type == "text"

    def test_newest_first(self, filled):
        page = filled.list()
        assert [i.content for i in page.items] == [
            "hello world", "WIFI:T:WPA;S:Cafe;P:secret;;", "https://shop.example/menu",
        ]
        assert page.total == 3
        assert not page.has_more

    def test_paging(self, filled):
        first = filled.list(limit=2)
        second = filled.list(limit=2, offset=2)
        assert [i.id for i in first.items] == [3, 2]
        assert first.has_more
        assert [i.id for i in second.items] == [1]
        assert not second.has_more
        assert second.total == 3

    @pytest.mark.parametrize("search,ids", [("MENU", [1]), ("wifi", [2]), ("example", [1]), ("nope", [])])
    def test_search_matches_content_or_label(self, filled, search, ids):
        page = filled.list(search=search)
        assert [i.id for i in page.items] == ids
        assert page.total == len(ids)

    def test_delete_and_clear(self, filled):
        assert filled.delete(2)
        assert not filled.delete(2)
        assert filled.get(2) is None
        assert filled.count() == 2
        assert filled.clear() == 2
        assert filled.list().items == []

    def test_ids_keep_growing_after_clear(self, filled):
        filled.clear()
        assert filled.save("again", resolve(None)) == 4

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "history.json"
        HistoryStore(path).save("hello", resolve({"foregroundColor": "#123456"}))
        item = HistoryStore(path).list().items[0]
        assert item.content == "hello"
        assert item.style.foreground == "#123456"

    def test_unreadable_stored_style_gives_defaults(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text(json.dumps({"counter": 2, "items": {"1": {
            "content": "x", "qr_type": "text", "label": None,
            "style": {"moduleShape": "hexagon", "logo": {"sizePercent": 10**400}},
            "created_at": "2026-01-01T00:00:00+00:00",
        }}}))
        item = HistoryStore(path).get(1)
        assert item.style.module_shape == StyleDescriptor().module_shape
        assert item.style.logo.size_percent == 25.0
