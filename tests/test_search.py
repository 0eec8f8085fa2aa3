"""
Tests for the search provider adapter
"""
import httpx
import pytest

from feed_query_service.domain.exceptions import SearchUnavailable
from feed_query_service.search import SearchProviderAdapter, normalize_response

from .conftest import FakeContentSource, make_posts


class TestNormalizeResponse:

    def test_bare_list(self):
        result = normalize_response(make_posts(3))
        assert [i.id for i in result.items] == ["p0", "p1", "p2"]
        assert result.match_count == 3
        assert result.next_cursor is None

    @pytest.mark.parametrize("items_key", ["posts", "items", "results"])
    @pytest.mark.parametrize("count_key", ["total", "match_count", "count"])
    def test_dict_shapes(self, items_key, count_key):
        result = normalize_response({items_key: make_posts(2), count_key: 40, "next_cursor": 20})
        assert len(result.items) == 2
        assert result.match_count == 40
        assert result.next_cursor == "20"

    def test_missing_total_falls_back_to_item_count(self):
        assert normalize_response({"posts": make_posts(4)}).match_count == 4

    def test_total_never_below_returned_items(self):
        assert normalize_response({"posts": make_posts(4), "total": 1}).match_count == 4

    def test_author_may_be_named_author_id(self):
        result = normalize_response([{
            "id": 9,
            "author_id": 5,
            "type": "Audio",
            "created_at": "2026-10-01T10:00:00Z",
        }])
        item = result.items[0]
        assert (item.id, item.author_id, item.item_type) == ("9", 5, "audio")
        assert item.created_at.tzinfo is not None

    def test_rejects_none(self):
        with pytest.raises(ValueError):
            normalize_response(None)


class TestSearchProviderAdapter:

    async def test_search_returns_one_page(self):
        source = FakeContentSource(search_results={"synth": make_posts(45)})
        adapter = SearchProviderAdapter(source)

        page = await adapter.search("synth")

        assert len(page.items) == 20
        assert page.match_count == 45
        assert page.next_cursor == "20"

    async def test_provider_errors_become_search_unavailable(self):
        source = FakeContentSource()
        source.search_error = httpx.ConnectError("connection refused")
        adapter = SearchProviderAdapter(source)

        with pytest.raises(SearchUnavailable):
            await adapter.search("synth")

    async def test_malformed_items_become_search_unavailable(self):
        source = FakeContentSource(search_results={"synth": [{"id": "x"}]})
        adapter = SearchProviderAdapter(source)

        with pytest.raises(SearchUnavailable):
            await adapter.search("synth")

    async def test_search_all_drains_cursors(self):
        source = FakeContentSource(search_results={"synth": make_posts(45)})
        adapter = SearchProviderAdapter(source)

        result = await adapter.search_all("synth", limit=500)

        assert len(result.items) == 45
        assert result.match_count == 45
        assert [c for _, c in source.search_calls] == [None, "20", "40"]

    async def test_search_all_respects_limit(self):
        source = FakeContentSource(search_results={"synth": make_posts(45)})
        adapter = SearchProviderAdapter(source)

        result = await adapter.search_all("synth", limit=30)

        assert len(result.items) == 30
        assert result.match_count == 30
        assert len(source.search_calls) == 2
