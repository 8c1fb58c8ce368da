from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from pollreport.models.poll import ChartPayload
from pollreport.tools.article_store import ArticleGateway
from pollreport.tools.poll_search import PollSearchGateway


def _row(poll_id, chartdata, url="https://example.com/a", score=0.9):
    return {
        "id": poll_id,
        "title": f"Poll {poll_id}",
        "url": url,
        "seendate": "2025-01-01",
        "chartdata": chartdata,
        "sourcecountry": "France",
        "score": score,
    }


@pytest.mark.asyncio
async def test_search_parses_chartdata_and_keeps_store_order():
    rows = [
        _row("p2", json.dumps({"XValue": ["a"], "YValue": [1], "Title": "Second"}), score=0.95),
        _row("p1", {"XValue": ["b"], "YValue": [2]}, score=0.5),
    ]
    with patch("pollreport.tools.poll_search.db.search_polls", new=AsyncMock(return_value=rows)) as search:
        polls = await PollSearchGateway(use_http_fallback=False).search("climate", 10)

    search.assert_awaited_once_with("climate", 10)
    assert [p.id for p in polls] == ["p2", "p1"]
    assert polls[0].chartdata.title == "Second"
    assert polls[1].chartdata.labels == ["b"]


@pytest.mark.asyncio
async def test_search_defaults_unparseable_chartdata_to_empty():
    rows = [_row("p1", "{not json")]
    with patch("pollreport.tools.poll_search.db.search_polls", new=AsyncMock(return_value=rows)):
        polls = await PollSearchGateway(use_http_fallback=False).search("q", 5)

    assert len(polls) == 1
    assert polls[0].chartdata == ChartPayload.empty()


@pytest.mark.asyncio
async def test_search_returns_empty_list_on_store_error():
    with patch(
        "pollreport.tools.poll_search.db.search_polls",
        new=AsyncMock(side_effect=RuntimeError("connection refused")),
    ):
        polls = await PollSearchGateway(use_http_fallback=False).search("q", 5)

    assert polls == []


@pytest.mark.asyncio
async def test_search_falls_back_to_http_rpc():
    with (
        patch(
            "pollreport.tools.poll_search.db.search_polls",
            new=AsyncMock(side_effect=RuntimeError("connection refused")),
        ),
        patch(
            "pollreport.tools.poll_search.supabase.search_polls",
            new=AsyncMock(return_value=[_row("p7", None)]),
        ) as rpc,
    ):
        polls = await PollSearchGateway(use_http_fallback=True).search("q", 5)

    rpc.assert_awaited_once_with("q", 5)
    assert [p.id for p in polls] == ["p7"]


@pytest.mark.asyncio
async def test_search_returns_empty_when_fallback_also_fails():
    with (
        patch(
            "pollreport.tools.poll_search.db.search_polls",
            new=AsyncMock(side_effect=RuntimeError("down")),
        ),
        patch(
            "pollreport.tools.poll_search.supabase.search_polls",
            new=AsyncMock(side_effect=TimeoutError()),
        ),
    ):
        polls = await PollSearchGateway(use_http_fallback=True).search("q", 5)

    assert polls == []


@pytest.mark.asyncio
async def test_fetch_articles_skips_call_for_empty_input():
    with patch("pollreport.tools.article_store.db.get_article_texts", new=AsyncMock()) as fetch:
        articles = await ArticleGateway().fetch_articles([])

    assert articles == []
    fetch.assert_not_awaited()


@pytest.mark.asyncio
async def test_fetch_articles_defaults_missing_text_and_omits_unknown_urls():
    rows = [
        {"Url": "https://a.com/1", "ArticleText": "Body one"},
        {"Url": "https://a.com/2", "ArticleText": None},
    ]
    urls = ["https://a.com/1", "https://a.com/2", "https://a.com/3"]
    with patch(
        "pollreport.tools.article_store.db.get_article_texts",
        new=AsyncMock(return_value=rows),
    ) as fetch:
        articles = await ArticleGateway().fetch_articles(urls)

    fetch.assert_awaited_once_with(urls)
    assert [(a.url, a.text) for a in articles] == [
        ("https://a.com/1", "Body one"),
        ("https://a.com/2", ""),
    ]


@pytest.mark.asyncio
async def test_fetch_articles_swallows_store_errors():
    with patch(
        "pollreport.tools.article_store.db.get_article_texts",
        new=AsyncMock(side_effect=RuntimeError('column "ArticleText" does not exist')),
    ):
        articles = await ArticleGateway().fetch_articles(["https://a.com/1"])

    assert articles == []
