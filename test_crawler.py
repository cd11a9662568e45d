"""
Crawler tests: feed/page parsing, scheduling lanes, per-source failure capture
and per-pass dedup. HTTP is served by httpx.MockTransport, never the network.
"""

import asyncio
from urllib.parse import parse_qs, urlparse

import httpx

from regwatch.config import Settings
from regwatch.news.crawler import (
    LANE_BY_KIND, SchedulingLane, crawl_sources, dedup_key, dedupe_crawled_items, hash_text,
)
from regwatch.schemas import CrawledItem, SourceDescriptor, SourceKind
from regwatch.tools.feed_parser import (
    UNTITLED_FEED_ITEM, build_news_search_url, normalize_url, parse_feed_text, parse_web_page,
)


def make_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite://",
        "MINIMAX_API_KEY": "",
        "X_BEARER_TOKEN": "",
        "SOCIAL_SEARCH_DELAY_SECONDS": 0,
        "FETCH_TIMEOUT_SECONDS": 5,
    }
    values.update(overrides)
    return Settings(**values)


def make_source(sid="feed", kind=SourceKind.FEED, url="https://example.gov/feed.xml", **extra) -> SourceDescriptor:
    return SourceDescriptor(
        id=sid, name=extra.pop("name", f"Source {sid}"), url=url, kind=kind,
        jurisdiction=extra.pop("jurisdiction", "United States"), **extra,
    )


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _crawl(sources, handler, settings=None):
    async with mock_client(handler) as client:
        return await crawl_sources(sources, client=client, settings=settings or make_settings())


def rss(*items: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0"><channel><title>Feed</title><link>https://example.gov/</link>'
        "<description>Test feed</description>" + "".join(items) + "</channel></rss>"
    )


def rss_item(title, link, description="", pub_date="") -> str:
    parts = [f"<title>{title}</title>", f"<link>{link}</link>"]
    if description:
        parts.append(f"<description>{description}</description>")
    if pub_date:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    return "<item>" + "".join(parts) + "</item>"


# ════════════════════════════════════════════════════════════════════
# Feed parser
# ════════════════════════════════════════════════════════════════════

def test_feed_duplicate_url_title_pairs_collapse_to_first():
    payload = rss(
        rss_item("Teen Safety Bill", "https://example.gov/bills/1", "First description of the bill"),
        rss_item("Teen Safety Bill", "https://example.gov/bills/1", "Second description of the bill"),
    )
    items = parse_feed_text(payload, "https://example.gov/feed.xml", max_items=5)
    assert len(items) == 1
    assert items[0].summary == "First description of the bill"
    assert items[0].raw_text == "Teen Safety Bill. First description of the bill"


def test_feed_caps_items_per_feed():
    payload = rss(*(rss_item(f"Item {i}", f"https://example.gov/{i}") for i in range(12)))
    assert len(parse_feed_text(payload, "https://example.gov/feed.xml", max_items=5)) == 5


def test_feed_decodes_entities_strips_markup_and_resolves_relative_links():
    payload = rss(rss_item(
        "Children&amp;#39;s Code &amp;amp; Age Assurance",
        "/news/childrens-code",
        "&lt;p&gt;The &lt;b&gt;regulator&lt;/b&gt; published guidance.&lt;/p&gt;",
        "Mon, 10 Feb 2025 10:00:00 GMT",
    ))
    [item] = parse_feed_text(payload, "https://example.gov/feed.xml", max_items=5)
    assert item.title == "Children's Code & Age Assurance"
    assert item.url == "https://example.gov/news/childrens-code"
    assert item.summary == "The regulator published guidance."
    assert item.published_at == "Mon, 10 Feb 2025 10:00:00 GMT"


def test_feed_summary_falls_back_to_title_and_untitled_entries_get_placeholder():
    payload = rss(
        rss_item("Only a title", "https://example.gov/a"),
        "<item><link>https://example.gov/b</link><description>Body text</description></item>",
    )
    first, second = parse_feed_text(payload, "https://example.gov/feed.xml", max_items=5)
    assert first.summary == "Only a title"
    assert second.title == UNTITLED_FEED_ITEM


def test_atom_entries_use_link_href():
    payload = (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<feed xmlns="http://www.w3.org/2005/Atom"><title>Atom</title>'
        '<entry><title>Online Safety Act update</title>'
        '<link href="https://example.org/osa-update"/>'
        "<updated>2025-03-01T12:00:00Z</updated>"
        "<summary>Ofcom published new codes for children.</summary></entry></feed>"
    )
    [item] = parse_feed_text(payload, "https://example.org/atom", max_items=5)
    assert item.url == "https://example.org/osa-update"
    assert item.summary == "Ofcom published new codes for children."
    assert item.published_at == "2025-03-01T12:00:00Z"


def test_normalize_url():
    assert normalize_url("  https://a.gov/x ", "https://b.gov") == "https://a.gov/x"
    assert normalize_url("/x", "https://b.gov/feed") == "https://b.gov/x"
    assert normalize_url("", "https://b.gov") == ""
    assert normalize_url(None, "https://b.gov") == ""


def test_news_search_url_carries_query_and_recency_filter():
    source = make_source("news", SourceKind.NEWS_SEARCH, "https://news.google.com/rss/search",
                         search_query="KOSA teens")
    url = build_news_search_url(source)
    parsed = urlparse(url)
    assert url.startswith("https://news.google.com/rss/search?")
    assert parse_qs(parsed.query)["q"] == ["KOSA teens when:30d"]


# ════════════════════════════════════════════════════════════════════
# Web page parser
# ════════════════════════════════════════════════════════════════════

def test_web_page_title_body_and_summary():
    body = "Guidance on age assurance for online services. " * 20
    page = f"<html><head><title>Good Page</title><style>p {{}}</style></head><body><p>{body}</p><script>x()</script></body></html>"
    source = make_source("page", SourceKind.WEBPAGE, "https://regulator.gov/page")
    [item] = parse_web_page(page, source, max_chars=8000)
    assert item.title == "Good Page"
    assert item.url == "https://regulator.gov/page"
    assert "x()" not in item.raw_text
    assert len(item.summary) == 500
    assert item.published_at is None


def test_thin_web_page_gets_source_context():
    source = make_source("page", SourceKind.WEBPAGE, "https://regulator.gov/page",
                         name="Regulator", notes="Children's code guidance")
    [item] = parse_web_page("<html><body>Loading…</body></html>", source, max_chars=8000)
    assert item.title == "Regulator"
    assert item.raw_text.startswith("Source: Regulator\nNotes: Children's code guidance\n\n")


def test_web_page_body_truncated():
    source = make_source("page", SourceKind.WEBPAGE, "https://regulator.gov/page")
    [item] = parse_web_page("<html><body>" + "a" * 20000 + "</body></html>", source, max_chars=8000)
    assert len(item.raw_text) == 8000


# ════════════════════════════════════════════════════════════════════
# Orchestration
# ════════════════════════════════════════════════════════════════════

def test_lanes_by_kind():
    assert LANE_BY_KIND[SourceKind.SOCIAL_SEARCH.value] == SchedulingLane.SEQUENTIAL
    for kind in (SourceKind.WEBPAGE, SourceKind.FEED, SourceKind.NEWS_SEARCH):
        assert LANE_BY_KIND[kind.value] == SchedulingLane.CONCURRENT


def test_feed_items_carry_provenance():
    source = make_source()

    def handler(request):
        return httpx.Response(200, text=rss(rss_item("Teen Bill", "/bills/1", "Bill text")))

    result = asyncio.run(_crawl([source], handler))
    [item] = result.items
    assert item.url == "https://example.gov/bills/1"
    assert item.provenance_links == ["https://example.gov/feed.xml", "https://example.gov/bills/1"]
    assert item.source.id == "feed"
    assert result.source_results[0].item_count == 1
    assert result.source_results[0].error is None


def test_duplicate_feed_items_count_once():
    source = make_source()
    payload = rss(
        rss_item("Same", "https://example.gov/1", "one"),
        rss_item("Same", "https://example.gov/1", "two"),
    )
    result = asyncio.run(_crawl([source], lambda request: httpx.Response(200, text=payload)))
    assert result.source_results[0].item_count == 1
    assert len(result.items) == 1
    assert result.items[0].summary == "one"


def test_failing_source_does_not_abort_pass():
    good = make_source("good", SourceKind.WEBPAGE, "https://good.gov/page")
    bad = make_source("bad", SourceKind.FEED, "https://bad.gov/feed")

    def handler(request):
        if request.url.host == "bad.gov":
            raise httpx.ConnectError("network down", request=request)
        return httpx.Response(200, text="<html><head><title>Good Page</title></head><body>Body</body></html>")

    result = asyncio.run(_crawl([good, bad], handler))
    by_id = {r.source_id: r for r in result.source_results}
    assert by_id["good"].error is None and by_id["good"].item_count == 1
    assert by_id["bad"].item_count == 0
    assert "network down" in by_id["bad"].error
    assert [i.title for i in result.items] == ["Good Page"]


def test_http_error_status_message():
    source = make_source()
    result = asyncio.run(_crawl([source], lambda request: httpx.Response(404)))
    assert result.source_results[0].error == "HTTP 404 Not Found"


def test_timeout_recorded_as_source_error():
    source = make_source()

    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    result = asyncio.run(_crawl([source], handler))
    assert result.source_results[0].error.startswith("Timed out after 5s")
    assert result.items == []


def test_social_search_without_token_is_source_error():
    source = make_source("x", SourceKind.SOCIAL_SEARCH, "https://x.com/search", search_query="kosa")
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    result = asyncio.run(_crawl([source], handler))
    assert result.source_results[0].error == "X_BEARER_TOKEN not set"
    assert calls == []


def test_social_search_runs_sequentially_and_builds_post_items():
    first = make_source("x1", SourceKind.SOCIAL_SEARCH, "https://x.com/search", search_query="kosa bill")
    second = make_source("x2", SourceKind.SOCIAL_SEARCH, "https://x.com/search", search_query="age verification law")
    feed = make_source()
    order = []

    def handler(request):
        if request.url.host == "api.twitter.com":
            assert request.headers["Authorization"] == "Bearer tok"
            query = request.url.params["query"]
            order.append(query)
            return httpx.Response(200, json={
                "data": [
                    {"id": f"{len(order)}00", "text": f"New  {query}\nannounced", "author_id": "u1",
                     "created_at": "2025-02-01T00:00:00Z",
                     "public_metrics": {"like_count": 3, "retweet_count": 1}},
                    {"id": f"{len(order)}00", "text": "duplicate id", "author_id": "u1"},
                ],
                "includes": {"users": [{"id": "u1", "name": "Policy Watch", "username": "policywatch"}]},
            })
        return httpx.Response(200, text=rss())

    result = asyncio.run(_crawl([first, feed, second], handler, make_settings(X_BEARER_TOKEN="tok")))
    assert order == ["kosa bill", "age verification law"]
    assert [r.source_id for r in result.source_results] == ["feed", "x1", "x2"]

    posts = [i for i in result.items if i.source.kind == SourceKind.SOCIAL_SEARCH.value]
    assert len(posts) == 2
    post = posts[0]
    assert post.url == "https://x.com/policywatch/status/100"
    assert post.title == "New kosa bill announced"
    assert post.raw_text.startswith("Tweet Author: Policy Watch (@policywatch)\nTweet URL: https://x.com/policywatch/status/100")
    assert "Metrics: 3 likes, 1 reposts, 0 replies, 0 quotes" in post.raw_text


def test_unsupported_kind_is_source_error():
    weird = SourceDescriptor.model_construct(id="weird", name="Weird", url="ftp://weird", kind="ftp")
    result = asyncio.run(_crawl([weird], lambda request: httpx.Response(200)))
    assert result.source_results[0].error == "Unsupported source kind: ftp"


# ════════════════════════════════════════════════════════════════════
# Per-pass dedup
# ════════════════════════════════════════════════════════════════════

def _item(source, url, raw_text="text", title="T"):
    return CrawledItem(title=title, url=url, summary="s", raw_text=raw_text, source=source)


def test_dedup_key_is_scoped_per_source():
    a, b = make_source("a"), make_source("b")
    assert dedup_key(_item(a, "https://X.gov/1 ")) == "a::https://x.gov/1"
    assert dedup_key(_item(a, "", raw_text="Some  Text")) == f"a::text:{hash_text('some text')}"

    items = [_item(a, "https://x.gov/1"), _item(a, "https://X.gov/1"), _item(b, "https://x.gov/1")]
    deduped = dedupe_crawled_items(items)
    assert [i.source.id for i in deduped] == ["a", "b"]


def test_dedup_by_text_hash_when_url_missing():
    a = make_source("a")
    items = [_item(a, "", raw_text="Same text"), _item(a, "", raw_text="same   TEXT"), _item(a, "", raw_text="other")]
    assert len(dedupe_crawled_items(items)) == 2


def test_registry_url_distinguishes_search_sources():
    from regwatch.tools.feed_parser import source_registry_url

    first = make_source("n1", SourceKind.NEWS_SEARCH, "https://news.google.com/rss/search", search_query="kosa")
    second = make_source("n2", SourceKind.NEWS_SEARCH, "https://news.google.com/rss/search", search_query="coppa")
    assert source_registry_url(first) == build_news_search_url(first)
    assert source_registry_url(first) != source_registry_url(second)

    x = make_source("x", SourceKind.SOCIAL_SEARCH, "https://x.com/search", search_query="teen law")
    assert source_registry_url(x) == "https://x.com/search?q=teen+law"

    page = make_source("page", SourceKind.WEBPAGE, "https://regulator.gov/page")
    assert source_registry_url(page) == "https://regulator.gov/page"
