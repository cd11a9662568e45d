"""
Social search client: X (Twitter) v2 recent search.

One request per source query, up to 100 posts. Each post becomes a CrawlInput
whose raw text carries author, link, timestamp and engagement metadata ahead
of the post body, so the classifier sees who said it and how widely.
"""

import logging
import re
from typing import Dict, List, Optional

import httpx

from ..config import get_settings
from ..schemas import CrawlInput, SourceDescriptor
from .fetcher import FetchError

logger = logging.getLogger(__name__)

RECENT_SEARCH_ENDPOINT = "https://api.twitter.com/2/tweets/search/recent"
MAX_RESULTS = 100
TITLE_CHARS = 180
SUMMARY_CHARS = 500


def build_post_url(post_id: str, username: Optional[str] = None) -> str:
    return f"https://x.com/{username or 'i'}/status/{post_id}"


def _format_author(user: Optional[Dict], username: str) -> str:
    if user and user.get("name"):
        check = " ✓" if user.get("verified") else ""
        return f"{user['name']} (@{username}){check}"
    return f"@{username}"


def _format_metrics(metrics: Optional[Dict]) -> str:
    if not metrics:
        return ""
    return (
        f"Metrics: {metrics.get('like_count', 0)} likes, "
        f"{metrics.get('retweet_count', 0)} reposts, "
        f"{metrics.get('reply_count', 0)} replies, "
        f"{metrics.get('quote_count', 0)} quotes"
    )


def parse_search_response(payload: Dict, query: str) -> List[CrawlInput]:
    """Convert a recent-search JSON payload into CrawlInputs, one per unique post."""
    users = {u.get("id"): u for u in (payload.get("includes") or {}).get("users", []) or []}
    items: List[CrawlInput] = []
    seen = set()

    for post in payload.get("data") or []:
        post_id = post.get("id")
        text = post.get("text")
        if not post_id or not text or post_id in seen:
            continue
        seen.add(post_id)

        user = users.get(post.get("author_id"))
        username = (user or {}).get("username") or "unknown"
        author = _format_author(user, username)
        body = re.sub(r"\s+", " ", text).strip()
        url = build_post_url(post_id, username)
        created_at = post.get("created_at")

        header = [
            f"Tweet Author: {author}",
            f"Tweet URL: {url}",
            f"Published: {created_at or 'unknown'}",
            f"Search Query: {query}",
            _format_metrics(post.get("public_metrics")),
        ]
        raw_text = "\n".join(line for line in header if line) + "\n\n" + body

        items.append(CrawlInput(
            title=body[:TITLE_CHARS] or f"Tweet by {author}",
            url=url,
            summary=body[:SUMMARY_CHARS],
            raw_text=raw_text,
            published_at=created_at,
        ))

    return items


async def search_recent_posts(
    source: SourceDescriptor,
    bearer_token: str,
    client: Optional[httpx.AsyncClient] = None,
) -> List[CrawlInput]:
    """Run the source's query against recent search.

    Raises:
        FetchError: on non-2xx response, timeout, or transport failure.
    """
    query = (source.search_query or "").strip()
    if not query:
        return []

    params = {
        "query": query,
        "max_results": str(MAX_RESULTS),
        "tweet.fields": "created_at,author_id,public_metrics,entities",
        "expansions": "author_id",
        "user.fields": "name,username,verified",
    }
    headers = {"Authorization": f"Bearer {bearer_token}", "Accept": "application/json"}
    timeout = get_settings().fetch_timeout_seconds

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.get(RECENT_SEARCH_ENDPOINT, params=params, headers=headers)
        else:
            response = await client.get(RECENT_SEARCH_ENDPOINT, params=params, headers=headers, timeout=timeout)
    except httpx.TimeoutException:
        raise FetchError(f"X API timed out after {timeout:g}s")
    except httpx.HTTPError as e:
        raise FetchError(f"X API request failed: {e}")

    if response.status_code != 200:
        raise FetchError(f"X API {response.status_code}: {response.text[:200]}")

    items = parse_search_response(response.json(), query)
    logger.info(f"[X] {source.id}: {len(items)} posts for query '{query[:60]}'")
    return items
