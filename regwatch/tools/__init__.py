# Tools module
from .fetcher import FetchError, fetch_text
from .feed_parser import (
    build_news_search_url, normalize_url, parse_feed_text, parse_web_page, source_registry_url,
)
from .social_search import search_recent_posts
from .json_repair import extract_text_from_model_response, parse_response_json

__all__ = [
    # Fetching
    "FetchError",
    "fetch_text",
    # Parsing
    "build_news_search_url",
    "normalize_url",
    "parse_feed_text",
    "parse_web_page",
    "source_registry_url",
    # Social search
    "search_recent_posts",
    # Classifier output
    "extract_text_from_model_response",
    "parse_response_json",
]
