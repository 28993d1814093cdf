"""Link discovery: feed catalogue and RSS/Atom parsing."""

from feedbacklog.discovery.feeds import Feed, list_groups, load_feeds, search_feeds
from feedbacklog.discovery.rss import discover_feed, parse_feed

__all__ = ["Feed", "load_feeds", "search_feeds", "list_groups", "discover_feed", "parse_feed"]
