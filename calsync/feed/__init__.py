"""
iCalendar feed for calsync.

Token-gated, read-only calendar subscriptions independent of the push
synchronizer.
"""

from calsync.feed.renderer import FEED_CONTENT_TYPE, FeedRenderer
from calsync.feed.tokens import (
    IssuedFeedToken,
    create_feed_token,
    hash_feed_token,
    list_feed_tokens,
    resolve_feed_token,
    revoke_feed_token,
)

__all__ = [
    "FEED_CONTENT_TYPE",
    "FeedRenderer",
    "IssuedFeedToken",
    "create_feed_token",
    "hash_feed_token",
    "list_feed_tokens",
    "resolve_feed_token",
    "revoke_feed_token",
]
