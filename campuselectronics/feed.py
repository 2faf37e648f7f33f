"""The listing feed: published listings, newest first."""

from __future__ import annotations

import time
from collections import deque
from enum import Enum
from typing import Deque, Iterable, Iterator, List, Optional

from .models import Condition, Listing


class SortOrder(str, Enum):
    NEWEST = "newest"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"


def _matches(listing: Listing, needle: str) -> bool:
    return needle in listing.title.lower() or needle in listing.category.lower()


class FeedView:
    """Lazy, restartable view on a feed filtered by a search query.

    Each iteration starts over on a snapshot of the feed, so a view stays
    valid while new listings are published.
    """

    def __init__(self, feed: "ListingFeed", query: str = "", order: SortOrder = SortOrder.NEWEST) -> None:
        self._feed = feed
        self.query = query
        self.order = SortOrder(order)

    def sorted(self, order: SortOrder | str) -> "FeedView":
        return FeedView(self._feed, self.query, SortOrder(order))

    def _filtered(self) -> Iterator[Listing]:
        needle = self.query.lower()
        for listing in self._feed.snapshot():
            if not needle or _matches(listing, needle):
                yield listing

    def __iter__(self) -> Iterator[Listing]:
        if self.order is SortOrder.NEWEST:
            return self._filtered()

        priced = []
        unpriced = []
        for listing in self._filtered():
            (unpriced if listing.price is None else priced).append(listing)
        # sort() ist stabil: gleiche Preise behalten die Feed-Reihenfolge
        priced.sort(key=lambda item: item.price, reverse=self.order is SortOrder.PRICE_DESC)
        return iter(priced + unpriced)

    def __len__(self) -> int:
        return sum(1 for _ in self._filtered())


class ListingFeed:
    """Ordered collection of published listings, most recent first."""

    def __init__(self, listings: Optional[Iterable[Listing]] = None) -> None:
        self._listings: Deque[Listing] = deque(listings or ())

    def publish(self, listing: Listing) -> Listing:
        self._listings.appendleft(listing)
        return listing

    def snapshot(self) -> tuple:
        return tuple(self._listings)

    def filter(self, query: str = "") -> FeedView:
        return FeedView(self, query)

    def __iter__(self) -> Iterator[Listing]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._listings)


def demo_listings(now_ms: Optional[int] = None) -> List[Listing]:
    """Seed listings shown before anybody has posted."""

    created_at = now_ms if now_ms is not None else int(time.time() * 1000)
    return [
        Listing(
            listing_id="1",
            title="Sony WH-1000XM4 Headphones",
            description="Barely used headphones. Excellent noise cancellation. Comes with case and original cables.",
            price=15000,
            category="Audio",
            condition=Condition.LIKE_NEW,
            image="https://picsum.photos/seed/sony/600/400",
            seller_id="s1",
            seller_name="Alex Smith",
            created_at=created_at,
        ),
        Listing(
            listing_id="2",
            title="iPad Air 4th Gen 64GB",
            description="Good condition, small scratch on the back. Screen is perfect. Includes Apple Pencil 2.",
            price=38000,
            category="Tablets",
            condition=Condition.GOOD,
            image="https://picsum.photos/seed/ipad/600/400",
            seller_id="s2",
            seller_name="Jordan Lee",
            created_at=created_at,
        ),
        Listing(
            listing_id="3",
            title="Mechanical Keyboard RGB",
            description="Custom build mechanical keyboard with brown switches. Amazing typing experience for coding.",
            price=6500,
            category="Peripherals",
            condition=Condition.LIKE_NEW,
            image="https://picsum.photos/seed/kb/600/400",
            seller_id="s3",
            seller_name="Riley Chen",
            created_at=created_at,
        ),
    ]
