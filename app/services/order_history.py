# app/services/order_history.py
"""
Order history reconciliation for display.

Upstream retries can store the same checkout more than once. Orders with
the same content (items, total, status) created within a short window of
each other are collapsed to the most complete record.

Duplicates further apart than the window, or whose item tuples differ,
are kept.
"""
import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone

from app.core.config import get_settings
from app.schemas.order import OrderWithItemsRead

logger = logging.getLogger(__name__)

settings = get_settings()

DEFAULT_WINDOW = timedelta(minutes=settings.ORDER_DEDUP_WINDOW_MINUTES)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

STATUS_WEIGHTS: dict[str, int] = {
    "completed": 10,
    "delivered": 7,
    "picked-up": 7,
    "processing": 5,
    "approved": 3,
}


def order_timestamp(order: OrderWithItemsRead) -> datetime:
    """
    created_at as an aware UTC datetime; orders without one sort as epoch.

    SQLite hands back naive datetimes, which are treated as UTC.
    """
    created = order.created_at
    if created is None:
        return EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def order_content_key(order: OrderWithItemsRead) -> str:
    items_key = "|".join(
        sorted(
            f"{item.cake_id or ''}:{item.name}:{item.quantity}:{item.price}"
            for item in order.items or []
        )
    )
    return f"{items_key}#{order.total or 0}#{order.status or ''}"


def completeness_score(order: OrderWithItemsRead) -> int:
    score = STATUS_WEIGHTS.get(order.status, 0)
    score += len(order.items or [])
    if order.total:
        score += 1
    if order.payment_status:
        score += 1
    if order.created_at:
        score += 1
    return score


def best_order(group: Sequence[OrderWithItemsRead]) -> OrderWithItemsRead:
    """Highest completeness score wins; ties keep the earliest in `group`."""
    best = group[0]
    for candidate in group[1:]:
        if completeness_score(candidate) > completeness_score(best):
            best = candidate
    return best


def split_by_time_window(
    orders: Sequence[OrderWithItemsRead],
    window: timedelta,
) -> list[list[OrderWithItemsRead]]:
    """
    Split newest-first `orders` wherever two neighbours are more than
    `window` apart.
    """
    groups: list[list[OrderWithItemsRead]] = []
    current = [orders[0]]
    for prev, order in zip(orders, orders[1:]):
        if abs(order_timestamp(prev) - order_timestamp(order)) <= window:
            current.append(order)
        else:
            groups.append(current)
            current = [order]
    groups.append(current)
    return groups


def deduplicate_orders(
    orders: Iterable[OrderWithItemsRead],
    window: timedelta = DEFAULT_WINDOW,
) -> list[OrderWithItemsRead]:
    """
    Collapse near-duplicate orders and return the survivors newest first.
    """
    raw = [order for order in orders if order.id]

    by_content: dict[str, list[OrderWithItemsRead]] = defaultdict(list)
    for order in raw:
        by_content[order_content_key(order)].append(order)

    survivors: dict = {}
    for similar in by_content.values():
        similar.sort(key=order_timestamp, reverse=True)
        for group in split_by_time_window(similar, window):
            keep = best_order(group)
            survivors[keep.id] = keep
            if len(group) > 1:
                logger.info(
                    "Reduced %d similar orders to 1 (keeping order %s)",
                    len(group),
                    keep.id,
                )

    logger.debug("Order history: %d raw orders -> %d unique", len(raw), len(survivors))
    return sorted(survivors.values(), key=order_timestamp, reverse=True)
