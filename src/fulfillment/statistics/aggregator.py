"""Dashboard statistics — counts by status plus today's order volume.

Today starts at local midnight in the store's timezone. Cancelled orders
stay in today's count and revenue as well as the cancelled bucket, matching
how the admin dashboard has always reported them.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import ROUND_HALF_UP, Decimal

from fulfillment.order.status import OrderStatus
from fulfillment.shared.clock import as_utc

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class OrderStatistics:
    total: int = 0
    today_count: int = 0
    today_revenue: Decimal = Decimal("0.00")
    pending: int = 0
    paid: int = 0
    in_packing: int = 0
    packed: int = 0
    shipped: int = 0
    delivered: int = 0
    cancelled: int = 0


def start_of_day(now: datetime, tz: tzinfo) -> datetime:
    local_now = as_utc(now).astimezone(tz)
    return local_now.replace(hour=0, minute=0, second=0, microsecond=0)


def compute_order_statistics(orders: Iterable, now: datetime, tz: tzinfo) -> OrderStatistics:
    midnight = start_of_day(now, tz)

    total = 0
    today_count = 0
    today_revenue = Decimal("0")
    buckets = {status: 0 for status in OrderStatus}

    for order in orders:
        total += 1
        buckets[OrderStatus(order.status)] += 1

        created_at = as_utc(order.created_at)
        if created_at is not None and created_at >= midnight:
            today_count += 1
            today_revenue += Decimal(str(order.total_amount or 0))

    return OrderStatistics(
        total=total,
        today_count=today_count,
        today_revenue=today_revenue.quantize(_CENTS, rounding=ROUND_HALF_UP),
        **{status.value: count for status, count in buckets.items()},
    )
