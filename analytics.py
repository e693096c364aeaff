"""
Sales analytics over orders and order items.

All functions are pure: they take entity lists plus the current time and
return plain dicts ready to be serialized.
"""
import calendar
import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from errors import DataValidationError
from schemas import Order, OrderItem, Product

PERIODS = ("daily", "weekly", "monthly", "yearly", "all")


def period_start(period: str, now: datetime) -> Optional[datetime]:
    """Earliest created_at kept for a period; None means no filtering."""
    if period == "daily":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "weekly":
        return now - timedelta(days=7)
    if period == "monthly":
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if period == "yearly":
        return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    if period == "all":
        return None
    raise DataValidationError(f"Unknown period '{period}', expected one of {', '.join(PERIODS)}")


def filter_orders_by_period(orders: Iterable[Order], period: str, now: datetime) -> List[Order]:
    start = period_start(period, now)
    if start is None:
        return list(orders)
    return [o for o in orders if o.created_at >= start]


def recent_orders(orders: Iterable[Order], limit: int) -> List[Order]:
    ordered = sorted(orders, key=lambda o: o.created_at, reverse=True)
    return ordered[:max(0, limit)]


def low_stock(products: Iterable[Product], threshold: int) -> List[Product]:
    return sorted((p for p in products if p.inventory <= threshold), key=lambda p: p.inventory)


def _countable(order: Order) -> bool:
    total = order.total
    if not isinstance(total, (int, float)) or not math.isfinite(total) or total <= 0:
        return False
    return isinstance(order.created_at, datetime)


def week_number(day: datetime) -> int:
    # day-of-year based, week 1 is Jan 1-7
    return (day.timetuple().tm_yday - 1) // 7 + 1


def revenue_stats(orders: Iterable[Order]) -> Dict[str, List[dict]]:
    daily = defaultdict(lambda: [0.0, 0])
    weekly = defaultdict(lambda: [0.0, 0])
    monthly = defaultdict(lambda: [0.0, 0])

    for order in orders:
        if not _countable(order):
            continue
        ts = order.created_at
        for bucket, key in (
            (daily, ts.date()),
            (weekly, (ts.year, week_number(ts))),
            (monthly, (ts.year, ts.month)),
        ):
            bucket[key][0] += order.total
            bucket[key][1] += 1

    return {
        "daily": [
            {"date": day.isoformat(), "revenue": round(rev, 2), "orders": n}
            for day, (rev, n) in sorted(daily.items())
        ],
        "weekly": [
            {
                "week": f"Week {week} {year}",
                "year": year,
                "weekNumber": week,
                "revenue": round(rev, 2),
                "orders": n,
            }
            for (year, week), (rev, n) in sorted(weekly.items())
        ],
        "monthly": [
            {
                "month": f"{calendar.month_abbr[month]} {year}",
                "year": year,
                "monthNumber": month,
                "revenue": round(rev, 2),
                "orders": n,
            }
            for (year, month), (rev, n) in sorted(monthly.items())
        ],
    }


def _items_for(orders: Iterable[Order], items: Iterable[OrderItem]) -> List[OrderItem]:
    order_ids = {o.id for o in orders}
    return [i for i in items if i.order_id in order_ids]


def category_distribution(
    orders: Iterable[Order], items: Iterable[OrderItem], products: Dict[int, Product]
) -> List[dict]:
    counts: Dict[str, int] = defaultdict(int)
    for item in _items_for(orders, items):
        product = products.get(item.product_id)
        if product is None:
            continue
        counts[product.category] += item.quantity
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [{"category": category, "count": count} for category, count in ranked]


def top_selling_products(
    orders: Iterable[Order], items: Iterable[OrderItem], products: Dict[int, Product], limit: int
) -> List[dict]:
    sold: Dict[int, int] = defaultdict(int)
    for item in _items_for(orders, items):
        if item.product_id in products:
            sold[item.product_id] += item.quantity
    ranked = sorted(sold.items(), key=lambda kv: (-kv[1], kv[0]))[:max(0, limit)]
    return [
        {"product": products[pid].model_dump(mode="json", by_alias=True), "totalSold": qty}
        for pid, qty in ranked
    ]


def payment_method_distribution(orders: Iterable[Order]) -> List[dict]:
    groups: Dict[str, List[float]] = defaultdict(lambda: [0, 0.0])
    for order in orders:
        method = order.payment_method or "unknown"
        groups[method][0] += 1
        groups[method][1] += order.total or 0.0
    ranked = sorted(groups.items(), key=lambda kv: (-kv[1][0], kv[0]))
    return [
        {"method": method, "count": count, "total": round(total, 2)}
        for method, (count, total) in ranked
    ]


def dashboard_summary(
    orders: List[Order], new_customers: int, low_stock_count: int
) -> dict:
    revenue = sum(o.total for o in orders if _countable(o))
    count = len(orders)
    return {
        "totalRevenue": round(revenue, 2),
        "totalOrders": count,
        "averageOrderValue": round(revenue / count, 2) if count else 0.0,
        "newCustomers": new_customers,
        "lowStockCount": low_stock_count,
    }
