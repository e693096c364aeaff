"""
CSV export of store tables for spreadsheets.
"""
import csv
import io
from typing import List

from errors import DataValidationError

EXPORT_TABLES = ("users", "products", "orders", "order_items")


def _rows(store, table: str) -> List[dict]:
    if table == "users":
        return [
            u.model_dump(mode="json", by_alias=True, exclude={"password"})
            for u in store.get_users()
        ]
    if table == "products":
        return [p.model_dump(mode="json", by_alias=True) for p in store.get_products()]
    if table == "orders":
        return [o.model_dump(mode="json", by_alias=True) for o in store.get_orders()]
    if table == "order_items":
        items = []
        for order in store.get_orders():
            items.extend(store.get_order_items_by_order_id(order.id))
        return [i.model_dump(mode="json", by_alias=True) for i in sorted(items, key=lambda i: i.id)]
    raise DataValidationError(f"Invalid table name: {table}")


def export_table_csv(store, table: str) -> str:
    """Render one table as CSV text. An empty table yields an empty string."""
    rows = _rows(store, table)
    if not rows:
        return ""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=list(rows[0].keys()), lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: "" if v is None else v for k, v in row.items()})
    return buf.getvalue()
