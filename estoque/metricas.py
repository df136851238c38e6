from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

# Reference stock per category; used for the stock level bar and low-stock alerts.
IDEAL_STOCK: dict[str, int] = {
    "Frango": 20,
    "Carne": 15,
    "Peixe": 10,
    "Vegetariano": 12,
}
DEFAULT_IDEAL_STOCK = 15

LOW_STOCK_THRESHOLD = Decimal("0.4")
EXPIRATION_WARNING = timedelta(days=60)
MAX_PROMO_DISCOUNT = Decimal("90")


def _dec(x: float | int | Decimal | None) -> Decimal:
    if x is None:
        return Decimal("0")
    return x if isinstance(x, Decimal) else Decimal(str(x))


def _two_places(d: Decimal) -> Decimal:
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def profit_margin_ratio(cost: float | Decimal, selling: float | Decimal) -> Decimal:
    """(selling - cost) / cost as a fraction; 0 when cost is not positive."""
    c, s = _dec(cost), _dec(selling)
    if c <= 0:
        return Decimal("0")
    return (s - c) / c


def profit_margin_percent(cost: float | Decimal, selling: float | Decimal) -> Decimal:
    return _two_places(profit_margin_ratio(cost, selling) * 100)


def format_profit_margin(cost: float | Decimal, selling: float | Decimal) -> str:
    if _dec(cost) <= 0:
        return "0%"
    return f"{profit_margin_percent(cost, selling):.2f}%"


def profit_margin_value(cost: float | Decimal, selling: float | Decimal) -> Decimal:
    return _dec(selling) - _dec(cost)


def ideal_stock(category: str | None) -> int:
    return IDEAL_STOCK.get(str(category or ""), DEFAULT_IDEAL_STOCK)


def stock_level_percent(quantity: int, ideal: int) -> float:
    return (float(quantity) / float(ideal)) * 100.0


def is_low_stock(quantity: int, category: str | None) -> bool:
    return Decimal(int(quantity)) < Decimal(ideal_stock(category)) * LOW_STOCK_THRESHOLD


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _remaining(expiration: date | datetime, now: datetime | None) -> timedelta:
    return _as_datetime(expiration) - (now or datetime.now())


def is_near_expiration(expiration: date | datetime | None, now: datetime | None = None) -> bool:
    if expiration is None:
        return False
    remaining = _remaining(expiration, now)
    return timedelta(0) < remaining <= EXPIRATION_WARNING


def is_expired(expiration: date | datetime | None, now: datetime | None = None) -> bool:
    if expiration is None:
        return False
    return _as_datetime(expiration) < (now or datetime.now())


def suggested_discount_percent(expiration: date | datetime | None, now: datetime | None = None) -> int:
    """Promotion discount suggested by how close the item is to expiring.

    Expired items get 50; the last day gets 40.
    """

    if expiration is None:
        return 0

    remaining = _remaining(expiration, now)
    if remaining <= timedelta(0):
        return 50

    days = remaining / timedelta(days=1)
    if days <= 1:
        return 40
    if days <= 7:
        return 25
    if days <= 30:
        return 15
    return 10


def promotional_price(selling: float | Decimal, discount_percent: float | Decimal) -> Decimal:
    d = min(max(_dec(discount_percent), Decimal("0")), MAX_PROMO_DISCOUNT)
    return _two_places(_dec(selling) * (1 - d / 100))


@dataclass(frozen=True)
class StockSummary:
    total_cost_value: Decimal
    total_selling_value: Decimal
    total_ifood_value: Decimal
    total_items: int
    low_stock_count: int
    expiring_count: int
    expired_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCostValue": float(self.total_cost_value),
            "totalSellingValue": float(self.total_selling_value),
            "totalIfoodValue": float(self.total_ifood_value),
            "totalItems": int(self.total_items),
            "lowStockCount": int(self.low_stock_count),
            "expiringProductsCount": int(self.expiring_count),
            "expiredProductsCount": int(self.expired_count),
        }


def summarize_stock(products: Iterable[Any], now: datetime | None = None) -> StockSummary:
    """Stock totals and alert counts over active products only."""

    now = now or datetime.now()
    cost = selling = ifood = Decimal("0")
    items = low = expiring = expired = 0

    for p in products:
        if not p.is_active:
            continue
        qty = int(p.quantity or 0)
        cost += _dec(p.cost_price) * qty
        selling += _dec(p.selling_price) * qty
        ifood += _dec(p.ifood_price) * qty
        items += qty

        if is_low_stock(qty, p.category):
            low += 1
        if is_near_expiration(p.expiration_date, now):
            expiring += 1
        if is_expired(p.expiration_date, now):
            expired += 1

    return StockSummary(
        total_cost_value=_two_places(cost),
        total_selling_value=_two_places(selling),
        total_ifood_value=_two_places(ifood),
        total_items=items,
        low_stock_count=low,
        expiring_count=expiring,
        expired_count=expired,
    )


def product_metrics(product: Any, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now()
    ideal = ideal_stock(product.category)
    discount = suggested_discount_percent(product.expiration_date, now)
    return {
        "_id": str(product.id),
        "profitMarginPercentage": format_profit_margin(product.cost_price, product.selling_price),
        "profitMarginValue": float(profit_margin_value(product.cost_price, product.selling_price)),
        "idealStock": ideal,
        "stockLevel": round(stock_level_percent(int(product.quantity or 0), ideal), 2),
        "isLowStock": is_low_stock(int(product.quantity or 0), product.category),
        "isNearExpiration": is_near_expiration(product.expiration_date, now),
        "isExpired": is_expired(product.expiration_date, now),
        "suggestedDiscount": discount,
        "promotionalPrice": float(promotional_price(product.selling_price, discount)),
    }
