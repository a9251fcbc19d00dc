"""
Источник кандидатов для предложений.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

from order_data import ORDER_AGE_MINUTES, ROUTE_ORDERS
from services.schemas import Order

logger = logging.getLogger(__name__)


class InMemoryOrderPool:
    """
    Шаблоны заказов в памяти.

    С mint_ids=True каждый кандидат получает новый id вида ORD-001-3fa2c1,
    поэтому шаблон можно предлагать снова, а каждое предложение уникально.
    С mint_ids=False id берётся из шаблона и принятый заказ больше не предлагается.
    """

    def __init__(
        self,
        templates: Iterable[dict[str, Any]],
        *,
        ages: Optional[dict[str, int]] = None,
        mint_ids: bool = True,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._templates = [dict(t) for t in templates]
        self._ages = ages or {}
        self._mint_ids = mint_ids
        self._clock = clock
        self._taken: set[str] = set()

    def _build(self, template: dict[str, Any]) -> Order:
        data = dict(template)
        age = self._ages.get(template["id"])
        if age is not None and "orderTime" not in data:
            data["orderTime"] = self._clock() - timedelta(minutes=age)
        if self._mint_ids:
            data["id"] = f"{template['id']}-{secrets.token_hex(3)}"
        return Order.model_validate(data)

    def candidates(self) -> list[Order]:
        return [self._build(t) for t in self._templates if t["id"] not in self._taken]

    def orders_by_route(self, route: str) -> list[Order]:
        return [o for o in self.candidates() if o.route == route]

    def routes(self) -> list[str]:
        return sorted({t["route"] for t in self._templates if t.get("route")})

    def mark_taken(self, order_id: str) -> None:
        self._taken.add(order_id)
        logger.debug("Order taken from pool id=%s", order_id)


def demo_pool(**kwargs: Any) -> InMemoryOrderPool:
    """Пул из демо-заказов order_data."""
    return InMemoryOrderPool(ROUTE_ORDERS, ages=ORDER_AGE_MINUTES, **kwargs)
