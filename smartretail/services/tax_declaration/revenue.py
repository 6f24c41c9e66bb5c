"""System revenue aggregation.

System revenue is the sum of ``total_amount`` over a store's orders that are
settled (``status == 'paid'``), have a printed receipt, and whose settlement
time falls inside the period. It is computed in a single statement so the
figure comes from one consistent read.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select, type_coerce
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from smartretail.core.exceptions import RevenueAggregationError, StoreNotFoundError
from smartretail.models.store_models import Order, OrderStatus, Store
from smartretail.models.types import Money
from smartretail.services.tax_declaration.period_utils import PeriodRange

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def get_active_store(db: Session, store_id: int) -> Store:
    store = db.get(Store, store_id)
    if store is None or store.deleted:
        raise StoreNotFoundError(store_id)
    return store


def compute_system_revenue(db: Session, store_id: int, period: PeriodRange) -> Decimal:
    """Sum settled, receipted order totals of ``store_id`` inside ``period``.

    Raises:
        RevenueAggregationError: the order data could not be read
    """
    stmt = select(type_coerce(func.coalesce(func.sum(Order.total_amount), 0), Money)).where(
        Order.store_id == store_id,
        Order.status == OrderStatus.PAID.value,
        Order.printed_at.is_not(None),
        Order.paid_at >= period.start,
        Order.paid_at < period.end,
    )
    try:
        total = db.execute(stmt).scalar_one()
    except SQLAlchemyError as e:
        logger.error("Revenue aggregation failed for store %s period %s: %s", store_id, period.period_key, e)
        raise RevenueAggregationError(store_id, "order data unavailable") from e
    revenue = total if total is not None else ZERO
    logger.debug(
        "System revenue store=%s %s:%s [%s, %s) = %s",
        store_id,
        period.period_type,
        period.period_key,
        period.start.isoformat(),
        period.end.isoformat(),
        revenue,
    )
    return revenue
