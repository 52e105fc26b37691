from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4
from ..db.session import get_session
from ..errors import InvalidOrderTransitionError, NotFoundError
from ..models.order import ORDER_COMPLETED, ORDER_FAILED, ORDER_PENDING, Order, OrderItem
from ..models.product import Product
from ..utils.clock import utcnow
from ..utils.dto import to_order_dto
from ..utils.validators import require_text, validate_email
from .logging import log_event


class OrderService:
    """Order creation, retrieval and payment status transitions backed by DB."""

    def __init__(self, session_factory=get_session, clock=utcnow, on_completed: Optional[Callable[[str], object]] = None):
        self._session_factory = session_factory
        self._clock = clock
        self._on_completed = on_completed

    def create_order(
        self,
        *,
        store_id: str,
        buyer_email: str,
        product_ids: List[str],
        payment_session_id: Optional[str] = None,
    ) -> Dict:
        """Create a PENDING order with one item per product (idempotent by payment_session_id)."""
        store_id = require_text(store_id, "store_id")
        email = validate_email(buyer_email)
        if not product_ids:
            raise ValueError("product_ids required")
        with self._session_factory() as session:
            if payment_session_id:
                existing = (
                    session.query(Order)
                    .filter(Order.payment_session_id == payment_session_id)
                    .first()
                )
                if existing:
                    return to_order_dto(existing)
            products = []
            for pid in product_ids:
                prod = session.get(Product, pid) if pid else None
                if not prod:
                    raise NotFoundError("Product", pid)
                products.append(prod)
            oid = str(uuid4())
            order = Order(
                id=oid,
                store_id=store_id,
                buyer_email=email,
                total_cents=sum(int(p.price_cents or 0) for p in products),
                payment_session_id=payment_session_id,
                status=ORDER_PENDING,
            )
            session.add(order)
            for position, prod in enumerate(products):
                session.add(
                    OrderItem(
                        id=str(uuid4()),
                        order_id=oid,
                        product_id=prod.id,
                        price_cents=int(prod.price_cents or 0),
                        position=position,
                    )
                )
            session.flush()
            log_event("info", "order.created", order_id=oid, items=len(products), total_cents=order.total_cents)
            return to_order_dto(order)

    def get_order(self, order_id: str) -> Dict:
        with self._session_factory() as session:
            return to_order_dto(self._load(session, order_id))

    def complete_order(self, order_id: str) -> Dict:
        """Mark an order paid. Runs the completion hook only on the PENDING to COMPLETED edge."""
        order, changed = self._transition(order_id, ORDER_COMPLETED)
        if changed and self._on_completed is not None:
            self._on_completed(order_id)
        return order

    def fail_order(self, order_id: str) -> Dict:
        return self._transition(order_id, ORDER_FAILED)[0]

    @staticmethod
    def _load(session, order_id: str) -> Order:
        order = session.get(Order, order_id) if order_id else None
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    def _transition(self, order_id: str, target: str) -> Tuple[Dict, bool]:
        with self._session_factory() as session:
            order = self._load(session, order_id)
            if order.status == target:
                # webhook redelivery
                log_event("info", "order.transition_skipped", order_id=order_id, status=target)
                return to_order_dto(order), False
            if order.status != ORDER_PENDING:
                raise InvalidOrderTransitionError(order_id, order.status, target)
            order.status = target
            if target == ORDER_COMPLETED:
                order.completed_at = self._clock()
            session.flush()
            log_event("info", "order.status_changed", order_id=order_id, status=target)
            return to_order_dto(order), True
