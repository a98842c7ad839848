"""
Durable order store.

All writes go through short sessions; callers serialise per order with
``KeyedLock`` and the unique constraints on idempotency keys, external
references, payer identities and callback ids catch anything that slips past.
"""
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from paybridge.errors import NotFoundError
from paybridge.logging_config import get_logger
from paybridge.models import CallbackEvent, ExternalReference, Order, OrderTransition, PayerReference
from .clock import utcnow
from .order_state import OrderStatus, check_transition

logger = get_logger(__name__)


def new_order_id() -> str:
    return uuid.uuid4().hex


class OrderStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(
        self,
        provider: str,
        amount: int,
        currency: str,
        payer_identity: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Tuple[Order, bool]:
        """
        Insert a new order in ``created``.

        Returns (order, created). When the idempotency key is already taken the
        existing order is returned with ``created=False``.
        """
        with self._session_factory() as db:
            order = Order(
                order_id=new_order_id(),
                provider=provider,
                amount=amount,
                currency=currency,
                status=OrderStatus.CREATED.value,
                payer_identity=payer_identity,
                idempotency_key=idempotency_key,
            )
            db.add(order)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                existing = self.get_by_idempotency_key(idempotency_key) if idempotency_key else None
                if existing is None:
                    raise
                return existing, False

        logger.info(
            "order_created",
            order_id=order.order_id,
            provider=provider,
            amount=amount,
            currency=currency,
        )
        return order, True

    def get(self, order_id: str) -> Optional[Order]:
        with self._session_factory() as db:
            return db.query(Order).filter(Order.order_id == order_id).first()

    def get_or_raise(self, order_id: str) -> Order:
        order = self.get(order_id)
        if order is None:
            raise NotFoundError(order_id)
        return order

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        with self._session_factory() as db:
            return db.query(Order).filter(Order.idempotency_key == key).first()

    def save_provider_response(
        self,
        order_id: str,
        client_payload: Dict[str, Any],
        status_code: int,
        redirect_url: Optional[str] = None,
        payer_reference: Optional[str] = None,
    ) -> Order:
        with self._session_factory() as db:
            order = db.query(Order).filter(Order.order_id == order_id).first()
            if order is None:
                raise NotFoundError(order_id)
            order.client_payload = client_payload
            order.provider_status_code = status_code
            order.redirect_url = redirect_url
            if payer_reference:
                order.payer_reference = payer_reference
            order.updated_at = utcnow()
            db.commit()
            return order

    def transition(
        self,
        order_id: str,
        target: OrderStatus,
        source: str,
        detail: Optional[str] = None,
        **fields: Any,
    ) -> Order:
        """
        Move an order along the lifecycle graph and append an audit row.

        The caller must hold the order's lock.

        Raises:
            NotFoundError: unknown order
            StateConflictError: ``target`` is not reachable from the current status
        """
        target = OrderStatus(target)
        with self._session_factory() as db:
            order = db.query(Order).filter(Order.order_id == order_id).first()
            if order is None:
                raise NotFoundError(order_id)

            current = order.status
            check_transition(order_id, order.provider, current, target)

            now = utcnow()
            order.status = target.value
            order.updated_at = now
            if target == OrderStatus.FAILED and detail:
                order.failure_reason = detail[:255]
            for name, value in fields.items():
                setattr(order, name, value)

            db.add(OrderTransition(
                order_id=order_id,
                from_status=current,
                to_status=target.value,
                source=source,
                detail=detail[:255] if detail else None,
                created_at=now,
            ))
            db.commit()

        logger.info(
            "order_transition",
            order_id=order_id,
            from_status=current,
            to_status=target.value,
            source=source,
            at=now.isoformat(),
        )
        return order

    def transitions(self, order_id: str) -> List[Tuple[str, str]]:
        with self._session_factory() as db:
            rows = (
                db.query(OrderTransition)
                .filter(OrderTransition.order_id == order_id)
                .order_by(OrderTransition.id)
                .all()
            )
            return [(row.from_status, row.to_status) for row in rows]

    # ------------------------------------------------------------------
    # External references
    # ------------------------------------------------------------------

    def link_external_ref(self, order_id: str, provider: str, external_id: str) -> None:
        with self._session_factory() as db:
            db.add(ExternalReference(order_id=order_id, provider=provider, external_id=external_id))
            db.commit()

    def find_by_external_ref(self, provider: str, external_id: str) -> Optional[Order]:
        with self._session_factory() as db:
            return (
                db.query(Order)
                .join(ExternalReference, ExternalReference.order_id == Order.order_id)
                .filter(
                    ExternalReference.provider == provider,
                    ExternalReference.external_id == external_id,
                )
                .first()
            )

    # ------------------------------------------------------------------
    # Payer references
    # ------------------------------------------------------------------

    def get_payer_reference(self, provider: str, identity: str) -> Optional[str]:
        with self._session_factory() as db:
            row = (
                db.query(PayerReference)
                .filter(PayerReference.provider == provider, PayerReference.identity == identity)
                .first()
            )
            return row.reference if row else None

    def save_payer_reference(self, provider: str, identity: str, reference: str) -> str:
        """Store a payer reference; if one already exists, keep and return it."""
        with self._session_factory() as db:
            db.add(PayerReference(provider=provider, identity=identity, reference=reference))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                existing = self.get_payer_reference(provider, identity)
                if existing is None:
                    raise
                return existing
        return reference

    def count_payer_references(self, provider: str, identity: str) -> int:
        with self._session_factory() as db:
            return (
                db.query(PayerReference)
                .filter(PayerReference.provider == provider, PayerReference.identity == identity)
                .count()
            )

    # ------------------------------------------------------------------
    # Callback ledger
    # ------------------------------------------------------------------

    def record_callback(
        self,
        provider: str,
        event_type: str,
        callback_id: str,
        order_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Record an inbound delivery. Returns False if ``callback_id`` was seen before."""
        with self._session_factory() as db:
            db.add(CallbackEvent(
                provider=provider,
                event_type=event_type,
                callback_id=callback_id,
                order_id=order_id,
                payload=payload,
            ))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.info("callback_duplicate", provider=provider, callback_id=callback_id)
                return False
        return True
