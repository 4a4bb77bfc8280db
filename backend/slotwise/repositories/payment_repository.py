# backend/slotwise/repositories/payment_repository.py
"""
Payment Repository for the booking payment saga.

Stores the quoted intent snapshots and the captured-but-unbooked
escalations.
"""

import logging
from typing import List, Optional, cast

from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.payment import BookingPaymentIntent, EscalationStatus, PaymentEscalation
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PaymentRepository(BaseRepository[BookingPaymentIntent]):
    def __init__(self, db: Session):
        super().__init__(db, BookingPaymentIntent)
        self.logger = logging.getLogger(__name__)

    def get_by_handle(self, gateway_handle: str) -> Optional[BookingPaymentIntent]:
        try:
            return cast(
                Optional[BookingPaymentIntent],
                self.db.query(BookingPaymentIntent)
                .filter(BookingPaymentIntent.gateway_handle == gateway_handle)
                .first(),
            )
        except Exception as e:
            self.logger.error(f"Error getting payment intent by handle: {str(e)}")
            raise RepositoryException(f"Failed to get payment intent: {str(e)}")

    # Escalations

    def create_escalation(self, **kwargs) -> PaymentEscalation:
        escalation = PaymentEscalation(**kwargs)
        self.db.add(escalation)
        self.db.flush()
        return escalation

    def get_escalation(self, escalation_id: str) -> Optional[PaymentEscalation]:
        return cast(Optional[PaymentEscalation], self.db.get(PaymentEscalation, escalation_id))

    def get_escalation_for_intent(self, intent_record_id: str) -> Optional[PaymentEscalation]:
        return cast(
            Optional[PaymentEscalation],
            self.db.query(PaymentEscalation)
            .filter(PaymentEscalation.payment_intent_record_id == intent_record_id)
            .first(),
        )

    def list_escalations(
        self, status: Optional[EscalationStatus] = None
    ) -> List[PaymentEscalation]:
        try:
            query = self.db.query(PaymentEscalation)
            if status is not None:
                query = query.filter(PaymentEscalation.status == status.value)
            return cast(
                List[PaymentEscalation], query.order_by(PaymentEscalation.created_at.asc()).all()
            )
        except Exception as e:
            self.logger.error(f"Error listing payment escalations: {str(e)}")
            raise RepositoryException(f"Failed to list escalations: {str(e)}")
