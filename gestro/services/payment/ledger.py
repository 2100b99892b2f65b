"""
Payment Ledger

Saved payment methods and payment transactions, plus the processing
flow that charges a transaction through the configured gateway.

Consistency rules:
    - A user has at most one default payment method; the first method a
      user saves always becomes the default.
    - A transaction and the order it pays for are updated together: the
      order's payment_transaction_id / payment_status always mirror the
      transaction, inside the same database transaction.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from gestro.exceptions import ConflictError
from gestro.models import (
    Order,
    PaymentMethod,
    PaymentStatus,
    PaymentTransaction,
    row_to_dict,
)
from gestro.schemas import PaymentData, PaymentMethodCreate
from gestro.services.context import ServiceContext
from gestro.services.payment import BasePaymentService, get_payment_service
from gestro.services.realtime import ChangeType

logger = logging.getLogger(__name__)

CARD_METHODS = {"card", "credit_card", "debit_card", "stripe"}
CASH_METHODS = {"cash"}
SETTLED_STATUSES = {PaymentStatus.APPROVED, PaymentStatus.REFUNDED}


@dataclass
class ProcessResult:
    """Outcome of process_payment."""
    success: bool
    status: Optional[PaymentStatus] = None
    payment_id: Optional[str] = None
    error: Optional[str] = None
    redirect_url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status,
            "payment_id": self.payment_id,
            "error": self.error,
            "redirect_url": self.redirect_url,
        }


def confirmation_url(order_id: str) -> str:
    return f"/orders/confirmation?id={order_id}"


class PaymentLedger:
    """
    Payment persistence and processing.

    Example:
        >>> ledger = PaymentLedger(ctx)
        >>> tx = await ledger.create_payment_transaction(order.id, order.total_amount)
        >>> result = await ledger.process_payment(tx.id, PaymentData(method="cash"))
    """

    def __init__(self, ctx: ServiceContext, gateway: Optional[BasePaymentService] = None):
        self.ctx = ctx
        self.db = ctx.session
        self.gateway = gateway or get_payment_service()

    # =========================================================================
    # PAYMENT METHODS
    # =========================================================================

    async def get_user_payment_methods(self, user_id: str) -> list[PaymentMethod]:
        """Default method first, then newest first."""
        try:
            result = await self.db.execute(
                select(PaymentMethod)
                .where(PaymentMethod.user_id == user_id)
                .order_by(PaymentMethod.is_default.desc(), PaymentMethod.created_at.desc())
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception(f"Failed to load payment methods for user {user_id}")
            return []

    async def get_payment_method(self, user_id: str, method_id: str) -> Optional[PaymentMethod]:
        try:
            result = await self.db.execute(
                select(PaymentMethod).where(
                    PaymentMethod.id == method_id,
                    PaymentMethod.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception(f"Failed to load payment method {method_id}")
            return None

    async def _clear_defaults(self, user_id: str) -> None:
        await self.db.execute(
            update(PaymentMethod)
            .where(PaymentMethod.user_id == user_id, PaymentMethod.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )

    async def save_payment_method(self, user_id: str, data: PaymentMethodCreate) -> Optional[PaymentMethod]:
        """
        Save a payment method.

        The user's first method is forced to be the default. Saving a new
        default clears the previous one in the same transaction.
        """
        try:
            existing = (
                await self.db.execute(
                    select(func.count(PaymentMethod.id)).where(PaymentMethod.user_id == user_id)
                )
            ).scalar() or 0

            is_default = data.is_default or existing == 0
            if is_default and existing:
                await self._clear_defaults(user_id)

            method = PaymentMethod(user_id=user_id, **{**data.model_dump(), "is_default": is_default})
            self.db.add(method)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to save payment method for user {user_id}")
            return None

        logger.info(f"Payment method {method.id} saved for user {user_id} (default={is_default})")
        return method

    async def set_default_payment_method(self, user_id: str, method_id: str) -> Optional[PaymentMethod]:
        method = await self.get_payment_method(user_id, method_id)
        if method is None:
            return None
        try:
            await self._clear_defaults(user_id)
            await self.db.execute(
                update(PaymentMethod)
                .where(PaymentMethod.id == method_id)
                .values(is_default=True)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to set default payment method {method_id}")
            return None
        return await self._reload_method(method_id)

    async def delete_payment_method(self, user_id: str, method_id: str) -> bool:
        """
        Delete a payment method. When it was the default, the newest
        remaining method is promoted.
        """
        method = await self.get_payment_method(user_id, method_id)
        if method is None:
            return False

        was_default = method.is_default
        try:
            await self.db.delete(method)
            await self.db.flush()

            if was_default:
                newest = (
                    await self.db.execute(
                        select(PaymentMethod.id)
                        .where(PaymentMethod.user_id == user_id)
                        .order_by(PaymentMethod.created_at.desc())
                        .limit(1)
                    )
                ).scalar_one_or_none()
                if newest is not None:
                    await self.db.execute(
                        update(PaymentMethod)
                        .where(PaymentMethod.id == newest)
                        .values(is_default=True)
                        .execution_options(synchronize_session=False)
                    )
                    logger.info(f"Payment method {newest} promoted to default")

            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to delete payment method {method_id}")
            return False
        return True

    async def _reload_method(self, method_id: str) -> Optional[PaymentMethod]:
        result = await self.db.execute(
            select(PaymentMethod)
            .where(PaymentMethod.id == method_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def create_payment_transaction(
        self,
        order_id: str,
        amount: float,
        payment_method_id: Optional[str] = None,
    ) -> Optional[PaymentTransaction]:
        """
        Open the payment transaction for an order and link it atomically.

        An order has one live transaction: while the current one is still
        pending it is returned as-is, and a settled (approved or refunded)
        order refuses a new one. After a rejected or cancelled attempt a
        fresh pending transaction replaces it.

        Returns None (and leaves nothing behind) if the order is missing or
        any write fails.

        Raises:
            ConflictError: The order is already paid or refunded
        """
        try:
            order = await self.db.get(Order, order_id, populate_existing=True)
        except SQLAlchemyError:
            logger.exception(f"Failed to load order {order_id}")
            return None
        if order is None:
            logger.warning(f"Cannot create transaction: order {order_id} not found")
            return None
        if order.payment_status in SETTLED_STATUSES:
            raise ConflictError(
                f"Order {order_id} is already {order.payment_status.value}",
                detail="Refund the existing transaction instead of charging again",
            )

        if order.payment_transaction_id:
            current = await self.get_transaction(order.payment_transaction_id)
            if current is not None and current.status == PaymentStatus.PENDING:
                logger.info(f"Reusing pending transaction {current.id} for order {order_id}")
                return current

        try:
            transaction = PaymentTransaction(
                order_id=order_id,
                payment_method_id=payment_method_id,
                amount=amount,
                status=PaymentStatus.PENDING,
            )
            self.db.add(transaction)
            await self.db.flush()

            order.payment_transaction_id = transaction.id
            order.payment_status = PaymentStatus.PENDING
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to create payment transaction for order {order_id}")
            return None

        logger.info(f"Transaction {transaction.id} created for order {order_id} ({amount:.2f})")
        return transaction

    async def get_transaction(self, transaction_id: str) -> Optional[PaymentTransaction]:
        try:
            result = await self.db.execute(
                select(PaymentTransaction)
                .where(PaymentTransaction.id == transaction_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception(f"Failed to load transaction {transaction_id}")
            return None

    async def get_transaction_status(self, transaction_id: str) -> Optional[PaymentStatus]:
        transaction = await self.get_transaction(transaction_id)
        return transaction.status if transaction else None

    async def find_by_provider_id(self, provider_transaction_id: str) -> Optional[PaymentTransaction]:
        try:
            result = await self.db.execute(
                select(PaymentTransaction).where(
                    PaymentTransaction.provider_transaction_id == provider_transaction_id
                )
            )
            return result.scalars().first()
        except SQLAlchemyError:
            logger.exception(f"Failed to look up provider transaction {provider_transaction_id}")
            return None

    async def update_transaction_status(
        self,
        transaction_id: str,
        status: PaymentStatus,
        provider_data: Optional[dict[str, Any]] = None,
    ) -> Optional[PaymentTransaction]:
        """
        Update a transaction and mirror the status onto its order.

        Args:
            transaction_id: Transaction to update
            status: New payment status
            provider_data: Optional {"transaction_id", "status", "response"} from the gateway
        """
        transaction = await self.get_transaction(transaction_id)
        if transaction is None:
            return None

        try:
            transaction.status = status
            if provider_data:
                transaction.provider_transaction_id = (
                    provider_data.get("transaction_id") or transaction.provider_transaction_id
                )
                transaction.provider_status = provider_data.get("status") or transaction.provider_status
                if provider_data.get("response") is not None:
                    transaction.provider_response = provider_data["response"]

            await self.db.execute(
                update(Order)
                .where(Order.id == transaction.order_id)
                .values(payment_status=status)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to update transaction {transaction_id}")
            return None

        logger.info(f"Transaction {transaction_id} -> {status.value}")
        await self.ctx.publish("payment_transactions", ChangeType.UPDATE, row_to_dict(transaction))
        return transaction

    # =========================================================================
    # PROCESSING
    # =========================================================================

    async def process_payment(self, transaction_id: str, payment_data: PaymentData) -> ProcessResult:
        """
        Charge a pending transaction.

        Methods:
            card: charged through the gateway; approved or rejected
            cash: stays pending until collected
        """
        transaction = await self.get_transaction(transaction_id)
        if transaction is None:
            return ProcessResult(success=False, error="Transaction not found")
        if transaction.status != PaymentStatus.PENDING:
            return ProcessResult(success=False, status=transaction.status, error="Transaction already processed")

        method = payment_data.method.lower()
        redirect_url = confirmation_url(transaction.order_id)

        if method in CASH_METHODS:
            updated = await self.update_transaction_status(
                transaction_id,
                PaymentStatus.PENDING,
                {"status": "cash_on_delivery", "response": {"method": "cash"}},
            )
            if updated is None:
                return ProcessResult(success=False, error="Could not record payment")
            return ProcessResult(success=True, status=PaymentStatus.PENDING, redirect_url=redirect_url)

        if method not in CARD_METHODS:
            return ProcessResult(success=False, error="Unsupported payment method")

        result = await self.gateway.process_payment(
            amount=transaction.amount,
            currency=self.ctx.settings.stripe_currency,
            payment_token=payment_data.token,
            customer_email=payment_data.email,
            description=payment_data.description or f"Order {transaction.order_id}",
            metadata={"transaction_id": transaction.id, "order_id": transaction.order_id},
        )

        status = result.payment_status
        updated = await self.update_transaction_status(
            transaction_id,
            status,
            {
                "transaction_id": result.payment_intent_id,
                "status": result.provider_status or result.error_code,
                "response": result.to_dict(),
            },
        )
        if updated is None:
            return ProcessResult(success=False, error="Could not record payment")

        if not result.success:
            logger.info(f"Transaction {transaction_id} declined: {result.error_code}")
            return ProcessResult(
                success=False,
                status=status,
                payment_id=result.payment_intent_id,
                error=result.error_message or "Payment declined",
            )

        return ProcessResult(
            success=True,
            status=status,
            payment_id=result.payment_intent_id,
            redirect_url=redirect_url,
        )

    async def handle_gateway_webhook(self, event: dict) -> Optional[PaymentTransaction]:
        """
        Apply a verified gateway event.

        Events that do not describe a payment state change are ignored
        (returns None).
        """
        change = self.gateway.parse_webhook_event(event)
        if change is None:
            logger.debug(f"Ignoring webhook event {event.get('type')}")
            return None

        transaction = None
        if change.transaction_id:
            transaction = await self.get_transaction(change.transaction_id)
        if transaction is None:
            transaction = await self.find_by_provider_id(change.provider_transaction_id)
        if transaction is None:
            logger.warning(f"Webhook for unknown payment {change.provider_transaction_id}")
            return None

        return await self.update_transaction_status(
            transaction.id,
            change.payment_status,
            {
                "transaction_id": change.provider_transaction_id,
                "status": change.provider_status,
                "response": event,
            },
        )

    async def refund_transaction(
        self,
        transaction_id: str,
        amount: Optional[float] = None,
        reason: Optional[str] = None,
    ) -> ProcessResult:
        """
        Refund an approved card transaction through the gateway.

        Only approved transactions that the gateway charged can be
        refunded; amount=None refunds the full transaction amount.
        """
        transaction = await self.get_transaction(transaction_id)
        if transaction is None:
            return ProcessResult(success=False, error="Transaction not found")
        if transaction.status != PaymentStatus.APPROVED or not transaction.provider_transaction_id:
            return ProcessResult(success=False, status=transaction.status, error="Transaction cannot be refunded")
        if amount is not None and not 0 < amount <= transaction.amount:
            return ProcessResult(success=False, status=transaction.status, error="Invalid refund amount")

        refund = await self.gateway.refund_payment(
            transaction.provider_transaction_id,
            amount=amount,
            reason=reason,
        )
        if not refund.success:
            logger.warning(f"Refund of transaction {transaction_id} failed: {refund.error_message}")
            return ProcessResult(
                success=False,
                status=transaction.status,
                error=refund.error_message or "Refund failed",
            )

        updated = await self.update_transaction_status(
            transaction_id,
            PaymentStatus.REFUNDED,
            {
                "status": "refunded",
                "response": {
                    "refund_id": refund.refund_id,
                    "amount": refund.amount if refund.amount is not None else transaction.amount,
                    "reason": reason,
                    "status": refund.status,
                },
            },
        )
        if updated is None:
            return ProcessResult(success=False, error="Could not record refund")

        return ProcessResult(success=True, status=PaymentStatus.REFUNDED, payment_id=refund.refund_id)
