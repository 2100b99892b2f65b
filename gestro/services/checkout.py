"""
Checkout

Turns a cart into a paid (or pending) order:

    create order → create transaction for the computed total → process
    payment with the id of the transaction just created
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from gestro.models import Order, PaymentTransaction
from gestro.schemas import CartItem, OrderDraft, OrderItemCreate, PaymentData
from gestro.services.context import ServiceContext
from gestro.services.orders import OrderRepository
from gestro.services.payment import BasePaymentService
from gestro.services.payment.ledger import PaymentLedger, ProcessResult

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    success: bool
    order: Optional[Order] = None
    transaction: Optional[PaymentTransaction] = None
    payment: Optional[ProcessResult] = None
    error: Optional[str] = None


class CheckoutService:

    def __init__(self, ctx: ServiceContext, gateway: Optional[BasePaymentService] = None):
        self.orders = OrderRepository(ctx)
        self.ledger = PaymentLedger(ctx, gateway=gateway)

    async def checkout(
        self,
        customer_id: Optional[str],
        cart: Sequence[CartItem],
        payment_data: PaymentData,
        notes: Optional[str] = None,
        table_number: Optional[int] = None,
        payment_method_id: Optional[str] = None,
    ) -> CheckoutResult:
        order = await self.orders.create_order(
            OrderDraft(customer_id=customer_id, notes=notes, table_number=table_number),
            [OrderItemCreate(product_id=i.product_id, quantity=i.quantity, notes=i.notes) for i in cart],
        )
        if order is None:
            return CheckoutResult(success=False, error="Could not create order")

        transaction = await self.ledger.create_payment_transaction(
            order.id,
            order.total_amount,
            payment_method_id=payment_method_id,
        )
        if transaction is None:
            return CheckoutResult(success=False, order=order, error="Could not create payment transaction")

        payment = await self.ledger.process_payment(transaction.id, payment_data)
        logger.info(
            f"Checkout for order {order.id}: payment "
            f"{'ok' if payment.success else 'failed'} ({payment.status.value if payment.status else 'n/a'})"
        )

        return CheckoutResult(
            success=payment.success,
            order=order,
            transaction=transaction,
            payment=payment,
            error=payment.error,
        )
