"""
Checkout, payment transactions, gateway webhook and saved payment methods.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from gestro.api.deps import get_context, get_gateway, require_staff, require_user
from gestro.api.orders import ensure_can_view, load_order, queue_order_export
from gestro.models import Profile
from gestro.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    ErrorResponse,
    PaymentMethodCreate,
    PaymentMethodResponse,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    RefundRequest,
    TransactionCreate,
    TransactionResponse,
)
from gestro.services.checkout import CheckoutService
from gestro.services.context import ServiceContext
from gestro.services.payment import BasePaymentService
from gestro.services.payment.ledger import PaymentLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Payments"])
admin_router = APIRouter(
    prefix="/api/admin/payments",
    tags=["Admin - Payments"],
    dependencies=[Depends(require_staff)],
)


# =============================================================================
# CHECKOUT
# =============================================================================

@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    request: CheckoutRequest,
    ctx: ServiceContext = Depends(get_context),
    gateway: BasePaymentService = Depends(get_gateway),
    user: Profile = Depends(require_user),
) -> CheckoutResponse:
    """Create the order, its transaction and charge it in one call."""
    result = await CheckoutService(ctx, gateway=gateway).checkout(
        customer_id=user.id,
        cart=request.items,
        payment_data=request.payment_data,
        notes=request.notes,
        table_number=request.table_number,
        payment_method_id=request.payment_method_id,
    )

    if result.order is not None:
        queue_order_export(ctx, result.order, user)

    return CheckoutResponse(
        success=result.success,
        order_id=result.order.id if result.order else None,
        transaction_id=result.transaction.id if result.transaction else None,
        total_amount=result.order.total_amount if result.order else None,
        payment=ProcessPaymentResponse(**result.payment.to_dict()) if result.payment else None,
        error=result.error,
    )


# =============================================================================
# TRANSACTIONS
# =============================================================================

@router.post(
    "/payments/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def create_transaction(
    request: TransactionCreate,
    ctx: ServiceContext = Depends(get_context),
    gateway: BasePaymentService = Depends(get_gateway),
    user: Profile = Depends(require_user),
):
    """
    Open a pending transaction for the order's current total.

    A still-pending transaction is returned as-is; an order that is
    already paid or refunded answers 409.
    """
    order = await load_order(ctx, request.order_id)
    ensure_can_view(order, user)

    transaction = await PaymentLedger(ctx, gateway=gateway).create_payment_transaction(
        order.id, order.total_amount, payment_method_id=request.payment_method_id
    )
    if transaction is None:
        raise HTTPException(status_code=500, detail="Could not create payment transaction")
    return transaction


@router.get("/payments/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: str,
    ctx: ServiceContext = Depends(get_context),
    gateway: BasePaymentService = Depends(get_gateway),
    user: Profile = Depends(require_user),
):
    transaction = await PaymentLedger(ctx, gateway=gateway).get_transaction(transaction_id)
    if transaction is None:
        raise HTTPException(status_code=404, detail=f"Transaction {transaction_id} not found")
    ensure_can_view(await load_order(ctx, transaction.order_id), user)
    return transaction


@router.post("/payments/process", response_model=ProcessPaymentResponse)
async def process_payment(
    request: ProcessPaymentRequest,
    ctx: ServiceContext = Depends(get_context),
    gateway: BasePaymentService = Depends(get_gateway),
    user: Profile = Depends(require_user),
) -> ProcessPaymentResponse:
    """
    Charge a pending transaction.

    Returns `{success, error?, redirectUrl?}`; a failed charge is not an
    HTTP error.
    """
    ledger = PaymentLedger(ctx, gateway=gateway)
    transaction = await ledger.get_transaction(request.transaction_id)
    if transaction is not None:
        ensure_can_view(await load_order(ctx, transaction.order_id), user)

    result = await ledger.process_payment(request.transaction_id, request.payment_data)
    return ProcessPaymentResponse(**result.to_dict())


@router.post("/payments/webhook")
async def payment_webhook(
    request: Request,
    ctx: ServiceContext = Depends(get_context),
    gateway: BasePaymentService = Depends(get_gateway),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> dict:
    """Gateway callback; unrelated events are acknowledged and ignored."""
    payload = await request.body()
    event = await gateway.verify_webhook(payload, stripe_signature or "")
    if event is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook")

    transaction = await PaymentLedger(ctx, gateway=gateway).handle_gateway_webhook(event)
    logger.info(f"Webhook {event.get('type')}: {'applied' if transaction else 'ignored'}")
    return {
        "received": True,
        "transaction_id": transaction.id if transaction else None,
        "status": transaction.status.value if transaction else None,
    }


@admin_router.post("/transactions/{transaction_id}/refund", response_model=ProcessPaymentResponse)
async def refund_transaction(
    transaction_id: str,
    request: RefundRequest,
    ctx: ServiceContext = Depends(get_context),
    gateway: BasePaymentService = Depends(get_gateway),
) -> ProcessPaymentResponse:
    """Refund an approved card payment, fully or in part."""
    result = await PaymentLedger(ctx, gateway=gateway).refund_transaction(
        transaction_id, amount=request.amount, reason=request.reason
    )
    if result.error == "Transaction not found":
        raise HTTPException(status_code=404, detail=f"Transaction {transaction_id} not found")
    if result.error == "Transaction cannot be refunded":
        raise HTTPException(status_code=409, detail=result.error)
    return ProcessPaymentResponse(**result.to_dict())

# =============================================================================
# PAYMENT METHODS
# =============================================================================

@router.get("/payment-methods", response_model=List[PaymentMethodResponse])
async def list_payment_methods(
    ctx: ServiceContext = Depends(get_context),
    gateway: BasePaymentService = Depends(get_gateway),
    user: Profile = Depends(require_user),
):
    return await PaymentLedger(ctx, gateway=gateway).get_user_payment_methods(user.id)


@router.post(
    "/payment-methods",
    response_model=PaymentMethodResponse,
    status_code=status.HTTP_201_CREATED,
)
async def save_payment_method(
    data: PaymentMethodCreate,
    ctx: ServiceContext = Depends(get_context),
    gateway: BasePaymentService = Depends(get_gateway),
    user: Profile = Depends(require_user),
):
    method = await PaymentLedger(ctx, gateway=gateway).save_payment_method(user.id, data)
    if method is None:
        raise HTTPException(status_code=500, detail="Could not save payment method")
    return method


@router.post("/payment-methods/{method_id}/default", response_model=PaymentMethodResponse)
async def set_default_payment_method(
    method_id: str,
    ctx: ServiceContext = Depends(get_context),
    gateway: BasePaymentService = Depends(get_gateway),
    user: Profile = Depends(require_user),
):
    method = await PaymentLedger(ctx, gateway=gateway).set_default_payment_method(user.id, method_id)
    if method is None:
        raise HTTPException(status_code=404, detail=f"Payment method {method_id} not found")
    return method


@router.delete("/payment-methods/{method_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payment_method(
    method_id: str,
    ctx: ServiceContext = Depends(get_context),
    gateway: BasePaymentService = Depends(get_gateway),
    user: Profile = Depends(require_user),
):
    if not await PaymentLedger(ctx, gateway=gateway).delete_payment_method(user.id, method_id):
        raise HTTPException(status_code=404, detail=f"Payment method {method_id} not found")
