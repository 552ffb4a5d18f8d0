"""Checkout router: server-side payment verification and order creation."""

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.currency import pesewas_to_cedis
from libs.db.session import get_async_db
from services.storefront_service.client.discounts import check_redeemable, normalize_code
from services.storefront_service.client.pricing import default_delivery_methods
from services.storefront_service.models import (
    CartLine,
    DiscountCode,
    Order,
    OrderItem,
    OrderStatus,
    PaymentTransaction,
    Product,
    ProductVariant,
    ShippingAddress,
    TransactionStatus,
)
from services.storefront_service.paystack_client import (
    PaystackClient,
    PaystackError,
    get_paystack_client,
    paystack_enabled,
)
from services.storefront_service.schemas import VerifyPaymentRequest, VerifyPaymentResponse
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["store"])


def require_paystack() -> PaystackClient:
    if not paystack_enabled():
        raise HTTPException(status_code=503, detail="Payments are not configured")
    return get_paystack_client()


def _order_response(order: Order) -> VerifyPaymentResponse:
    return VerifyPaymentResponse(
        success=True,
        order_id=order.id,
        order_number=order.order_number,
        amount=order.total_amount,
    )


async def _find_order(db: AsyncSession, reference: str) -> Order | None:
    result = await db.execute(select(Order).where(Order.payment_reference == reference))
    return result.scalar_one_or_none()


async def _redeem_discount(db: AsyncSession, code: str) -> None:
    """Count one use of ``code`` if it is still redeemable."""
    normalized = normalize_code(code)
    result = await db.execute(select(DiscountCode).where(DiscountCode.code == normalized))
    discount = result.scalar_one_or_none()
    if discount is None:
        logger.warning(f"Discount {normalized} used at checkout but not found")
        return

    rejection = check_redeemable(discount)
    if rejection is not None:
        logger.warning(f"Discount {normalized} found but not redeemable: {rejection.value}")
        return

    await db.execute(
        update(DiscountCode)
        .where(DiscountCode.id == discount.id)
        .values(used_count=DiscountCode.used_count + 1)
    )
    logger.info(f"Discount {normalized} usage incremented")


# ============================================================================
# VERIFY
# ============================================================================


@router.post("/checkout/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    request: VerifyPaymentRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    paystack: PaystackClient = Depends(require_paystack),
):
    """Verify a Paystack payment and turn the purchased cart lines into an order.

    Safe to call again with the same reference: the existing order is returned.
    """
    existing = await _find_order(db, request.reference)
    if existing is not None:
        if existing.user_id != current_user.user_id:
            raise HTTPException(status_code=404, detail="Order not found")
        logger.info(f"Payment {request.reference} already verified as {existing.order_number}")
        return _order_response(existing)

    methods = {method.id: method for method in default_delivery_methods()}
    if request.delivery_method_id not in methods:
        raise HTTPException(status_code=400, detail="Unknown delivery method")
    if not request.selected_line_ids:
        raise HTTPException(status_code=400, detail="No cart lines selected for checkout")

    address = await db.get(ShippingAddress, request.address_id)
    if address is None or address.user_id != current_user.user_id:
        raise HTTPException(status_code=404, detail="Shipping address not found")

    # 1. Verify with Paystack
    try:
        transaction = await paystack.verify_transaction(request.reference)
    except PaystackError as e:
        logger.error(f"Paystack verify failed for {request.reference}: {e.message}")
        if e.status_code and 400 <= e.status_code < 500:
            raise HTTPException(status_code=400, detail="Payment could not be verified")
        raise HTTPException(status_code=502, detail="Payment provider error")
    except httpx.HTTPError as e:
        logger.error(f"Paystack unreachable verifying {request.reference}: {e}")
        raise HTTPException(status_code=502, detail="Payment provider unreachable")

    if not transaction.succeeded:
        logger.warning(f"Paystack reports {request.reference} as {transaction.status}")
        raise HTTPException(
            status_code=400, detail="Paystack verification failed: Transaction not successful"
        )
    if transaction.currency != get_settings().STORE_CURRENCY:
        logger.error(f"Payment {request.reference} settled in {transaction.currency}")
        raise HTTPException(status_code=400, detail="Unexpected payment currency")

    amount = pesewas_to_cedis(transaction.amount)

    # 2. Purchased lines
    query = select(CartLine).where(
        CartLine.user_id == current_user.user_id,
        CartLine.id.in_(request.selected_line_ids),
    )
    lines = (await db.execute(query.order_by(CartLine.created_at))).scalars().all()
    if not lines:
        logger.warning(f"No cart lines found for user {current_user.user_id} on {request.reference}")

    product_ids = {line.product_id for line in lines}
    variant_ids = {line.variant_id for line in lines if line.variant_id}
    products = {
        p.id: p
        for p in (await db.execute(select(Product).where(Product.id.in_(product_ids)))).scalars()
    }
    variants = {}
    if variant_ids:
        variants = {
            v.id: v
            for v in (
                await db.execute(select(ProductVariant).where(ProductVariant.id.in_(variant_ids)))
            ).scalars()
        }

    # 3. Write discount usage, transaction, order and items in one unit
    try:
        if request.discount_code:
            await _redeem_discount(db, request.discount_code)

        payment = PaymentTransaction(
            user_id=current_user.user_id,
            reference=transaction.reference,
            amount=amount,
            status=TransactionStatus.SUCCESS,
            provider="paystack",
            provider_response=transaction.raw,
        )
        db.add(payment)
        await db.flush()

        order = Order(
            user_id=current_user.user_id,
            order_number=Order.generate_order_number(),
            payment_reference=request.reference,
            status=OrderStatus.PAID,
            total_amount=amount,
            items_count=sum(line.quantity for line in lines),
            shipping_address_id=address.id,
            shipping_address=f"{address.full_name}, {address.phone}, {address.address_line}",
            delivery_method=request.delivery_method_id,
            discount_code=normalize_code(request.discount_code) or None,
            payment_method="paystack",
            payment_transaction_id=payment.id,
        )
        db.add(order)
        await db.flush()

        purchased = []
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                logger.warning(f"Skipping cart line {line.id}: product {line.product_id} missing")
                continue
            variant = variants.get(line.variant_id) if line.variant_id else None
            db.add(
                OrderItem(
                    order_id=order.id,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    product_name=product.name,
                    variant_name=f"{variant.name}: {variant.value}" if variant else None,
                    quantity=line.quantity,
                    price=product.price + (variant.price_modifier if variant else 0),
                )
            )
            purchased.append(line.id)

        if purchased:
            await db.execute(delete(CartLine).where(CartLine.id.in_(purchased)))

        await db.commit()
    except IntegrityError:
        # Concurrent verification of the same reference won the insert
        await db.rollback()
        order = await _find_order(db, request.reference)
        if order is None or order.user_id != current_user.user_id:
            raise HTTPException(status_code=409, detail="Payment is already being processed")
        return _order_response(order)

    logger.info(
        f"Order {order.order_number} created for {request.reference} "
        f"({len(purchased)} lines, GHS {amount})"
    )
    return _order_response(order)
