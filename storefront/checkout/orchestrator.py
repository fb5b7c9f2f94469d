"""
Checkout Orchestrator.

Turns the current identity and cart into an order: one order row, then
one row per cart line. The two writes are not transactional; the cart is
only cleared once both succeeded, so a failed attempt can be retried.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from shared.config.constants import IdentityMode, OrderStatus, can_place_orders
from shared.config.logging import checkout_logger as logger, mask_email, mask_user_id
from shared.utils.exceptions import OrderPlacementError
from shared.utils.validators import OrderDetails, validate_input
from storefront.backend.client import BackendClient
from storefront.cart.engine import CartEngine, CartItem
from storefront.identity.context import IdentityContext, IdentityState

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PlacedOrder:
    """Outcome of a successful checkout."""

    order_id: str
    status: str
    identity_ref: str | None
    merchant_id: str
    subtotal: Decimal
    delivery_fee: Decimal
    total_amount: Decimal
    item_count: int
    cart_cleared: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "status": self.status,
            "identity_ref": self.identity_ref,
            "merchant_id": self.merchant_id,
            "subtotal": str(self.subtotal),
            "delivery_fee": str(self.delivery_fee),
            "total_amount": str(self.total_amount),
            "item_count": self.item_count,
            "cart_cleared": self.cart_cleared,
        }


@dataclass(frozen=True)
class _Customer:
    identity_ref: str | None
    name: str | None
    email: str | None
    phone: str | None


class CheckoutService:
    """
    Places orders for the shared identity and cart.

    Only one placement runs at a time; a second call while one is in
    flight fails immediately.
    """

    def __init__(
        self,
        backend: BackendClient,
        identity: IdentityContext,
        cart: CartEngine,
        orders_table: str = "orders",
        order_items_table: str = "order_items",
        delivery_fee: Decimal | float | str = Decimal("2.99"),
        allow_guest_checkout: bool = True,
    ):
        self._orders = backend.table(orders_table)
        self._order_items = backend.table(order_items_table)
        self._identity = identity
        self._cart = cart
        self._delivery_fee = Decimal(str(delivery_fee)).quantize(CENTS)
        self._allow_guest_checkout = allow_guest_checkout
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def delivery_fee(self) -> Decimal:
        return self._delivery_fee

    def quote(self) -> dict[str, str]:
        """Subtotal, delivery fee and total for the current cart."""
        subtotal = self._cart.total_amount().quantize(CENTS)
        return {
            "subtotal": str(subtotal),
            "delivery_fee": str(self._delivery_fee),
            "total_amount": str(subtotal + self._delivery_fee),
        }

    async def place_order(self, data: OrderDetails | dict[str, Any]) -> PlacedOrder:
        """
        Write the order and its items, then clear the cart.

        Raises:
            ValidationError: invalid order details.
            OrderPlacementError: precondition failed (stage "precondition"),
                or a write failed (stage "order" / "items"). The cart is
                never cleared on failure.
        """
        details = validate_input(OrderDetails, data)
        if self._in_progress:
            raise OrderPlacementError("Your order is already being placed.", stage="precondition")

        self._in_progress = True
        try:
            return await self._place(details)
        finally:
            self._in_progress = False

    def _customer(self, state: IdentityState, details: OrderDetails) -> _Customer:
        if state.mode is IdentityMode.AUTHENTICATED:
            profile = state.profile
            if not can_place_orders(profile.role):
                raise OrderPlacementError(
                    "This account cannot place orders.",
                    stage="precondition",
                    role=profile.role.value,
                )
            return _Customer(
                identity_ref=profile.id,
                name=details.customer_name or profile.full_name or None,
                email=details.customer_email or profile.email,
                phone=details.customer_phone or profile.phone,
            )

        if state.mode is IdentityMode.GUEST:
            if not self._allow_guest_checkout:
                raise OrderPlacementError(
                    "Guest checkout is not available. Please create an account to place your delivery.",
                    stage="precondition",
                )
            guest = state.guest
            return _Customer(
                identity_ref=None,
                name=details.customer_name or guest.full_name,
                email=details.customer_email or guest.email,
                phone=details.customer_phone or guest.phone,
            )

        raise OrderPlacementError(
            "Please sign in or continue as a guest to place an order.",
            stage="precondition",
            mode=state.mode.value,
        )

    async def _place(self, details: OrderDetails) -> PlacedOrder:
        if self._cart.is_empty:
            raise OrderPlacementError("Your cart is empty.", stage="precondition")

        customer = self._customer(self._identity.state, details)

        # Snapshot before the first await; the cart may change while we write
        lines: tuple[CartItem, ...] = self._cart.lines
        merchant_id = self._cart.merchant_id
        version = self._cart.version
        subtotal = self._cart.total_amount().quantize(CENTS)
        total = (subtotal + self._delivery_fee).quantize(CENTS, rounding=ROUND_HALF_UP)

        order_row = {
            "customer_id": customer.identity_ref,
            "restaurant_id": merchant_id,
            "customer_name": customer.name,
            "customer_email": customer.email,
            "customer_phone": customer.phone,
            "status": OrderStatus.PENDING,
            "total_amount": float(total),
            "delivery_address": details.delivery_address,
            "special_instructions": details.special_instructions,
        }
        order_result = await self._orders.insert(order_row)
        if order_result.error or not order_result.data or "id" not in order_result.data[0]:
            raise OrderPlacementError(
                "Failed to place order. Please try again.",
                stage="order",
                upstream_error=order_result.error.message if order_result.error else "no row returned",
            )
        order_id = str(order_result.data[0]["id"])

        item_rows = [
            {
                "order_id": order_id,
                "menu_item_id": line.item_id,
                "quantity": line.quantity,
                "price": float(line.price),
                "item_name": line.name,
            }
            for line in lines
        ]
        items_result = await self._order_items.insert(item_rows)
        if items_result.error:
            await self._cancel_orphan(order_id)
            raise OrderPlacementError(
                "Failed to save your order items. Your cart was kept, please try again.",
                stage="items",
                order_id=order_id,
                upstream_error=items_result.error.message,
            )

        cleared = self._cart.version == version
        if cleared:
            self._cart.clear()
        else:
            logger.warning(
                "Cart changed while the order was placed, keeping it",
                order_id=order_id,
                expected_version=version,
                current_version=self._cart.version,
            )

        logger.info(
            "Order placed",
            order_id=order_id,
            customer_id=mask_user_id(customer.identity_ref) if customer.identity_ref else None,
            email=mask_email(customer.email),
            merchant_id=merchant_id,
            lines=len(lines),
            total_amount=str(total),
        )
        return PlacedOrder(
            order_id=order_id,
            status=OrderStatus.PENDING,
            identity_ref=customer.identity_ref,
            merchant_id=merchant_id,
            subtotal=subtotal,
            delivery_fee=self._delivery_fee,
            total_amount=total,
            item_count=sum(line.quantity for line in lines),
            cart_cleared=cleared,
        )

    async def _cancel_orphan(self, order_id: str) -> None:
        """Mark an order whose items could not be written as cancelled (best effort)."""
        result = await self._orders.update({"status": OrderStatus.CANCELLED}, id=order_id)
        if result.error:
            logger.error(
                "Could not cancel order without items",
                order_id=order_id,
                error=result.error.message,
            )
        else:
            logger.warning("Cancelled order without items", order_id=order_id)
