"""
Cart Engine.

Ordered line items bound to a single merchant. Every mutation goes through
``_commit``, which re-checks the single-merchant invariant, bumps the cart
version, persists the cart and notifies listeners.
"""

from __future__ import annotations

import itertools
import json
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from shared.config.logging import cart_logger as logger
from shared.utils.validators import CatalogItem, validate_input
from storefront.backend.storage import LocalStorage


@dataclass(frozen=True)
class CartItem:
    """One distinct catalog item in the cart."""

    item_id: str
    name: str
    price: Decimal
    quantity: int
    merchant_id: str

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "price": str(self.price),
            "quantity": self.quantity,
            "merchant_id": self.merchant_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartItem":
        quantity = int(data["quantity"])
        if quantity <= 0:
            raise ValueError(f"Invalid quantity {quantity}")
        return cls(
            item_id=str(data["item_id"]),
            name=str(data["name"]),
            price=Decimal(str(data["price"])),
            quantity=quantity,
            merchant_id=str(data["merchant_id"]),
        )


class AddOutcome(str, Enum):
    """What ``add_item`` did."""

    ADDED = "added"
    INCREMENTED = "incremented"
    REPLACED_CART = "replaced_cart"
    DECLINED = "declined"


# (current_merchant_id, requested_merchant_id) -> True to clear the cart and add
MerchantSwitchConfirm = Callable[[str, str], bool]
CartListener = Callable[["CartEngine"], None]


class CartEngine:
    """
    Single-merchant shopping cart.

    Usage:
        cart = CartEngine(storage, "cart")
        cart.add_item({"id": "x", "name": "Taco", "price": "9.99"}, "m1")
        outcome = cart.add_item(other_item, "m2", confirm_switch=ask_user)
    """

    def __init__(self, storage: LocalStorage | None = None, storage_key: str = "cart"):
        self._storage = storage
        self._storage_key = storage_key
        self._lines: list[CartItem] = []
        self._merchant_id: str | None = None
        self._version = 0
        self._listeners: dict[int, CartListener] = {}
        self._listener_ids = itertools.count(1)

        if storage is not None:
            self._restore()

    # =========================================================================
    # Read side
    # =========================================================================

    @property
    def lines(self) -> tuple[CartItem, ...]:
        return tuple(self._lines)

    @property
    def merchant_id(self) -> str | None:
        return self._merchant_id

    @property
    def version(self) -> int:
        """Incremented on every mutation."""
        return self._version

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def get_line(self, item_id: str) -> CartItem | None:
        for line in self._lines:
            if line.item_id == item_id:
                return line
        return None

    def total_amount(self) -> Decimal:
        """Sum of price x quantity over all lines."""
        return sum((line.line_total for line in self._lines), Decimal("0"))

    def item_count(self) -> int:
        """Sum of quantities over all lines."""
        return sum(line.quantity for line in self._lines)

    def snapshot(self) -> dict[str, Any]:
        return {
            "merchant_id": self._merchant_id,
            "version": self._version,
            "items": [line.to_dict() for line in self._lines],
            "item_count": self.item_count(),
            "total_amount": str(self.total_amount()),
        }

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    # =========================================================================
    # Mutations
    # =========================================================================

    def add_item(
        self,
        item: CatalogItem | dict[str, Any],
        merchant_id: str,
        confirm_switch: MerchantSwitchConfirm | None = None,
    ) -> AddOutcome:
        """
        Add one unit of ``item`` sold by ``merchant_id``.

        Adding from a different merchant than the cart's replaces the cart,
        but only if ``confirm_switch`` returns True. Without a confirmation
        callback, or when it declines, the cart is left unchanged.
        """
        item = validate_input(CatalogItem, item)
        if not merchant_id:
            raise ValueError("merchant_id is required")

        lines = list(self._lines)
        outcome = AddOutcome.ADDED

        if self._merchant_id is not None and self._merchant_id != merchant_id:
            current = self._merchant_id
            if confirm_switch is None or not confirm_switch(current, merchant_id):
                logger.info(
                    "Merchant switch declined, cart unchanged",
                    current_merchant_id=current,
                    requested_merchant_id=merchant_id,
                )
                return AddOutcome.DECLINED
            # The callback may have mutated the cart; start from what is there now
            if self._merchant_id == merchant_id:
                lines = list(self._lines)
            else:
                lines = []
                outcome = AddOutcome.REPLACED_CART

        for index, line in enumerate(lines):
            if line.item_id == item.id:
                lines[index] = replace(line, quantity=line.quantity + 1)
                if outcome is AddOutcome.ADDED:
                    outcome = AddOutcome.INCREMENTED
                break
        else:
            lines.append(
                CartItem(
                    item_id=item.id,
                    name=item.name,
                    price=item.price,
                    quantity=1,
                    merchant_id=merchant_id,
                )
            )

        self._commit(lines, merchant_id)
        return outcome

    def update_quantity(self, item_id: str, quantity: int) -> None:
        """Set a line's quantity. Zero or less removes the line."""
        if quantity <= 0:
            self.remove_item(item_id)
            return

        lines = list(self._lines)
        for index, line in enumerate(lines):
            if line.item_id == item_id:
                if line.quantity == quantity:
                    return
                lines[index] = replace(line, quantity=quantity)
                self._commit(lines, self._merchant_id)
                return

    def remove_item(self, item_id: str) -> bool:
        """Drop a line. Returns False if the item was not in the cart."""
        lines = [line for line in self._lines if line.item_id != item_id]
        if len(lines) == len(self._lines):
            return False
        self._commit(lines, self._merchant_id if lines else None)
        return True

    def clear(self) -> None:
        """Empty the cart and release the merchant binding."""
        if not self._lines and self._merchant_id is None:
            return
        self._commit([], None)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _check_invariant(lines: list[CartItem], merchant_id: str | None) -> None:
        if not lines:
            if merchant_id is not None:
                raise RuntimeError("Empty cart must not be bound to a merchant")
            return
        if merchant_id is None or any(line.merchant_id != merchant_id for line in lines):
            raise RuntimeError("Cart lines must all belong to the cart's merchant")
        if any(line.quantity <= 0 for line in lines):
            raise RuntimeError("Cart lines must have a positive quantity")

    def _commit(self, lines: list[CartItem], merchant_id: str | None) -> None:
        if not lines:
            merchant_id = None
        self._check_invariant(lines, merchant_id)

        self._lines = lines
        self._merchant_id = merchant_id
        self._version += 1

        self._persist()
        for listener_id, listener in list(self._listeners.items()):
            try:
                listener(self)
            except Exception as e:
                logger.error("Cart listener failed", listener_id=listener_id, error=str(e), exc_info=True)

    def _persist(self) -> None:
        if self._storage is None:
            return
        if not self._lines:
            self._storage.remove_item(self._storage_key)
            return
        payload = {
            "merchant_id": self._merchant_id,
            "version": self._version,
            "items": [line.to_dict() for line in self._lines],
        }
        self._storage.set_item(self._storage_key, json.dumps(payload))

    def _restore(self) -> None:
        raw = self._storage.get_item(self._storage_key)
        if not raw:
            return
        try:
            payload = json.loads(raw)
            lines = [CartItem.from_dict(entry) for entry in payload["items"]]
            merchant_id = payload.get("merchant_id") if lines else None
            self._check_invariant(lines, merchant_id)
        except (ValueError, KeyError, TypeError, ArithmeticError, RuntimeError) as e:
            logger.warning("Discarding persisted cart", error=str(e))
            self._storage.remove_item(self._storage_key)
            return

        self._lines = lines
        self._merchant_id = merchant_id
        self._version = int(payload.get("version") or 0)
        logger.info("Restored cart", merchant_id=merchant_id, lines=len(lines))
