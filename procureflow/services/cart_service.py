"""Per-user cart mutations.

Each line snapshots the item's name and price when it is first added;
later catalog edits never change an existing line. Concurrent writers
are detected through the cart row's version counter and surface as
CartConflictError.

Example:
    svc = CartService(db)
    cart = svc.add_item_to_cart("user-1", item_id, quantity=2)
    svc.update_cart_item_quantity("user-1", item_id, 0)  # removes the line
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from procureflow.db.models import (
    MAX_CART_ITEMS,
    MAX_ITEM_QUANTITY,
    MIN_ITEM_QUANTITY,
    Cart,
    CartItem,
    Item,
    ItemStatus,
    cents_to_decimal,
    utc_now_iso,
)
from procureflow.errors import (
    CartConflictError,
    CartLimitError,
    ItemNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _require_quantity(quantity: Any, low: int, high: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(
            "Quantity must be a whole number",
            field_errors={"quantity": "must be an integer"},
        )
    if not low <= quantity <= high:
        raise ValidationError(
            f"Quantity must be between {low} and {high}",
            field_errors={"quantity": f"must be between {low} and {high}"},
        )
    return quantity


def cart_to_dict(cart: Cart) -> dict[str, Any]:
    """Plain-data cart snapshot for tool results and client metadata."""
    return {
        "id": cart.id,
        "user_id": cart.user_id,
        "items": [
            {
                "item_id": line.item_id,
                "name": line.item_name,
                "unit_price": float(line.unit_price),
                "quantity": line.quantity,
                "subtotal": float(line.subtotal),
            }
            for line in cart.items
        ],
        "line_count": len(cart.items),
        "item_count": cart.item_count,
        "total_cost": float(cart.total_cost),
    }


def empty_cart_dict(user_id: str) -> dict[str, Any]:
    """Snapshot for a user who has no cart row yet."""
    return {
        "id": None,
        "user_id": user_id,
        "items": [],
        "line_count": 0,
        "item_count": 0,
        "total_cost": 0.0,
    }


def _line_price(line: CartItem, price: Decimal) -> dict[str, Any]:
    return {"item_id": line.item_id, "name": line.item_name, "price": float(price)}


def cart_analytics(cart: Cart | None) -> dict[str, Any]:
    """Unit-price statistics over a cart's lines.

    Ties go to the line added first. A missing or empty cart yields None
    for every price statistic.
    """
    lines = list(cart.items) if cart is not None else []
    stats: dict[str, Any] = {
        "line_count": len(lines),
        "item_count": sum(line.quantity for line in lines),
        "total_cost": float(cents_to_decimal(sum(line.subtotal_cents for line in lines))),
        "highest_unit_price": None,
        "lowest_unit_price": None,
        "average_unit_price": None,
        "most_expensive_line": None,
    }
    if not lines:
        return stats

    highest = max(lines, key=lambda line: line.unit_price_cents)
    lowest = min(lines, key=lambda line: line.unit_price_cents)
    priciest = max(lines, key=lambda line: line.subtotal_cents)
    average_cents = (
        Decimal(sum(line.unit_price_cents for line in lines)) / len(lines)
    ).quantize(Decimal("1"), rounding=ROUND_HALF_UP)

    stats["highest_unit_price"] = _line_price(highest, highest.unit_price)
    stats["lowest_unit_price"] = _line_price(lowest, lowest.unit_price)
    stats["average_unit_price"] = float(cents_to_decimal(int(average_cents)))
    stats["most_expensive_line"] = {
        **_line_price(priciest, priciest.subtotal),
        "quantity": priciest.quantity,
    }
    return stats


class CartService:
    """Cart operations for one session.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, db: Session) -> None:
        """Initialize with a SQLAlchemy session.

        Args:
            db: Active database session.
        """
        self.db = db

    def find_cart(self, user_id: str) -> Cart | None:
        return self.db.query(Cart).filter(Cart.user_id == user_id).first()

    def get_cart_for_user(self, user_id: str) -> Cart:
        """Return the user's cart, creating an empty one if needed."""
        if not user_id:
            raise ValidationError("User id is required")
        cart = self.find_cart(user_id)
        if cart is None:
            cart = Cart(user_id=user_id)
            self.db.add(cart)
            self.db.flush()
            logger.info("Created cart for user %s", user_id)
        return cart

    def _find_line(self, cart: Cart, item_id: str) -> CartItem | None:
        return next((line for line in cart.items if line.item_id == item_id), None)

    def _save(self, cart: Cart) -> Cart:
        """Flush a mutated cart, bumping its version.

        Raises:
            CartConflictError: If another writer updated the cart first.
        """
        cart.updated_at = utc_now_iso()
        try:
            self.db.flush()
        except StaleDataError:
            self.db.rollback()
            logger.warning("Concurrent cart update detected for user %s", cart.user_id)
            raise CartConflictError(cart.user_id)
        return cart

    def add_item_to_cart(self, user_id: str, item_id: str, quantity: int = 1) -> Cart:
        """Add an item, merging into an existing line.

        Args:
            user_id: Cart owner.
            item_id: Catalog item id (must be active).
            quantity: Units to add (1-999).

        Returns:
            The updated cart.

        Raises:
            ValidationError: Quantity out of range, or the merged line
                would exceed 999.
            ItemNotFoundError: Item missing or not active.
            CartLimitError: Cart already has the maximum number of lines.
        """
        quantity = _require_quantity(quantity, MIN_ITEM_QUANTITY, MAX_ITEM_QUANTITY)

        item = self.db.query(Item).filter(Item.id == item_id).first()
        if item is None or item.status != ItemStatus.active.value:
            raise ItemNotFoundError(item_id)

        cart = self.get_cart_for_user(user_id)
        line = self._find_line(cart, item_id)
        if line is not None:
            merged = line.quantity + quantity
            if merged > MAX_ITEM_QUANTITY:
                raise ValidationError(
                    f"Total quantity for this item cannot exceed {MAX_ITEM_QUANTITY} "
                    f"(currently {line.quantity} in cart)",
                    field_errors={"quantity": f"merged quantity must be at most {MAX_ITEM_QUANTITY}"},
                )
            line.quantity = merged
        else:
            if len(cart.items) >= MAX_CART_ITEMS:
                raise CartLimitError(MAX_CART_ITEMS)
            cart.items.append(
                CartItem(
                    item_id=item.id,
                    item_name=item.name,
                    unit_price_cents=item.price_cents,
                    quantity=quantity,
                )
            )

        self._save(cart)
        logger.info("Added %d x %s to cart of user %s", quantity, item_id, user_id)
        return cart

    def update_cart_item_quantity(self, user_id: str, item_id: str, quantity: int) -> Cart:
        """Set a line's quantity; 0 removes the line.

        Raises:
            ValidationError: Quantity outside 0-999, or item not in cart.
        """
        quantity = _require_quantity(quantity, 0, MAX_ITEM_QUANTITY)
        cart = self.get_cart_for_user(user_id)
        line = self._find_line(cart, item_id)
        if line is None:
            raise ValidationError(f"Item '{item_id}' is not in your cart")

        if quantity == 0:
            cart.items.remove(line)
        else:
            line.quantity = quantity
        self._save(cart)
        logger.info("Set quantity of %s to %d for user %s", item_id, quantity, user_id)
        return cart

    def remove_cart_item(self, user_id: str, item_id: str) -> Cart:
        """Remove a line from the cart.

        Raises:
            ValidationError: If the item is not in the cart.
        """
        cart = self.get_cart_for_user(user_id)
        line = self._find_line(cart, item_id)
        if line is None:
            raise ValidationError(f"Item '{item_id}' is not in your cart")
        cart.items.remove(line)
        self._save(cart)
        logger.info("Removed %s from cart of user %s", item_id, user_id)
        return cart

    def clear_cart(self, user_id: str) -> Cart:
        """Remove every line from the user's cart."""
        cart = self.get_cart_for_user(user_id)
        if cart.items:
            cart.items.clear()
            self._save(cart)
        return cart
