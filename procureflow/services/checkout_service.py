"""Checkout: convert a cart into a purchase request.

Checkout is atomic. The purchase request, its line snapshots, and the
cart clear are committed together, and any failure rolls the session
back so the cart is left exactly as it was.

Example:
    svc = CheckoutService(db)
    pr = svc.checkout_cart("user-1", notes="Q3 office refresh")
    pr.request_number  # "PR-2026-0001"
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from procureflow.db.models import (
    Cart,
    Item,
    PurchaseRequest,
    PurchaseRequestItem,
    PurchaseRequestStatus,
    utc_now_iso,
)
from procureflow.errors import (
    CartConflictError,
    ConflictError,
    EmptyCartError,
    PurchaseRequestNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "General"
PAYMENT_METHODS = frozenset({"credit_card", "purchase_order", "invoice"})
REQUEST_SOURCES = frozenset({"agent", "ui"})


def purchase_request_to_dict(pr: PurchaseRequest) -> dict[str, Any]:
    """Plain-data view of a purchase request for replies and the API."""
    return {
        "id": pr.id,
        "request_number": pr.request_number,
        "status": pr.status,
        "total": float(pr.total),
        "notes": pr.notes,
        "source": pr.source,
        "payment_method": pr.payment_method,
        "shipping_address": json.loads(pr.shipping_address_json)
        if pr.shipping_address_json
        else None,
        "created_at": pr.created_at,
        "items": [
            {
                "item_id": line.item_id,
                "name": line.name,
                "category": line.category,
                "description": line.description,
                "unit_price": float(line.unit_price),
                "quantity": line.quantity,
                "subtotal": float(line.subtotal),
            }
            for line in pr.items
        ],
    }


class CheckoutService:
    """Purchase request creation and lookup."""

    def __init__(self, db: Session) -> None:
        """Initialize with a SQLAlchemy session.

        Args:
            db: Active database session.
        """
        self.db = db

    def next_request_number(self, year: int | None = None) -> str:
        """Next PR-YYYY-#### number for the year.

        The sequence restarts at 0001 each year and grows past four
        digits if a year exceeds 9999 requests.
        """
        year = year or datetime.now(UTC).year
        prefix = f"PR-{year}-"
        last = (
            self.db.query(PurchaseRequest.request_number)
            .filter(PurchaseRequest.request_number.like(f"{prefix}%"))
            .order_by(
                func.length(PurchaseRequest.request_number).desc(),
                PurchaseRequest.request_number.desc(),
            )
            .first()
        )
        sequence = int(last[0][len(prefix):]) + 1 if last else 1
        return f"{prefix}{sequence:04d}"

    def checkout_cart(
        self,
        user_id: str,
        notes: str | None = None,
        shipping_address: dict[str, Any] | None = None,
        payment_method: str | None = None,
        source: str = "agent",
    ) -> PurchaseRequest:
        """Create a purchase request from the user's cart and clear it.

        Args:
            user_id: Cart owner.
            notes: Optional justification (<= 1000 chars).
            shipping_address: Optional validated address dict.
            payment_method: Optional credit_card, purchase_order, invoice.
            source: "agent" or "ui".

        Returns:
            The committed PurchaseRequest.

        Raises:
            EmptyCartError: If the cart has no lines.
            ValidationError: On an unknown payment method or source.
            ConflictError: If the request number was taken concurrently.
        """
        if payment_method is not None and payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Unsupported payment method: {payment_method}")
        if source not in REQUEST_SOURCES:
            raise ValidationError(f"Unsupported source: {source}")

        cart = self.db.query(Cart).filter(Cart.user_id == user_id).first()
        if cart is None or not cart.items:
            raise EmptyCartError()

        try:
            item_ids = [line.item_id for line in cart.items]
            catalog = {
                item.id: item
                for item in self.db.query(Item).filter(Item.id.in_(item_ids)).all()
            }

            pr = PurchaseRequest(
                request_number=self.next_request_number(),
                user_id=user_id,
                total_cents=cart.total_cost_cents,
                notes=notes.strip() if notes and notes.strip() else None,
                source=source,
                status=PurchaseRequestStatus.submitted.value,
                shipping_address_json=json.dumps(shipping_address) if shipping_address else None,
                payment_method=payment_method,
            )
            for number, line in enumerate(cart.items, start=1):
                source_item = catalog.get(line.item_id)
                pr.items.append(
                    PurchaseRequestItem(
                        line_number=number,
                        item_id=line.item_id,
                        name=line.item_name,
                        category=source_item.category if source_item else DEFAULT_CATEGORY,
                        description=source_item.description if source_item else "",
                        unit_price_cents=line.unit_price_cents,
                        quantity=line.quantity,
                        subtotal_cents=line.subtotal_cents,
                    )
                )
            self.db.add(pr)

            line_count = len(cart.items)
            cart.items.clear()
            cart.updated_at = utc_now_iso()
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning("Cart changed during checkout for user %s", user_id)
            raise CartConflictError(user_id)
        except IntegrityError:
            self.db.rollback()
            logger.warning("Request number collision during checkout for user %s", user_id)
            raise ConflictError("Checkout collided with another request. Please retry.")
        except Exception:
            self.db.rollback()
            logger.exception("Checkout failed for user %s, cart left unchanged", user_id)
            raise

        logger.info(
            "Checkout created %s for user %s: %d line(s), total %s",
            pr.request_number, user_id, line_count, pr.total,
        )
        return pr

    def get_purchase_requests_for_user(
        self, user_id: str, status: str | None = None
    ) -> list[PurchaseRequest]:
        """List a user's purchase requests, newest first."""
        q = self.db.query(PurchaseRequest).filter(PurchaseRequest.user_id == user_id)
        if status is not None:
            q = q.filter(PurchaseRequest.status == status)
        return q.order_by(PurchaseRequest.created_at.desc()).all()

    def get_purchase_request_by_id(self, user_id: str, request_id: str) -> PurchaseRequest:
        """Fetch one of the user's purchase requests.

        Raises:
            PurchaseRequestNotFoundError: If missing or owned by another user.
        """
        pr = (
            self.db.query(PurchaseRequest)
            .filter(
                PurchaseRequest.id == request_id,
                PurchaseRequest.user_id == user_id,
            )
            .first()
        )
        if pr is None:
            raise PurchaseRequestNotFoundError(request_id)
        return pr
