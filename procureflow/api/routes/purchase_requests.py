"""Purchase request API routes.

Purchase requests are created by checkout (from the agent or a UI) and
are read-only here.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from procureflow.api.dependencies import require_user_id
from procureflow.api.schemas import PurchaseRequestListResponse, PurchaseRequestResponse
from procureflow.db.connection import get_db
from procureflow.db.models import PurchaseRequestStatus
from procureflow.services.checkout_service import CheckoutService, purchase_request_to_dict

router = APIRouter(prefix="/purchase-requests", tags=["purchase-requests"])


def get_checkout_service(db: Session = Depends(get_db)) -> CheckoutService:
    """Dependency to get CheckoutService instance."""
    return CheckoutService(db)


@router.get("", response_model=PurchaseRequestListResponse)
def list_purchase_requests(
    status: PurchaseRequestStatus | None = Query(None, description="Filter by status"),
    user_id: str = Depends(require_user_id),
    service: CheckoutService = Depends(get_checkout_service),
) -> PurchaseRequestListResponse:
    """List the caller's purchase requests, newest first.

    Args:
        status: Optional status filter.
        user_id: Caller from the X-User-Id header.
        service: CheckoutService instance.

    Returns:
        Purchase requests with their line snapshots.
    """
    rows = service.get_purchase_requests_for_user(
        user_id, status=status.value if status else None
    )
    return PurchaseRequestListResponse(
        purchase_requests=[
            PurchaseRequestResponse(**purchase_request_to_dict(pr)) for pr in rows
        ],
        total=len(rows),
    )


@router.get("/{request_id}", response_model=PurchaseRequestResponse)
def get_purchase_request(
    request_id: str,
    user_id: str = Depends(require_user_id),
    service: CheckoutService = Depends(get_checkout_service),
) -> PurchaseRequestResponse:
    """Get one of the caller's purchase requests.

    Raises:
        PurchaseRequestNotFoundError: If missing or owned by another user.
    """
    pr = service.get_purchase_request_by_id(user_id, request_id)
    return PurchaseRequestResponse(**purchase_request_to_dict(pr))
