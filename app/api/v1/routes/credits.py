from fastapi import APIRouter, Depends

from app.api.deps import get_lifecycle
from app.services.booking_service import BookingLifecycle

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/{user_id}")
def credit_balance(user_id: str, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    wallet = lifecycle.wallet
    grants = wallet.available_credit(user_id)
    return {
        "userId": user_id,
        "totalAvailable": sum((g.amount for g in grants), 0),
        "credits": [
            {"id": g.id, "amount": g.amount, "expiresAt": g.expires_at, "source": g.source} for g in grants
        ],
        "usage": [
            {
                "id": u.id,
                "creditId": u.credit_id,
                "bookingId": u.booking_id,
                "actionType": u.action_type,
                "amountUsed": u.amount_used,
                "status": u.status,
                "usedAt": u.used_at,
            }
            for u in wallet.usage_history(user_id)
        ],
    }
