from fastapi import APIRouter, Depends

from app.api.deps import get_payment_settings
from app.schemas.discounts import FeeQuoteRequest
from app.services import fee_service
from app.services.fee_service import PaymentSettingsProvider

router = APIRouter(prefix="/fees", tags=["fees"])


@router.post("/quote")
def fee_quote(body: FeeQuoteRequest, provider: PaymentSettingsProvider = Depends(get_payment_settings)):
    q = fee_service.quote(body.subtotal, body.paymentMethod, provider.current())
    q["config_stale"] = provider.is_stale()
    return q
