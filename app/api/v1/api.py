from fastapi import APIRouter
from app.api.v1.routes.bookings import router as bookings_router
from app.api.v1.routes.passes import router as passes_router
from app.api.v1.routes.discounts import router as discounts_router
from app.api.v1.routes.credits import router as credits_router
from app.api.v1.routes.fees import router as fees_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings_router)
api_router.include_router(passes_router)
api_router.include_router(discounts_router)
api_router.include_router(credits_router)
api_router.include_router(fees_router)
