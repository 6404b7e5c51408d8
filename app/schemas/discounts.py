from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel
from typing import Dict, List, Optional

from app.models.activity_log import ActivityLogEntry
from app.models.discount_ledger import DiscountLedgerEntry


class PassValidateRequest(BaseModel):
    userId: str
    passType: str
    startAt: datetime
    endAt: datetime
    pax: int = 1
    memberType: str = "MEMBER"


class PassApplyRequest(BaseModel):
    userId: str
    bookingId: str
    passId: str  # entitlement id, purchase id or pass type


class FeeQuoteRequest(BaseModel):
    subtotal: Decimal
    paymentMethod: Optional[str] = None


class LedgerEntryOut(BaseModel):
    id: str
    bookingId: str
    userId: Optional[str] = None
    discountType: str
    actionType: str
    discountAmount: Decimal
    sourceId: Optional[str] = None
    reversesEntryId: Optional[str] = None
    description: Optional[str] = None
    appliedAt: datetime


class DiscountSummaryOut(BaseModel):
    bookingId: str
    bookingRef: str
    totalDiscount: Decimal
    byType: Dict[str, Decimal]
    byAction: Dict[str, Decimal]
    entryCount: int
    details: List[LedgerEntryOut]
    reconciliation: dict


class ActivityOut(BaseModel):
    id: str
    bookingId: str
    bookingRef: str
    activityType: str
    title: str
    description: Optional[str] = None
    actor: Optional[str] = None
    amount: Optional[Decimal] = None
    oldValue: Optional[str] = None
    newValue: Optional[str] = None
    createdAt: datetime


def ledger_entry_out(e: DiscountLedgerEntry) -> LedgerEntryOut:
    return LedgerEntryOut(
        id=e.id,
        bookingId=e.booking_id,
        userId=e.user_id,
        discountType=e.discount_type,
        actionType=e.action_type,
        discountAmount=e.discount_amount,
        sourceId=e.source_id,
        reversesEntryId=e.reverses_entry_id,
        description=e.description,
        appliedAt=e.applied_at,
    )


def summary_out(summary: dict) -> DiscountSummaryOut:
    return DiscountSummaryOut(
        bookingId=summary["booking_id"],
        bookingRef=summary["booking_ref"],
        totalDiscount=summary["total_discount"],
        byType=summary["by_type"],
        byAction=summary["by_action"],
        entryCount=summary["entry_count"],
        details=[
            LedgerEntryOut(
                id=d["id"],
                bookingId=d["booking_id"],
                userId=d["user_id"],
                discountType=d["discount_type"],
                actionType=d["action_type"],
                discountAmount=d["discount_amount"],
                sourceId=d["source_id"],
                reversesEntryId=d["reverses_entry_id"],
                description=d["description"],
                appliedAt=d["applied_at"],
            )
            for d in summary["details"]
        ],
        reconciliation=summary["reconciliation"],
    )


def activity_out(a: ActivityLogEntry) -> ActivityOut:
    return ActivityOut(
        id=a.id,
        bookingId=a.booking_id,
        bookingRef=a.booking_ref,
        activityType=a.activity_type,
        title=a.title,
        description=a.description,
        actor=a.actor,
        amount=a.amount,
        oldValue=a.old_value,
        newValue=a.new_value,
        createdAt=a.created_at,
    )
