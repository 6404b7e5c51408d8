from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from app.core.config import settings
from app.core.errors import ValidationError
from app.models.booking import MemberType

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, end)."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValidationError("start and end must carry a timezone", details={"field": "start_at/end_at"})
        if self.end <= self.start:
            raise ValidationError(
                "end time must be after start time",
                details={"start_at": self.start.isoformat(), "end_at": self.end.isoformat()},
            )

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def hours(self) -> Decimal:
        return Decimal(self.minutes) / Decimal(60)

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.start < other.end and self.end > other.start


def hourly_rate(member_type: str) -> Decimal:
    rates = {
        MemberType.MEMBER: settings.HOURLY_RATE_MEMBER,
        MemberType.STUDENT: settings.HOURLY_RATE_STUDENT,
        MemberType.TUTOR: settings.HOURLY_RATE_TUTOR,
    }
    if member_type not in rates:
        raise ValidationError(f"unknown member type {member_type!r}", details={"allowed": list(MemberType.ALL)})
    return Decimal(str(rates[member_type]))


def party_hourly_rate(members: int, students: int, tutors: int) -> Decimal:
    return (
        members * hourly_rate(MemberType.MEMBER)
        + students * hourly_rate(MemberType.STUDENT)
        + tutors * hourly_rate(MemberType.TUTOR)
    )


def gross_cost(window: TimeWindow, members: int, students: int, tutors: int) -> Decimal:
    """Hours x the sum of each person's hourly rate."""
    return money(window.hours * party_hourly_rate(members, students, tutors))
