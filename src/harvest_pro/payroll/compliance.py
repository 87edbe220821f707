"""NZ labour compliance checks: wage shield, breaks and hours.

Everything here is a pure function of its inputs. Money is computed with
``Decimal`` and rounded to cents half-up so totals never drift by a cent
between the crew view and the payroll export.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from harvest_pro.utils.constants import (
    BREAK_REQUIREMENTS,
    BREAK_TYPES,
    HYDRATION_GRACE_MINUTES,
    MINIMUM_WAGE,
    NEEDS_BREAK_AT_MINUTES,
    PIECE_RATE,
    REST_BREAK_ESCALATION_MINUTES,
)

_CENT = Decimal("0.01")


def to_cents(value) -> float:
    """Round a money amount to cents, half-up."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def _money(value) -> Decimal:
    return Decimal(str(value))


# ── Wage shield ─────────────────────────────────────────────────

def piece_earnings(buckets: int, piece_rate: float = PIECE_RATE) -> float:
    return to_cents(_money(buckets) * _money(piece_rate))


def minimum_owed(buckets: int, hours: float, piece_rate: float = PIECE_RATE,
                 min_wage_rate: float = MINIMUM_WAGE) -> float:
    """Top-up that lifts piece earnings to the minimum wage for the hours."""
    floor = _money(hours) * _money(min_wage_rate)
    earned = _money(buckets) * _money(piece_rate)
    return to_cents(max(Decimal(0), floor - earned))


def total_earnings(buckets: int, hours: float, piece_rate: float = PIECE_RATE,
                   min_wage_rate: float = MINIMUM_WAGE) -> float:
    return to_cents(
        _money(piece_earnings(buckets, piece_rate))
        + _money(minimum_owed(buckets, hours, piece_rate, min_wage_rate))
    )


def effective_hourly_rate(buckets: int, hours: float,
                          piece_rate: float = PIECE_RATE) -> float:
    if hours <= 0:
        return 0.0
    return to_cents(_money(buckets) * _money(piece_rate) / _money(hours))


@dataclass
class WageCheck:
    is_compliant: bool
    effective_hourly_rate: float
    minimum_wage: float
    shortfall: float = 0.0
    top_up_required: float = 0.0


def check_wage_compliance(buckets: int, hours: float,
                          piece_rate: float = PIECE_RATE,
                          min_wage_rate: float = MINIMUM_WAGE) -> WageCheck:
    rate = effective_hourly_rate(buckets, hours, piece_rate)
    compliant = rate >= min_wage_rate
    shortfall = 0.0 if compliant else to_cents(
        _money(min_wage_rate) - _money(rate)
    )
    return WageCheck(
        is_compliant=compliant,
        effective_hourly_rate=rate,
        minimum_wage=min_wage_rate,
        shortfall=shortfall,
        top_up_required=minimum_owed(buckets, hours, piece_rate,
                                     min_wage_rate),
    )


def minimum_buckets_per_hour(piece_rate: float = PIECE_RATE,
                             min_wage_rate: float = MINIMUM_WAGE) -> float:
    """Buckets per hour needed to match minimum wage, rounded up to 0.1."""
    if piece_rate <= 0:
        raise ValueError("piece_rate must be positive")
    return math.ceil(min_wage_rate / piece_rate * 10) / 10


# ── Breaks ──────────────────────────────────────────────────────

def _check_break_type(break_type: str):
    if break_type not in BREAK_TYPES:
        raise ValueError(f"Unknown break type: {break_type}")


def _break_interval(break_type: str) -> int:
    _check_break_type(break_type)
    return BREAK_REQUIREMENTS[f"{break_type}_interval_minutes"]


def required_break_duration(break_type: str) -> int:
    _check_break_type(break_type)
    return BREAK_REQUIREMENTS[f"{break_type}_duration_minutes"]


def next_break_due(last_break_at: Optional[datetime], break_type: str,
                   work_start: datetime) -> datetime:
    base = last_break_at or work_start
    return base + timedelta(minutes=_break_interval(break_type))


@dataclass
class BreakCheck:
    break_type: str
    due_at: datetime
    overdue: bool
    minutes_overdue: int = 0


def break_overdue(last_break_at: Optional[datetime], break_type: str,
                  work_start: datetime, now: datetime) -> BreakCheck:
    due_at = next_break_due(last_break_at, break_type, work_start)
    overdue = now > due_at
    minutes = int((now - due_at).total_seconds() // 60) if overdue else 0
    return BreakCheck(break_type, due_at, overdue, minutes)


@dataclass
class WorkHoursCheck:
    needs_break: bool
    max_recommended_reached: bool
    warning: str = ""


def check_work_hours(consecutive_minutes: int,
                     total_minutes_today: int) -> WorkHoursCheck:
    max_consecutive = BREAK_REQUIREMENTS["max_consecutive_work_hours"] * 60
    max_daily = BREAK_REQUIREMENTS["recommended_max_daily_hours"] * 60
    reached = total_minutes_today >= max_daily

    warning = ""
    if consecutive_minutes >= max_consecutive:
        warning = (
            f"Worker has been working {round(consecutive_minutes / 60)} "
            f"hours without a mandatory break"
        )
    elif reached:
        warning = (
            f"Worker has exceeded recommended "
            f"{BREAK_REQUIREMENTS['recommended_max_daily_hours']} hours "
            f"for the day"
        )
    return WorkHoursCheck(
        needs_break=consecutive_minutes >= NEEDS_BREAK_AT_MINUTES,
        max_recommended_reached=reached,
        warning=warning,
    )


# ── Full check ──────────────────────────────────────────────────

@dataclass
class ComplianceInput:
    picker_id: str
    bucket_count: int
    hours_worked: float
    work_start: datetime
    consecutive_minutes_worked: int = 0
    total_minutes_today: int = 0
    last_rest_break_at: Optional[datetime] = None
    last_meal_break_at: Optional[datetime] = None
    last_hydration_at: Optional[datetime] = None
    piece_rate: float = PIECE_RATE
    min_wage_rate: float = MINIMUM_WAGE


@dataclass
class ComplianceViolation:
    type: str  # break_overdue, wage_below_minimum, excessive_hours, hydration_reminder
    severity: str  # low, medium, high
    message: str
    occurred_at: datetime
    details: dict = field(default_factory=dict)


@dataclass
class ComplianceStatus:
    picker_id: str
    violations: list[ComplianceViolation]
    next_break: Optional[BreakCheck]
    wage: WageCheck
    work_hours: WorkHoursCheck

    @property
    def is_compliant(self) -> bool:
        """Low-severity reminders do not count against compliance."""
        return not any(v.severity != "low" for v in self.violations)


def check_picker_compliance(data: ComplianceInput,
                            now: datetime) -> ComplianceStatus:
    """Run every check for one picker at ``now``.

    A picker who has not worked yet (``hours_worked == 0``) never has
    violations.
    """
    wage = check_wage_compliance(data.bucket_count, data.hours_worked,
                                 data.piece_rate, data.min_wage_rate)
    hours = check_work_hours(data.consecutive_minutes_worked,
                             data.total_minutes_today)
    checks = [
        break_overdue(data.last_rest_break_at, "rest", data.work_start, now),
        break_overdue(data.last_meal_break_at, "meal", data.work_start, now),
        break_overdue(data.last_hydration_at, "hydration",
                      data.work_start, now),
    ]
    rest, meal, hydration = checks
    next_break = min(checks, key=lambda c: c.due_at)

    violations = []
    if data.hours_worked <= 0:
        return ComplianceStatus(data.picker_id, violations, next_break,
                                wage, hours)

    if not wage.is_compliant and data.hours_worked >= 1:
        violations.append(ComplianceViolation(
            type="wage_below_minimum",
            severity="high",
            message=(
                f"Effective rate ${wage.effective_hourly_rate:.2f}/hr is "
                f"below minimum wage ${data.min_wage_rate:.2f}/hr"
            ),
            occurred_at=now,
            details={"shortfall": wage.shortfall,
                     "top_up_required": wage.top_up_required},
        ))

    if rest.overdue:
        severity = ("high"
                    if rest.minutes_overdue > REST_BREAK_ESCALATION_MINUTES
                    else "medium")
        violations.append(ComplianceViolation(
            type="break_overdue",
            severity=severity,
            message=f"Rest break overdue by {rest.minutes_overdue} minutes",
            occurred_at=now,
            details={"break_type": "rest", "due_at": rest.due_at},
        ))

    if meal.overdue:
        violations.append(ComplianceViolation(
            type="break_overdue",
            severity="high",
            message=f"Meal break overdue by {meal.minutes_overdue} minutes",
            occurred_at=now,
            details={"break_type": "meal", "due_at": meal.due_at},
        ))

    if hydration.overdue and hydration.minutes_overdue > HYDRATION_GRACE_MINUTES:
        violations.append(ComplianceViolation(
            type="hydration_reminder",
            severity="low",
            message=(
                f"Hydration reminder - {hydration.minutes_overdue} minutes "
                f"since last water break"
            ),
            occurred_at=now,
        ))

    if hours.warning:
        violations.append(ComplianceViolation(
            type="excessive_hours",
            severity="high",
            message=hours.warning,
            occurred_at=now,
        ))

    return ComplianceStatus(data.picker_id, violations, next_break,
                            wage, hours)
