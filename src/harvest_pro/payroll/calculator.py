"""Crew payroll: per-picker wage-shield breakdown plus day totals."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from harvest_pro.database.models import HarvestSettings, Picker

from .compliance import (
    effective_hourly_rate,
    minimum_owed,
    piece_earnings,
    to_cents,
    total_earnings,
)


@dataclass
class PickerPay:
    picker_id: str
    employee_id: str
    name: str
    buckets: int
    hours: float
    piece_earnings: float
    minimum_owed: float
    total_earnings: float
    hourly_rate: float
    status: str = "active"

    @property
    def is_below_minimum(self) -> bool:
        """True when the wage shield had to top this picker up."""
        return self.minimum_owed > 0


@dataclass
class PayrollSummary:
    orchard_id: str
    date: str
    piece_rate: float
    min_wage_rate: float
    pickers: list[PickerPay] = field(default_factory=list)
    total_buckets: int = 0
    total_hours: float = 0.0
    total_piece_earnings: float = 0.0
    total_minimum_owed: float = 0.0
    total_earnings: float = 0.0
    average_buckets_per_hour: float = 0.0

    @property
    def workers_below_minimum(self) -> int:
        return sum(1 for p in self.pickers if p.is_below_minimum)

    @property
    def compliance_rate(self) -> float:
        """Percentage of pickers earning minimum wage from piece rate alone."""
        if not self.pickers:
            return 100.0
        compliant = len(self.pickers) - self.workers_below_minimum
        return round(compliant / len(self.pickers) * 100, 1)


def picker_pay(picker: Picker, buckets: int,
               settings: HarvestSettings) -> PickerPay:
    return PickerPay(
        picker_id=picker.id,
        employee_id=picker.picker_id,
        name=picker.display_name,
        buckets=buckets,
        hours=picker.hours,
        piece_earnings=piece_earnings(buckets, settings.piece_rate),
        minimum_owed=minimum_owed(buckets, picker.hours, settings.piece_rate,
                                  settings.min_wage_rate),
        total_earnings=total_earnings(buckets, picker.hours,
                                      settings.piece_rate,
                                      settings.min_wage_rate),
        hourly_rate=effective_hourly_rate(buckets, picker.hours,
                                          settings.piece_rate),
        status=picker.status,
    )


def calculate_payroll(crew: list[Picker], settings: HarvestSettings,
                      extra_bucket_counts: Optional[dict[str, int]] = None,
                      date: str = "") -> PayrollSummary:
    """Pay every non-archived picker in ``crew``.

    A picker's bucket count is ``total_buckets_today`` plus any entry for
    its id in ``extra_bucket_counts`` (locally scanned, not yet synced).
    """
    extra = extra_bucket_counts or {}
    summary = PayrollSummary(
        orchard_id=settings.orchard_id,
        date=date,
        piece_rate=settings.piece_rate,
        min_wage_rate=settings.min_wage_rate,
    )

    piece_total = Decimal(0)
    owed_total = Decimal(0)
    hours_total = Decimal(0)
    for picker in crew:
        if picker.is_archived:
            continue
        buckets = picker.total_buckets_today + extra.get(picker.id, 0)
        pay = picker_pay(picker, buckets, settings)
        summary.pickers.append(pay)
        summary.total_buckets += buckets
        hours_total += Decimal(str(pay.hours))
        piece_total += Decimal(str(pay.piece_earnings))
        owed_total += Decimal(str(pay.minimum_owed))

    summary.total_hours = float(hours_total)
    summary.total_piece_earnings = to_cents(piece_total)
    summary.total_minimum_owed = to_cents(owed_total)
    summary.total_earnings = to_cents(piece_total + owed_total)
    if hours_total > 0:
        summary.average_buckets_per_hour = round(
            summary.total_buckets / float(hours_total), 1
        )
    return summary
