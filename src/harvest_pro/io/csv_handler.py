"""CSV export for payroll reports and failed sync entries."""

import csv
import json
from datetime import date as _date
from pathlib import Path
from typing import Optional

from harvest_pro.config import Config
from harvest_pro.database.models import HarvestSettings, Picker
from harvest_pro.payroll.calculator import PayrollSummary, calculate_payroll
from harvest_pro.sync.dead_letter import CategorizedFailures, describe_error

PAYROLL_COLUMNS = [
    "Employee ID", "Name", "Buckets", "Hours",
    "Piece Earnings (NZD)", "Minimum Top-Up (NZD)",
    "Total Earnings (NZD)", "Status",
]

DEAD_LETTER_COLUMNS = [
    "id", "type", "severity", "retry_count", "error_code",
    "explanation", "timestamp", "payload",
]


def prepare_payroll_export(crew: list[Picker],
                           settings: Optional[HarvestSettings] = None,
                           date: str = "") -> PayrollSummary:
    """Compute the payroll rows for a report on ``date`` (default today)."""
    settings = settings or HarvestSettings(
        piece_rate=Config.DEFAULT_PIECE_RATE,
        min_wage_rate=Config.DEFAULT_MIN_WAGE_RATE,
    )
    return calculate_payroll(
        crew, settings, date=date or _date.today().isoformat()
    )


def payroll_rows(summary: PayrollSummary) -> list[list]:
    return [
        [
            p.employee_id or "N/A",
            p.name,
            p.buckets,
            f"{p.hours:.1f}",
            f"{p.piece_earnings:.2f}",
            f"{p.minimum_owed:.2f}",
            f"{p.total_earnings:.2f}",
            p.status,
        ]
        for p in summary.pickers
    ]


def export_payroll_csv(summary: PayrollSummary, filepath: str | Path) -> int:
    """Write a payroll report. Returns the number of picker rows written."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow([f"Payroll Report - {summary.date}"])
        writer.writerow([])
        writer.writerow(PAYROLL_COLUMNS)
        writer.writerows(payroll_rows(summary))

        writer.writerow([])
        writer.writerow(["SUMMARY"])
        writer.writerow(["Total Buckets", "", summary.total_buckets])
        writer.writerow(["Total Hours", "", "", f"{summary.total_hours:.1f}"])
        writer.writerow(["Total Piece Earnings", "", "", "",
                         f"{summary.total_piece_earnings:.2f}"])
        writer.writerow(["Total Minimum Top-Up", "", "", "", "",
                         f"{summary.total_minimum_owed:.2f}"])
        writer.writerow(["Grand Total", "", "", "", "", "",
                         f"{summary.total_earnings:.2f}"])
        writer.writerow(["Avg Buckets/Hour",
                         summary.average_buckets_per_hour])
    return len(summary.pickers)


def export_dead_letters_csv(failures: CategorizedFailures,
                            filepath: str | Path) -> int:
    """Export failed sync entries, most severe first. Returns row count."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    items = failures.all()
    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=DEAD_LETTER_COLUMNS)
        writer.writeheader()
        for item in items:
            code = getattr(item, "error_code", "") or getattr(
                item, "last_error_code", "")
            message = getattr(item, "failure_reason", "") or getattr(
                item, "last_error_message", "")
            writer.writerow({
                "id": item.id,
                "type": item.type,
                "severity": item.severity,
                "retry_count": item.retry_count,
                "error_code": code,
                "explanation": describe_error(code, message),
                "timestamp": item.timestamp,
                "payload": json.dumps(item.payload, sort_keys=True),
            })
    return len(items)
