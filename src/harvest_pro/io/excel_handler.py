"""Excel (XLSX) payroll export."""

from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Font

from harvest_pro.io.csv_handler import PAYROLL_COLUMNS
from harvest_pro.payroll.calculator import PayrollSummary


def _autofit(ws):
    # Approximate: widest cell text in each column
    for col in ws.columns:
        max_len = max(len(str(cell.value or "")) for cell in col)
        ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 40)


def export_payroll_excel(summary: PayrollSummary,
                         filepath: str | Path) -> int:
    """Export payroll to a workbook with Payroll and Summary sheets.

    Money cells are numbers rather than text so the totals can be checked
    with spreadsheet formulas. Returns the number of picker rows.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    ws = wb.active
    ws.title = "Payroll"
    ws.append(PAYROLL_COLUMNS)
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for p in summary.pickers:
        ws.append([
            p.employee_id or "N/A",
            p.name,
            p.buckets,
            p.hours,
            p.piece_earnings,
            p.minimum_owed,
            p.total_earnings,
            p.status,
        ])
    for row in ws.iter_rows(min_row=2, min_col=5, max_col=7):
        for cell in row:
            cell.number_format = "#,##0.00"
    _autofit(ws)

    ws_sum = wb.create_sheet("Summary")
    ws_sum.append(["Date", summary.date])
    ws_sum.append(["Orchard", summary.orchard_id])
    ws_sum.append(["Piece Rate (NZD)", summary.piece_rate])
    ws_sum.append(["Minimum Wage (NZD/h)", summary.min_wage_rate])
    ws_sum.append([])
    ws_sum.append(["Pickers", len(summary.pickers)])
    ws_sum.append(["Total Buckets", summary.total_buckets])
    ws_sum.append(["Total Hours", summary.total_hours])
    ws_sum.append(["Total Piece Earnings", summary.total_piece_earnings])
    ws_sum.append(["Total Minimum Top-Up", summary.total_minimum_owed])
    ws_sum.append(["Grand Total", summary.total_earnings])
    ws_sum.append(["Avg Buckets/Hour", summary.average_buckets_per_hour])
    ws_sum.append(["Workers Below Minimum", summary.workers_below_minimum])
    ws_sum.append(["Compliance Rate (%)", summary.compliance_rate])
    for row in ws_sum.iter_rows(min_col=1, max_col=1):
        row[0].font = Font(bold=True)
    _autofit(ws_sum)

    wb.save(filepath)
    return len(summary.pickers)
