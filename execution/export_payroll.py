"""Standalone payroll export script: write the day's payroll to CSV or XLSX."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from harvest_pro.config import Config
from harvest_pro.database.connection import DatabaseConnection
from harvest_pro.database.repository import Repository
from harvest_pro.database.schema import initialize_database
from harvest_pro.io.csv_handler import (
    export_payroll_csv,
    prepare_payroll_export,
)
from harvest_pro.io.excel_handler import export_payroll_excel
from harvest_pro.utils.formatters import format_currency, format_hours
from harvest_pro.utils.log import configure_logging


def main():
    if len(sys.argv) < 3:
        print("Usage: python export_payroll.py <orchard_id> <output.csv|.xlsx>"
              " [YYYY-MM-DD]")
        sys.exit(1)

    configure_logging()
    orchard_id = sys.argv[1]
    filepath = Path(sys.argv[2])
    date = sys.argv[3] if len(sys.argv) > 3 else ""

    db = DatabaseConnection(Config.DATABASE_PATH)
    initialize_database(db)
    repo = Repository(db)

    crew = repo.get_pickers(orchard_id)
    summary = prepare_payroll_export(
        crew, repo.get_harvest_settings(orchard_id), date
    )

    if filepath.suffix.lower() == ".xlsx":
        count = export_payroll_excel(summary, filepath)
    elif filepath.suffix.lower() == ".csv":
        count = export_payroll_csv(summary, filepath)
    else:
        print(f"Unknown file type: {filepath.suffix}. Use .csv or .xlsx.")
        sys.exit(1)

    print(f"Exported {count} pickers to {filepath}")
    print(f"Hours worked: {format_hours(summary.total_hours)}")
    print(f"Grand total: {format_currency(summary.total_earnings)} "
          f"({summary.workers_below_minimum} topped up)")


if __name__ == "__main__":
    main()
