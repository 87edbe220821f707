"""Remote write for each operation type.

Each processor maps one queue entry to a single create or update call.
Creates are upserts keyed on the queue entry id; updates are keyed on the
target record id. Both are safe to repeat.
"""

from datetime import datetime, timezone

from harvest_pro.errors import RemoteError, UnknownOperationError
from harvest_pro.utils.constants import PGRST_NO_ROWS

from .operations import (
    AttendancePayload,
    ContractPayload,
    MessagePayload,
    ScanPayload,
    TimesheetPayload,
    TransportPayload,
    parse_payload,
)


def _require_match(rows: list[dict], table: str, record_id: str):
    if not rows:
        raise RemoteError(
            f"No {table} row {record_id} matched the update",
            code=PGRST_NO_ROWS,
        )


def process_scan(remote, entry_id: str, payload: ScanPayload):
    remote.upsert("bucket_records", {
        "id": entry_id,
        "picker_id": payload.picker_id,
        "orchard_id": payload.orchard_id,
        "quality_grade": payload.quality_grade,
        "scanned_at": payload.timestamp,
        "scanned_by": payload.scanned_by or None,
        "row_number": payload.row_number,
    })


def process_attendance(remote, entry_id: str, payload: AttendancePayload):
    row = {
        "id": entry_id,
        "picker_id": payload.picker_id,
        "orchard_id": payload.orchard_id,
    }
    if payload.check_in_time:
        row["check_in_time"] = payload.check_in_time
    if payload.check_out_time:
        row["check_out_time"] = payload.check_out_time
    if payload.verified_by:
        row["verified_by"] = payload.verified_by
    remote.upsert("daily_attendance", row)


def process_message(remote, entry_id: str, payload: MessagePayload):
    remote.upsert("messages", {
        "id": entry_id,
        "channel_type": payload.channel_type,
        "recipient_id": payload.recipient_id,
        "sender_id": payload.sender_id,
        "content": payload.content,
        "priority": payload.priority,
        "created_at": payload.timestamp,
    })


def process_contract(remote, entry_id: str, payload: ContractPayload):
    if payload.action == "create":
        remote.upsert("contracts", {
            "id": entry_id,
            "employee_id": payload.employee_id,
            "orchard_id": payload.orchard_id,
            "type": payload.contract_type,
            "start_date": payload.start_date,
            "end_date": payload.end_date,
            "hourly_rate": payload.hourly_rate or 23.50,
            "notes": payload.notes,
        })
        return

    updates = {}
    if payload.status:
        updates["status"] = payload.status
    if payload.end_date:
        updates["end_date"] = payload.end_date
    if payload.hourly_rate:
        updates["hourly_rate"] = payload.hourly_rate
    if payload.notes is not None:
        updates["notes"] = payload.notes
    if not updates:
        return
    rows = remote.update("contracts", updates, {"id": payload.contract_id})
    _require_match(rows, "contracts", payload.contract_id)


def process_transport(remote, entry_id: str, payload: TransportPayload):
    if payload.action == "create":
        remote.upsert("transport_requests", {
            "id": entry_id,
            "orchard_id": payload.orchard_id,
            "requested_by": payload.requested_by,
            "requester_name": payload.requester_name or "Unknown",
            "zone": payload.zone,
            "bins_count": payload.bins_count,
            "priority": payload.priority,
            "notes": payload.notes,
        })
        return

    if payload.action == "assign":
        # Last write wins between coordinators assigning offline
        updates = {
            "assigned_vehicle": payload.vehicle_id,
            "assigned_by": payload.assigned_by,
            "status": "assigned",
        }
    else:
        updates = {
            "status": "completed",
            "completed_at": datetime.now(timezone.utc).isoformat(),
        }
    rows = remote.update(
        "transport_requests", updates, {"id": payload.request_id}
    )
    _require_match(rows, "transport_requests", payload.request_id)


def process_timesheet(remote, entry_id: str, payload: TimesheetPayload):
    if payload.action == "approve":
        updates = {"verified_by": payload.verified_by}
    else:
        updates = {"verified_by": None, "notes": payload.notes or "Rejected"}
    rows = remote.update(
        "daily_attendance", updates, {"id": payload.attendance_id}
    )
    _require_match(rows, "daily_attendance", payload.attendance_id)


PROCESSORS = {
    "SCAN": process_scan,
    "ATTENDANCE": process_attendance,
    "MESSAGE": process_message,
    "CONTRACT": process_contract,
    "TRANSPORT": process_transport,
    "TIMESHEET": process_timesheet,
}


def dispatch(remote, entry):
    """Run the remote write for one queue entry."""
    processor = PROCESSORS.get(entry.type)
    if processor is None:
        raise UnknownOperationError(f"Unknown operation type: {entry.type}")
    payload = parse_payload(entry.type, entry.payload)
    processor(remote, entry.id, payload)
