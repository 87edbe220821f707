"""Typed payloads for each kind of queued operation.

Every queue entry carries a ``type`` tag and a JSON payload. The tag picks
one of the payload classes below, so the sync processor can dispatch on a
closed set of operations instead of poking at loose dicts.
"""

from dataclasses import asdict, dataclass, fields
from typing import Optional

from harvest_pro.errors import UnknownOperationError
from harvest_pro.utils.constants import QUALITY_GRADES


@dataclass
class ScanPayload:
    picker_id: str
    orchard_id: str
    quality_grade: str
    timestamp: str
    scanned_by: str = ""
    row_number: Optional[int] = None

    def validate(self):
        if not self.picker_id:
            raise ValueError("Scan requires a picker_id")
        if not self.orchard_id:
            raise ValueError("Scan requires an orchard_id")
        if self.quality_grade not in QUALITY_GRADES:
            raise ValueError(f"Invalid quality grade: {self.quality_grade}")


@dataclass
class AttendancePayload:
    picker_id: str
    orchard_id: str
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None
    verified_by: Optional[str] = None

    def validate(self):
        if not self.picker_id or not self.orchard_id:
            raise ValueError("Attendance requires picker_id and orchard_id")
        if not self.check_in_time and not self.check_out_time:
            raise ValueError("Attendance requires a check-in or check-out time")


@dataclass
class MessagePayload:
    recipient_id: str
    sender_id: str
    content: str
    timestamp: str
    channel_type: str = "direct"
    priority: str = "normal"

    def validate(self):
        if self.channel_type not in ("direct", "group", "team"):
            raise ValueError(f"Invalid channel type: {self.channel_type}")
        if not self.content.strip():
            raise ValueError("Message content cannot be empty")


@dataclass
class ContractPayload:
    action: str
    contract_id: Optional[str] = None
    employee_id: Optional[str] = None
    orchard_id: Optional[str] = None
    contract_type: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    hourly_rate: Optional[float] = None
    notes: Optional[str] = None

    def validate(self):
        if self.action == "create":
            if not (self.employee_id and self.orchard_id and self.start_date):
                raise ValueError(
                    "Contract create requires employee_id, orchard_id "
                    "and start_date"
                )
            if self.contract_type not in ("permanent", "seasonal", "casual"):
                raise ValueError(f"Invalid contract type: {self.contract_type}")
        elif self.action == "update":
            if not self.contract_id:
                raise ValueError("Contract update requires contract_id")
        else:
            raise ValueError(f"Invalid contract action: {self.action}")


@dataclass
class TransportPayload:
    action: str
    request_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    assigned_by: Optional[str] = None
    orchard_id: Optional[str] = None
    requested_by: Optional[str] = None
    requester_name: Optional[str] = None
    zone: Optional[str] = None
    bins_count: int = 1
    priority: str = "normal"
    notes: Optional[str] = None

    def validate(self):
        if self.action == "create":
            if not (self.orchard_id and self.requested_by and self.zone):
                raise ValueError(
                    "Transport create requires orchard_id, requested_by "
                    "and zone"
                )
            if self.priority not in ("normal", "high", "urgent"):
                raise ValueError(f"Invalid transport priority: {self.priority}")
        elif self.action in ("assign", "complete"):
            if not self.request_id:
                raise ValueError(f"Transport {self.action} requires request_id")
            if self.action == "assign" and not self.vehicle_id:
                raise ValueError("Transport assign requires vehicle_id")
        else:
            raise ValueError(f"Invalid transport action: {self.action}")


@dataclass
class TimesheetPayload:
    action: str
    attendance_id: str
    verified_by: str
    notes: Optional[str] = None

    def validate(self):
        if self.action not in ("approve", "reject"):
            raise ValueError(f"Invalid timesheet action: {self.action}")
        if not self.attendance_id:
            raise ValueError("Timesheet action requires attendance_id")


PAYLOAD_TYPES = {
    "SCAN": ScanPayload,
    "ATTENDANCE": AttendancePayload,
    "MESSAGE": MessagePayload,
    "CONTRACT": ContractPayload,
    "TRANSPORT": TransportPayload,
    "TIMESHEET": TimesheetPayload,
}


def parse_payload(op_type: str, data: dict):
    """Build and validate the typed payload for an operation type.

    Raises UnknownOperationError for an unregistered type and ValueError
    for missing, unexpected or invalid fields.
    """
    cls = PAYLOAD_TYPES.get(op_type)
    if cls is None:
        raise UnknownOperationError(f"Unknown operation type: {op_type}")

    allowed = {f.name for f in fields(cls)}
    unexpected = set(data) - allowed
    if unexpected:
        raise ValueError(
            f"{op_type} payload has unexpected field(s): "
            f"{', '.join(sorted(unexpected))}"
        )
    try:
        payload = cls(**data)
    except TypeError as e:
        raise ValueError(f"{op_type} payload is incomplete: {e}") from e
    payload.validate()
    return payload


def payload_to_dict(payload) -> dict:
    """Serialise a typed payload for storage, dropping unset optionals."""
    return {k: v for k, v in asdict(payload).items() if v is not None}
