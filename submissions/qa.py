"""
Offline-aware QA submissions.

Each helper writes straight to the backend when online and returns the new
row id; when offline it queues the same insert and reports offline=True.
Online failures are returned in the result rather than raised, so forms can
show the message inline.

Machine-level QA spans two tables: one qa_monitoring row plus a
qa_position_linkage row per setter position. The qa_monitoring id is
generated here so the linkage rows can reference it before the parent row
exists on the server; queued entries replay in order, parent first.
"""

import json
import uuid
from dataclasses import dataclass
from typing import Any, Optional, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shared.log import create_logger

if TYPE_CHECKING:
    from backend.client import BackendClient
    from sync_queue.offline_queue import OfflineQueue

log_trace, log_debug, log_info, log_warn, log_error = create_logger("QA")

QA_MONITORING_TABLE = 'qa_monitoring'
QA_POSITION_LINKAGE_TABLE = 'qa_position_linkage'
SPECIFIC_GRAVITY_TABLE = 'specific_gravity_tests'
WEIGHT_TRACKING_TABLE = 'weight_tracking'

# 18-point setter grid: zone x level x side, front_top_left first
POSITION_KEYS = tuple(
    f"{zone}_{level}_{side}"
    for zone in ('front', 'middle', 'back')
    for level in ('top', 'mid', 'bottom')
    for side in ('left', 'right')
)

AVERAGE_FIELDS = ('temp_avg_overall', 'temp_avg_front', 'temp_avg_middle', 'temp_avg_back')


@dataclass
class SubmissionResult:
    """Outcome of a QA submission."""
    success: bool
    offline: bool = False
    record_id: Optional[Any] = None
    error: Optional[str] = None


class HouseLevelQARecord(BaseModel):
    """
    Single-setter QA reading linked to one batch (house).

    Optional 18-point temperature columns (temp_front_top_left, ...) and
    averages pass through as extra fields.
    """

    model_config = ConfigDict(extra='allow')

    batch_id: str = Field(..., min_length=1)
    machine_id: Optional[str] = None
    inspector_name: str = Field(..., min_length=1)
    check_date: str
    check_time: str
    day_of_incubation: int = Field(..., ge=0)
    temperature: float
    humidity: float
    notes: Optional[str] = None


class MachineLevelQARecord(BaseModel):
    """
    18-point reading for a setter holding several flocks.

    temperatures is keyed by column name (temp_front_top_left, ...); missing
    positions are stored as null on the QA row and 0 on the linkage row.
    """

    machine_id: str = Field(..., min_length=1)
    inspector_name: str = Field(..., min_length=1)
    check_date: str
    check_time: str
    day_of_incubation: int = Field(..., ge=0)
    temperature: float
    humidity: float
    notes: Optional[str] = None
    temperatures: dict[str, float] = Field(default_factory=dict)
    temp_avg_overall: Optional[float] = None
    temp_avg_front: Optional[float] = None
    temp_avg_middle: Optional[float] = None
    temp_avg_back: Optional[float] = None

    @field_validator('temperatures')
    @classmethod
    def known_positions(cls, v: dict[str, float]) -> dict[str, float]:
        columns = {f"temp_{key}" for key in POSITION_KEYS}
        unknown = sorted(set(v) - columns)
        if unknown:
            raise ValueError(f"unknown temperature positions: {', '.join(unknown)}")
        return v


class PositionOccupancy(BaseModel):
    """Which multi-setter set (and so which flock) sits at a position."""

    model_config = ConfigDict(extra='allow')

    set_id: Optional[str] = None
    flock_id: Optional[str] = None
    batch_id: Optional[str] = None


class FlockLinkage(BaseModel):
    flock_id: str = Field(..., min_length=1)
    batch_id: Optional[str] = None


class MachineWideQARecord(BaseModel):
    """
    Whole-machine check (turning angles, humidity) not tied to one batch.

    Angle readings (angle_top_left, ...) pass through as extra fields.
    """

    model_config = ConfigDict(extra='allow')

    machine_id: str = Field(..., min_length=1)
    inspector_name: str = Field(..., min_length=1)
    check_date: str
    check_time: Optional[str] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    notes: Optional[str] = None
    qa_type: str = Field(..., min_length=1)


class GenericQARecord(BaseModel):
    machine_id: str = Field(..., min_length=1)
    inspector_name: str = Field(..., min_length=1)
    check_date: str
    qa_type: str = Field(..., min_length=1)
    qa_data: dict = Field(default_factory=dict)
    notes: Optional[str] = None


def _submit_rows(
    rows: list[tuple[str, dict]],
    backend: 'BackendClient',
    queue: 'OfflineQueue',
    is_online: bool,
    record_id: Optional[Any] = None,
) -> SubmissionResult:
    """
    Insert rows in order, or queue them in order when offline.

    record_id is reported for queued submissions; online, the id the backend
    returns for the first row wins.
    """
    if not is_online:
        for table, data in rows:
            entry = queue.add(table, 'insert', data)
            log_debug(f"Queued {table} submission {entry.id}")
        return SubmissionResult(success=True, offline=True, record_id=record_id)

    first_id = None
    for index, (table, data) in enumerate(rows):
        try:
            created = backend.execute(table, 'insert', data)
        except Exception as e:
            log_error(f"Error submitting to {table}: {e}")
            return SubmissionResult(success=False, record_id=first_id, error=str(e))
        if index == 0 and created:
            first_id = created[0].get('id')

    return SubmissionResult(success=True, record_id=first_id if first_id is not None else record_id)


def _submit(
    table: str,
    data: dict,
    backend: 'BackendClient',
    queue: 'OfflineQueue',
    is_online: bool,
) -> SubmissionResult:
    return _submit_rows([(table, data)], backend, queue, is_online)


def _flock_metadata(unique_flocks: list) -> list[dict]:
    return [FlockLinkage.model_validate(flock).model_dump() for flock in unique_flocks or []]


def submit_house_level_qa(
    record: dict,
    backend: 'BackendClient',
    queue: 'OfflineQueue',
    is_online: bool,
) -> SubmissionResult:
    """House-level QA into qa_monitoring with entry_mode='house'."""
    try:
        validated = HouseLevelQARecord(**record)
    except ValidationError as e:
        return SubmissionResult(success=False, error=str(e))
    data = validated.model_dump()
    data['entry_mode'] = 'house'
    return _submit(QA_MONITORING_TABLE, data, backend, queue, is_online)


def submit_machine_level_qa(
    record: dict,
    position_occupancy: dict,
    backend: 'BackendClient',
    queue: 'OfflineQueue',
    is_online: bool,
) -> SubmissionResult:
    """
    Machine-level 18-point QA for a multi-flock setter.

    Writes one qa_monitoring row (entry_mode='machine', no batch) and then
    one qa_position_linkage row per position, resolving each position to
    the set, flock and batch occupying it.

    Args:
        record: MachineLevelQARecord fields
        position_occupancy: Position key (front_top_left, ...) to
            PositionOccupancy fields; unoccupied positions may be omitted

    Returns:
        SubmissionResult whose record_id is the qa_monitoring id
    """
    try:
        validated = MachineLevelQARecord(**record)
        occupancy = {
            position: PositionOccupancy.model_validate(occ)
            for position, occ in (position_occupancy or {}).items()
            if occ is not None
        }
    except ValidationError as e:
        return SubmissionResult(success=False, error=str(e))

    unknown = sorted(set(occupancy) - set(POSITION_KEYS))
    if unknown:
        return SubmissionResult(success=False, error=f"Unknown setter positions: {', '.join(unknown)}")

    qa_id = str(uuid.uuid4())
    temperatures = validated.temperatures

    qa_row = validated.model_dump(exclude={'temperatures'})
    qa_row.update({
        'id': qa_id,
        'batch_id': None,
        'entry_mode': 'machine',
        'candling_results': json.dumps({'type': 'setter_temperature_18point', 'entry_mode': 'machine'}),
    })
    for position in POSITION_KEYS:
        qa_row[f"temp_{position}"] = temperatures.get(f"temp_{position}")

    rows = [(QA_MONITORING_TABLE, qa_row)]
    for position in POSITION_KEYS:
        occ = occupancy.get(position) or PositionOccupancy()
        rows.append((QA_POSITION_LINKAGE_TABLE, {
            'qa_monitoring_id': qa_id,
            'position': position,
            'temperature': temperatures.get(f"temp_{position}") or 0,
            'multi_setter_set_id': occ.set_id,
            'resolved_flock_id': occ.flock_id,
            'resolved_batch_id': occ.batch_id,
        }))

    log_debug(f"Machine-level QA {qa_id} on {validated.machine_id}: {len(occupancy)} occupied positions")
    return _submit_rows(rows, backend, queue, is_online, record_id=qa_id)


def submit_machine_wide_qa(
    record: dict,
    unique_flocks: list,
    backend: 'BackendClient',
    queue: 'OfflineQueue',
    is_online: bool,
) -> SubmissionResult:
    """
    Machine-wide check into qa_monitoring.

    The check type and the flocks in the machine at the time are kept in
    candling_results as JSON metadata.
    """
    try:
        validated = MachineWideQARecord(**record)
        flocks = _flock_metadata(unique_flocks)
    except ValidationError as e:
        return SubmissionResult(success=False, error=str(e))

    data = validated.model_dump(exclude={'qa_type'})
    data.update({
        'batch_id': None,
        'entry_mode': 'machine',
        'candling_results': json.dumps({
            'type': f"machine_wide_{validated.qa_type}",
            'entry_mode': 'machine',
            'linked_flocks': flocks,
        }),
    })
    return _submit(QA_MONITORING_TABLE, data, backend, queue, is_online)


def submit_generic_qa(
    machine_id: str,
    inspector_name: str,
    check_date: str,
    qa_type: str,
    qa_data: dict,
    unique_flocks: list,
    backend: 'BackendClient',
    queue: 'OfflineQueue',
    is_online: bool,
    notes: Optional[str] = None,
) -> SubmissionResult:
    """Free-form machine QA; qa_data is stored verbatim under candling_results."""
    try:
        validated = GenericQARecord(
            machine_id=machine_id,
            inspector_name=inspector_name,
            check_date=check_date,
            qa_type=qa_type,
            qa_data=qa_data or {},
            notes=notes,
        )
        flocks = _flock_metadata(unique_flocks)
    except ValidationError as e:
        return SubmissionResult(success=False, error=str(e))

    data = {
        'machine_id': validated.machine_id,
        'inspector_name': validated.inspector_name,
        'check_date': validated.check_date,
        'notes': validated.notes,
        'batch_id': None,
        'entry_mode': 'machine',
        'candling_results': json.dumps({
            'type': validated.qa_type,
            'entry_mode': 'machine',
            'data': validated.qa_data,
            'linked_flocks': flocks,
        }),
    }
    return _submit(QA_MONITORING_TABLE, data, backend, queue, is_online)


def submit_specific_gravity(
    data: dict,
    backend: 'BackendClient',
    queue: 'OfflineQueue',
    is_online: bool,
) -> SubmissionResult:
    return _submit(SPECIFIC_GRAVITY_TABLE, dict(data), backend, queue, is_online)


def submit_weight_tracking(
    data: dict,
    backend: 'BackendClient',
    queue: 'OfflineQueue',
    is_online: bool,
) -> SubmissionResult:
    return _submit(WEIGHT_TRACKING_TABLE, dict(data), backend, queue, is_online)


def submit_candling_qa(
    data: dict,
    backend: 'BackendClient',
    queue: 'OfflineQueue',
    is_online: bool,
) -> SubmissionResult:
    """Candling results are stored as a qa_monitoring row."""
    return _submit(QA_MONITORING_TABLE, dict(data), backend, queue, is_online)


__all__ = [
    'SubmissionResult',
    'HouseLevelQARecord',
    'MachineLevelQARecord',
    'MachineWideQARecord',
    'PositionOccupancy',
    'FlockLinkage',
    'POSITION_KEYS',
    'submit_house_level_qa',
    'submit_machine_level_qa',
    'submit_machine_wide_qa',
    'submit_generic_qa',
    'submit_specific_gravity',
    'submit_weight_tracking',
    'submit_candling_qa',
]
