"""
Archive summary - plain-text report stored on an NDR when it is archived

``generate_ndr_summary`` is a pure function of the snapshot and the member
names it is given: the same input always renders the same text.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from app.core.time_utils import format_clock, format_date
from app.domain.services.assignment_editor import AssignmentMap

_RULE = "=" * 48


@dataclass(frozen=True)
class NDRSnapshot:
    ndr_id: int
    event_name: str
    event_date: datetime
    location: Optional[str]
    status: str
    available_cars: int
    signed_up_members: tuple
    assignments: dict
    cars: tuple
    notes: dict
    counters: dict = field(default_factory=dict)
    activated_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @classmethod
    def from_ndr(cls, ndr: Any) -> "NDRSnapshot":
        return cls(
            ndr_id=ndr.id,
            event_name=ndr.event_name,
            event_date=ndr.event_date,
            location=ndr.location,
            status=ndr.status.value if hasattr(ndr.status, "value") else str(ndr.status),
            available_cars=ndr.available_cars or 0,
            signed_up_members=tuple(ndr.signed_up_members or ()),
            assignments=dict(ndr.assignments or {}),
            cars=tuple(ndr.cars or ()),
            notes=dict(ndr.notes or {}),
            counters={
                "completed_rides": ndr.completed_rides or 0,
                "completed_riders": ndr.completed_riders or 0,
                "cancelled_rides": ndr.cancelled_rides or 0,
                "cancelled_riders": ndr.cancelled_riders or 0,
                "terminated_rides": ndr.terminated_rides or 0,
                "terminated_riders": ndr.terminated_riders or 0,
            },
            activated_at=ndr.activated_at,
            ended_at=ndr.ended_at,
        )


def _heading(title: str) -> list[str]:
    return ["", title.upper(), "-" * len(title)]


def _name(member_id: Optional[int], names: Mapping[int, str]) -> str:
    if member_id is None:
        return "(unassigned)"
    return names.get(member_id, f"Member #{member_id}")


def _names(member_ids: list[int], names: Mapping[int, str]) -> str:
    if not member_ids:
        return "(none)"
    return ", ".join(_name(m, names) for m in member_ids)


def _update_time(update: Mapping[str, Any]) -> datetime:
    value = update.get("timestamp")
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", ""))


def _statistics(counters: Mapping[str, int]) -> list[str]:
    lines = _heading("Ride statistics")
    total_rides = 0
    total_riders = 0
    for label in ("completed", "cancelled", "terminated"):
        rides = counters.get(f"{label}_rides", 0)
        riders = counters.get(f"{label}_riders", 0)
        total_rides += rides
        total_riders += riders
        lines.append(f"{label.capitalize():<12}{rides} rides / {riders} riders")
    lines.append(f"{'Total':<12}{total_rides} rides / {total_riders} riders")
    return lines


def _leadership(assignment_map: AssignmentMap, notes: Mapping[str, Any], names: Mapping[int, str]) -> list[str]:
    leadership = notes.get("leadership") or {}
    lines = _heading("Leadership")
    for role in ("don", "doc", "duc"):
        line = f"{role.upper()}: {_name(getattr(assignment_map, role), names)}"
        if leadership.get(role):
            line += f" ({leadership[role]})"
        lines.append(line)
    if leadership.get("execs"):
        lines.append(f"Execs: {leadership['execs']}")
    if leadership.get("directors"):
        lines.append(f"Directors: {leadership['directors']}")
    return lines


def _car_roster(
    assignment_map: AssignmentMap,
    cars: tuple,
    notes: Mapping[str, Any],
    names: Mapping[int, str],
) -> list[str]:
    car_roles = notes.get("car_roles") or {}
    car_details = {int(car.get("car_number", 0)): car for car in cars}
    numbers = sorted(set(assignment_map.cars) | set(car_details) - {0})

    lines = _heading("Car roster")
    if not numbers:
        lines.append("(no cars)")
    for number in numbers:
        lines.append(f"Car {number}: {_names(assignment_map.cars.get(number, []), names)}")
        details = car_details.get(number) or {}
        vehicle = " ".join(
            str(details[key]) for key in ("color", "make", "model") if details.get(key)
        )
        if details.get("license_plate"):
            vehicle = f"{vehicle} [{details['license_plate']}]".strip()
        if vehicle:
            lines.append(f"  Vehicle: {vehicle}")
        roles = car_roles.get(str(number)) or {}
        driver = roles.get("driver") or details.get("driver")
        navigator = roles.get("navigator") or details.get("navigator")
        if driver:
            lines.append(f"  Driver: {driver}")
        if navigator:
            lines.append(f"  Navigator: {navigator}")

    couch_phone_roles = notes.get("couch_phone_roles") or {}
    for role in ("couch", "phones", "northgate"):
        line = f"{role.capitalize()}: {_names(getattr(assignment_map, role), names)}"
        if couch_phone_roles.get(role):
            line += f" ({couch_phone_roles[role]})"
        lines.append(line)
    return lines


def _progress_updates(notes: Mapping[str, Any]) -> list[str]:
    updates = [u for u in (notes.get("updates") or []) if u.get("text")]
    lines = _heading("Progress updates")
    if not updates:
        lines.append("(no updates)")
        return lines
    ordered = sorted(updates, key=lambda u: (_update_time(u), str(u.get("id", ""))))
    for update in ordered:
        lines.append(f"[{format_clock(_update_time(update))}] {update['text'].strip()}")
    return lines


def generate_ndr_summary(snapshot: NDRSnapshot, member_names: Mapping[int, str]) -> str:
    """Render the archive summary for an NDR snapshot"""
    assignment_map = AssignmentMap.from_dict(snapshot.assignments)

    lines = [
        _RULE,
        f"NIGHT DUTY RUN SUMMARY: {snapshot.event_name}",
        _RULE,
        f"Date: {format_date(snapshot.event_date)}",
        f"Location: {snapshot.location or '(not set)'}",
        f"Cars available: {snapshot.available_cars}",
        f"Members signed up: {len(snapshot.signed_up_members)}",
    ]
    if snapshot.activated_at:
        lines.append(f"Activated: {format_clock(snapshot.activated_at)}")
    if snapshot.ended_at:
        lines.append(f"Ended: {format_clock(snapshot.ended_at)}")

    lines += _statistics(snapshot.counters)
    lines += _leadership(assignment_map, snapshot.notes, member_names)
    lines += _car_roster(assignment_map, snapshot.cars, snapshot.notes, member_names)
    lines += _progress_updates(snapshot.notes)

    lines += _heading("Night summary")
    lines.append((snapshot.notes.get("summary") or "").strip() or "(none)")

    return "\n".join(lines) + "\n"
