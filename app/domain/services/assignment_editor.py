"""
Assignment Editor - who is where on a night duty run

Pure in-memory model of an NDR's assignment map plus the car 1 gender-balance
rule. Nothing here touches the database; the autosave service loads a working
copy, runs edits through ``AssignmentEditor`` and stages the result.

Car 1 rule: car 1 is compliant when it is empty, or when it has at least one
member classified male and one classified female. Violations are soft: the
editor reports them and only applies the assignment when the caller confirms.
"""
import copy
import enum
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from app.core.exceptions import InvalidAssignmentTargetError


class Role(str, enum.Enum):
    DON = "don"
    DOC = "doc"
    DUC = "duc"
    COUCH = "couch"
    PHONES = "phones"
    NORTHGATE = "northgate"
    CAR = "car"


SINGLE_ROLES = (Role.DON, Role.DOC, Role.DUC)
LIST_ROLES = (Role.COUCH, Role.PHONES, Role.NORTHGATE)

COMPLIANCE_CAR = 1


@dataclass(frozen=True)
class AssignmentTarget:
    role: Role
    car: Optional[int] = None

    def __post_init__(self) -> None:
        if self.role == Role.CAR:
            if self.car is None or self.car < 1:
                raise InvalidAssignmentTargetError(str(self))
        elif self.car is not None:
            raise InvalidAssignmentTargetError(str(self))

    @classmethod
    def car_target(cls, number: int) -> "AssignmentTarget":
        return cls(Role.CAR, number)

    @classmethod
    def parse(cls, value: str) -> "AssignmentTarget":
        """'don', 'couch', 'car:3' (also 'car3' and 'car-3')"""
        raw = (value or "").strip().lower()
        if raw.startswith("car"):
            number = raw[3:].lstrip(":-_ ")
            if not number.isdigit():
                raise InvalidAssignmentTargetError(value)
            return cls(Role.CAR, int(number))
        try:
            return cls(Role(raw))
        except ValueError:
            raise InvalidAssignmentTargetError(value) from None

    def __str__(self) -> str:
        if self.role == Role.CAR:
            return f"car:{self.car}"
        return self.role.value


# ==================== Gender classification ====================


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


class Requirement(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


_MALE_VALUES = frozenset({"male", "m", "man"})
_FEMALE_VALUES = frozenset({"female", "f", "woman"})


def classify_gender(value: Optional[str]) -> Optional[Gender]:
    """Case-insensitive match on the member's gender field; anything else is neither"""
    if not value:
        return None
    normalized = value.strip().lower()
    if normalized in _MALE_VALUES:
        return Gender.MALE
    if normalized in _FEMALE_VALUES:
        return Gender.FEMALE
    return None


@dataclass(frozen=True)
class Car1Compliance:
    compliant: bool
    missing: frozenset = frozenset()

    def to_dict(self) -> dict[str, Any]:
        return {
            "compliant": self.compliant,
            "missing": sorted(r.value for r in self.missing),
        }


def check_car_roster(
    member_ids: Iterable[int],
    genders: Mapping[int, Optional[str]],
) -> Car1Compliance:
    roster = list(member_ids)
    if not roster:
        return Car1Compliance(compliant=True)

    present = {classify_gender(genders.get(member_id)) for member_id in roster}
    missing = set()
    if Gender.MALE not in present:
        missing.add(Requirement.MALE)
    if Gender.FEMALE not in present:
        missing.add(Requirement.FEMALE)
    return Car1Compliance(compliant=not missing, missing=frozenset(missing))


# ==================== Assignment map ====================


def _clean_ids(values: Any) -> list[int]:
    return [int(v) for v in (values or [])]


def _optional_id(value: Any) -> Optional[int]:
    return None if value in (None, "") else int(value)


@dataclass
class AssignmentMap:
    cars: dict[int, list[int]] = field(default_factory=dict)
    don: Optional[int] = None
    doc: Optional[int] = None
    duc: Optional[int] = None
    couch: list[int] = field(default_factory=list)
    phones: list[int] = field(default_factory=list)
    northgate: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "AssignmentMap":
        data = data or {}
        return cls(
            cars={int(num): _clean_ids(ids) for num, ids in (data.get("cars") or {}).items()},
            don=_optional_id(data.get("don")),
            doc=_optional_id(data.get("doc")),
            duc=_optional_id(data.get("duc")),
            couch=_clean_ids(data.get("couch")),
            phones=_clean_ids(data.get("phones")),
            northgate=_clean_ids(data.get("northgate")),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON form; car numbers become string keys"""
        return {
            "cars": {str(num): list(ids) for num, ids in sorted(self.cars.items()) if ids},
            "don": self.don,
            "doc": self.doc,
            "duc": self.duc,
            "couch": list(self.couch),
            "phones": list(self.phones),
            "northgate": list(self.northgate),
        }

    def copy(self) -> "AssignmentMap":
        return copy.deepcopy(self)

    def members_of(self, target: AssignmentTarget) -> list[int]:
        if target.role == Role.CAR:
            return list(self.cars.get(target.car, []))
        value = getattr(self, target.role.value)
        if target.role in SINGLE_ROLES:
            return [] if value is None else [value]
        return list(value)

    def targets_of(self, member_id: int) -> list[AssignmentTarget]:
        targets = [AssignmentTarget(role) for role in SINGLE_ROLES if getattr(self, role.value) == member_id]
        targets += [AssignmentTarget(role) for role in LIST_ROLES if member_id in getattr(self, role.value)]
        targets += [
            AssignmentTarget.car_target(num)
            for num, ids in sorted(self.cars.items())
            if member_id in ids
        ]
        return targets

    def assigned_member_ids(self) -> set[int]:
        ids = {getattr(self, role.value) for role in SINGLE_ROLES} - {None}
        for role in LIST_ROLES:
            ids.update(getattr(self, role.value))
        for roster in self.cars.values():
            ids.update(roster)
        return ids


# ==================== Editor ====================


class WarningKind(str, enum.Enum):
    ALREADY_ASSIGNED = "already_assigned"
    DUPLICATE = "duplicate"
    CAR1_GENDER_BALANCE = "car1_gender_balance"


@dataclass(frozen=True)
class AssignmentWarning:
    kind: WarningKind
    message: str
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "details": self.details}


@dataclass
class AssignOutcome:
    applied: bool
    warnings: list[AssignmentWarning]
    car1: Car1Compliance

    @property
    def needs_confirmation(self) -> bool:
        if self.applied:
            return False
        return any(w.kind != WarningKind.ALREADY_ASSIGNED for w in self.warnings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "needs_confirmation": self.needs_confirmation,
            "warnings": [w.to_dict() for w in self.warnings],
            "car1": self.car1.to_dict(),
        }


class AssignmentEditor:
    """Edits an AssignmentMap in place"""

    def __init__(
        self,
        assignment_map: AssignmentMap,
        genders: Mapping[int, Optional[str]],
    ):
        self.map = assignment_map
        self.genders = genders

    def assign(
        self,
        member_id: int,
        target: AssignmentTarget,
        confirm_duplicate: bool = False,
        confirm_car1_imbalance: bool = False,
    ) -> AssignOutcome:
        if member_id in self.map.members_of(target):
            return AssignOutcome(
                applied=False,
                warnings=[AssignmentWarning(
                    WarningKind.ALREADY_ASSIGNED,
                    f"Member is already assigned to {target}",
                    {"target": str(target)},
                )],
                car1=self.check_car1(),
            )

        warnings: list[AssignmentWarning] = []
        blocked = False

        elsewhere = self.map.targets_of(member_id)
        if elsewhere:
            warnings.append(AssignmentWarning(
                WarningKind.DUPLICATE,
                "Member is already assigned elsewhere; confirm to assign them twice",
                {"assigned_to": [str(t) for t in elsewhere]},
            ))
            blocked = blocked or not confirm_duplicate

        if target == AssignmentTarget.car_target(COMPLIANCE_CAR):
            projected = check_car_roster(
                self.map.members_of(target) + [member_id], self.genders
            )
            if not projected.compliant:
                warnings.append(AssignmentWarning(
                    WarningKind.CAR1_GENDER_BALANCE,
                    "Car 1 needs at least one male and one female member",
                    {"missing": sorted(r.value for r in projected.missing)},
                ))
                blocked = blocked or not confirm_car1_imbalance

        if blocked:
            return AssignOutcome(applied=False, warnings=warnings, car1=self.check_car1())

        self._place(member_id, target)
        return AssignOutcome(applied=True, warnings=warnings, car1=self.check_car1())

    def _place(self, member_id: int, target: AssignmentTarget) -> None:
        if target.role == Role.CAR:
            self.map.cars.setdefault(target.car, []).append(member_id)
        elif target.role in SINGLE_ROLES:
            # single-occupancy roles replace the previous holder
            setattr(self.map, target.role.value, member_id)
        else:
            getattr(self.map, target.role.value).append(member_id)

    def unassign(self, member_id: int, target: AssignmentTarget) -> bool:
        """Remove the member from the target; False when they were not there"""
        if target.role == Role.CAR:
            roster = self.map.cars.get(target.car, [])
            if member_id not in roster:
                return False
            remaining = [m for m in roster if m != member_id]
            if remaining:
                self.map.cars[target.car] = remaining
            else:
                del self.map.cars[target.car]
            return True

        if target.role in SINGLE_ROLES:
            if getattr(self.map, target.role.value) != member_id:
                return False
            setattr(self.map, target.role.value, None)
            return True

        members = getattr(self.map, target.role.value)
        if member_id not in members:
            return False
        setattr(self.map, target.role.value, [m for m in members if m != member_id])
        return True

    def check_car1(self) -> Car1Compliance:
        return check_car_roster(self.map.cars.get(COMPLIANCE_CAR, []), self.genders)

    def is_car1_compliant(self) -> bool:
        return self.check_car1().compliant
