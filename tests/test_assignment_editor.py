"""
Tests for the in-memory assignment editor and the car 1 gender-balance rule
"""
import pytest

from app.core.exceptions import InvalidAssignmentTargetError
from app.domain.services.assignment_editor import (
    AssignmentEditor,
    AssignmentMap,
    AssignmentTarget,
    Gender,
    Requirement,
    Role,
    WarningKind,
    check_car_roster,
    classify_gender,
)

# member id -> gender field
GENDERS = {1: "male", 2: "female", 3: "Male", 4: "F", 5: "nonbinary", 6: None}


def _editor(data=None) -> AssignmentEditor:
    return AssignmentEditor(AssignmentMap.from_dict(data), GENDERS)


class TestAssignmentTargetParse:

    @pytest.mark.unit
    @pytest.mark.parametrize("raw,expected", [
        ("don", AssignmentTarget(Role.DON)),
        ("  Couch ", AssignmentTarget(Role.COUCH)),
        ("northgate", AssignmentTarget(Role.NORTHGATE)),
        ("car:3", AssignmentTarget.car_target(3)),
        ("car3", AssignmentTarget.car_target(3)),
        ("CAR-12", AssignmentTarget.car_target(12)),
    ])
    def test_valid_targets(self, raw, expected):
        assert AssignmentTarget.parse(raw) == expected

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", ["", "driver", "car", "car:x", "car:0"])
    def test_invalid_targets_raise(self, raw):
        with pytest.raises(InvalidAssignmentTargetError):
            AssignmentTarget.parse(raw)

    @pytest.mark.unit
    def test_role_target_cannot_carry_car_number(self):
        with pytest.raises(InvalidAssignmentTargetError):
            AssignmentTarget(Role.DON, 2)

    @pytest.mark.unit
    def test_str_round_trips_through_parse(self):
        target = AssignmentTarget.car_target(4)
        assert str(target) == "car:4"
        assert AssignmentTarget.parse(str(target)) == target


class TestGenderClassification:

    @pytest.mark.unit
    @pytest.mark.parametrize("value,expected", [
        ("male", Gender.MALE),
        (" M ", Gender.MALE),
        ("Man", Gender.MALE),
        ("FEMALE", Gender.FEMALE),
        ("f", Gender.FEMALE),
        ("woman", Gender.FEMALE),
        ("nonbinary", None),
        ("", None),
        (None, None),
    ])
    def test_classify(self, value, expected):
        assert classify_gender(value) == expected

    @pytest.mark.unit
    def test_empty_roster_is_compliant(self):
        assert check_car_roster([], GENDERS).compliant is True

    @pytest.mark.unit
    def test_mixed_roster_is_compliant(self):
        result = check_car_roster([1, 4], GENDERS)
        assert result.compliant is True
        assert result.missing == frozenset()

    @pytest.mark.unit
    def test_all_male_roster_misses_female(self):
        result = check_car_roster([1, 3], GENDERS)
        assert result.compliant is False
        assert result.missing == frozenset({Requirement.FEMALE})

    @pytest.mark.unit
    def test_unclassified_members_count_as_neither(self):
        result = check_car_roster([5, 6], GENDERS)
        assert result.missing == frozenset({Requirement.MALE, Requirement.FEMALE})
        assert result.to_dict() == {"compliant": False, "missing": ["female", "male"]}


class TestAssignmentMap:

    @pytest.mark.unit
    def test_from_dict_normalizes_keys_and_ids(self):
        assignment_map = AssignmentMap.from_dict({
            "cars": {"1": ["1", 2], "2": []},
            "don": "7",
            "doc": "",
            "couch": [3],
        })
        assert assignment_map.cars == {1: [1, 2], 2: []}
        assert assignment_map.don == 7
        assert assignment_map.doc is None
        assert assignment_map.couch == [3]

    @pytest.mark.unit
    def test_to_dict_drops_empty_cars(self):
        data = AssignmentMap.from_dict({"cars": {"2": [5], "1": []}}).to_dict()
        assert data["cars"] == {"2": [5]}

    @pytest.mark.unit
    def test_assigned_member_ids(self):
        assignment_map = AssignmentMap.from_dict({
            "cars": {"1": [1, 2]}, "don": 3, "phones": [4], "northgate": [1],
        })
        assert assignment_map.assigned_member_ids() == {1, 2, 3, 4}

    @pytest.mark.unit
    def test_targets_of_lists_every_placement(self):
        assignment_map = AssignmentMap.from_dict({"cars": {"2": [1]}, "doc": 1, "couch": [1]})
        assert [str(t) for t in assignment_map.targets_of(1)] == ["doc", "couch", "car:2"]


class TestAssign:

    @pytest.mark.unit
    def test_assign_to_empty_car(self):
        editor = _editor()
        outcome = editor.assign(1, AssignmentTarget.car_target(2))
        assert outcome.applied is True
        assert outcome.warnings == []
        assert editor.map.cars == {2: [1]}

    @pytest.mark.unit
    def test_already_assigned_is_a_no_op(self):
        editor = _editor({"couch": [1]})
        outcome = editor.assign(1, AssignmentTarget(Role.COUCH))
        assert outcome.applied is False
        assert [w.kind for w in outcome.warnings] == [WarningKind.ALREADY_ASSIGNED]
        assert outcome.needs_confirmation is False
        assert editor.map.couch == [1]

    @pytest.mark.unit
    def test_duplicate_requires_confirmation(self):
        editor = _editor({"phones": [1]})
        outcome = editor.assign(1, AssignmentTarget(Role.COUCH))
        assert outcome.applied is False
        assert outcome.needs_confirmation is True
        assert outcome.warnings[0].details == {"assigned_to": ["phones"]}
        assert editor.map.couch == []

    @pytest.mark.unit
    def test_confirmed_duplicate_is_applied_with_warning(self):
        editor = _editor({"phones": [1]})
        outcome = editor.assign(1, AssignmentTarget(Role.COUCH), confirm_duplicate=True)
        assert outcome.applied is True
        assert [w.kind for w in outcome.warnings] == [WarningKind.DUPLICATE]
        assert editor.map.couch == [1]
        assert editor.map.phones == [1]

    @pytest.mark.unit
    def test_single_role_replaces_holder(self):
        editor = _editor({"don": 1})
        outcome = editor.assign(2, AssignmentTarget(Role.DON))
        assert outcome.applied is True
        assert editor.map.don == 2

    @pytest.mark.unit
    def test_first_member_in_car1_needs_confirmation(self):
        editor = _editor()
        outcome = editor.assign(1, AssignmentTarget.car_target(1))
        assert outcome.applied is False
        assert outcome.needs_confirmation is True
        warning = outcome.warnings[0]
        assert warning.kind == WarningKind.CAR1_GENDER_BALANCE
        assert warning.details == {"missing": ["female"]}
        assert editor.map.cars == {}

    @pytest.mark.unit
    def test_car1_balanced_assignment_has_no_warning(self):
        editor = _editor({"cars": {"1": [1]}})
        outcome = editor.assign(2, AssignmentTarget.car_target(1))
        assert outcome.applied is True
        assert outcome.warnings == []
        assert outcome.car1.compliant is True

    @pytest.mark.unit
    def test_confirmed_car1_imbalance_is_applied(self):
        editor = _editor()
        outcome = editor.assign(1, AssignmentTarget.car_target(1), confirm_car1_imbalance=True)
        assert outcome.applied is True
        assert outcome.car1.compliant is False
        assert editor.is_car1_compliant() is False

    @pytest.mark.unit
    def test_both_warnings_need_both_confirmations(self):
        editor = _editor({"couch": [3]})
        target = AssignmentTarget.car_target(1)

        outcome = editor.assign(3, target, confirm_duplicate=True)
        assert outcome.applied is False
        assert {w.kind for w in outcome.warnings} == {
            WarningKind.DUPLICATE, WarningKind.CAR1_GENDER_BALANCE,
        }

        outcome = editor.assign(3, target, confirm_duplicate=True, confirm_car1_imbalance=True)
        assert outcome.applied is True

    @pytest.mark.unit
    def test_other_cars_ignore_gender_balance(self):
        editor = _editor()
        outcome = editor.assign(1, AssignmentTarget.car_target(2))
        assert outcome.applied is True
        assert outcome.car1.compliant is True

    @pytest.mark.unit
    def test_outcome_to_dict(self):
        outcome = _editor().assign(5, AssignmentTarget.car_target(1))
        data = outcome.to_dict()
        assert data["applied"] is False
        assert data["needs_confirmation"] is True
        assert data["warnings"][0]["kind"] == "car1_gender_balance"
        assert data["car1"] == {"compliant": True, "missing": []}


class TestUnassign:

    @pytest.mark.unit
    def test_unassign_last_member_removes_car(self):
        editor = _editor({"cars": {"3": [1]}})
        assert editor.unassign(1, AssignmentTarget.car_target(3)) is True
        assert editor.map.cars == {}

    @pytest.mark.unit
    def test_unassign_keeps_remaining_members(self):
        editor = _editor({"cars": {"3": [1, 2]}})
        assert editor.unassign(1, AssignmentTarget.car_target(3)) is True
        assert editor.map.cars == {3: [2]}

    @pytest.mark.unit
    def test_unassign_single_role(self):
        editor = _editor({"duc": 4})
        assert editor.unassign(4, AssignmentTarget(Role.DUC)) is True
        assert editor.map.duc is None

    @pytest.mark.unit
    def test_unassign_missing_member_returns_false(self):
        editor = _editor({"duc": 4, "couch": [1]})
        assert editor.unassign(2, AssignmentTarget(Role.DUC)) is False
        assert editor.unassign(2, AssignmentTarget(Role.COUCH)) is False
        assert editor.unassign(2, AssignmentTarget.car_target(1)) is False
        assert editor.map.duc == 4

    @pytest.mark.unit
    def test_unassign_can_break_car1_compliance(self):
        editor = _editor({"cars": {"1": [1, 2]}})
        assert editor.is_car1_compliant() is True
        editor.unassign(2, AssignmentTarget.car_target(1))
        assert editor.check_car1().missing == frozenset({Requirement.FEMALE})
