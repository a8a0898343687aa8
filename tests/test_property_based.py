"""
Property-based tests with hypothesis for the assignment editor and the
status transition tables.

Invariants checked:
1. Car 1 is never left non-compliant by an unconfirmed assignment
2. Random edit sequences keep the assignment map consistent
3. AssignmentMap survives its JSON form
4. Transition tables only reach known statuses
"""
import pytest
from hypothesis import given, settings as h_settings, HealthCheck
from hypothesis.strategies import (
    booleans,
    composite,
    dictionaries,
    integers,
    lists,
    none,
    one_of,
    sampled_from,
    tuples,
)

from app.db.models.ndr import NDRStatus
from app.db.models.ride import RideStatus
from app.domain.services.assignment_editor import (
    COMPLIANCE_CAR,
    AssignmentEditor,
    AssignmentMap,
    AssignmentTarget,
    Role,
    check_car_roster,
    classify_gender,
)
from app.state_machine.states import (
    NDR_TRANSITIONS,
    RIDE_TRANSITIONS,
    is_valid_transition,
    terminal_states,
)

# the autouse redis and jwt fixtures are function scoped
PROPERTY_SETTINGS = h_settings(
    max_examples=100,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
    deadline=None,
)


# ============================================================================
# Strategies
# ============================================================================

MEMBER_IDS = integers(min_value=1, max_value=12)

GENDER_VALUES = one_of(none(), sampled_from(["male", "Male", "M", "female", "F", "woman", "nonbinary", ""]))

GENDERS = dictionaries(MEMBER_IDS, GENDER_VALUES, min_size=12, max_size=12)

TARGETS = one_of(
    sampled_from([AssignmentTarget(role) for role in Role if role != Role.CAR]),
    integers(min_value=1, max_value=4).map(AssignmentTarget.car_target),
)

EDITS = lists(
    tuples(sampled_from(["assign", "unassign"]), MEMBER_IDS, TARGETS, booleans(), booleans()),
    max_size=30,
)


@composite
def assignment_maps(draw):
    roster = lists(MEMBER_IDS, max_size=4, unique=True)
    return AssignmentMap(
        cars=draw(dictionaries(integers(min_value=1, max_value=10), roster.filter(bool), max_size=4)),
        don=draw(one_of(none(), MEMBER_IDS)),
        doc=draw(one_of(none(), MEMBER_IDS)),
        duc=draw(one_of(none(), MEMBER_IDS)),
        couch=draw(roster),
        phones=draw(roster),
        northgate=draw(roster),
    )


def _apply(editor: AssignmentEditor, edit) -> None:
    action, member_id, target, confirm_duplicate, confirm_car1 = edit
    if action == "assign":
        editor.assign(
            member_id,
            target,
            confirm_duplicate=confirm_duplicate,
            confirm_car1_imbalance=confirm_car1,
        )
    else:
        editor.unassign(member_id, target)


# ============================================================================
# Assignment editor
# ============================================================================


class TestCar1Properties:

    @pytest.mark.unit
    @given(genders=GENDERS, edits=EDITS)
    @PROPERTY_SETTINGS
    def test_unconfirmed_edits_keep_car1_compliant(self, genders, edits):
        """Starting from an empty map, edits that never confirm an imbalance leave car 1 compliant"""
        editor = AssignmentEditor(AssignmentMap(), genders)
        for action, member_id, target, confirm_duplicate, _ in edits:
            if action == "assign":
                editor.assign(member_id, target, confirm_duplicate=confirm_duplicate)
            else:
                editor.unassign(member_id, target)
            assert editor.is_car1_compliant()

    @pytest.mark.unit
    @given(genders=GENDERS, roster=lists(MEMBER_IDS, max_size=6))
    @PROPERTY_SETTINGS
    def test_compliance_matches_classification(self, genders, roster):
        classes = {classify_gender(genders.get(m)) for m in roster}
        result = check_car_roster(roster, genders)
        if not roster:
            assert result.compliant
        else:
            assert result.compliant == ({"male", "female"} <= {c.value for c in classes if c})

    @pytest.mark.unit
    @given(value=one_of(none(), sampled_from(["male", "FEMALE", " m ", "x", "f", "Woman", "man"])))
    @PROPERTY_SETTINGS
    def test_classification_is_case_insensitive(self, value):
        if value is None:
            assert classify_gender(value) is None
        else:
            assert classify_gender(value) == classify_gender(value.upper())


class TestAssignmentMapProperties:

    @pytest.mark.unit
    @given(genders=GENDERS, edits=EDITS)
    @PROPERTY_SETTINGS
    def test_edits_never_leave_empty_car_rosters(self, genders, edits):
        editor = AssignmentEditor(AssignmentMap(), genders)
        for edit in edits:
            _apply(editor, edit)
            assert all(editor.map.cars.values())

    @pytest.mark.unit
    @given(genders=GENDERS, edits=EDITS)
    @PROPERTY_SETTINGS
    def test_targets_of_agrees_with_members_of(self, genders, edits):
        editor = AssignmentEditor(AssignmentMap(), genders)
        for edit in edits:
            _apply(editor, edit)

        for member_id in editor.map.assigned_member_ids():
            for target in editor.map.targets_of(member_id):
                assert member_id in editor.map.members_of(target)

    @pytest.mark.unit
    @given(genders=GENDERS, member_id=MEMBER_IDS, target=TARGETS)
    @PROPERTY_SETTINGS
    def test_assign_then_unassign_restores_map(self, genders, member_id, target):
        editor = AssignmentEditor(AssignmentMap(), genders)
        before = editor.map.to_dict()

        outcome = editor.assign(member_id, target, confirm_car1_imbalance=True)

        assert outcome.applied
        assert editor.unassign(member_id, target) is True
        assert editor.map.to_dict() == before

    @pytest.mark.unit
    @given(assignment_map=assignment_maps())
    @PROPERTY_SETTINGS
    def test_json_form_round_trips(self, assignment_map):
        restored = AssignmentMap.from_dict(assignment_map.to_dict())
        assert restored.to_dict() == assignment_map.to_dict()

    @pytest.mark.unit
    @given(target=TARGETS)
    @PROPERTY_SETTINGS
    def test_target_string_form_parses_back(self, target):
        assert AssignmentTarget.parse(str(target)) == target


# ============================================================================
# Transition tables
# ============================================================================


class TestTransitionTableProperties:

    @pytest.mark.unit
    @given(path=lists(sampled_from(list(NDRStatus)), max_size=12))
    @PROPERTY_SETTINGS
    def test_ndr_walk_only_moves_along_table(self, path):
        current = NDRStatus.PENDING
        for requested in path:
            if is_valid_transition(NDR_TRANSITIONS, current, requested):
                current = requested
            assert current in NDR_TRANSITIONS

    @pytest.mark.unit
    @given(current=sampled_from(terminal_states(RIDE_TRANSITIONS)), target=sampled_from(list(RideStatus)))
    @PROPERTY_SETTINGS
    def test_terminal_rides_never_move(self, current, target):
        assert not is_valid_transition(RIDE_TRANSITIONS, current, target)

    @pytest.mark.unit
    @given(current=sampled_from(list(NDRStatus)))
    @PROPERTY_SETTINGS
    def test_no_self_transitions(self, current):
        assert not is_valid_transition(NDR_TRANSITIONS, current, current)
