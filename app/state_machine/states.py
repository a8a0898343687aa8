"""
Status transition tables for night duty runs and rides
"""
from enum import Enum
from typing import Mapping, Sequence

from app.db.models.ndr import NDRStatus
from app.db.models.ride import RideStatus


# archived -> active is the explicit reactivation path
NDR_TRANSITIONS: dict[NDRStatus, list[NDRStatus]] = {
    NDRStatus.PENDING: [NDRStatus.ACTIVE],
    NDRStatus.ACTIVE: [NDRStatus.COMPLETED],
    NDRStatus.COMPLETED: [NDRStatus.ARCHIVED],
    NDRStatus.ARCHIVED: [NDRStatus.ACTIVE],
}

RIDE_TRANSITIONS: dict[RideStatus, list[RideStatus]] = {
    RideStatus.PENDING: [RideStatus.ACTIVE, RideStatus.CANCELLED, RideStatus.TERMINATED],
    # active -> pending puts a ride back in the queue when its car is unassigned
    RideStatus.ACTIVE: [
        RideStatus.COMPLETED,
        RideStatus.CANCELLED,
        RideStatus.TERMINATED,
        RideStatus.PENDING,
    ],
    RideStatus.COMPLETED: [],
    RideStatus.CANCELLED: [],
    RideStatus.TERMINATED: [],
}


def is_valid_transition(
    transitions: Mapping[Enum, Sequence[Enum]],
    current: Enum,
    target: Enum,
) -> bool:
    return target in transitions.get(current, ())


def terminal_states(transitions: Mapping[Enum, Sequence[Enum]]) -> list[Enum]:
    return [state for state, targets in transitions.items() if not targets]
