"""
Status state machines for NDRs and rides
"""
from app.state_machine.states import (
    NDR_TRANSITIONS,
    RIDE_TRANSITIONS,
    is_valid_transition,
)

__all__ = ["NDR_TRANSITIONS", "RIDE_TRANSITIONS", "is_valid_transition"]
