from __future__ import annotations

from enum import Enum


class PurchaseState(str, Enum):
    """Supported states for one purchase attempt."""

    IDLE = "idle"
    INPUT_VALIDATED = "input_validated"
    PAYMENT_AUTHORIZED = "payment_authorized"
    TICKETS_ISSUED = "tickets_issued"
    REVENUE_RECORDED = "revenue_recorded"
    COMPLETE = "complete"
    FAILED = "failed"


class PurchaseStateMachine:
    """Validate purchase lifecycle transitions."""

    _TRANSITIONS: dict[PurchaseState, set[PurchaseState]] = {
        PurchaseState.IDLE: {PurchaseState.INPUT_VALIDATED, PurchaseState.FAILED},
        PurchaseState.INPUT_VALIDATED: {PurchaseState.PAYMENT_AUTHORIZED, PurchaseState.FAILED},
        PurchaseState.PAYMENT_AUTHORIZED: {PurchaseState.TICKETS_ISSUED, PurchaseState.FAILED},
        # Revenue recording failures are warnings; issued tickets stay valid.
        PurchaseState.TICKETS_ISSUED: {
            PurchaseState.REVENUE_RECORDED,
            PurchaseState.COMPLETE,
            PurchaseState.FAILED,
        },
        PurchaseState.REVENUE_RECORDED: {PurchaseState.COMPLETE, PurchaseState.FAILED},
        PurchaseState.COMPLETE: set(),
        PurchaseState.FAILED: set(),
    }

    @classmethod
    def initial_state(cls) -> PurchaseState:
        return PurchaseState.IDLE

    @classmethod
    def is_terminal(cls, state: PurchaseState) -> bool:
        return not cls._TRANSITIONS.get(state)

    @classmethod
    def can_transition(cls, current: PurchaseState, new: PurchaseState) -> bool:
        return new in cls._TRANSITIONS.get(current, set())

    @classmethod
    def assert_transition(cls, current: PurchaseState, new: PurchaseState) -> None:
        if not cls.can_transition(current, new):
            raise ValueError(f"Invalid purchase state transition: {current.value} -> {new.value}")
