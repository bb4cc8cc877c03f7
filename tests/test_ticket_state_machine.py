import pytest

from packages.ticketing.state import PurchaseState, PurchaseStateMachine


def test_purchase_state_machine_allows_happy_path():
    path = [
        PurchaseState.IDLE,
        PurchaseState.INPUT_VALIDATED,
        PurchaseState.PAYMENT_AUTHORIZED,
        PurchaseState.TICKETS_ISSUED,
        PurchaseState.REVENUE_RECORDED,
        PurchaseState.COMPLETE,
    ]
    for current, new in zip(path, path[1:]):
        assert PurchaseStateMachine.can_transition(current, new)


def test_revenue_step_can_be_skipped_after_issuance():
    assert PurchaseStateMachine.can_transition(PurchaseState.TICKETS_ISSUED, PurchaseState.COMPLETE)


@pytest.mark.parametrize(
    "state",
    [
        PurchaseState.IDLE,
        PurchaseState.INPUT_VALIDATED,
        PurchaseState.PAYMENT_AUTHORIZED,
        PurchaseState.TICKETS_ISSUED,
        PurchaseState.REVENUE_RECORDED,
    ],
)
def test_failed_reachable_from_every_non_terminal_state(state):
    assert PurchaseStateMachine.can_transition(state, PurchaseState.FAILED)


def test_purchase_state_machine_blocks_invalid_transitions():
    assert not PurchaseStateMachine.can_transition(PurchaseState.INPUT_VALIDATED, PurchaseState.TICKETS_ISSUED)
    assert not PurchaseStateMachine.can_transition(PurchaseState.COMPLETE, PurchaseState.FAILED)
    with pytest.raises(ValueError):
        PurchaseStateMachine.assert_transition(PurchaseState.FAILED, PurchaseState.IDLE)


def test_terminal_states():
    assert PurchaseStateMachine.initial_state() is PurchaseState.IDLE
    assert PurchaseStateMachine.is_terminal(PurchaseState.COMPLETE)
    assert PurchaseStateMachine.is_terminal(PurchaseState.FAILED)
    assert not PurchaseStateMachine.is_terminal(PurchaseState.TICKETS_ISSUED)
