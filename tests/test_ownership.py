"""Unit tests for the ownership state machine and OwnershipArbiter."""

from unittest.mock import AsyncMock

import pytest

from termpanel.enums import OwnershipState, OwnershipTransition, TerminalEventType
from termpanel.panel import HostBridge, OwnershipArbiter, PanelEventEmitter
from termpanel.panel.ownership import next_state
from termpanel.schema import OwnershipResult, OwnershipStatus


def _host(status: OwnershipStatus, claim: OwnershipResult = None):
    return {
        "check_terminal_ownership": AsyncMock(return_value=status),
        "claim_terminal_ownership": AsyncMock(return_value=claim or OwnershipResult(success=True)),
        "release_terminal_ownership": AsyncMock(return_value=OwnershipResult(success=True)),
    }


def _arbiter(actions):
    events = PanelEventEmitter()
    return OwnershipArbiter(HostBridge(actions), events), events


def test_transition_table_is_total():
    for state in OwnershipState:
        for transition in OwnershipTransition:
            assert isinstance(next_state(state, transition), OwnershipState)


def test_claimed_other_is_left_only_by_claim():
    for transition in OwnershipTransition:
        expected = (
            OwnershipState.CLAIMED_SELF
            if transition == OwnershipTransition.CLAIMED
            else OwnershipState.CLAIMED_OTHER
        )
        assert next_state(OwnershipState.CLAIMED_OTHER, transition) == expected


@pytest.mark.asyncio
async def test_claim_unowned_session():
    actions = _host(OwnershipStatus(exists=True))
    arbiter, _ = _arbiter(actions)

    result = await arbiter.claim_ownership("s1")

    assert result.success
    assert arbiter.owns("s1")
    actions["claim_terminal_ownership"].assert_awaited_once_with("s1", False)


@pytest.mark.asyncio
async def test_claim_owned_elsewhere_without_force_does_not_call_host():
    actions = _host(OwnershipStatus(exists=True, owned_by_window_id=7, can_claim=False, owner_window_exists=True))
    arbiter, _ = _arbiter(actions)

    result = await arbiter.claim_ownership("s1")

    assert not result.success
    assert result.reason == "owned-elsewhere"
    assert result.owned_by_window_id == 7
    assert arbiter.state("s1") == OwnershipState.CLAIMED_OTHER
    actions["claim_terminal_ownership"].assert_not_awaited()


@pytest.mark.asyncio
async def test_forced_claim_takes_over():
    actions = _host(OwnershipStatus(exists=True, owned_by_window_id=7, owner_window_exists=True))
    arbiter, _ = _arbiter(actions)
    await arbiter.claim_ownership("s1")

    result = await arbiter.claim_ownership("s1", force=True)

    assert result.success
    assert arbiter.owns("s1")
    actions["claim_terminal_ownership"].assert_awaited_once_with("s1", True)


@pytest.mark.asyncio
async def test_orphaned_session_is_taken_over_without_force():
    actions = _host(OwnershipStatus(exists=True, owned_by_window_id=7, owner_window_exists=False))
    arbiter, _ = _arbiter(actions)

    result = await arbiter.claim_ownership("s1")

    assert result.success
    actions["claim_terminal_ownership"].assert_awaited_once_with("s1", True)


@pytest.mark.asyncio
async def test_claim_missing_session():
    actions = _host(OwnershipStatus(exists=False, can_claim=False))
    arbiter, _ = _arbiter(actions)

    result = await arbiter.claim_ownership("gone")

    assert result.reason == "not-found"
    assert arbiter.state("gone") == OwnershipState.UNCLAIMED


@pytest.mark.asyncio
async def test_host_failure_is_reported_as_host_error():
    actions = _host(OwnershipStatus(exists=True))
    actions["check_terminal_ownership"].side_effect = OSError("ipc down")
    arbiter, _ = _arbiter(actions)

    result = await arbiter.claim_ownership("s1")

    assert result == OwnershipResult(success=False, reason="host-error")


@pytest.mark.asyncio
async def test_host_without_ownership_actions_always_owns():
    arbiter, _ = _arbiter({})
    result = await arbiter.claim_ownership("s1")
    assert result.success
    assert arbiter.owns("s1")


@pytest.mark.asyncio
async def test_release_is_idempotent():
    actions = _host(OwnershipStatus(exists=True))
    arbiter, _ = _arbiter(actions)
    await arbiter.claim_ownership("s1")

    assert (await arbiter.release_ownership("s1")).success
    assert (await arbiter.release_ownership("s1")).success
    assert (await arbiter.release_ownership("never-claimed")).success

    actions["release_terminal_ownership"].assert_awaited_once_with("s1")
    assert arbiter.state("s1") == OwnershipState.UNCLAIMED


@pytest.mark.asyncio
async def test_ownership_lost_push_notifies_owner():
    actions = _host(OwnershipStatus(exists=True))
    arbiter, events = _arbiter(actions)
    await arbiter.claim_ownership("s1")

    lost = []
    arbiter.on_ownership_lost("s1", lost.append)
    events.emit(TerminalEventType.OWNERSHIP_LOST, {"sessionId": "s1", "newOwnerWindowId": 3})

    assert arbiter.state("s1") == OwnershipState.CLAIMED_OTHER
    assert arbiter.record("s1").owner_window_id == 3
    assert [e.new_owner_window_id for e in lost] == [3]


@pytest.mark.asyncio
async def test_ownership_lost_for_unowned_session_is_ignored():
    arbiter, events = _arbiter(_host(OwnershipStatus(exists=True)))
    lost = []
    arbiter.on_ownership_lost("s1", lost.append)

    events.emit(TerminalEventType.OWNERSHIP_LOST, {"sessionId": "s1", "newOwnerWindowId": 3})

    assert lost == []


@pytest.mark.asyncio
async def test_check_ownership_syncs_local_state():
    actions = _host(OwnershipStatus(exists=True, owned_by_window_id=2, owned_by_this_window=True))
    arbiter, _ = _arbiter(actions)

    status = await arbiter.check_ownership("s1")

    assert status.owned_by_this_window
    assert arbiter.owns("s1")
