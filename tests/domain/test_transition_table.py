"""
Transition table tests.

Exhaustive checks over every declared workflow:
1. Declared moves are accepted with the declared target
2. Unknown events are rejected as unknown_event
3. Known events from the wrong state are rejected as illegal_transition
4. Terminal states have no exits
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from workflow_kernel.domain.transitions import (
    CONSENT_WORKFLOW,
    WORKFLOWS,
    Accepted,
    Rejected,
    RejectionReason,
    Transition,
    Workflow,
    is_terminal,
    require_transition,
    transition,
)
from workflow_kernel.domain.types import (
    CaseStatus,
    ConsentStatus,
    EntityKind,
    ImportBatchStatus,
    ScreeningStatus,
)
from workflow_kernel.exceptions import InvalidStateError, UnknownEventError

ALL_KINDS = list(WORKFLOWS)


class TestDeclaredTransitions:
    @pytest.mark.parametrize("kind", ALL_KINDS, ids=lambda k: k.value)
    def test_every_declared_move_is_accepted(self, kind):
        workflow = WORKFLOWS[kind]
        for t in workflow.transitions:
            result = transition(kind, t.from_state, t.event)
            assert result == Accepted(t.to_state)
            assert result.accepted

    def test_screening_table(self):
        assert transition(EntityKind.SCREENING, ScreeningStatus.NOT_STARTED, "start") == \
            Accepted("in_progress")
        assert transition(EntityKind.SCREENING, ScreeningStatus.IN_PROGRESS, "save") == \
            Accepted("in_progress")
        assert transition(EntityKind.SCREENING, ScreeningStatus.IN_PROGRESS, "complete") == \
            Accepted("completed")
        assert transition(EntityKind.SCREENING, ScreeningStatus.IN_PROGRESS, "abandon") == \
            Accepted("abandoned")

    def test_consent_auto_grant_leads_to_granted(self):
        assert transition(EntityKind.CONSENT, ConsentStatus.PENDING, "auto_grant") == \
            Accepted("granted")

    def test_import_commit_requires_ready(self):
        result = transition(EntityKind.IMPORT_BATCH, ImportBatchStatus.FAILED, "commit")
        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.ILLEGAL_TRANSITION

    def test_case_finalize_from_pending_closure(self):
        assert transition(EntityKind.CASE_FILE, CaseStatus.PENDING_CLOSURE, "finalize") == \
            Accepted("closed")

    def test_kind_accepts_plain_string(self):
        assert transition("screening", "not_started", "start") == Accepted("in_progress")


class TestRejections:
    def test_unknown_event(self):
        result = transition(EntityKind.SCREENING, ScreeningStatus.IN_PROGRESS, "teleport")
        assert result == Rejected(RejectionReason.UNKNOWN_EVENT, "in_progress", "teleport")
        assert not result.accepted

    def test_illegal_from_state(self):
        result = transition(EntityKind.SCREENING, ScreeningStatus.COMPLETED, "save")
        assert result.reason == RejectionReason.ILLEGAL_TRANSITION
        assert result.current_state == "completed"

    def test_granted_cannot_be_denied(self):
        result = transition(EntityKind.CONSENT, ConsentStatus.GRANTED, "deny")
        assert result.reason == RejectionReason.ILLEGAL_TRANSITION

    def test_require_transition_raises_invalid_state(self):
        with pytest.raises(InvalidStateError) as exc_info:
            require_transition(EntityKind.CASE_FILE, "case-1", CaseStatus.ACTIVE, "finalize")
        assert exc_info.value.current_state == "active"
        assert exc_info.value.operation == "finalize"
        assert exc_info.value.entity_type == "CaseFile"

    def test_require_transition_raises_unknown_event(self):
        with pytest.raises(UnknownEventError) as exc_info:
            require_transition(EntityKind.CONSENT, "c-1", ConsentStatus.PENDING, "maybe")
        assert exc_info.value.event == "maybe"

    def test_require_transition_returns_next_state(self):
        assert require_transition(
            EntityKind.IMPORT_BATCH, "b-1", ImportBatchStatus.VALIDATING, "validated",
        ) == "ready_to_commit"


class TestTerminalStates:
    @pytest.mark.parametrize("kind", ALL_KINDS, ids=lambda k: k.value)
    def test_terminal_states_have_no_exits(self, kind):
        workflow = WORKFLOWS[kind]
        for state in workflow.terminal_states:
            for event in workflow.events:
                assert not transition(kind, state, event).accepted

    def test_is_terminal(self):
        assert is_terminal(EntityKind.SCREENING, ScreeningStatus.ABANDONED)
        assert is_terminal(EntityKind.CASE_FILE, "closed")
        assert not is_terminal(EntityKind.CONSENT, ConsentStatus.GRANTED)
        assert CONSENT_WORKFLOW.terminal_states == ("denied", "expired")


class TestWorkflowDefinition:
    def test_initial_state_must_be_declared(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="broken", entity_type="X", initial_state="nowhere",
                states=("a",), transitions=(),
            )

    def test_transition_to_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="broken", entity_type="X", initial_state="a",
                states=("a",), transitions=(Transition("a", "b", "go"),),
            )

    def test_terminal_state_with_exit_rejected(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                name="broken", entity_type="X", initial_state="a",
                states=("a", "b"), transitions=(Transition("b", "a", "back"),),
                terminal_states=("b",),
            )


class TestTransitionProperties:
    @given(
        kind=st.sampled_from(ALL_KINDS),
        data=st.data(),
    )
    def test_lookup_is_total_and_pure(self, kind, data):
        """Every (state, event) pair yields a result, the same one every time."""
        workflow = WORKFLOWS[kind]
        state = data.draw(st.sampled_from(workflow.states))
        event = data.draw(st.one_of(st.sampled_from(sorted(workflow.events)), st.text()))
        first = transition(kind, state, event)
        second = transition(kind, state, event)
        assert first == second
        if first.accepted:
            assert first.next_state in workflow.states
        elif event not in workflow.events:
            assert first.reason == RejectionReason.UNKNOWN_EVENT
        else:
            assert first.reason == RejectionReason.ILLEGAL_TRANSITION
