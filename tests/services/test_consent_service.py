"""Tests for the consent lifecycle: auto-consent, expiry, explicit decisions."""

from dataclasses import replace
from datetime import timedelta
from uuid import uuid4

import pytest

from workflow_kernel.domain.types import ConsentDecision, ConsentStatus, ConsentType
from workflow_kernel.exceptions import (
    ConsentChainError,
    EntityNotFoundError,
    InvalidStateError,
)
from workflow_kernel.services.base import SYSTEM_ACTOR_ID


@pytest.fixture
def pending(engine):
    return engine.request_consent("child-1", ConsentType.SCREENING)


class TestRequestConsent:
    def test_request_creates_pending(self, engine, clock, pending):
        assert pending.status == ConsentStatus.PENDING
        assert pending.requested_on == clock.now()
        assert pending.auto_consent_window_days == 7
        assert pending.valid_until is None

    def test_window_override(self, engine):
        record = engine.request_consent("child-2", "referral", auto_consent_window_days=3)
        assert record.auto_consent_window_days == 3
        assert record.consent_type == ConsentType.REFERRAL

    def test_open_pending_blocks_new_request(self, engine, pending):
        with pytest.raises(InvalidStateError):
            engine.request_consent("child-1", ConsentType.SCREENING)

    def test_granted_blocks_new_request(self, engine, pending):
        engine.resolve_consent(pending.consent_id, ConsentDecision.GRANT)
        with pytest.raises(InvalidStateError):
            engine.request_consent("child-1", ConsentType.SCREENING)

    def test_other_type_allowed(self, engine, pending):
        other = engine.request_consent("child-1", ConsentType.DATA_SHARING)
        assert other.status == ConsentStatus.PENDING

    def test_denied_is_superseded_not_deleted(self, engine, pending):
        engine.resolve_consent(pending.consent_id, "deny")
        fresh = engine.request_consent("child-1", ConsentType.SCREENING)
        old = engine.get_consent(pending.consent_id)
        assert old.status == ConsentStatus.DENIED
        assert old.superseded_by_id == fresh.consent_id
        assert len(engine.list_consents("child-1")) == 2

    def test_same_instant_requests_form_one_chain(self, engine):
        created = []
        for _ in range(6):
            record = engine.request_consent("child-9", ConsentType.SCREENING)
            engine.resolve_consent(record.consent_id, ConsentDecision.DENY)
            created.append(record.consent_id)

        successor = {
            r.consent_id: r.superseded_by_id for r in engine.list_consents("child-9")
        }
        assert [successor[cid] for cid in created] == created[1:] + [None]

    def test_two_unsuperseded_records_refuse_new_request(self, engine, test_actor_id):
        first = engine.request_consent("child-9", ConsentType.SCREENING)
        engine.resolve_consent(first.consent_id, ConsentDecision.DENY)
        second = engine.request_consent("child-9", ConsentType.SCREENING)
        engine.resolve_consent(second.consent_id, ConsentDecision.DENY)
        linked = engine.get_consent(first.consent_id)
        engine.store.put(replace(linked, superseded_by_id=None), test_actor_id)

        with pytest.raises(ConsentChainError) as exc_info:
            engine.request_consent("child-9", ConsentType.SCREENING)
        assert set(exc_info.value.unsuperseded_ids) == {
            str(first.consent_id), str(second.consent_id),
        }
        assert len(engine.list_consents("child-9")) == 2

    def test_expired_record_allows_new_request(self, engine, clock, pending):
        engine.resolve_consent(pending.consent_id, "grant")
        clock.advance_days(366)
        fresh = engine.request_consent("child-1", ConsentType.SCREENING)
        assert engine.get_consent(pending.consent_id).status == ConsentStatus.EXPIRED
        assert fresh.status == ConsentStatus.PENDING

    def test_invalid_window(self, engine):
        with pytest.raises(ValueError):
            engine.request_consent("child-3", "screening", auto_consent_window_days=0)


class TestAutoConsent:
    def test_pending_past_window_auto_grants(self, engine, clock, pending):
        clock.advance_days(8)
        record = engine.evaluate_consent(pending.consent_id)
        assert record.status == ConsentStatus.GRANTED
        assert record.auto_granted
        assert record.resolved_on == clock.now()
        assert record.valid_until == clock.now() + timedelta(days=365)

    def test_pending_within_window_stays_pending(self, engine, clock, pending):
        clock.advance_days(6)
        assert engine.evaluate_consent(pending.consent_id).status == ConsentStatus.PENDING

    def test_exactly_window_days_stays_pending(self, engine, clock, pending):
        clock.advance_days(7)
        assert engine.evaluate_consent(pending.consent_id).status == ConsentStatus.PENDING

    def test_evaluate_is_idempotent(self, engine, clock, pending):
        clock.advance_days(8)
        first = engine.evaluate_consent(pending.consent_id)
        second = engine.evaluate_consent(pending.consent_id)
        assert first == second

    def test_no_write_when_nothing_changes(self, engine, pending):
        again = engine.evaluate_consent(pending.consent_id)
        assert again.version == pending.version

    def test_auto_grant_audited_as_system(self, engine, clock, pending):
        clock.advance_days(8)
        engine.get_consent(pending.consent_id)
        trail = engine.audit_trail(pending.consent_id)
        assert [e.action for e in trail] == ["request", "auto_grant"]
        assert trail[1].actor_id == SYSTEM_ACTOR_ID

    def test_auto_granted_then_expires(self, engine, clock, pending):
        clock.advance_days(8)
        engine.evaluate_consent(pending.consent_id)
        clock.advance_days(366)
        assert engine.evaluate_consent(pending.consent_id).status == ConsentStatus.EXPIRED

    def test_both_steps_in_one_evaluation(self, engine, clock, pending):
        clock.advance_days(8)
        clock.advance_days(400)
        record = engine.evaluate_consent(pending.consent_id)
        # auto-grant stamps validity from now, so it cannot expire in the same read
        assert record.status == ConsentStatus.GRANTED


class TestResolveConsent:
    def test_grant(self, engine, clock, pending):
        record = engine.resolve_consent(pending.consent_id, ConsentDecision.GRANT)
        assert record.status == ConsentStatus.GRANTED
        assert not record.auto_granted
        assert record.valid_until == clock.now() + timedelta(days=365)

    def test_deny(self, engine, pending):
        record = engine.resolve_consent(pending.consent_id, ConsentDecision.DENY)
        assert record.status == ConsentStatus.DENIED
        assert record.valid_until is None

    def test_deny_after_auto_grant_rejected(self, engine, clock, pending):
        clock.advance_days(8)
        with pytest.raises(InvalidStateError):
            engine.resolve_consent(pending.consent_id, ConsentDecision.DENY)

    def test_rejected_decision_writes_nothing(self, engine, clock, pending):
        clock.advance_days(8)
        with pytest.raises(InvalidStateError):
            engine.resolve_consent(pending.consent_id, "grant")
        assert [e.action for e in engine.audit_trail(pending.consent_id)] == ["request"]

    def test_unknown_decision(self, engine, pending):
        with pytest.raises(ValueError):
            engine.resolve_consent(pending.consent_id, "maybe")

    def test_unknown_consent(self, engine):
        with pytest.raises(EntityNotFoundError):
            engine.resolve_consent(uuid4(), "grant")
