from datetime import timedelta

import pytest
from pydantic import ValidationError

from src.config import AlertSeverity, AlertType, EscalationLevel, VisitStatus
from src.core import DomainException, ValidationException
from src.monitoring.domain import Alert, AlertScope, EscalationPolicy, MonitorConfig, VisitStateMachine
from tests.helpers import NOW, make_visit


def minutes(n):
    return timedelta(minutes=n)


# ----- state machine -----

def test_scheduled_visit_before_start_is_on_time():
    result = VisitStateMachine.evaluate(make_visit(), NOW - minutes(5))
    assert result.status == VisitStatus.SCHEDULED
    assert not result.is_late
    assert not result.exceeds_time_limit


def test_visit_is_not_late_exactly_at_start():
    result = VisitStateMachine.evaluate(make_visit(), NOW)
    assert result.status == VisitStatus.SCHEDULED
    assert not result.is_late


def test_unstarted_visit_past_start_is_late():
    visit = make_visit(scheduled_start=NOW - minutes(30), scheduled_end=NOW + minutes(30))
    result = VisitStateMachine.evaluate(visit, NOW)
    assert result.status == VisitStatus.LATE
    assert result.is_late
    assert result.delay_minutes == 30


def test_grace_period_delays_lateness():
    config = MonitorConfig(grace_period_minutes=10)
    visit = make_visit(scheduled_start=NOW - minutes(5))
    assert not VisitStateMachine.evaluate(visit, NOW, config).is_late
    assert VisitStateMachine.evaluate(visit, NOW + minutes(6), config).is_late


def test_late_visit_rescheduled_into_future_evaluates_back_to_scheduled():
    visit = make_visit(
        status=VisitStatus.LATE, is_late=True,
        scheduled_start=NOW + minutes(30), scheduled_end=NOW + minutes(90)
    )
    result = VisitStateMachine.evaluate(visit, NOW)
    assert result.status == VisitStatus.SCHEDULED
    assert not result.is_late
    assert result.differs_from(visit)


def test_in_progress_exceeds_only_strictly_after_allowed_duration():
    visit = make_visit(status=VisitStatus.IN_PROGRESS, actual_start=NOW - minutes(60), allowed_duration_minutes=60)
    assert not VisitStateMachine.evaluate(visit, NOW).exceeds_time_limit

    result = VisitStateMachine.evaluate(visit, NOW + timedelta(seconds=1))
    assert result.exceeds_time_limit
    assert result.status == VisitStatus.IN_PROGRESS
    assert not result.is_late


def test_in_progress_overrun_minutes():
    visit = make_visit(status=VisitStatus.IN_PROGRESS, actual_start=NOW - minutes(90), allowed_duration_minutes=60)
    result = VisitStateMachine.evaluate(visit, NOW)
    assert result.exceeds_time_limit
    assert result.overrun_minutes == 30


@pytest.mark.parametrize("status", [VisitStatus.COMPLETED, VisitStatus.CANCELLED, VisitStatus.NO_SHOW])
def test_terminal_visits_keep_status_and_clear_flags(status):
    visit = make_visit(status=status, is_late=True, exceeds_time_limit=True, scheduled_start=NOW - minutes(300),
                       scheduled_end=NOW - minutes(200))
    result = VisitStateMachine.evaluate(visit, NOW)
    assert result.status == status
    assert not result.is_late
    assert not result.exceeds_time_limit


def test_no_show_disabled_by_default():
    visit = make_visit(scheduled_start=NOW - minutes(600), scheduled_end=NOW - minutes(540))
    assert VisitStateMachine.evaluate(visit, NOW).status == VisitStatus.LATE


def test_no_show_after_configured_window():
    config = MonitorConfig(no_show_after_minutes=30)
    visit = make_visit(scheduled_start=NOW - minutes(120), scheduled_end=NOW - minutes(60))
    result = VisitStateMachine.evaluate(visit, NOW, config)
    assert result.status == VisitStatus.NO_SHOW
    assert not result.is_late

    assert VisitStateMachine.evaluate(visit, NOW - minutes(31), config).status == VisitStatus.LATE


def test_evaluation_is_idempotent():
    visit = make_visit(scheduled_start=NOW - minutes(30))
    assert VisitStateMachine.evaluate(visit, NOW) == VisitStateMachine.evaluate(visit, NOW)


# ----- visit transitions -----

def test_visit_requires_non_empty_window():
    with pytest.raises(ValidationException):
        make_visit(scheduled_end=NOW)


def test_visit_requires_positive_duration():
    with pytest.raises(ValidationException):
        make_visit(allowed_duration_minutes=0)


def test_check_in_from_late_starts_visit():
    visit = make_visit(status=VisitStatus.LATE, is_late=True)
    visit.check_in(NOW + minutes(10))
    assert visit.status == VisitStatus.IN_PROGRESS
    assert visit.actual_start == NOW + minutes(10)
    assert not visit.is_late


def test_check_out_requires_in_progress():
    with pytest.raises(DomainException):
        make_visit().check_out(NOW)


def test_cannot_cancel_completed_visit():
    with pytest.raises(DomainException):
        make_visit(status=VisitStatus.COMPLETED).cancel(NOW)


def test_cancel_clears_flags():
    visit = make_visit(status=VisitStatus.LATE, is_late=True)
    visit.cancel(NOW)
    assert visit.status == VisitStatus.CANCELLED
    assert not visit.is_late


# ----- alerts -----

def make_alert(**overrides):
    fields = dict(
        id="alert-1", alert_type=AlertType.TIME_EXCEEDED, severity=AlertSeverity.MEDIUM,
        message="over time", visit_id="visit-1", representative_id="rep-1", created_at=NOW
    )
    fields.update(overrides)
    return Alert(**fields)


def test_scope_prefers_visit():
    assert AlertScope(visit_id="v1", representative_id="r1").key == "visit:v1"
    assert AlertScope(representative_id="r1").key == "representative:r1"


def test_scope_requires_an_id():
    with pytest.raises(ValidationException):
        AlertScope()


def test_escalation_ladder_raises_severity_and_caps():
    alert = make_alert()
    alert.escalate(NOW + minutes(30))
    assert alert.escalation_level == EscalationLevel.ESCALATED
    assert alert.severity == AlertSeverity.HIGH

    alert.escalate(NOW + minutes(60))
    assert alert.escalation_level == EscalationLevel.CRITICAL
    assert alert.severity == AlertSeverity.CRITICAL

    alert.escalate(NOW + minutes(90))
    assert alert.escalation_level == EscalationLevel.CRITICAL
    assert alert.escalation_count == 3


def test_escalating_resolved_alert_is_rejected():
    alert = make_alert()
    alert.resolve("ops", NOW)
    with pytest.raises(DomainException):
        alert.escalate(NOW)


def test_resolve_twice_keeps_first_resolution():
    alert = make_alert()
    assert alert.resolve("alice", NOW)
    assert not alert.resolve("bob", NOW + minutes(5))
    assert alert.resolved_by == "alice"
    assert alert.resolved_at == NOW


def test_escalation_due_after_each_threshold():
    alert = make_alert()
    thresholds = [30, 60]
    assert not EscalationPolicy.is_due(alert, NOW + minutes(29), thresholds)
    assert EscalationPolicy.is_due(alert, NOW + minutes(30), thresholds)

    alert.escalate(NOW + minutes(30))
    assert not EscalationPolicy.is_due(alert, NOW + minutes(45), thresholds)
    assert EscalationPolicy.is_due(alert, NOW + minutes(60), thresholds)

    alert.escalate(NOW + minutes(60))
    assert not EscalationPolicy.is_due(alert, NOW + minutes(600), thresholds)


# ----- policy -----

def test_thresholds_must_increase():
    with pytest.raises(ValidationError):
        MonitorConfig(escalation_thresholds_minutes=[60, 30])


def test_thresholds_must_be_positive():
    with pytest.raises(ValidationError):
        MonitorConfig(escalation_thresholds_minutes=[0, 30])


def test_missing_severities_fall_back_to_defaults():
    config = MonitorConfig(alert_severities={"late_arrival": "critical"})
    assert config.severity_for(AlertType.LATE_ARRIVAL) == AlertSeverity.CRITICAL
    assert config.severity_for(AlertType.NO_SHOW) == AlertSeverity.CRITICAL
    assert config.severity_for(AlertType.TIME_EXCEEDED) == AlertSeverity.MEDIUM
