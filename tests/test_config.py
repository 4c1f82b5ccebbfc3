import pytest

from src.config import AlertSeverity, AlertType
from src.core import FatalConfigException
from src.monitoring.infrastructure import MonitorConfigManager

VALID_CONFIG = """
grace_period_minutes: 5
no_show_after_minutes: 45
online_window_minutes: 20
escalation_thresholds_minutes: [15, 45, 90]
presence_alerts_enabled: false
alert_severities:
  late_arrival: critical
"""


def write(path, text):
    path.write_text(text)
    return path


def test_load_valid_file(tmp_path):
    manager = MonitorConfigManager()
    config = manager.load(write(tmp_path / "monitor.yaml", VALID_CONFIG))

    assert config.grace_period_minutes == 5
    assert config.no_show_after_minutes == 45
    assert config.escalation_thresholds_minutes == [15, 45, 90]
    assert not config.presence_alerts_enabled
    assert config.severity_for(AlertType.LATE_ARRIVAL) == AlertSeverity.CRITICAL
    assert config.severity_for(AlertType.TIME_EXCEEDED) == AlertSeverity.MEDIUM
    assert manager.get_config() is config


def test_missing_file_uses_defaults(tmp_path):
    manager = MonitorConfigManager()
    config = manager.load(tmp_path / "absent.yaml")

    assert config.escalation_thresholds_minutes == [30, 60]
    assert config.no_show_after_minutes is None
    assert config.online_window_minutes == 30


def test_empty_file_uses_defaults(tmp_path):
    config = MonitorConfigManager().load(write(tmp_path / "monitor.yaml", ""))
    assert config.grace_period_minutes == 0


@pytest.mark.parametrize("text", [
    "escalation_thresholds_minutes: [60, 30]\n",
    "grace_period_minutes: -1\n",
    "alert_severities: {late_arrival: apocalyptic}\n",
    "grace_period_minutes: [unclosed\n",
    "- just\n- a list\n",
])
def test_invalid_file_is_fatal_at_startup(tmp_path, text):
    with pytest.raises(FatalConfigException):
        MonitorConfigManager().load(write(tmp_path / "monitor.yaml", text))


def test_reload_applies_valid_changes(tmp_path):
    path = write(tmp_path / "monitor.yaml", VALID_CONFIG)
    manager = MonitorConfigManager()
    manager.load(path)

    write(path, "grace_period_minutes: 10\n")
    assert manager.reload()
    assert manager.config.grace_period_minutes == 10


def test_reload_keeps_previous_config_on_invalid_file(tmp_path):
    path = write(tmp_path / "monitor.yaml", VALID_CONFIG)
    manager = MonitorConfigManager()
    manager.load(path)

    write(path, "escalation_thresholds_minutes: [0]\n")
    assert not manager.reload()
    assert manager.config.escalation_thresholds_minutes == [15, 45, 90]


def test_config_before_load_is_an_error():
    with pytest.raises(RuntimeError):
        MonitorConfigManager().get_config()


def test_watching_can_start_and_stop(tmp_path):
    manager = MonitorConfigManager()
    manager.load(write(tmp_path / "monitor.yaml", VALID_CONFIG))
    manager.start_watching()
    manager.stop_watching()
    manager.stop_watching()
