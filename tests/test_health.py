import json

from faire_scout.health import HealthMonitor, HealthState


def _events(path) -> list[str]:
    return [json.loads(line)["event"] for line in path.read_text(encoding="utf-8").splitlines()]


def test_stall_cycles_escalate_and_recover(tmp_path) -> None:
    log_path = tmp_path / "logs" / "health.log"
    monitor = HealthMonitor(run_id="run-1", log_path=log_path)

    for cycle in range(1, 4):
        monitor.record_cycle(cycle=cycle, new_count=0)
    assert monitor.state is HealthState.SUSPECT
    assert monitor.recommended_extra_delay() == 5.0

    for cycle in range(4, 7):
        monitor.record_cycle(cycle=cycle, new_count=0)
    assert monitor.state is HealthState.BLOCKED
    assert monitor.recommended_extra_delay() == 15.0

    monitor.record_cycle(cycle=7, new_count=4)
    assert monitor.state is HealthState.HEALTHY
    assert monitor.stall_streak == 0
    assert monitor.recommended_extra_delay() == 0.0

    events = _events(log_path)
    assert events.count("stall_cycle") == 6
    assert "recovered" in events
    assert events.count("state_change") == 3


def test_detail_successes_drain_the_error_count(tmp_path) -> None:
    monitor = HealthMonitor(run_id="run-2", log_path=tmp_path / "health.log")

    for index in range(3):
        monitor.record_detail_error(product_id=f"p{index}", reason="status=403")
    assert monitor.state is HealthState.SUSPECT

    monitor.record_detail_success(product_id="p9")
    assert monitor.detail_errors == 2
    assert monitor.state is HealthState.HEALTHY

    for _ in range(5):
        monitor.record_detail_success(product_id="p9")
    assert monitor.detail_errors == 0


def test_page_errors_are_logged_with_context(tmp_path) -> None:
    log_path = tmp_path / "health.log"
    monitor = HealthMonitor(run_id="run-3", log_path=log_path)

    monitor.record_page_error(url="https://www.faire.com/search?q=mugs", reason="timeout")

    entry = json.loads(log_path.read_text(encoding="utf-8").strip())
    assert entry["run_id"] == "run-3"
    assert entry["event"] == "page_error"
    assert entry["details"] == {"url": "https://www.faire.com/search?q=mugs"}
