from datetime import date, datetime, timedelta, timezone

from scheduler import RefreshCooldown, run_due_jobs, run_maintenance

AT_ROLLOVER = datetime(2024, 1, 10, 0, 5, tzinfo=timezone.utc)


def test_due_jobs_run_when_cron_matches(make_daily):
    make_daily(date(2024, 1, 9))
    result = run_due_jobs(AT_ROLLOVER)
    assert result is not None
    assert result["rollover"] == {"tasks_processed": 1, "tasks_reset": 1}
    assert result["overdue"]["updated_count"] == 0
    assert result["habit_completions_removed"] == 0


def test_due_jobs_skip_other_minutes():
    assert run_due_jobs(AT_ROLLOVER + timedelta(minutes=1)) is None
    assert run_due_jobs(AT_ROLLOVER - timedelta(hours=1)) is None


def test_invalid_or_empty_cron_never_runs(app_config):
    app_config.rollover_cron = "every night"
    app_config.save()
    assert run_due_jobs(AT_ROLLOVER) is None
    app_config.rollover_cron = ""
    app_config.save()
    assert run_due_jobs(AT_ROLLOVER) is None


def test_custom_cron(app_config):
    app_config.rollover_cron = "30 3 * * *"
    app_config.save()
    assert run_due_jobs(AT_ROLLOVER) is None
    assert run_due_jobs(datetime(2024, 1, 10, 3, 30, tzinfo=timezone.utc)) is not None


def test_maintenance_is_repeatable(make_daily):
    make_daily(date(2024, 1, 9))
    assert run_maintenance(AT_ROLLOVER)["rollover"]["tasks_reset"] == 1
    assert run_maintenance(AT_ROLLOVER)["rollover"]["tasks_reset"] == 0


def test_refresh_cooldown():
    cooldown = RefreshCooldown(10)
    t = datetime(2024, 1, 10, 9, 0)
    assert cooldown.should_run(t)
    assert not cooldown.should_run(t + timedelta(minutes=5))
    assert not cooldown.should_run(t + timedelta(minutes=9, seconds=59))
    assert cooldown.should_run(t + timedelta(minutes=10))
    assert not cooldown.should_run(t + timedelta(minutes=11))
    cooldown.reset()
    assert cooldown.should_run(t + timedelta(minutes=12))


def test_zero_cooldown_always_runs():
    cooldown = RefreshCooldown(0)
    t = datetime(2024, 1, 10, 9, 0)
    assert cooldown.should_run(t)
    assert cooldown.should_run(t)
