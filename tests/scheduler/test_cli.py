"""
Worker CLI Tests.

The recover and stats commands run against a temporary database; the
long-running worker command is not exercised here.
"""

import json
from datetime import timedelta

from src.scheduler import DelayQueue, ScheduledItem, StatusStore
from src.scheduler.cli import EXIT_CONFIG_ERROR, EXIT_SUCCESS, create_parser, main
from src.scheduler.entities import utc_now


def test_parser_worker_options():
    args = create_parser().parse_args(["--db-path", "x.db", "worker", "-c", "3", "--no-recovery"])

    assert args.command == "worker"
    assert args.db_path == "x.db"
    assert args.concurrency == 3
    assert args.no_recovery is True


def test_recover_rearms_orphan_and_prints_stats(temp_db_path, capsys):
    store = StatusStore(temp_db_path)
    item = store.create(
        ScheduledItem.create("orphan", "o@example.com", utc_now() + timedelta(minutes=5))
    )

    exit_code = main(["--db-path", temp_db_path, "recover"])

    assert exit_code == EXIT_SUCCESS
    stats = json.loads(capsys.readouterr().out)
    assert stats["items_rearmed"] == 1
    assert stats["errors"] == []
    assert DelayQueue(temp_db_path).has_pending(item.id)


def test_stats_prints_counts(temp_db_path, capsys):
    exit_code = main(["--db-path", temp_db_path, "stats"])

    assert exit_code == EXIT_SUCCESS
    stats = json.loads(capsys.readouterr().out)
    assert stats["events"]["SCHEDULED"] == 0
    assert stats["jobs"]["PENDING"] == 0
    assert stats["is_running"] is False


def test_invalid_configuration_exits_with_config_error(monkeypatch, capsys):
    monkeypatch.setenv("WORKER_CONCURRENCY", "many")

    exit_code = main(["stats"])

    assert exit_code == EXIT_CONFIG_ERROR
    assert "WORKER_CONCURRENCY" in capsys.readouterr().err


def test_no_command_prints_help(temp_db_path, capsys):
    assert main(["--db-path", temp_db_path]) == EXIT_SUCCESS
    assert "usage" in capsys.readouterr().out.lower()
