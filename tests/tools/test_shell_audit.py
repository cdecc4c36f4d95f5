"""Tests for the shell audit logger."""

import json
import threading
from datetime import datetime, timedelta

import pytest

from aiya.tools.shell import (
    AuditConfig,
    CommandCategory,
    ExecutionLogger,
    SecurityEventType,
    ShellErrorType,
)


def log_run(audit: ExecutionLogger, command: str, success: bool = True, **kwargs):
    return audit.log_execution(
        command,
        "/workspace",
        exit_code=0 if success else 1,
        execution_time_ms=kwargs.pop("execution_time_ms", 10),
        success=success,
        **kwargs,
    )


class TestExecutionLogger:
    """Tests for recording, querying and exporting audit records."""

    def test_security_event_recorded(self):
        audit = ExecutionLogger(session_id="s-1")
        event = audit.log_security_event(
            SecurityEventType.COMMAND_BLOCKED,
            "rm -rf /",
            "/workspace",
            "Deletion of the filesystem root",
            category=CommandCategory.BLOCKED,
        )
        assert event.session_id == "s-1"
        assert audit.get_security_events() == [event]
        assert event.to_dict()["eventType"] == "COMMAND_BLOCKED"

    def test_events_newest_first(self):
        audit = ExecutionLogger()
        for command in ("a", "b", "c"):
            audit.log_security_event(SecurityEventType.COMMAND_DENIED, command, "/w", "Denied by user")
        assert [e.command for e in audit.get_security_events()] == ["c", "b", "a"]
        assert [e.command for e in audit.get_security_events(limit=1)] == ["c"]

    def test_bounded_logs_evict_oldest(self):
        """Test the in-memory logs keep only the newest entries."""
        audit = ExecutionLogger(AuditConfig(max_events=2, max_execution_logs=2))
        for command in ("a", "b", "c"):
            audit.log_security_event(SecurityEventType.COMMAND_DENIED, command, "/w", "Denied")
            log_run(audit, command)
        assert [e.command for e in audit.get_security_events()] == ["c", "b"]
        assert [r.command for r in audit.get_execution_logs()] == ["c", "b"]
        assert audit.get_log_counts() == {"securityEvents": 2, "executionLogs": 2}

    def test_output_previews_truncated(self):
        audit = ExecutionLogger(AuditConfig(max_preview_length=20))
        record = log_run(audit, "yes", stdout="y\n" * 100)
        assert len(record.stdout) <= 20 + len("...")

    def test_query_execution_logs(self):
        audit = ExecutionLogger()
        log_run(audit, "git status", category=CommandCategory.SAFE)
        log_run(audit, "git push", success=False, category=CommandCategory.RISKY,
                error_type=ShellErrorType.EXECUTION_ERROR)
        log_run(audit, "npm test", category=CommandCategory.SAFE)

        assert [r.command for r in audit.query_execution_logs(command_pattern="^git")] == ["git push", "git status"]
        assert [r.command for r in audit.query_execution_logs(success=False)] == ["git push"]
        assert [r.command for r in audit.query_execution_logs(error_type=ShellErrorType.EXECUTION_ERROR)] == ["git push"]
        assert [r.command for r in audit.query_execution_logs(category=CommandCategory.SAFE, limit=1)] == ["npm test"]
        assert [r.command for r in audit.query_execution_logs(offset=1, limit=1)] == ["git push"]
        assert audit.query_execution_logs(since=datetime.now() + timedelta(minutes=1)) == []

    def test_security_summary(self):
        audit = ExecutionLogger(session_id="s-2")
        audit.log_security_event(SecurityEventType.COMMAND_BLOCKED, "rm -rf /", "/w", "r",
                                 category=CommandCategory.BLOCKED)
        audit.log_security_event(SecurityEventType.COMMAND_BLOCKED, "mkfs /dev/sda", "/w", "r",
                                 category=CommandCategory.BLOCKED)
        audit.log_security_event(SecurityEventType.COMMAND_DENIED, "git push", "/w", "r",
                                 category=CommandCategory.RISKY)

        summary = audit.get_security_summary()
        assert summary["sessionId"] == "s-2"
        assert summary["totalEvents"] == 3
        assert summary["eventsByType"] == {"COMMAND_BLOCKED": 2, "COMMAND_DENIED": 1}
        assert summary["eventsByCategory"] == {"blocked": 2, "risky": 1}
        assert summary["lastEvent"] is not None

    def test_execution_statistics(self):
        audit = ExecutionLogger()
        log_run(audit, "ls -la", execution_time_ms=5)
        log_run(audit, "ls src", execution_time_ms=2000)
        log_run(audit, "make", success=False, execution_time_ms=20_000,
                error_type=ShellErrorType.EXECUTION_ERROR)

        stats = audit.get_execution_statistics()
        assert stats["totalExecutions"] == 3
        assert stats["failedExecutions"] == 1
        assert stats["successRate"] == pytest.approx(2 / 3)
        assert stats["topCommands"][0] == ("ls", 2)
        assert stats["topErrors"] == [("EXECUTION_ERROR", 1)]
        assert stats["timeDistribution"] == {"fast": 1, "normal": 1, "slow": 1}

    def test_empty_statistics(self):
        stats = ExecutionLogger().get_execution_statistics()
        assert stats["totalExecutions"] == 0
        assert stats["successRate"] == 0.0

    def test_export_security_report(self):
        audit = ExecutionLogger(session_id="s-3")
        audit.log_security_event(SecurityEventType.COMMAND_TRUSTED, "make", "/w", "Trusted")
        log_run(audit, "make")
        report = json.loads(audit.export_security_report())
        assert report["sessionId"] == "s-3"
        assert report["securityEvents"][0]["eventType"] == "COMMAND_TRUSTED"
        assert report["executionLogs"][0]["command"] == "make"

    @pytest.mark.parametrize("fmt", ["json", "csv", "text"])
    def test_export_logs(self, fmt):
        audit = ExecutionLogger()
        log_run(audit, "echo hi", category=CommandCategory.SAFE)
        assert "echo hi" in audit.export_logs(fmt)

    def test_export_logs_csv_header(self):
        audit = ExecutionLogger()
        log_run(audit, "echo hi")
        assert audit.export_logs("csv").splitlines()[0].startswith("timestamp,command,")

    def test_export_logs_rejects_unknown_format(self):
        with pytest.raises(ValueError, match="Unsupported export format"):
            ExecutionLogger().export_logs("xml")

    def test_persist_to_jsonl(self, tmp_path):
        """Test records are mirrored to daily JSONL files."""
        audit = ExecutionLogger(AuditConfig(persist=True, log_dir=str(tmp_path / "logs")))
        audit.log_security_event(SecurityEventType.COMMAND_BLOCKED, "rm -rf /", "/w", "Blocked")
        log_run(audit, "ls")

        security_files = list((tmp_path / "logs").glob("shell_security_*.jsonl"))
        execution_files = list((tmp_path / "logs").glob("shell_execution_*.jsonl"))
        assert len(security_files) == 1
        assert len(execution_files) == 1
        record = json.loads(execution_files[0].read_text().splitlines()[0])
        assert record["command"] == "ls"

    def test_clear(self):
        audit = ExecutionLogger()
        log_run(audit, "ls")
        audit.clear()
        assert audit.get_log_counts() == {"securityEvents": 0, "executionLogs": 0}

    def test_concurrent_appends_are_all_kept(self):
        """Test parallel sessions' writes to one logger lose no records."""
        audit = ExecutionLogger()
        start = threading.Barrier(8)

        def write(worker: int) -> None:
            start.wait()
            for i in range(25):
                audit.log_security_event(
                    SecurityEventType.COMMAND_DENIED, f"git push {worker}-{i}", "/w", "Denied by user"
                )
                log_run(audit, f"ls {worker}-{i}")

        threads = [threading.Thread(target=write, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert audit.get_log_counts() == {"securityEvents": 200, "executionLogs": 200}
        commands = {record.command for record in audit.get_execution_logs()}
        assert "ls 7-24" in commands
        assert len(commands) == 200
