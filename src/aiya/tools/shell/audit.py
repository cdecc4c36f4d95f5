"""Audit logging for shell command execution.

Keeps two bounded, append-only logs per session:
- Security events (blocks, denials, trust decisions, violations)
- Execution records (one per execution attempt)

The oldest entries are evicted once a log is full. Both logs can be
queried, summarized and exported, and optionally mirrored to daily JSONL
files. Audit logging only observes; it never changes a decision.
"""

from __future__ import annotations

import csv
import io
import json
import re
import threading
import uuid
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from aiya.constants import OUTPUT_SNIPPET_LENGTH, truncate
from aiya.logging import Loggers
from aiya.tools.shell.catalog import Limits
from aiya.tools.shell.models import (
    CommandCategory,
    ExecutionRecord,
    SecurityEvent,
    SecurityEventType,
    ShellErrorType,
)

logger = Loggers.audit()

ExportFormat = Literal["json", "csv", "text"]


@dataclass
class AuditConfig:
    """Configuration for audit logging.

    Attributes:
        max_events: Security events kept in memory.
        max_execution_logs: Execution records kept in memory.
        persist: Mirror records to JSONL files.
        log_dir: Directory for JSONL files.
        max_preview_length: Maximum stored stdout/stderr length.
    """
    max_events: int = Limits.MAX_EVENTS_IN_MEMORY
    max_execution_logs: int = Limits.MAX_EXECUTION_LOGS
    persist: bool = False
    log_dir: str = "~/.aiya/logs"
    max_preview_length: int = OUTPUT_SNIPPET_LENGTH

    def get_log_dir(self) -> Path:
        """Get resolved log directory path."""
        return Path(self.log_dir).expanduser()


class ExecutionLogger:
    """Session-scoped audit log for security events and executions."""

    def __init__(
        self,
        config: AuditConfig | None = None,
        session_id: str | None = None,
    ):
        self.config = config or AuditConfig()
        self.session_id = session_id or str(uuid.uuid4())
        self._events: deque[SecurityEvent] = deque(maxlen=self.config.max_events)
        self._executions: deque[ExecutionRecord] = deque(maxlen=self.config.max_execution_logs)
        self._lock = threading.Lock()
        self._log = logger.bind(session_id=self.session_id)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def log_security_event(
        self,
        event_type: SecurityEventType,
        command: str,
        working_directory: str,
        reason: str,
        category: CommandCategory | None = None,
        matched_pattern: str | None = None,
    ) -> SecurityEvent:
        event = SecurityEvent(
            timestamp=datetime.now().isoformat(),
            session_id=self.session_id,
            command=command,
            working_directory=str(working_directory),
            event_type=event_type,
            reason=reason,
            category=category,
            matched_pattern=matched_pattern,
        )
        with self._lock:
            self._events.append(event)
        self._log.warning(
            "security_event",
            event_type=event_type.value,
            command=command,
            reason=reason,
            category=category.value if category else None,
        )
        self._persist("security", event.to_dict())
        return event

    def log_execution(
        self,
        command: str,
        working_directory: str,
        exit_code: int,
        execution_time_ms: int,
        success: bool,
        stdout: str = "",
        stderr: str = "",
        category: CommandCategory | None = None,
        approval_method: str | None = None,
        error_type: ShellErrorType | None = None,
    ) -> ExecutionRecord:
        max_len = self.config.max_preview_length
        record = ExecutionRecord(
            timestamp=datetime.now().isoformat(),
            session_id=self.session_id,
            command=command,
            working_directory=str(working_directory),
            exit_code=exit_code,
            execution_time_ms=execution_time_ms,
            success=success,
            stdout=truncate(stdout, max_len) if stdout else "",
            stderr=truncate(stderr, max_len) if stderr else "",
            category=category,
            approval_method=approval_method,
            error_type=error_type,
        )
        with self._lock:
            self._executions.append(record)
        self._log.info(
            "command_executed",
            command=command,
            exit_code=exit_code,
            success=success,
            execution_time_ms=execution_time_ms,
            error_type=error_type.value if error_type else None,
        )
        self._persist("execution", record.to_dict())
        return record

    def _persist(self, kind: str, data: dict[str, Any]) -> None:
        if not self.config.persist:
            return
        log_dir = self.config.get_log_dir()
        log_file = log_dir / f"shell_{kind}_{datetime.now().strftime('%Y-%m-%d')}.jsonl"
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            with self._lock, open(log_file, "a") as f:
                f.write(json.dumps(data) + "\n")
        except OSError as e:
            self._log.warning("audit_write_failed", path=str(log_file), error=str(e))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_security_events(self, limit: int | None = None) -> list[SecurityEvent]:
        """Return security events, newest first."""
        with self._lock:
            events = list(self._events)
        events.reverse()
        return events[:limit] if limit is not None else events

    def get_execution_logs(self, limit: int | None = None) -> list[ExecutionRecord]:
        """Return execution records, newest first."""
        with self._lock:
            records = list(self._executions)
        records.reverse()
        return records[:limit] if limit is not None else records

    def query_execution_logs(
        self,
        command_pattern: str | None = None,
        success: bool | None = None,
        error_type: ShellErrorType | None = None,
        category: CommandCategory | None = None,
        since: datetime | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[ExecutionRecord]:
        """Filter execution records, newest first.

        Args:
            command_pattern: Regex searched in the command.
            success: Only successful (True) or failed (False) runs.
            error_type: Only runs that failed with this type.
            category: Only runs with this category.
            since: Only runs recorded at or after this time.
            offset: Records to skip.
            limit: Maximum records to return.
        """
        regex = re.compile(command_pattern, re.IGNORECASE) if command_pattern else None
        matched = []
        for record in self.get_execution_logs():
            if regex and not regex.search(record.command):
                continue
            if success is not None and record.success != success:
                continue
            if error_type is not None and record.error_type != error_type:
                continue
            if category is not None and record.category != category:
                continue
            if since is not None and record.recorded_at < since:
                continue
            matched.append(record)
        end = offset + limit if limit is not None else None
        return matched[offset:end]

    def get_security_summary(self) -> dict[str, Any]:
        """Counts of security events by type and by category."""
        events = self.get_security_events()
        by_type = Counter(e.event_type.value for e in events)
        by_category = Counter(e.category.value for e in events if e.category)
        return {
            "sessionId": self.session_id,
            "totalEvents": len(events),
            "eventsByType": dict(by_type),
            "eventsByCategory": dict(by_category),
            "lastEvent": events[0].timestamp if events else None,
        }

    def get_execution_statistics(self) -> dict[str, Any]:
        """Aggregate statistics over the retained execution records."""
        records = self.get_execution_logs()
        total = len(records)
        successes = sum(1 for r in records if r.success)
        times = [r.execution_time_ms for r in records]
        top = Limits.MAX_TOP_RESULTS

        return {
            "totalExecutions": total,
            "successfulExecutions": successes,
            "failedExecutions": total - successes,
            "successRate": successes / total if total else 0.0,
            "averageExecutionTime": sum(times) / total if total else 0.0,
            "topCommands": Counter(_base_command(r.command) for r in records).most_common(top),
            "topErrors": Counter(r.error_type.value for r in records if r.error_type).most_common(top),
            "categoryDistribution": dict(Counter(r.category.value for r in records if r.category)),
            "timeDistribution": {
                "fast": sum(1 for t in times if t < 1000),
                "normal": sum(1 for t in times if 1000 <= t <= 10000),
                "slow": sum(1 for t in times if t > 10000),
            },
            "securityEventsSummary": self.get_security_summary()["eventsByType"],
        }

    def get_log_counts(self) -> dict[str, int]:
        with self._lock:
            return {"securityEvents": len(self._events), "executionLogs": len(self._executions)}

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_security_report(self, limit: int | None = None) -> str:
        """JSON report of recent events and executions plus summaries."""
        report = {
            "sessionId": self.session_id,
            "generatedAt": datetime.now().isoformat(),
            "summary": self.get_security_summary(),
            "statistics": self.get_execution_statistics(),
            "securityEvents": [e.to_dict() for e in self.get_security_events(limit)],
            "executionLogs": [r.to_dict() for r in self.get_execution_logs(limit)],
        }
        return json.dumps(report, indent=2)

    def export_logs(self, fmt: ExportFormat = "json") -> str:
        """Export execution records as JSON, CSV or plain text."""
        records = self.get_execution_logs()
        if fmt == "json":
            return json.dumps([r.to_dict() for r in records], indent=2)
        if fmt == "csv":
            buffer = io.StringIO()
            columns = ["timestamp", "command", "working_directory", "exit_code",
                       "execution_time_ms", "success", "category", "error_type"]
            writer = csv.DictWriter(buffer, fieldnames=columns, extrasaction="ignore")
            writer.writeheader()
            for record in records:
                writer.writerow(record.to_dict())
            return buffer.getvalue()
        if fmt == "text":
            return "\n".join(
                f"[{r.timestamp}] {'OK ' if r.success else 'ERR'} "
                f"exit={r.exit_code} {r.execution_time_ms}ms {r.command}"
                for r in records
            )
        raise ValueError(f"Unsupported export format: {fmt}")

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._executions.clear()


def _base_command(command: str) -> str:
    words = command.split()
    return words[0] if words else ""
