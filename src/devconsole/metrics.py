"""
Developer Console — Metrics Collection
======================================
Prometheus metrics for observability.

Usage:
    from devconsole.metrics import scan_metrics

    with scan_metrics.track_scan("AGENT-018-SECURITY") as outcome:
        result = await run(...)
        outcome["result"] = "success" if result["success"] else "failed"
"""

import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Gauge


# =============================================================================
# SCAN METRICS
# =============================================================================

class ScanMetrics:
    """Metrics for lifecycle scans"""

    def __init__(self):
        self.scan_duration = Histogram(
            'devconsole_scan_duration_seconds',
            'Wall time of a lifecycle scan',
            ['agent'],
            buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0]
        )

        self.scan_total = Counter(
            'devconsole_scan_total',
            'Lifecycle scans by outcome',
            ['agent', 'result']  # result: success, failed, timeout, error
        )

        self.scans_cancelled_total = Counter(
            'devconsole_scans_cancelled_total',
            'Queued scans cancelled before they started'
        )

        self.queue_length = Gauge(
            'devconsole_scan_queue_length',
            'Scans waiting for a free slot'
        )

        self.active_scans = Gauge(
            'devconsole_active_scans',
            'Scans currently running'
        )

    @contextmanager
    def track_scan(self, agent: str):
        """Context manager to time a scan and count its outcome"""
        start = time.time()
        outcome = {"result": "success"}
        try:
            yield outcome
        except Exception:
            outcome["result"] = "error"
            raise
        finally:
            self.scan_duration.labels(agent=agent).observe(time.time() - start)
            self.scan_total.labels(agent=agent, result=outcome["result"]).inc()


# =============================================================================
# AGENT METRICS
# =============================================================================

class AgentMetrics:
    """Metrics for background agent executions"""

    def __init__(self):
        self.execution_duration = Histogram(
            'devconsole_agent_execution_duration_seconds',
            'Time from execution start to finish',
            ['trigger_type'],
            buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0]
        )

        self.executions_total = Counter(
            'devconsole_agent_executions_total',
            'Agent executions by final status',
            ['trigger_type', 'status']  # status: COMPLETED, FAILED, CANCELLED
        )

        self.action_errors_total = Counter(
            'devconsole_agent_action_errors_total',
            'Individual agent actions that raised',
            ['action_type']
        )

        self.running_agents = Gauge(
            'devconsole_running_agents',
            'Agent executions currently in flight'
        )


# =============================================================================
# BACKUP METRICS
# =============================================================================

class BackupMetrics:
    """Metrics for project backups"""

    def __init__(self):
        self.backup_duration = Histogram(
            'devconsole_backup_duration_seconds',
            'Time to create a backup',
            ['strategy'],
            buckets=[0.5, 1.0, 5.0, 15.0, 60.0, 300.0]
        )

        self.backup_total = Counter(
            'devconsole_backup_total',
            'Backup operations',
            ['operation', 'result']  # operation: create/restore/delete
        )


# =============================================================================
# GLOBAL INSTANCES
# =============================================================================

scan_metrics = ScanMetrics()
agent_metrics = AgentMetrics()
backup_metrics = BackupMetrics()
