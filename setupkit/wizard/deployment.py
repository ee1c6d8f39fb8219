"""
Deployment Monitoring

After the operator starts the generated stack, a background thread
polls service health until every probe passes or a hard ceiling is
reached. Progress goes to the deployment document, which has its own
lock so polling never blocks configuration edits.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..probes import ConnectionTestResult
from ..storage.store import DEPLOYMENT_DOC, ConfigurationStore
from ..utils.clock import utc_now
from ..utils.logging import get_logger

logger = get_logger(__name__)


class DeploymentStatus(str, Enum):
    """Status of a monitored deployment."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


TERMINAL_STATUSES = (DeploymentStatus.COMPLETED, DeploymentStatus.FAILED, DeploymentStatus.TIMEOUT)


@dataclass
class LogEntry:
    """One line of the deployment log."""
    timestamp: datetime
    level: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            level=data.get("level", "info"),
            message=data.get("message", ""),
        )


@dataclass
class DeploymentState:
    """The deployment status document."""
    deployment_id: str
    status: DeploymentStatus = DeploymentStatus.PENDING
    progress: int = 0
    message: str = ""
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    logs: List[LogEntry] = field(default_factory=list)

    @property
    def is_finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "logs": [entry.to_dict() for entry in self.logs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentState":
        started = data.get("started_at")
        finished = data.get("finished_at")
        return cls(
            deployment_id=data["deployment_id"],
            status=DeploymentStatus(data.get("status", "pending")),
            progress=int(data.get("progress", 0)),
            message=data.get("message", ""),
            started_at=datetime.fromisoformat(started) if started else None,
            finished_at=datetime.fromisoformat(finished) if finished else None,
            logs=[LogEntry.from_dict(e) for e in data.get("logs", [])],
        )


class DeploymentMonitor:
    """
    Polls service health in a background thread.

    The first round where every probe passes completes the deployment
    and calls ``on_success``. Polling stops with a timeout status once
    the ceiling is reached.
    """

    def __init__(
        self,
        store: ConfigurationStore,
        health_check: Callable[[], List[ConnectionTestResult]],
        on_success: Optional[Callable[[], None]] = None,
        interval: float = 5.0,
        timeout: float = 600.0,
        stream_interval: float = 2.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the monitor.

        Args:
            store: Store holding the deployment document
            health_check: Returns one probe result per service
            on_success: Called once when every probe passes
            interval: Seconds between health rounds
            timeout: Hard ceiling in seconds
            stream_interval: Poll interval for log streaming
            clock: Source of log timestamps
        """
        self.store = store
        self.health_check = health_check
        self.on_success = on_success
        self.interval = interval
        self.timeout = timeout
        self.stream_interval = stream_interval
        self.clock = clock
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    # ============================================================
    # Document access
    # ============================================================

    def status(self) -> Optional[DeploymentState]:
        """Get the current deployment document."""
        data = self.store.load(DEPLOYMENT_DOC)
        return DeploymentState.from_dict(data) if data else None

    def _update(self, level: str, message: str, status: Optional[DeploymentStatus] = None,
                progress: Optional[int] = None) -> DeploymentState:
        """Append a log entry and optionally move the status."""
        with self.store.deployment_transaction():
            state = self.status()
            if state is None:
                state = DeploymentState(deployment_id=uuid.uuid4().hex, started_at=self.clock())
            now = self.clock()
            state.logs.append(LogEntry(timestamp=now, level=level, message=message))
            state.message = message
            if status is not None:
                state.status = status
                if status in TERMINAL_STATUSES:
                    state.finished_at = now
            if progress is not None:
                state.progress = progress
            self.store.save(DEPLOYMENT_DOC, state.to_dict())
        return state

    # ============================================================
    # Lifecycle
    # ============================================================

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> DeploymentState:
        """
        Start monitoring.

        Returns the running deployment when one is already in progress.
        """
        if self.running:
            return self.status()

        self._stop.clear()
        state = DeploymentState(
            deployment_id=uuid.uuid4().hex,
            status=DeploymentStatus.RUNNING,
            started_at=self.clock(),
        )
        with self.store.deployment_transaction():
            self.store.save(DEPLOYMENT_DOC, state.to_dict())
        state = self._update("info", "Deployment started, waiting for services", progress=5)

        self._thread = threading.Thread(target=self._run, name="deployment-monitor", daemon=True)
        self._thread.start()
        logger.info("Deployment %s started", state.deployment_id)
        return state

    def stop(self) -> None:
        """Ask the polling thread to stop."""
        self._stop.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for the polling thread. Returns True when it has finished."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        deadline = time.monotonic() + self.timeout
        attempt = 0

        while not self._stop.is_set():
            attempt += 1
            try:
                results = self.health_check()
            except Exception as e:
                logger.exception("Health check round %d failed", attempt)
                self._update("error", f"Health check error: {e}")
            else:
                failed = [r for r in results if not r.success]
                for r in failed:
                    self._update("warning", f"{r.service}: {r.message}")
                if not failed:
                    self._complete()
                    return
                self._update("info", f"Waiting for {len(failed)} service(s)",
                             progress=min(95, 5 + attempt * 5))

            if time.monotonic() >= deadline:
                break
            self._stop.wait(max(0.0, min(self.interval, deadline - time.monotonic())))

        if self._stop.is_set():
            self._update("error", "Deployment monitoring stopped", status=DeploymentStatus.FAILED)
        else:
            logger.warning("Deployment health checks timed out after %.0fs", self.timeout)
            self._update("error", "Timed out waiting for services", status=DeploymentStatus.TIMEOUT)

    def _complete(self) -> None:
        if self.on_success is not None:
            try:
                self.on_success()
            except Exception:
                logger.exception("Post-deployment hook failed")
        self._update("info", "All services are healthy", status=DeploymentStatus.COMPLETED, progress=100)
        logger.info("Deployment completed")

    # ============================================================
    # Log streaming
    # ============================================================

    def stream(self, cancel: Optional[threading.Event] = None) -> Iterator[Dict[str, Any]]:
        """
        Stream deployment events.

        Yields ``connected`` first, then ``log`` entries as they appear
        and a ``status`` snapshot per poll, and ``finished`` once the
        deployment reaches a terminal status. Stops early when cancel
        is set. Nothing is buffered between calls.
        """
        waiter = cancel or threading.Event()
        state = self.status()
        yield {"event": "connected", "data": {"deployment_id": state.deployment_id if state else None}}

        sent = 0
        while not waiter.is_set():
            state = self.status()
            if state is None:
                yield {"event": "finished", "data": {"status": None, "message": "no deployment"}}
                return

            for entry in state.logs[sent:]:
                yield {"event": "log", "data": entry.to_dict()}
            sent = len(state.logs)

            yield {
                "event": "status",
                "data": {"status": state.status.value, "progress": state.progress, "message": state.message},
            }
            if state.is_finished:
                yield {"event": "finished", "data": {"status": state.status.value, "message": state.message}}
                return

            if waiter.wait(self.stream_interval):
                return
