"""
Run-status state machine persisted as JSON in the blob store.

A run moves ``Received -> Processing -> Completed | Error``; ``Error`` may
also be entered straight from ``Received`` when intake validation fails.
Terminal states are final.
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from .errors import ErrorType
from .storage import BlobStore

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    RECEIVED = "Received"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    ERROR = "Error"


_ALLOWED = {
    None: {RunStatus.RECEIVED},
    RunStatus.RECEIVED: {RunStatus.PROCESSING, RunStatus.ERROR},
    RunStatus.PROCESSING: {RunStatus.COMPLETED, RunStatus.ERROR},
    RunStatus.COMPLETED: set(),
    RunStatus.ERROR: set(),
}


class InvalidStatusTransition(RuntimeError):
    def __init__(self, run_id: str, current: Optional[RunStatus], target: RunStatus):
        name = current.value if current else "none"
        super().__init__(f"Run {run_id}: cannot move from {name} to {target.value}")
        self.run_id = run_id
        self.current = current
        self.target = target


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RunStatusRecorder:
    """
    Reads and writes ``runStatus/{run_id}.json`` records.

    Usage::

        recorder = RunStatusRecorder(store)
        recorder.received(run_id, fileName="paper.pdf")
        recorder.processing(run_id)
        recorder.completed(run_id, audioFileUrl=url)
    """

    PREFIX = "runStatus"

    def __init__(self, store: BlobStore):
        self.store = store

    def _path(self, run_id: str) -> str:
        return f"{self.PREFIX}/{run_id}.json"

    def get(self, run_id: str) -> Optional[Dict]:
        raw = self.store.get(self._path(run_id))
        return json.loads(raw) if raw is not None else None

    def _transition(self, run_id: str, target: RunStatus, time_field: str, fields: Dict) -> Dict:
        record = self.get(run_id) or {"runId": run_id}
        current = RunStatus(record["status"]) if "status" in record else None
        if target not in _ALLOWED[current]:
            raise InvalidStatusTransition(run_id, current, target)

        record.update(fields)
        record["status"] = target.value
        record[time_field] = _now()
        self.store.put(self._path(run_id), json.dumps(record, indent=2).encode("utf-8"))
        logger.info("Run %s: %s", run_id, target.value)
        return record

    def received(self, run_id: str, **fields) -> Dict:
        return self._transition(run_id, RunStatus.RECEIVED, "receivedTime", fields)

    def processing(self, run_id: str, **fields) -> Dict:
        return self._transition(run_id, RunStatus.PROCESSING, "startedProcessingTime", fields)

    def completed(self, run_id: str, **fields) -> Dict:
        return self._transition(run_id, RunStatus.COMPLETED, "completedTime", fields)

    def failed(self, run_id: str, error_type: ErrorType, message: str = "", **fields) -> Dict:
        fields.update(errorType=ErrorType(error_type).value, errorMessage=message)
        return self._transition(run_id, RunStatus.ERROR, "errorTime", fields)
