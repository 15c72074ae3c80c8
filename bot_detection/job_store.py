"""
Batch Job Store - Registry of batch analysis jobs.

The store is the only state shared between request handlers and
background batch tasks. Every read returns a deep copy, so a
caller mutating a snapshot never affects the stored record.
"""

import copy
import threading
from typing import Any, Dict, List, Optional, Protocol
from uuid import UUID

from .exceptions import JobNotFoundError
from .types import BatchJobRecord


class JobStore(Protocol):
    """Injectable job registry."""

    def create(self, record: BatchJobRecord) -> None: ...

    def get(self, job_id: UUID) -> Optional[BatchJobRecord]: ...

    def update(self, job_id: UUID, **changes: Any) -> BatchJobRecord: ...

    def list_jobs(self) -> List[BatchJobRecord]: ...


class InMemoryJobStore:
    """
    Process-local job registry guarded by a single lock.

    Jobs are lost on restart.
    """

    def __init__(self) -> None:
        self._jobs: Dict[UUID, BatchJobRecord] = {}
        self._lock = threading.Lock()

    def create(self, record: BatchJobRecord) -> None:
        with self._lock:
            self._jobs[record.job_id] = copy.deepcopy(record)

    def get(self, job_id: UUID) -> Optional[BatchJobRecord]:
        with self._lock:
            record = self._jobs.get(job_id)
            return copy.deepcopy(record) if record is not None else None

    def update(self, job_id: UUID, **changes: Any) -> BatchJobRecord:
        """
        Apply field changes atomically and return the new snapshot.

        Raises:
            JobNotFoundError: if the job id is unknown
            AttributeError: if a change names a field the record lacks
        """
        with self._lock:
            record = self._jobs.get(job_id)
            if record is None:
                raise JobNotFoundError(job_id)
            for name, value in changes.items():
                if not hasattr(record, name):
                    raise AttributeError(f"BatchJobRecord has no field {name!r}")
                setattr(record, name, value)
            return copy.deepcopy(record)

    def list_jobs(self) -> List[BatchJobRecord]:
        with self._lock:
            records = [copy.deepcopy(r) for r in self._jobs.values()]
        records.sort(
            key=lambda r: r.started_at.timestamp() if r.started_at else 0.0,
            reverse=True,
        )
        return records

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
