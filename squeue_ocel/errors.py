"""
Extraction error types.

All errors inherit from ExtractionError for easy catching.
Anomalies are NOT errors; see anomalies.py.
"""

from typing import List, Optional


class ExtractionError(Exception):
    """Base exception for all extraction failures."""
    pass


class InputError(ExtractionError):
    """
    Raised when one job's captures cannot be replayed.

    Fatal to that job only: the run records it as an anomaly and skips the job.
    """

    def __init__(self, job_id: Optional[str], reason: str):
        self.job_id = job_id
        self.reason = reason
        if job_id:
            super().__init__(f"Invalid input for job {job_id}: {reason}")
        else:
            super().__init__(f"Invalid input: {reason}")


class DataIntegrityError(ExtractionError):
    """
    Raised when the assembled log violates identifier integrity.

    Fatal to the whole run: no partial log is returned.
    """

    def __init__(self, violations: List[str]):
        self.violations = list(violations)
        shown = "; ".join(self.violations[:5])
        more = len(self.violations) - 5
        suffix = f" (+{more} more)" if more > 0 else ""
        super().__init__(
            f"Event log integrity check failed with {len(self.violations)} "
            f"violation(s): {shown}{suffix}"
        )
