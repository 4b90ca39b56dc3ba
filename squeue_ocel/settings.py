"""
ExtractionSettings - run options for one extraction.

Settings are explicit. Environment overrides are OPTIONAL and only
consulted through from_env().
"""

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

ENV_MAX_WORKERS = "SQUEUE_OCEL_MAX_WORKERS"

DEFAULT_MAX_WORKERS = 1  # Sequential by default


class ExtractionSettings(BaseModel):
    """
    Options for extract_event_log().

    max_workers: Jobs are reconstructed and derived in a thread pool of this
        size. 1 runs every job in the calling thread.
    command_basename: Record only the last path segment of the job command
        ("/home/u/run.sh" -> "run.sh").
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1)
    command_basename: bool = True

    @classmethod
    def from_env(cls, max_workers: Optional[int] = None, **overrides) -> "ExtractionSettings":
        """
        Build settings, taking max_workers from SQUEUE_OCEL_MAX_WORKERS if
        not given explicitly.

        Raises:
            pydantic.ValidationError: If the environment value is not a positive integer
        """
        if max_workers is None:
            env_value = os.environ.get(ENV_MAX_WORKERS)
            if env_value:
                return cls(max_workers=env_value, **overrides)
            return cls(**overrides)
        return cls(max_workers=max_workers, **overrides)
