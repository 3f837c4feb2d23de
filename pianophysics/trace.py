# trace.py — opt-in CSV trace of resolved parameters
# ---------------------------------------------------
#  * one row per event: timestamp, stage, note, velocity, plus any
#    scalar values the caller passes
#  * header written once per file (skipped when appending to an existing
#    non-empty file)
#  * columns are fixed by the first row of a file; later unknown keys are
#    dropped
# ---------------------------------------------------
from __future__ import annotations

import csv
import datetime
import logging
import pathlib
from typing import Any, Optional

__all__ = ["ParameterTrace"]

_LOGGER = logging.getLogger("pianophysics.trace")


class ParameterTrace:
    """Appends debug rows to *path*; keep it off in performance paths."""

    def __init__(self, path: str | pathlib.Path):
        self.path = pathlib.Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fieldnames: Optional[list[str]] = None
        if self.path.exists() and self.path.stat().st_size > 0:
            with open(self.path, newline="") as f:
                header = next(csv.reader(f), None)
            self._fieldnames = header or None
        self.rows = 0

    def log(self, stage: str, note: int, velocity: Optional[float], sim_time: float,
            **values: Any) -> None:
        row = {
            "timestamp": datetime.datetime.now().isoformat(timespec="seconds"),
            "stage": stage, "note": note, "velocity": velocity, "time": round(sim_time, 6),
            **values,
        }
        write_header = self._fieldnames is None
        if write_header:
            self._fieldnames = list(row.keys())
        with open(self.path, "a", newline="") as f:
            w = csv.DictWriter(f, fieldnames=self._fieldnames, extrasaction="ignore")
            if write_header:
                w.writeheader()
            w.writerow(row)
        self.rows += 1
        _LOGGER.debug("trace %s note=%s → %s", stage, note, self.path)
