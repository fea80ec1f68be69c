#!/usr/bin/env python3
"""
Audit log for firewall whitelist requests.

Each invocation appends one CSV row to a log file named after the target
environment and the billing period the request falls into.  A month is
split into two periods at ``boundary_day`` (20 by default):

* days 1 .. boundary_day-1 go to ``{env}_{YYYY-MM}_01-{boundary_day-1}.log``
* days boundary_day .. end of month go to ``{env}_{YYYY-MM}_{boundary_day}-{last}.log``

Files are created with a header row on first write and only ever appended
to afterwards.  No locking is done; one invocation at a time is assumed.
"""

import calendar
import csv
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

DEFAULT_BOUNDARY_DAY = 20

LOG_COLUMNS = ["Timestamp", "Server", "IP", "Developer", "Environment", "Status", "RuleName"]


class Status(str, Enum):
    SUCCESS = "Success"
    ALREADY_EXISTS = "AlreadyExists"
    FAILED = "Failed"


@dataclass(frozen=True)
class LogRecord:
    timestamp: datetime
    server_name: str
    validated_ip: str
    rule_name: str
    developer: str
    environment: str
    status: Status

    def as_row(self) -> List[str]:
        return [
            self.timestamp.isoformat(timespec="seconds"),
            self.server_name,
            self.validated_ip,
            self.developer,
            self.environment,
            self.status.value,
            self.rule_name,
        ]


def period_label(day: date, boundary_day: int = DEFAULT_BOUNDARY_DAY) -> str:
    """Return the ``YYYY-MM_DD-DD`` label of the half-month containing ``day``."""
    month = f"{day.year:04d}-{day.month:02d}"
    if day.day >= boundary_day:
        last = calendar.monthrange(day.year, day.month)[1]
        return f"{month}_{boundary_day:02d}-{last:02d}"
    return f"{month}_01-{boundary_day - 1:02d}"


def log_file_name(environment: str, day: date, boundary_day: int = DEFAULT_BOUNDARY_DAY) -> str:
    return f"{environment}_{period_label(day, boundary_day)}.log"


class AuditLogger:
    def __init__(self, log_dir: Path, boundary_day: int = DEFAULT_BOUNDARY_DAY):
        self.log_dir = Path(log_dir)
        self.boundary_day = boundary_day

    def path_for(self, environment: str, when: date) -> Path:
        return self.log_dir / log_file_name(environment, when, self.boundary_day)

    def append(self, record: LogRecord) -> Path:
        """
        Append ``record`` to the log file of its environment and period.

        The directory and the header row are created on first write.

        Args:
            record: Outcome of one whitelist request

        Returns:
            Path of the log file written to

        Raises:
            OSError: the log directory or file cannot be written
        """
        path = self.path_for(record.environment, record.timestamp.date())
        path.parent.mkdir(parents=True, exist_ok=True)
        new_file = not path.exists()
        with open(path, "a", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            if new_file:
                writer.writerow(LOG_COLUMNS)
            writer.writerow(record.as_row())
        return path

    def log_files(self, environment: Optional[str] = None) -> List[Path]:
        if not self.log_dir.is_dir():
            return []
        pattern = f"{environment}_*.log" if environment else "*.log"
        return sorted(self.log_dir.glob(pattern))
