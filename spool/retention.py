"""
spool.retention
AUTHOR: carter-vin

Best-effort purge of expired hour folders

Behavior:
- runs on folder rotation, not as a directory scan
- removes at most PURGE_RANGE_COUNT folders per call
- candidates: hours expired_base and expired_base - 1,
  where expired_base = current_hour - retain_hours - 1
- failures are collected as data, never raised
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from spool.naming import HOUR_MASK, folder_name

PURGE_RANGE_COUNT = 2


@dataclass
class PurgeReport:
    """
    Outcome of one purge pass
    - removed: folders deleted
    - errors: (path, exception) pairs for folders that could not be removed
    """

    removed: list[Path] = field(default_factory=list)
    errors: list[tuple[Path, OSError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def expired_hours(current_hour: int, retain_hours: int) -> list[int]:
    """
    Unmasked expired hours to try, most recent first
    """
    if retain_hours < 1:
        return []

    base = current_hour - retain_hours - 1
    hours: list[int] = []
    for offset in range(PURGE_RANGE_COUNT):
        hour = base - offset
        if hour < 0:
            break
        hours.append(hour)
    return hours


def purge_expired_folders(base_folder_path: Path, *, now: float, retain_hours: int) -> PurgeReport:
    """
    Remove the most recent expired hour folders under base_folder_path
    """
    report = PurgeReport()
    current_hour = int(now) // 3600

    for hour in expired_hours(current_hour, retain_hours):
        path = base_folder_path / folder_name(hour & HOUR_MASK)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            continue
        except OSError as e:
            report.errors.append((path, e))
            continue
        report.removed.append(path)

    return report
