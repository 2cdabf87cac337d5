"""Optional on-disk store for the last fetched plan.

Only the current targets and their fetch time are written;
``previous_targets`` lives in memory for one recompute cycle only.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from nutriplan.client.models import CachedPlan
from nutriplan.core.storage.models import canonical_timestamp, parse_timestamp
from nutriplan.domains.nutrition.domain_logic.plan_models import PlanTargets

logger = logging.getLogger(__name__)

_FORMAT_VERSION = 1


class PersistenceError(Exception):
    """Raised when the plan store cannot be read or written."""


class PlanStore(Protocol):
    def load(self) -> CachedPlan | None: ...

    def save(self, plan: CachedPlan) -> None: ...

    def clear(self) -> None: ...


class JsonFilePlanStore:
    """Stores one :class:`CachedPlan` as a JSON file.

    Writes go to a temporary file that is then renamed over the target, so
    a crash mid-write leaves the previous file intact.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> CachedPlan | None:
        """Return the stored plan, or None if nothing was stored.

        Raises:
            PersistenceError: If the file exists but is unreadable or corrupt.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceError(f"Cannot read plan cache: {exc}") from exc

        try:
            data = json.loads(raw)
            if data.get("formatVersion") != _FORMAT_VERSION:
                raise ValueError(f"unsupported format {data.get('formatVersion')!r}")
            return CachedPlan(
                targets=PlanTargets.from_dict(data["targets"]),
                fetched_at=parse_timestamp(data["fetchedAt"]),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Corrupt plan cache {self._path}: {exc}") from exc

    def save(self, plan: CachedPlan) -> None:
        payload = {
            "formatVersion": _FORMAT_VERSION,
            "targets": plan.targets.to_dict(),
            "fetchedAt": canonical_timestamp(plan.fetched_at),
        }
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, sort_keys=True), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise PersistenceError(f"Cannot write plan cache: {exc}") from exc

    def clear(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Cannot clear plan cache: {exc}") from exc
