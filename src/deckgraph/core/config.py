from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PackageContext:
    """Settings threaded explicitly into package create/open/save.

    - clock: source of "now" for core-property timestamps
    - validate_on_save: run `validate_package` before writing and refuse to save on errors
    """

    clock: Callable[[], datetime] = field(default=_utc_now)
    validate_on_save: bool = False

    def now(self) -> datetime:
        ts = self.clock()
        if ts.tzinfo is None:
            return ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(timezone.utc)


DEFAULT_CONTEXT = PackageContext()


def _package_root() -> Path:
    # .../src/deckgraph/core/config.py -> .../src/deckgraph
    return Path(__file__).resolve().parents[1]


def schema_paths() -> dict[str, Path]:
    schemas = _package_root() / "core" / "schemas"
    return {
        "package": schemas / "package.schema.json",
    }


def schema_path(name: str = "package") -> Path:
    return schema_paths()[name]


__all__ = [
    "PackageContext",
    "DEFAULT_CONTEXT",
    "schema_paths",
    "schema_path",
]
