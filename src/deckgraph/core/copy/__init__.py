"""Slide copy between (or within) packages.

    compute_closure(graph, slide) -> Closure        # read-only
    plan_copy(closure, src, dest, dest_pres) -> {PartRef: Decision}   # read-only
    CopyEngine(dest).copy(source_pkg, slide, index) -> PartRef        # mutates dest
"""

from __future__ import annotations

from .closure import Action, Closure, ClosureNode, Decision, compute_closure, plan_copy
from .copy_engine import CopyEngine

__all__ = [
    "Action",
    "Closure",
    "ClosureNode",
    "Decision",
    "compute_closure",
    "plan_copy",
    "CopyEngine",
]
