"""Part/relationship graph.

Public API:
- `PartGraph`, `PartRef`, `ROOT`, `Part`, `Relationship`
- `IdAllocator`
- `PartKind`, `EdgeRole`

Thin re-export layer so callers can import a stable path:

    from deckgraph.core.graph import PartGraph, PartKind
"""

from __future__ import annotations

from .ids import IdAllocator
from .kinds import EdgeRole, PartKind
from .part_graph import ROOT, Part, PartGraph, PartRef, Relationship

__all__ = [
    "IdAllocator",
    "EdgeRole",
    "PartKind",
    "ROOT",
    "Part",
    "PartGraph",
    "PartRef",
    "Relationship",
]
