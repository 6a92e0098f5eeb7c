from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from deckgraph.core import oxml
from deckgraph.core.errors import DanglingReferenceError, DuplicateReferenceError
from deckgraph.core.graph.ids import IdAllocator
from deckgraph.core.graph.kinds import (
    EdgeRole,
    PartKind,
    default_content_type,
    default_reltype,
    edge_role,
    partname_template,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class PartRef:
    """Opaque handle of a part inside one PartGraph. Never reused."""

    index: int

    def __repr__(self) -> str:
        return f"PartRef({self.index})"


# Pseudo-source for package-level relationships (`/_rels/.rels`).
ROOT = PartRef(0)


@dataclass
class Part:
    ref: PartRef
    kind: PartKind
    partname: str
    content_type: str
    content: Any  # lxml element for XML parts, bytes otherwise

    @property
    def is_xml(self) -> bool:
        return not isinstance(self.content, (bytes, bytearray))


@dataclass(frozen=True)
class Relationship:
    rid: str
    reltype: str
    role: EdgeRole
    target: Optional[PartRef] = None
    target_ref: Optional[str] = None

    @property
    def is_external(self) -> bool:
        return self.target is None


def rid_order(e: Relationship) -> tuple[int, str]:
    """Sort key putting rId2 before rId10; ids not of the rIdN form go last."""
    digits = e.rid[3:] if e.rid.startswith("rId") else ""
    return (int(digits), e.rid) if digits.isdigit() else (1 << 30, e.rid)


class PartGraph:
    """Arena of typed parts plus directed, typed relationship edges.

    Edges live in an adjacency map keyed by (source, rId). `owns` edges bind the
    target's lifetime to the source; `references` edges are counted, and a part whose
    last reference disappears is collected unless it is pinned (the presentation part
    and the parts owned directly by it or by the package root).
    """

    def __init__(self, ids: Optional[IdAllocator] = None) -> None:
        self.ids = ids or IdAllocator()
        self._parts: dict[PartRef, Part] = {}
        self._edges: dict[PartRef, dict[str, Relationship]] = {ROOT: {}}
        self._incoming: dict[PartRef, set[tuple[PartRef, str]]] = {}
        self._by_partname: dict[str, PartRef] = {}
        self._next_index = 1
        self._removal_listeners: list[Callable[[PartRef], None]] = []

    # ------------------------------------------------------------------ parts

    def add_part(
        self,
        kind: PartKind,
        content: Any,
        *,
        partname: Optional[str] = None,
        content_type: Optional[str] = None,
        like: Optional[str] = None,
    ) -> PartRef:
        """Register a new part with no edges.

        `partname` is used verbatim (load path); otherwise a fresh one is allocated
        from the kind's template, or from the shape of `like` when given.
        """
        if partname is not None:
            if partname in self._by_partname:
                raise DuplicateReferenceError(f"partname already in use: {partname}")
            self.ids.observe_partname(partname)
        else:
            partname = self.ids.next_partname(partname_template(kind, like))
            while partname in self._by_partname:
                partname = self.ids.next_partname(partname_template(kind, like))

        ref = PartRef(self._next_index)
        self._next_index += 1
        self._parts[ref] = Part(
            ref=ref,
            kind=kind,
            partname=partname,
            content_type=content_type or default_content_type(kind),
            content=content,
        )
        self._edges[ref] = {}
        self._incoming[ref] = set()
        self._by_partname[partname] = ref
        logger.debug("add_part %s %s %s", ref, kind.value, partname)
        return ref

    def part(self, ref: PartRef) -> Part:
        try:
            return self._parts[ref]
        except KeyError:
            raise DanglingReferenceError(f"no such part: {ref}") from None

    def get(self, ref: PartRef) -> Optional[Part]:
        return self._parts.get(ref)

    def kind(self, ref: PartRef) -> Optional[PartKind]:
        """Kind of `ref`; None for ROOT."""
        if ref == ROOT:
            return None
        return self.part(ref).kind

    def by_partname(self, partname: str) -> Optional[PartRef]:
        return self._by_partname.get(partname)

    def parts(self, kind: Optional[PartKind] = None) -> list[PartRef]:
        if kind is None:
            return list(self._parts)
        return [r for r, p in self._parts.items() if p.kind is kind]

    def __contains__(self, ref: object) -> bool:
        return ref in self._parts

    def __len__(self) -> int:
        return len(self._parts)

    def __iter__(self) -> Iterator[Part]:
        return iter(list(self._parts.values()))

    def add_removal_listener(self, fn: Callable[[PartRef], None]) -> None:
        self._removal_listeners.append(fn)

    # ------------------------------------------------------------------ edges

    def link(
        self,
        source: PartRef,
        target: PartRef,
        role: Optional[EdgeRole] = None,
        reltype: Optional[str] = None,
        *,
        rid: Optional[str] = None,
    ) -> str:
        """Insert an internal edge and return its relationship id."""
        self._require_source(source)
        target_kind = self.part(target).kind
        if role is None:
            role = edge_role(self.kind(source), target_kind)
        if reltype is None:
            reltype = default_reltype(target_kind)
        if role is EdgeRole.OWNS:
            owner = self.owner_of(target)
            if owner is not None:
                raise DuplicateReferenceError(
                    f"{self.part(target).partname} already owned by {self._label(owner)}"
                )
        rid = self._claim_rid(source, rid)
        self._edges[source][rid] = Relationship(rid=rid, reltype=reltype, role=role, target=target)
        self._incoming[target].add((source, rid))
        logger.debug("link %s -[%s %s]-> %s", self._label(source), rid, role.value, self._label(target))
        return rid

    def link_external(self, source: PartRef, reltype: str, target_ref: str, *, rid: Optional[str] = None) -> str:
        self._require_source(source)
        rid = self._claim_rid(source, rid)
        self._edges[source][rid] = Relationship(
            rid=rid, reltype=reltype, role=EdgeRole.REFERENCES, target_ref=target_ref
        )
        return rid

    def unlink(self, source: PartRef, target: PartRef, *, scrub: bool = True) -> None:
        """Remove every edge from `source` to `target`.

        An `owns` edge takes the target (and its owned subtree) with it; a
        `references` edge leaves the target alive only while something else still
        references it. With `scrub`, references to the removed rIds are also taken
        out of the source's XML.
        """
        edges = [e for e in self.edges_from(source) if e.target == target]
        if not edges:
            raise DanglingReferenceError(f"{self._label(source)} has no edge to {self._label(target)}")
        for e in edges:
            self._drop_edge(source, e.rid, scrub=scrub)
        self._settle(target, owned=any(e.role is EdgeRole.OWNS for e in edges))

    def unlink_rid(self, source: PartRef, rid: str, *, scrub: bool = True) -> None:
        e = self.edge(source, rid)
        if e is None:
            raise DanglingReferenceError(f"{self._label(source)} has no relationship {rid}")
        self._drop_edge(source, rid, scrub=scrub)
        if e.target is not None:
            self._settle(e.target, owned=e.role is EdgeRole.OWNS)

    def resolve(self, rid: str, source: PartRef) -> PartRef:
        e = self.edge(source, rid)
        if e is None or e.target is None:
            raise DanglingReferenceError(f"{self._label(source)}: {rid} does not resolve to a part")
        return e.target

    def edge(self, source: PartRef, rid: str) -> Optional[Relationship]:
        return self._edges.get(source, {}).get(rid)

    def edges_from(self, source: PartRef) -> list[Relationship]:
        return list(self._edges.get(source, {}).values())

    def edges_to(self, target: PartRef) -> list[tuple[PartRef, Relationship]]:
        out: list[tuple[PartRef, Relationship]] = []
        for source, rid in sorted(self._incoming.get(target, ())):
            out.append((source, self._edges[source][rid]))
        return out

    def related(self, source: PartRef, reltype: str) -> Optional[PartRef]:
        for e in self.edges_from(source):
            if e.reltype == reltype and e.target is not None:
                return e.target
        return None

    def related_all(self, source: PartRef, reltype: str) -> list[PartRef]:
        return [e.target for e in self.edges_from(source) if e.reltype == reltype and e.target is not None]

    def rid_of(self, source: PartRef, target: PartRef) -> Optional[str]:
        for e in self.edges_from(source):
            if e.target == target:
                return e.rid
        return None

    def owner_of(self, target: PartRef) -> Optional[PartRef]:
        for source, rid in self._incoming.get(target, ()):
            if self._edges[source][rid].role is EdgeRole.OWNS:
                return source
        return None

    def owned_subtree(self, ref: PartRef) -> set[PartRef]:
        seen: set[PartRef] = set()
        stack = [ref]
        while stack:
            cur = stack.pop()
            if cur in seen:
                continue
            seen.add(cur)
            for e in self.edges_from(cur):
                if e.role is EdgeRole.OWNS and e.target is not None:
                    stack.append(e.target)
        return seen

    def reference_count(self, target: PartRef) -> int:
        """Incoming `references` edges from outside the target's own owned subtree."""
        family = self.owned_subtree(target)
        n = 0
        for source, rid in self._incoming.get(target, ()):
            if source in family:
                continue
            if self._edges[source][rid].role is EdgeRole.REFERENCES:
                n += 1
        return n

    def is_pinned(self, ref: PartRef) -> bool:
        p = self.part(ref)
        if p.kind is PartKind.PRESENTATION:
            return True
        owner = self.owner_of(ref)
        if owner is None:
            return False
        return owner == ROOT or self.part(owner).kind is PartKind.PRESENTATION

    # ---------------------------------------------------------------- removal

    def remove_part(self, ref: PartRef) -> None:
        """Remove `ref` with its owned subtree, detaching it from surviving parts."""
        part = self._parts.pop(ref, None)
        if part is None:
            return
        del self._by_partname[part.partname]
        logger.debug("remove_part %s %s", ref, part.partname)

        for source, rid in sorted(self._incoming.pop(ref, set())):
            if source == ROOT or source in self._parts:
                self._edges[source].pop(rid, None)
                self._scrub(source, rid)

        outgoing = list(self._edges.pop(ref, {}).values())
        for e in outgoing:
            if e.target is not None and e.target in self._incoming:
                self._incoming[e.target].discard((ref, e.rid))
        for e in outgoing:
            if e.target is None or e.target not in self._parts:
                continue
            if e.role is EdgeRole.OWNS:
                self.remove_part(e.target)
            else:
                self._collect_if_unreferenced(e.target)

        self.ids.forget_owner(ref)
        for fn in self._removal_listeners:
            fn(ref)

    def _settle(self, target: PartRef, *, owned: bool) -> None:
        if target not in self._parts:
            return
        if owned:
            self.remove_part(target)
        else:
            self._collect_if_unreferenced(target)

    def _collect_if_unreferenced(self, target: PartRef) -> None:
        if target not in self._parts or self.is_pinned(target):
            return
        if self.reference_count(target) == 0:
            logger.debug("collect %s (no references left)", self._parts[target].partname)
            self.remove_part(target)

    # ---------------------------------------------------------------- helpers

    def _drop_edge(self, source: PartRef, rid: str, *, scrub: bool) -> None:
        e = self._edges[source].pop(rid)
        if e.target is not None and e.target in self._incoming:
            self._incoming[e.target].discard((source, rid))
        if scrub:
            self._scrub(source, rid)
        logger.debug("unlink %s %s", self._label(source), rid)

    def _scrub(self, source: PartRef, rid: str) -> None:
        if source == ROOT:
            return
        p = self._parts.get(source)
        if p is not None and p.is_xml:
            oxml.scrub_rid(p.content, rid)

    def _claim_rid(self, source: PartRef, rid: Optional[str]) -> str:
        edges = self._edges[source]
        if rid is not None:
            if rid in edges:
                raise DuplicateReferenceError(f"{self._label(source)} already has relationship {rid}")
            self.ids.observe_relationship_id(source, rid)
            return rid
        rid = self.ids.next_relationship_id(source)
        while rid in edges:
            rid = self.ids.next_relationship_id(source)
        return rid

    def _require_source(self, source: PartRef) -> None:
        if source != ROOT and source not in self._parts:
            raise DanglingReferenceError(f"no such part: {source}")

    def _label(self, ref: PartRef) -> str:
        if ref == ROOT:
            return "<package>"
        p = self._parts.get(ref)
        return p.partname if p is not None else repr(ref)


__all__ = [
    "PartRef",
    "ROOT",
    "Part",
    "Relationship",
    "rid_order",
    "PartGraph",
]
