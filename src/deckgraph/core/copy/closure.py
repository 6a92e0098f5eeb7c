"""Dependency closure and clone-or-reuse planning for slide copies.

Both functions here are read-only: they inspect the source and destination graphs and
return plain data, so a copy that cannot be carried out fails before anything is
mutated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from pptx.opc.constants import RELATIONSHIP_TYPE as RT

from deckgraph.core import oxml
from deckgraph.core.errors import UnsupportedPartKindError
from deckgraph.core.graph.kinds import EdgeRole, PartKind
from deckgraph.core.graph.part_graph import PartGraph, PartRef

logger = logging.getLogger(__name__)

CLONEABLE_KINDS = frozenset(
    {
        PartKind.SLIDE,
        PartKind.SLIDE_LAYOUT,
        PartKind.SLIDE_MASTER,
        PartKind.NOTES,
        PartKind.NOTES_MASTER,
        PartKind.THEME,
        PartKind.CHART,
        PartKind.CHART_STYLE,
        PartKind.EMBEDDED_DATA_SOURCE,
        PartKind.IMAGE,
    }
)

# Evaluation order for reuse decisions: a layout can only be matched once its
# master's fate is known.
_DECISION_RANK = {
    PartKind.THEME: 0,
    PartKind.SLIDE_MASTER: 1,
    PartKind.NOTES_MASTER: 1,
    PartKind.SLIDE_LAYOUT: 2,
}


@dataclass(frozen=True)
class ClosureNode:
    ref: PartRef
    kind: PartKind
    role: EdgeRole
    parent: Optional[PartRef]


@dataclass
class Closure:
    root: PartRef
    nodes: list[ClosureNode] = field(default_factory=list)

    def __contains__(self, ref: object) -> bool:
        return any(n.ref == ref for n in self.nodes)

    def __iter__(self):
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def node(self, ref: PartRef) -> ClosureNode:
        for n in self.nodes:
            if n.ref == ref:
                return n
        raise KeyError(ref)

    def refs(self) -> list[PartRef]:
        return [n.ref for n in self.nodes]


def compute_closure(graph: PartGraph, slide: PartRef) -> Closure:
    """Every part a copy of `slide` has to bring along, in DFS pre-order.

    Other slides (hyperlink jumps, the notes back-link) are not followed, and from a
    master only the copied slide's own layout travels. Raises UnsupportedPartKindError
    when the closure reaches a part kind that cannot be cloned.
    """
    if graph.part(slide).kind is not PartKind.SLIDE:
        raise UnsupportedPartKindError(graph.part(slide).kind.value, graph.part(slide).partname)

    closure = Closure(root=slide)
    seen: set[PartRef] = set()
    stack: list[tuple[PartRef, EdgeRole, Optional[PartRef]]] = [(slide, EdgeRole.OWNS, None)]
    while stack:
        ref, role, parent = stack.pop()
        if ref in seen:
            continue
        seen.add(ref)
        part = graph.part(ref)
        if part.kind not in CLONEABLE_KINDS:
            raise UnsupportedPartKindError(part.kind.value, part.partname)
        closure.nodes.append(ClosureNode(ref=ref, kind=part.kind, role=role, parent=parent))

        children = []
        for e in graph.edges_from(ref):
            if e.target is None or e.target in seen:
                continue
            target_kind = graph.part(e.target).kind
            if target_kind in (PartKind.SLIDE, PartKind.PRESENTATION):
                continue
            if part.kind is PartKind.SLIDE_MASTER and target_kind is PartKind.SLIDE_LAYOUT:
                continue
            children.append((e.target, e.role, ref))
        stack.extend(reversed(children))

    logger.debug("closure of %s: %d parts", graph.part(slide).partname, len(closure))
    return closure


class Action(str, Enum):
    CLONE = "clone"
    REUSE = "reuse"
    SKIP = "skip"


@dataclass(frozen=True)
class Decision:
    action: Action
    target: Optional[PartRef] = None


class _Equivalents:
    """Lazy lookup of destination parts structurally equal to source parts."""

    def __init__(self, src: PartGraph, dest: PartGraph, dest_presentation: PartRef) -> None:
        self._src = src
        self._dest = dest
        self._dest_presentation = dest_presentation
        self._indexes: dict[PartKind, dict[str, PartRef]] = {}

    def _index(self, kind: PartKind, key: Callable[[PartGraph, PartRef], str]) -> dict[str, PartRef]:
        idx = self._indexes.get(kind)
        if idx is None:
            idx = {}
            for ref in self._dest.parts(kind):
                idx.setdefault(key(self._dest, ref), ref)
            self._indexes[kind] = idx
        return idx

    def image(self, ref: PartRef) -> Optional[PartRef]:
        return self._index(PartKind.IMAGE, _image_key).get(_image_key(self._src, ref))

    def theme(self, ref: PartRef) -> Optional[PartRef]:
        return self._index(PartKind.THEME, _xml_key).get(_xml_key(self._src, ref))

    def master(self, ref: PartRef) -> Optional[PartRef]:
        return self._index(PartKind.SLIDE_MASTER, _master_key).get(_master_key(self._src, ref))

    def layout(self, ref: PartRef, dest_master: PartRef) -> Optional[PartRef]:
        want = _layout_key(self._src, ref)
        for e in self._dest.edges_from(dest_master):
            if e.target is None or self._dest.part(e.target).kind is not PartKind.SLIDE_LAYOUT:
                continue
            if _layout_key(self._dest, e.target) == want:
                return e.target
        return None

    def notes_master(self) -> Optional[PartRef]:
        return self._dest.related(self._dest_presentation, RT.NOTES_MASTER)


def _image_key(graph: PartGraph, ref: PartRef) -> str:
    part = graph.part(ref)
    if part.is_xml:
        return oxml.canonical_digest(part.content)
    return oxml.blob_digest(bytes(part.content))


def _xml_key(graph: PartGraph, ref: PartRef) -> str:
    return oxml.canonical_digest(graph.part(ref).content)


def _master_key(graph: PartGraph, ref: PartRef) -> str:
    own = oxml.canonical_digest(graph.part(ref).content, drop_tags=(oxml.qn("p:sldLayoutIdLst"),))
    theme = graph.related(ref, RT.THEME)
    return own + ":" + (_xml_key(graph, theme) if theme is not None else "")


def _layout_key(graph: PartGraph, ref: PartRef) -> str:
    el = graph.part(ref).content
    cSld = el.find(oxml.qn("p:cSld"))
    name = cSld.get("name", "") if cSld is not None else ""
    return "%s|%s" % (name, el.get("type", ""))


def plan_copy(
    closure: Closure,
    src: PartGraph,
    dest: PartGraph,
    dest_presentation: PartRef,
) -> dict[PartRef, Decision]:
    """Decide clone, reuse or skip for every closure node.

    - the slide itself and anything reached through an `owns` edge from a cloned
      part is cloned
    - parts owned by a reused (or skipped) part are skipped; their owner's
      counterpart already carries them
    - `references` targets are reused when the destination already has a
      structurally equal part, otherwise cloned; within one package every
      `references` target is reused as itself
    - a part that no cloned part points at is never cloned
    """
    same_package = src is dest
    eq = _Equivalents(src, dest, dest_presentation)
    decisions: dict[PartRef, Decision] = {}

    def decide_reference(node: ClosureNode) -> Decision:
        if same_package:
            return Decision(Action.REUSE, node.ref)
        found: Optional[PartRef] = None
        if node.kind is PartKind.IMAGE:
            found = eq.image(node.ref)
        elif node.kind is PartKind.THEME:
            found = eq.theme(node.ref)
        elif node.kind is PartKind.SLIDE_MASTER:
            found = eq.master(node.ref)
        elif node.kind is PartKind.NOTES_MASTER:
            found = eq.notes_master()
        elif node.kind is PartKind.SLIDE_LAYOUT:
            src_master = src.related(node.ref, RT.SLIDE_MASTER)
            master_decision = decisions.get(src_master) if src_master is not None else None
            if master_decision is not None and master_decision.action is Action.REUSE:
                found = eq.layout(node.ref, master_decision.target)
        if found is None:
            return Decision(Action.CLONE)
        return Decision(Action.REUSE, found)

    references = [n for n in closure if n.role is EdgeRole.REFERENCES]
    references.sort(key=lambda n: _DECISION_RANK.get(n.kind, 3))
    for node in references:
        decisions[node.ref] = decide_reference(node)

    def settle_owned() -> None:
        # pre-order: a parent is always decided before its children
        for node in closure:
            if node.role is not EdgeRole.OWNS:
                continue
            current = decisions.get(node.ref)
            if current is not None and current.action is not Action.SKIP:
                continue
            parent = decisions.get(node.parent) if node.parent is not None else None
            if node.parent is None or (parent is not None and parent.action is Action.CLONE):
                decisions[node.ref] = Decision(Action.CLONE)
            else:
                decisions[node.ref] = Decision(Action.SKIP)

    settle_owned()

    # A cloned part may still point at something first reached under a reused owner;
    # give such parts a decision of their own.
    changed = True
    while changed:
        changed = False
        for node in closure:
            if decisions[node.ref].action is not Action.CLONE:
                continue
            for e in src.edges_from(node.ref):
                if e.target is None or e.target not in decisions:
                    continue
                if decisions[e.target].action is Action.SKIP:
                    target = closure.node(e.target)
                    decisions[e.target] = decide_reference(
                        ClosureNode(target.ref, target.kind, EdgeRole.REFERENCES, target.parent)
                    )
                    changed = True
        if changed:
            settle_owned()

    # Only parts a clone points at are cloned; a part reached solely through a reused
    # layout or master would have nothing linking to it in the destination.
    changed = True
    while changed:
        changed = False
        reached = {closure.root}
        for node in closure:
            if decisions[node.ref].action is Action.CLONE:
                reached.update(e.target for e in src.edges_from(node.ref) if e.target in decisions)
        for node in closure:
            if node.ref not in reached and decisions[node.ref].action is Action.CLONE:
                decisions[node.ref] = Decision(Action.SKIP)
                changed = True

    logger.debug(
        "copy plan: %d clone, %d reuse, %d skip",
        sum(1 for d in decisions.values() if d.action is Action.CLONE),
        sum(1 for d in decisions.values() if d.action is Action.REUSE),
        sum(1 for d in decisions.values() if d.action is Action.SKIP),
    )
    return decisions


__all__ = [
    "CLONEABLE_KINDS",
    "ClosureNode",
    "Closure",
    "compute_closure",
    "Action",
    "Decision",
    "plan_copy",
]
