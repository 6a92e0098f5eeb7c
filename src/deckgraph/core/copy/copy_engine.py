from __future__ import annotations

import logging
import weakref
from typing import TYPE_CHECKING, Optional

from pptx.opc.constants import RELATIONSHIP_TYPE as RT

from deckgraph.core import oxml, pml
from deckgraph.core.copy.closure import Action, ClosureNode, Decision, compute_closure, plan_copy
from deckgraph.core.errors import DanglingReferenceError
from deckgraph.core.graph.kinds import EdgeRole, PartKind
from deckgraph.core.graph.part_graph import PartGraph, PartRef

if TYPE_CHECKING:
    from deckgraph.core.package import DeckPackage

logger = logging.getLogger(__name__)


class CopyEngine:
    """Copies slides, with everything they depend on, into one destination package.

    The engine remembers which source slides it has already copied into the
    destination, so a hyperlink from a later copy to an earlier one is re-targeted to
    the copy instead of being dropped.
    """

    def __init__(self, dest: "DeckPackage") -> None:
        self._dest = dest
        self._copied: "weakref.WeakKeyDictionary[PartGraph, dict[PartRef, PartRef]]" = (
            weakref.WeakKeyDictionary()
        )

    def copy(self, source: "DeckPackage", slide: PartRef, index: Optional[int] = None) -> PartRef:
        """Copy `slide` of `source` to 0-based `index` of the destination (append when None)."""
        src = source.graph
        dest = self._dest.graph
        closure = compute_closure(src, slide)
        decisions = plan_copy(closure, src, dest, self._dest.presentation_ref)

        mapping: dict[PartRef, PartRef] = {}
        clones: list[ClosureNode] = []
        for node in closure:
            d = decisions[node.ref]
            if d.action is Action.REUSE:
                mapping[node.ref] = d.target
            elif d.action is Action.CLONE:
                part = src.part(node.ref)
                content = oxml.clone(part.content) if part.is_xml else bytes(part.content)
                mapping[node.ref] = dest.add_part(
                    part.kind, content, content_type=part.content_type, like=part.partname
                )
                clones.append(node)

        for node in clones:
            self._rewire(source, node.ref, mapping, decisions)
        self._register(src, clones, mapping, decisions, index)
        new_slide = mapping[slide]

        if src is not dest:
            self._copied.setdefault(src, {})[slide] = new_slide
        logger.info(
            "copied %s -> %s (%d cloned, %d reused)",
            src.part(slide).partname,
            dest.part(new_slide).partname,
            len(clones),
            sum(1 for d in decisions.values() if d.action is Action.REUSE),
        )
        return new_slide

    def _rewire(
        self,
        source: "DeckPackage",
        src_ref: PartRef,
        mapping: dict[PartRef, PartRef],
        decisions: dict[PartRef, Decision],
    ) -> None:
        """Give the clone of `src_ref` its own edges and rewrite its r:* attributes."""
        src = source.graph
        dest = self._dest.graph
        new_ref = mapping[src_ref]
        src_kind = src.part(src_ref).kind
        rid_map: dict[str, str] = {}

        for e in src.edges_from(src_ref):
            if e.target is None:
                rid_map[e.rid] = dest.link_external(new_ref, e.reltype, e.target_ref or "")
                continue
            target_kind = src.part(e.target).kind
            if e.target in mapping:
                role = e.role
                if role is EdgeRole.OWNS and decisions[e.target].action is Action.REUSE:
                    role = EdgeRole.REFERENCES
                rid_map[e.rid] = dest.link(new_ref, mapping[e.target], role, e.reltype)
            elif target_kind is PartKind.SLIDE:
                target = self._slide_target(source, e.target)
                if target is None:
                    logger.warning(
                        "%s: dropped link %s to %s (slide not copied)",
                        src.part(src_ref).partname,
                        e.rid,
                        src.part(e.target).partname,
                    )
                    continue
                rid_map[e.rid] = dest.link(new_ref, target, EdgeRole.REFERENCES, e.reltype)
            elif src_kind is PartKind.SLIDE_MASTER and target_kind is PartKind.SLIDE_LAYOUT:
                # layouts the copied slide does not use stay behind
                continue
            else:
                raise DanglingReferenceError(
                    f"{src.part(src_ref).partname}: {e.rid} targets {src.part(e.target).partname} outside the copy"
                )

        part = dest.part(new_ref)
        if not part.is_xml:
            return
        for rid in oxml.referenced_rids(part.content) - set(rid_map):
            oxml.scrub_rid(part.content, rid)
        oxml.rewrite_rids(part.content, rid_map)

    def _slide_target(self, source: "DeckPackage", target: PartRef) -> Optional[PartRef]:
        dest = self._dest.graph
        if source.graph is dest:
            return target if target in dest else None
        copied = self._copied.get(source.graph, {}).get(target)
        if copied is not None and copied in dest:
            return copied
        return None

    def _register(
        self,
        src: PartGraph,
        clones: list[ClosureNode],
        mapping: dict[PartRef, PartRef],
        decisions: dict[PartRef, Decision],
        index: Optional[int],
    ) -> None:
        """Enter cloned slides, masters, layouts and notes masters in their owners' lists."""
        dest = self._dest.graph
        pres_ref = self._dest.presentation_ref
        pres = dest.part(pres_ref).content
        for node in clones:
            new_ref = mapping[node.ref]
            if node.kind is PartKind.SLIDE_MASTER:
                content = dest.part(new_ref).content
                for entry in pml.layout_id_entries(content):
                    entry.set("id", str(dest.ids.next_master_id()))
                rid = dest.link(pres_ref, new_ref, EdgeRole.OWNS, RT.SLIDE_MASTER)
                pml.add_master_id(pres, dest.ids.next_master_id(), rid)
            elif node.kind is PartKind.SLIDE_LAYOUT:
                src_master = src.related(node.ref, RT.SLIDE_MASTER)
                if src_master is None or decisions[src_master].action is not Action.REUSE:
                    continue
                dest_master = mapping[src_master]
                rid = dest.link(dest_master, new_ref, EdgeRole.OWNS, RT.SLIDE_LAYOUT)
                pml.add_layout_id(dest.part(dest_master).content, dest.ids.next_master_id(), rid)
            elif node.kind is PartKind.NOTES_MASTER:
                rid = dest.link(pres_ref, new_ref, EdgeRole.OWNS, RT.NOTES_MASTER)
                pml.set_notes_master_id(pres, rid)
            elif node.parent is None:
                rid = dest.link(pres_ref, new_ref, EdgeRole.OWNS, RT.SLIDE)
                pml.insert_slide_id(pres, dest.ids.next_slide_id(), rid, index)


__all__ = ["CopyEngine"]
