"""Opt-in structural validation of a DeckPackage.

The package is first flattened into a JSON manifest that must conform to
`schemas/package.schema.json`; the graph itself is then checked for the rules the
editor maintains (unique ids, resolvable references, one layout per slide, ...).
Every problem is reported as one "- <where>: <message>" line.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING, Any, Optional

from pptx.opc.constants import RELATIONSHIP_TYPE as RT

from deckgraph.core import oxml, pml
from deckgraph.core.graph.kinds import PartKind
from deckgraph.core.graph.part_graph import ROOT, PartGraph, PartRef, rid_order
from deckgraph.core.validate.schema_validate import validate_instance

if TYPE_CHECKING:
    from deckgraph.core.package import DeckPackage

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "0.1"

_R_ID = oxml.qn("r:id")


def _int_or_raw(value: Optional[str]) -> Any:
    # unparseable ids are kept as-is so the schema reports them
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return value


def _target_partname(graph: PartGraph, source: PartRef, rid: Optional[str]) -> Optional[str]:
    e = graph.edge(source, rid or "")
    if e is None or e.target is None:
        return None
    part = graph.get(e.target)
    return part.partname if part is not None else None


def _relationships(graph: PartGraph, source: PartRef) -> list[dict[str, Any]]:
    out = []
    for e in sorted(graph.edges_from(source), key=rid_order):
        target = graph.get(e.target) if e.target is not None else None
        out.append(
            {
                "rid": e.rid,
                "type": e.reltype,
                "role": e.role.value,
                "target": target.partname if target is not None else None,
                "external": e.target_ref,
            }
        )
    return out


def build_manifest(pkg: "DeckPackage") -> dict[str, Any]:
    """JSON-ready description of the package graph, slide list and masters."""
    graph = pkg.graph
    pres_ref = pkg.presentation_ref
    pres = pkg.presentation_element

    slides = []
    for entry in pml.slide_id_entries(pres):
        rid = entry.get(_R_ID)
        partname = _target_partname(graph, pres_ref, rid)
        layout = None
        slide_ref = graph.by_partname(partname) if partname else None
        if slide_ref is not None:
            layout_ref = graph.related(slide_ref, RT.SLIDE_LAYOUT)
            layout = graph.part(layout_ref).partname if layout_ref is not None else None
        slides.append({"id": _int_or_raw(entry.get("id")), "rid": rid, "partname": partname, "layout": layout})

    masters = []
    for entry in pml.master_id_entries(pres):
        rid = entry.get(_R_ID)
        partname = _target_partname(graph, pres_ref, rid)
        master_ref = graph.by_partname(partname) if partname else None
        layouts = []
        if master_ref is not None and graph.part(master_ref).is_xml:
            for lentry in pml.layout_id_entries(graph.part(master_ref).content):
                lrid = lentry.get(_R_ID)
                lname = _target_partname(graph, master_ref, lrid)
                layouts.append({"id": _int_or_raw(lentry.get("id")), "rid": lrid, "partname": lname})
        masters.append({"id": _int_or_raw(entry.get("id")), "rid": rid, "partname": partname, "layouts": layouts})

    parts = []
    for part in sorted(graph, key=lambda p: p.partname):
        parts.append(
            {
                "partname": part.partname,
                "kind": part.kind.value,
                "content_type": part.content_type,
                "relationships": _relationships(graph, part.ref),
            }
        )

    return {
        "schema_version": SCHEMA_VERSION,
        "presentation": graph.part(pres_ref).partname,
        "package_relationships": _relationships(graph, ROOT),
        "parts": parts,
        "slides": slides,
        "masters": masters,
    }


def _check_id_list(
    errors: list[str],
    graph: PartGraph,
    owner: PartRef,
    entries: list[Any],
    tag: str,
    kind: PartKind,
) -> None:
    where = graph.part(owner).partname
    seen_rids: Counter[str] = Counter(e.get(_R_ID) or "" for e in entries)
    for rid, n in seen_rids.items():
        if n > 1:
            errors.append(f"- {where}: {tag} r:id={rid!r} listed {n} times")
    for entry in entries:
        rid = entry.get(_R_ID) or ""
        e = graph.edge(owner, rid)
        if e is None or e.target is None or graph.get(e.target) is None:
            errors.append(f"- {where}: {tag} r:id={rid!r} does not resolve")
        elif graph.part(e.target).kind is not kind:
            errors.append(
                f"- {where}: {tag} r:id={rid!r} targets a {graph.part(e.target).kind.value}, not a {kind.value}"
            )


def _structural_errors(pkg: "DeckPackage") -> list[str]:
    graph = pkg.graph
    pres_ref = pkg.presentation_ref
    pres = pkg.presentation_element
    errors: list[str] = []

    # id lists resolve to the right kinds
    slide_entries = pml.slide_id_entries(pres)
    _check_id_list(errors, graph, pres_ref, slide_entries, "p:sldId", PartKind.SLIDE)
    master_entries = pml.master_id_entries(pres)
    _check_id_list(errors, graph, pres_ref, master_entries, "p:sldMasterId", PartKind.SLIDE_MASTER)
    notes_master_entries = list(pres.iter(oxml.qn("p:notesMasterId")))
    _check_id_list(errors, graph, pres_ref, notes_master_entries, "p:notesMasterId", PartKind.NOTES_MASTER)
    layout_entries: list[Any] = []
    for master in graph.parts(PartKind.SLIDE_MASTER):
        entries = pml.layout_id_entries(graph.part(master).content)
        layout_entries.extend(entries)
        _check_id_list(errors, graph, master, entries, "p:sldLayoutId", PartKind.SLIDE_LAYOUT)

    # slide ids unique; master and layout ids share one space
    for label, entries in (("slide id", slide_entries), ("master/layout id", master_entries + layout_entries)):
        counts = Counter(e.get("id") for e in entries)
        for value, n in sorted(counts.items(), key=lambda kv: str(kv[0])):
            if n > 1:
                errors.append(f"- {graph.part(pres_ref).partname}: {label} {value} used {n} times")

    # sections name listed slides, each slide at most once
    pres_name = graph.part(pres_ref).partname
    listed_ids = {e.get("id") for e in slide_entries}
    in_sections: Counter[Optional[str]] = Counter()
    for section in pml.section_entries(pres):
        for entry in pml.section_slide_id_entries(section):
            sid = entry.get("id")
            in_sections[sid] += 1
            if sid not in listed_ids:
                errors.append(
                    f"- {pres_name}: section {section.get('name', '')!r} lists slide id {sid}, not in p:sldIdLst"
                )
    for sid, n in sorted(in_sections.items(), key=lambda kv: str(kv[0])):
        if n > 1:
            errors.append(f"- {pres_name}: slide id {sid} is in {n} sections")

    # every slide part is in the slide list
    listed = {graph.edge(pres_ref, e.get(_R_ID) or "") for e in slide_entries}
    listed_targets = {e.target for e in listed if e is not None}
    for slide in graph.parts(PartKind.SLIDE):
        if slide not in listed_targets:
            errors.append(f"- {graph.part(slide).partname}: slide is not in p:sldIdLst")

    # layout/master cardinality
    for slide in graph.parts(PartKind.SLIDE):
        n = len(graph.related_all(slide, RT.SLIDE_LAYOUT))
        if n != 1:
            errors.append(f"- {graph.part(slide).partname}: has {n} slide layouts, expected 1")
    for layout in graph.parts(PartKind.SLIDE_LAYOUT):
        n = len(graph.related_all(layout, RT.SLIDE_MASTER))
        if n != 1:
            errors.append(f"- {graph.part(layout).partname}: has {n} slide masters, expected 1")

    # edges and r:* attributes resolve
    for part in graph:
        for e in graph.edges_from(part.ref):
            if e.target is not None and graph.get(e.target) is None:
                errors.append(f"- {part.partname}: {e.rid} targets a removed part")
        if not part.is_xml:
            continue
        for el, name, rid in oxml.iter_r_attrs(part.content):
            if graph.edge(part.ref, rid) is None:
                local = el.tag.rsplit("}", 1)[-1]
                errors.append(f"- {part.partname}: <{local}> r:{name.rsplit('}', 1)[-1]}={rid!r} has no relationship")
    for e in graph.edges_from(ROOT):
        if e.target is not None and graph.get(e.target) is None:
            errors.append(f"- <package>: {e.rid} targets a removed part")

    # partnames are case-insensitive in OPC
    folded = Counter(p.partname.lower() for p in graph)
    for name, n in folded.items():
        if n > 1:
            errors.append(f"- {name}: partname used by {n} parts")

    return errors


def validate_package(pkg: "DeckPackage") -> list[str]:
    """Return validation errors; an empty list means the package is valid."""
    errors = validate_instance(build_manifest(pkg))
    errors.extend(_structural_errors(pkg))
    if errors:
        logger.debug("validation found %d problems", len(errors))
    return errors


__all__ = ["SCHEMA_VERSION", "build_manifest", "validate_package"]
