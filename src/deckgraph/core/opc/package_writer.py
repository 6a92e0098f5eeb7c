from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import IO, Dict, List, Union

from lxml import etree
from pptx.opc.constants import CONTENT_TYPE as CT
from pptx.opc.constants import NAMESPACE
from pptx.opc.constants import RELATIONSHIP_TARGET_MODE as RTM
from pptx.opc.packuri import CONTENT_TYPES_URI, PACKAGE_URI, PackURI

from deckgraph.core import oxml
from deckgraph.core.graph.part_graph import ROOT, PartGraph, PartRef, Relationship, rid_order

logger = logging.getLogger(__name__)

_CT_NS = NAMESPACE.OPC_CONTENT_TYPES
_PR_NS = NAMESPACE.OPC_RELATIONSHIPS

# Extensions written as <Default> when every part using them agrees on a content type.
_DEFAULTABLE_EXTS = frozenset({"png", "jpeg", "jpg", "gif", "bmp", "tif", "tiff", "emf", "wmf", "bin", "xlsx"})


def _xml_bytes(root: etree._Element) -> bytes:
    return etree.tostring(root, encoding="UTF-8", xml_declaration=True, standalone=True)


def _content_types_xml(graph: PartGraph) -> bytes:
    root = etree.Element("{%s}Types" % _CT_NS, nsmap={None: _CT_NS})

    defaults: Dict[str, str] = {"rels": CT.OPC_RELATIONSHIPS, "xml": CT.XML}
    conflicting: set[str] = set()
    for part in graph:
        ext = PackURI(part.partname).ext.lower()
        if part.is_xml or ext not in _DEFAULTABLE_EXTS:
            continue
        seen = defaults.setdefault(ext, part.content_type)
        if seen != part.content_type:
            conflicting.add(ext)
    for ext in conflicting:
        defaults.pop(ext, None)

    for ext, ct in sorted(defaults.items()):
        etree.SubElement(root, "{%s}Default" % _CT_NS, Extension=ext, ContentType=ct)
    for part in sorted(graph, key=lambda p: p.partname):
        ext = PackURI(part.partname).ext.lower()
        if defaults.get(ext) == part.content_type:
            continue
        etree.SubElement(root, "{%s}Override" % _CT_NS, PartName=part.partname, ContentType=part.content_type)
    return _xml_bytes(root)


def _rels_xml(graph: PartGraph, source_uri: PackURI, edges: List[Relationship]) -> bytes:
    root = etree.Element("{%s}Relationships" % _PR_NS, nsmap={None: _PR_NS})
    for e in edges:
        el = etree.SubElement(root, "{%s}Relationship" % _PR_NS, Id=e.rid, Type=e.reltype)
        if e.is_external:
            el.set("Target", e.target_ref or "")
            el.set("TargetMode", RTM.EXTERNAL)
        else:
            target = PackURI(graph.part(e.target).partname)
            el.set("Target", target.relative_ref(source_uri.baseURI))
    return _xml_bytes(root)


def _write_rels(zf: zipfile.ZipFile, graph: PartGraph, source: PartRef, source_uri: PackURI) -> None:
    edges = sorted(graph.edges_from(source), key=rid_order)
    if not edges:
        return
    zf.writestr(source_uri.rels_uri.membername, _rels_xml(graph, source_uri, edges))


def write_package(graph: PartGraph, target: Union[str, Path, IO[bytes]]) -> None:
    """Flatten the graph into an OPC zip container at `target` (path or binary stream)."""
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(CONTENT_TYPES_URI.membername, _content_types_xml(graph))
        _write_rels(zf, graph, ROOT, PACKAGE_URI)
        for part in sorted(graph, key=lambda p: p.partname):
            uri = PackURI(part.partname)
            blob = oxml.serialize(part.content) if part.is_xml else bytes(part.content)
            zf.writestr(uri.membername, blob)
            _write_rels(zf, graph, part.ref, uri)
    logger.debug("wrote %d parts", len(graph))


__all__ = ["write_package"]
