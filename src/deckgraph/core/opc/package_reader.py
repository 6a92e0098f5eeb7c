from __future__ import annotations

import logging
import zipfile
from collections import deque
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Tuple, Union

from lxml import etree
from pptx.opc.constants import NAMESPACE
from pptx.opc.constants import RELATIONSHIP_TARGET_MODE as RTM
from pptx.opc.constants import RELATIONSHIP_TYPE as RT
from pptx.opc.packuri import CONTENT_TYPES_URI, PACKAGE_URI, PackURI

from deckgraph.core import oxml
from deckgraph.core.errors import DuplicateReferenceError, PackageFormatError
from deckgraph.core.graph.kinds import EdgeRole, PartKind, edge_role, kind_for
from deckgraph.core.graph.part_graph import ROOT, PartGraph, PartRef

logger = logging.getLogger(__name__)

_CT_NS = NAMESPACE.OPC_CONTENT_TYPES
_PR_NS = NAMESPACE.OPC_RELATIONSHIPS


def _is_xml_content_type(ct: str) -> bool:
    return ct.endswith("+xml") or ct in ("application/xml", "text/xml")


class _ContentTypes:
    def __init__(self, defaults: Dict[str, str], overrides: Dict[str, str]) -> None:
        self._defaults = defaults
        self._overrides = overrides

    @classmethod
    def parse(cls, blob: bytes) -> "_ContentTypes":
        try:
            root = etree.fromstring(blob)
        except etree.XMLSyntaxError as e:
            raise PackageFormatError(f"unreadable [Content_Types].xml: {e}") from e
        defaults: Dict[str, str] = {}
        overrides: Dict[str, str] = {}
        for el in root.iter("{%s}Default" % _CT_NS):
            ext = el.get("Extension")
            ct = el.get("ContentType")
            if ext and ct:
                defaults[ext.lower()] = ct
        for el in root.iter("{%s}Override" % _CT_NS):
            name = el.get("PartName")
            ct = el.get("ContentType")
            if name and ct:
                overrides[name.lower()] = ct
        return cls(defaults, overrides)

    def get(self, partname: PackURI) -> Optional[str]:
        ct = self._overrides.get(partname.lower())
        if ct is not None:
            return ct
        return self._defaults.get(partname.ext.lower())


# (rid, reltype, target partname or external ref, is_external)
_RelRecord = Tuple[str, str, str, bool]


def _parse_rels(zf: zipfile.ZipFile, names: set[str], source_uri: PackURI) -> List[_RelRecord]:
    rels_uri = source_uri.rels_uri
    if rels_uri.membername not in names:
        return []
    try:
        root = etree.fromstring(zf.read(rels_uri.membername))
    except etree.XMLSyntaxError as e:
        raise PackageFormatError(f"unreadable relationships {rels_uri}: {e}") from e

    out: List[_RelRecord] = []
    for el in root.iter("{%s}Relationship" % _PR_NS):
        rid = el.get("Id")
        reltype = el.get("Type")
        target = el.get("Target")
        if not rid or not reltype or target is None:
            raise PackageFormatError(f"incomplete relationship in {rels_uri}")
        if el.get("TargetMode") == RTM.EXTERNAL:
            out.append((rid, reltype, target, True))
            continue
        out.append((rid, reltype, PackURI.from_rel_ref(source_uri.baseURI, target), False))
    return out


def _load_part_content(zf: zipfile.ZipFile, partname: PackURI, content_type: str) -> Any:
    blob = zf.read(partname.membername)
    if not _is_xml_content_type(content_type):
        return blob
    try:
        return oxml.parse_part_xml(blob)
    except etree.XMLSyntaxError as e:
        raise PackageFormatError(f"unreadable XML part {partname}: {e}") from e


def read_package(source: Union[str, Path, IO[bytes]]) -> Tuple[PartGraph, PartRef]:
    """Read an OPC container into a PartGraph.

    Walks relationships from the package root so only reachable parts are loaded.
    Returns (graph, presentation part). Raises PackageFormatError on anything the
    editor cannot trust: missing content types, unreadable XML, a relationship to a
    part that is not in the zip, or no presentation part.
    """
    try:
        zf = zipfile.ZipFile(source, "r")
    except (zipfile.BadZipFile, OSError) as e:
        raise PackageFormatError(f"not a zip container: {e}") from e

    with zf:
        names = set(zf.namelist())
        if CONTENT_TYPES_URI.membername not in names:
            raise PackageFormatError("missing [Content_Types].xml")
        content_types = _ContentTypes.parse(zf.read(CONTENT_TYPES_URI.membername))

        graph = PartGraph()
        refs: Dict[str, PartRef] = {}
        pending: List[Tuple[PartRef, _RelRecord]] = []
        queue: deque[Tuple[PartRef, PackURI]] = deque([(ROOT, PACKAGE_URI)])

        while queue:
            source_ref, source_uri = queue.popleft()
            for rec in _parse_rels(zf, names, source_uri):
                rid, reltype, target, is_external = rec
                pending.append((source_ref, rec))
                if is_external or target in refs:
                    continue
                partname = PackURI(target)
                if partname.membername not in names:
                    raise PackageFormatError(f"{source_uri}: {rid} targets missing part {partname}")
                ct = content_types.get(partname)
                if ct is None:
                    raise PackageFormatError(f"no content type for {partname}")
                ref = graph.add_part(
                    kind_for(ct, reltype),
                    _load_part_content(zf, partname, ct),
                    partname=str(partname),
                    content_type=ct,
                )
                refs[target] = ref
                queue.append((ref, partname))

    for source_ref, (rid, reltype, target, is_external) in pending:
        try:
            if is_external:
                graph.link_external(source_ref, reltype, target, rid=rid)
                continue
            target_ref = refs[target]
            role = edge_role(graph.kind(source_ref), graph.part(target_ref).kind)
            if role is EdgeRole.OWNS and graph.owner_of(target_ref) is not None:
                # a second owner is legal OOXML (e.g. a theme shared by two masters)
                role = EdgeRole.REFERENCES
            graph.link(source_ref, target_ref, role, reltype, rid=rid)
        except DuplicateReferenceError as e:
            where = "<package>" if source_ref == ROOT else graph.part(source_ref).partname
            raise PackageFormatError(f"{where}: duplicate relationship id {rid}") from e

    presentation = graph.related(ROOT, RT.OFFICE_DOCUMENT)
    if presentation is None or graph.part(presentation).kind is not PartKind.PRESENTATION:
        raise PackageFormatError("package has no presentation part")

    _observe_ids(graph, presentation)
    logger.debug("read %d parts", len(graph))
    return graph, presentation


def _int_attr(el: Any, name: str, where: str) -> int:
    raw = el.get(name)
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise PackageFormatError(f"{where}: bad {name}={raw!r}") from None


def _observe_ids(graph: PartGraph, presentation: PartRef) -> None:
    """Seed the allocator with ids already in use and reject broken id lists."""
    pres = graph.part(presentation).content
    r_id = oxml.qn("r:id")

    for el in pres.iter(oxml.qn("p:sldId")):
        graph.ids.observe_slide_id(_int_attr(el, "id", "p:sldId"))
        target = graph.edge(presentation, el.get(r_id) or "")
        if target is None or target.target is None or graph.part(target.target).kind is not PartKind.SLIDE:
            raise PackageFormatError(f"p:sldId r:id={el.get(r_id)!r} does not resolve to a slide")

    for el in pres.iter(oxml.qn("p:sldMasterId")):
        graph.ids.observe_master_id(_int_attr(el, "id", "p:sldMasterId"))

    for master in graph.parts(PartKind.SLIDE_MASTER):
        for el in graph.part(master).content.iter(oxml.qn("p:sldLayoutId")):
            graph.ids.observe_master_id(_int_attr(el, "id", "p:sldLayoutId"))

    for slide in graph.parts(PartKind.SLIDE):
        if graph.related(slide, RT.SLIDE_LAYOUT) is None:
            raise PackageFormatError(f"{graph.part(slide).partname} has no slide layout")


__all__ = ["read_package"]
