from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from pptx.opc.constants import CONTENT_TYPE as CT
from pptx.opc.constants import RELATIONSHIP_TYPE as RT


class PartKind(str, Enum):
    PRESENTATION = "presentation"
    SLIDE = "slide"
    SLIDE_LAYOUT = "slideLayout"
    SLIDE_MASTER = "slideMaster"
    NOTES = "notes"
    NOTES_MASTER = "notesMaster"
    HANDOUT_MASTER = "handoutMaster"
    THEME = "theme"
    CHART = "chart"
    CHART_STYLE = "chartStyle"
    EMBEDDED_DATA_SOURCE = "embeddedDataSource"
    IMAGE = "image"
    PROPERTIES = "properties"
    OTHER = "other"


class EdgeRole(str, Enum):
    OWNS = "owns"
    REFERENCES = "references"


# Relationship types python-pptx does not name.
RT_CHART_STYLE = "http://schemas.microsoft.com/office/2011/relationships/chartStyle"


_KIND_BY_CONTENT_TYPE: dict[str, PartKind] = {
    CT.PML_PRESENTATION_MAIN: PartKind.PRESENTATION,
    CT.PML_PRES_MACRO_MAIN: PartKind.PRESENTATION,
    CT.PML_SLIDESHOW_MAIN: PartKind.PRESENTATION,
    CT.PML_TEMPLATE_MAIN: PartKind.PRESENTATION,
    CT.PML_SLIDE: PartKind.SLIDE,
    CT.PML_SLIDE_LAYOUT: PartKind.SLIDE_LAYOUT,
    CT.PML_SLIDE_MASTER: PartKind.SLIDE_MASTER,
    CT.PML_NOTES_SLIDE: PartKind.NOTES,
    CT.PML_NOTES_MASTER: PartKind.NOTES_MASTER,
    CT.PML_HANDOUT_MASTER: PartKind.HANDOUT_MASTER,
    CT.OFC_THEME: PartKind.THEME,
    CT.DML_CHART: PartKind.CHART,
    CT.OFC_CHART_STYLE: PartKind.CHART_STYLE,
    CT.OFC_CHART_COLORS: PartKind.CHART_STYLE,
    CT.SML_SHEET: PartKind.EMBEDDED_DATA_SOURCE,
    CT.OPC_CORE_PROPERTIES: PartKind.PROPERTIES,
    CT.OFC_EXTENDED_PROPERTIES: PartKind.PROPERTIES,
    CT.OFC_CUSTOM_PROPERTIES: PartKind.PROPERTIES,
    CT.PML_PRES_PROPS: PartKind.PROPERTIES,
    CT.PML_VIEW_PROPS: PartKind.PROPERTIES,
    CT.PML_TABLE_STYLES: PartKind.PROPERTIES,
    CT.PML_PRINTER_SETTINGS: PartKind.PROPERTIES,
}

_DEFAULT_CONTENT_TYPE: dict[PartKind, str] = {
    PartKind.PRESENTATION: CT.PML_PRESENTATION_MAIN,
    PartKind.SLIDE: CT.PML_SLIDE,
    PartKind.SLIDE_LAYOUT: CT.PML_SLIDE_LAYOUT,
    PartKind.SLIDE_MASTER: CT.PML_SLIDE_MASTER,
    PartKind.NOTES: CT.PML_NOTES_SLIDE,
    PartKind.NOTES_MASTER: CT.PML_NOTES_MASTER,
    PartKind.HANDOUT_MASTER: CT.PML_HANDOUT_MASTER,
    PartKind.THEME: CT.OFC_THEME,
    PartKind.CHART: CT.DML_CHART,
    PartKind.CHART_STYLE: CT.OFC_CHART_STYLE,
    PartKind.EMBEDDED_DATA_SOURCE: CT.SML_SHEET,
    PartKind.IMAGE: CT.PNG,
    PartKind.PROPERTIES: "application/xml",
    PartKind.OTHER: "application/octet-stream",
}

_PARTNAME_TEMPLATE: dict[PartKind, str] = {
    PartKind.PRESENTATION: "/ppt/presentation%d.xml",
    PartKind.SLIDE: "/ppt/slides/slide%d.xml",
    PartKind.SLIDE_LAYOUT: "/ppt/slideLayouts/slideLayout%d.xml",
    PartKind.SLIDE_MASTER: "/ppt/slideMasters/slideMaster%d.xml",
    PartKind.NOTES: "/ppt/notesSlides/notesSlide%d.xml",
    PartKind.NOTES_MASTER: "/ppt/notesMasters/notesMaster%d.xml",
    PartKind.HANDOUT_MASTER: "/ppt/handoutMasters/handoutMaster%d.xml",
    PartKind.THEME: "/ppt/theme/theme%d.xml",
    PartKind.CHART: "/ppt/charts/chart%d.xml",
    PartKind.CHART_STYLE: "/ppt/charts/style%d.xml",
    PartKind.EMBEDDED_DATA_SOURCE: "/ppt/embeddings/Microsoft_Excel_Sheet%d.xlsx",
    PartKind.IMAGE: "/ppt/media/image%d.png",
    PartKind.PROPERTIES: "/ppt/props%d.xml",
    PartKind.OTHER: "/ppt/parts/part%d.bin",
}

# (source kind, target kind) pairs whose edge binds the target's lifetime to the source.
_OWNED_PAIRS: frozenset[tuple[PartKind, PartKind]] = frozenset(
    {
        (PartKind.PRESENTATION, PartKind.SLIDE),
        (PartKind.PRESENTATION, PartKind.SLIDE_MASTER),
        (PartKind.PRESENTATION, PartKind.NOTES_MASTER),
        (PartKind.PRESENTATION, PartKind.HANDOUT_MASTER),
        (PartKind.PRESENTATION, PartKind.PROPERTIES),
        (PartKind.PRESENTATION, PartKind.OTHER),
        (PartKind.SLIDE_MASTER, PartKind.SLIDE_LAYOUT),
        (PartKind.SLIDE_MASTER, PartKind.THEME),
        (PartKind.NOTES_MASTER, PartKind.THEME),
        (PartKind.HANDOUT_MASTER, PartKind.THEME),
        (PartKind.SLIDE, PartKind.NOTES),
        (PartKind.SLIDE, PartKind.CHART),
        (PartKind.CHART, PartKind.EMBEDDED_DATA_SOURCE),
        (PartKind.CHART, PartKind.CHART_STYLE),
    }
)

# Which relationship type connects a source to a target of the given kind.
_RELTYPE_BY_TARGET_KIND: dict[PartKind, str] = {
    PartKind.PRESENTATION: RT.OFFICE_DOCUMENT,
    PartKind.SLIDE: RT.SLIDE,
    PartKind.SLIDE_LAYOUT: RT.SLIDE_LAYOUT,
    PartKind.SLIDE_MASTER: RT.SLIDE_MASTER,
    PartKind.NOTES: RT.NOTES_SLIDE,
    PartKind.NOTES_MASTER: RT.NOTES_MASTER,
    PartKind.HANDOUT_MASTER: RT.HANDOUT_MASTER,
    PartKind.THEME: RT.THEME,
    PartKind.CHART: RT.CHART,
    PartKind.CHART_STYLE: RT_CHART_STYLE,
    PartKind.EMBEDDED_DATA_SOURCE: RT.PACKAGE,
    PartKind.IMAGE: RT.IMAGE,
}


def kind_for(content_type: str, reltype: Optional[str] = None) -> PartKind:
    kind = _KIND_BY_CONTENT_TYPE.get(content_type)
    if kind is not None:
        return kind
    if content_type.startswith("image/"):
        return PartKind.IMAGE
    if reltype == RT.PACKAGE:
        return PartKind.EMBEDDED_DATA_SOURCE
    return PartKind.OTHER


def default_content_type(kind: PartKind) -> str:
    return _DEFAULT_CONTENT_TYPE[kind]


def default_reltype(kind: PartKind) -> str:
    try:
        return _RELTYPE_BY_TARGET_KIND[kind]
    except KeyError:
        raise ValueError(f"no default relationship type for {kind}") from None


def edge_role(source_kind: Optional[PartKind], target_kind: Optional[PartKind]) -> EdgeRole:
    """Role of an edge from `source_kind` to `target_kind`.

    `source_kind=None` is the package root; `target_kind=None` an external target.
    """
    if target_kind is None:
        return EdgeRole.REFERENCES
    if source_kind is None:
        return EdgeRole.OWNS
    if (source_kind, target_kind) in _OWNED_PAIRS:
        return EdgeRole.OWNS
    return EdgeRole.REFERENCES


_PARTNAME_RE = re.compile(r"^(?P<base>.*?)(?P<num>\d*)(?P<ext>\.[^./]+)?$")


def partname_template(kind: PartKind, like: Optional[str] = None) -> str:
    """Return a `%d` template for new partnames.

    With `like`, keep its directory, stem and extension: `/ppt/media/image7.jpeg`
    becomes `/ppt/media/image%d.jpeg`.
    """
    if like:
        m = _PARTNAME_RE.match(like)
        if m and m.group("base"):
            base = m.group("base").replace("%", "%%")
            ext = (m.group("ext") or "").replace("%", "%%")
            return f"{base}%d{ext}"
    return _PARTNAME_TEMPLATE[kind]


__all__ = [
    "PartKind",
    "EdgeRole",
    "RT_CHART_STYLE",
    "kind_for",
    "default_content_type",
    "default_reltype",
    "edge_role",
    "partname_template",
]
