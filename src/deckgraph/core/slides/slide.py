from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from pptx.opc.constants import RELATIONSHIP_TYPE as RT

from deckgraph.core import oxml, pml
from deckgraph.core.chart.series import Chart
from deckgraph.core.errors import DanglingReferenceError
from deckgraph.core.graph.kinds import PartKind

if TYPE_CHECKING:
    from deckgraph.core.graph.part_graph import PartRef
    from deckgraph.core.package import DeckPackage
    from deckgraph.core.slides.masters import SlideLayout

_SHAPE_TAGS = frozenset(
    oxml.qn(t) for t in ("p:sp", "p:pic", "p:graphicFrame", "p:grpSp", "p:cxnSp", "p:contentPart")
)


class Slide:
    """A slide of a DeckPackage, identified by its PartRef."""

    def __init__(self, package: "DeckPackage", ref: "PartRef") -> None:
        self.package = package
        self.ref = ref

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Slide) and other.package is self.package and other.ref == self.ref

    def __hash__(self) -> int:
        return hash((id(self.package), self.ref))

    def __repr__(self) -> str:
        part = self.package.graph.get(self.ref)
        return f"<Slide {part.partname if part else self.ref}>"

    @property
    def partname(self) -> str:
        return self.package.graph.part(self.ref).partname

    @property
    def element(self) -> Any:
        return self.package.graph.part(self.ref).content

    @property
    def rid(self) -> str:
        rid = self.package.graph.rid_of(self.package.presentation_ref, self.ref)
        if rid is None:
            raise DanglingReferenceError(f"{self.partname} is not in the slide list")
        return rid

    def _entry(self) -> Any:
        rid = self.rid
        for entry in pml.slide_id_entries(self.package.presentation_element):
            if entry.get(oxml.qn("r:id")) == rid:
                return entry
        raise DanglingReferenceError(f"{self.partname} has no p:sldId entry")

    @property
    def slide_id(self) -> int:
        return int(self._entry().get("id"))

    @property
    def number(self) -> int:
        """1-based position in the presentation."""
        entry = self._entry()
        return pml.slide_id_entries(self.package.presentation_element).index(entry) + 1

    @property
    def layout(self) -> "SlideLayout":
        from deckgraph.core.slides.masters import SlideLayout

        ref = self.package.graph.related(self.ref, RT.SLIDE_LAYOUT)
        if ref is None:
            raise DanglingReferenceError(f"{self.partname} has no slide layout")
        return SlideLayout(self.package, ref)

    @property
    def notes_ref(self) -> Optional["PartRef"]:
        return self.package.graph.related(self.ref, RT.NOTES_SLIDE)

    @property
    def has_notes(self) -> bool:
        return self.notes_ref is not None

    @property
    def notes(self) -> Optional[str]:
        """Text of the notes body placeholder, paragraphs joined by newlines."""
        ref = self.notes_ref
        if ref is None:
            return None
        notes = self.package.graph.part(ref).content
        for sp in notes.iter(oxml.qn("p:sp")):
            ph = sp.find("./%s/%s/%s" % (oxml.qn("p:nvSpPr"), oxml.qn("p:nvPr"), oxml.qn("p:ph")))
            if ph is None or ph.get("type") != "body":
                continue
            body = sp.find(oxml.qn("p:txBody"))
            if body is None:
                return ""
            return "\n".join(
                "".join(t.text or "" for t in p.iter(oxml.qn("a:t")))
                for p in body.iterchildren(oxml.qn("a:p"))
            )
        return ""

    @property
    def charts(self) -> list[Chart]:
        """Charts in shape order."""
        graph = self.package.graph
        out = []
        for el in self.element.iter(oxml.qn("c:chart")):
            rid = el.get(oxml.qn("r:id"))
            if rid is None:
                continue
            ref = graph.resolve(rid, self.ref)
            if graph.part(ref).kind is PartKind.CHART:
                out.append(Chart(self.package, ref))
        return out

    @property
    def shape_names(self) -> list[str]:
        tree = self.element.find("./%s/%s" % (oxml.qn("p:cSld"), oxml.qn("p:spTree")))
        if tree is None:
            return []
        names = []
        for shape in tree.iterchildren():
            if shape.tag not in _SHAPE_TAGS:
                continue
            cNvPr = next(shape.iter(oxml.qn("p:cNvPr")), None)
            names.append(cNvPr.get("name", "") if cNvPr is not None else "")
        return names

    @property
    def linked_slides(self) -> list["Slide"]:
        """Slides this slide jumps to through hyperlinks."""
        graph = self.package.graph
        out = []
        for e in graph.edges_from(self.ref):
            if e.target is not None and e.reltype == RT.SLIDE and graph.part(e.target).kind is PartKind.SLIDE:
                out.append(Slide(self.package, e.target))
        return out

    def remove(self) -> None:
        self.package.slides.remove(self)


__all__ = ["Slide"]
