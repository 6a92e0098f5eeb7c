from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Union

from pptx.opc.constants import RELATIONSHIP_TYPE as RT

from deckgraph.core import oxml, pml
from deckgraph.core.errors import DanglingReferenceError, IndexRangeError
from deckgraph.core.graph.kinds import PartKind
from deckgraph.core.slides.slide import Slide

if TYPE_CHECKING:
    from deckgraph.core.graph.part_graph import PartRef
    from deckgraph.core.package import DeckPackage


class _PartView:
    def __init__(self, package: "DeckPackage", ref: "PartRef") -> None:
        self.package = package
        self.ref = ref

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.package is self.package and other.ref == self.ref

    def __hash__(self) -> int:
        return hash((type(self).__name__, id(self.package), self.ref))

    @property
    def partname(self) -> str:
        return self.package.graph.part(self.ref).partname

    @property
    def element(self) -> Any:
        return self.package.graph.part(self.ref).content


class SlideLayout(_PartView):
    def __repr__(self) -> str:
        return f"<SlideLayout {self.name!r}>"

    @property
    def name(self) -> str:
        cSld = self.element.find(oxml.qn("p:cSld"))
        return cSld.get("name", "") if cSld is not None else ""

    @property
    def layout_type(self) -> Optional[str]:
        return self.element.get("type")

    @property
    def master(self) -> "SlideMaster":
        ref = self.package.graph.related(self.ref, RT.SLIDE_MASTER)
        if ref is None:
            raise DanglingReferenceError(f"{self.partname} has no slide master")
        return SlideMaster(self.package, ref)

    @property
    def slides(self) -> list[Slide]:
        """Slides using this layout, in presentation order."""
        users = {
            source
            for source, e in self.package.graph.edges_to(self.ref)
            if self.package.graph.kind(source) is PartKind.SLIDE
        }
        return [s for s in self.package.slides if s.ref in users]


class SlideMaster(_PartView):
    def __repr__(self) -> str:
        return f"<SlideMaster {self.partname}>"

    @property
    def layouts(self) -> list[SlideLayout]:
        graph = self.package.graph
        out = []
        for entry in pml.layout_id_entries(self.element):
            out.append(SlideLayout(self.package, graph.resolve(entry.get(oxml.qn("r:id"), ""), self.ref)))
        return out

    def layout(self, key: Union[str, int]) -> SlideLayout:
        """Layout by name, or by 1-based number in the master's layout list."""
        layouts = self.layouts
        if isinstance(key, int) and not isinstance(key, bool):
            if not 1 <= key <= len(layouts):
                raise IndexRangeError(key, 1, len(layouts))
            return layouts[key - 1]
        for layout in layouts:
            if layout.name == key:
                return layout
        raise KeyError(f"no layout named {key!r} in {self.partname}")

    @property
    def theme(self) -> Optional["PartRef"]:
        return self.package.graph.related(self.ref, RT.THEME)


__all__ = ["SlideMaster", "SlideLayout"]
