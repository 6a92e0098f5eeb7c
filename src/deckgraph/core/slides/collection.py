from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterator, Optional, Union

from pptx.opc.constants import RELATIONSHIP_TYPE as RT

from deckgraph.core import oxml, pml
from deckgraph.core.errors import IndexRangeError
from deckgraph.core.graph.kinds import EdgeRole, PartKind
from deckgraph.core.slides.masters import SlideLayout
from deckgraph.core.slides.slide import Slide

if TYPE_CHECKING:
    from deckgraph.core.graph.part_graph import PartRef
    from deckgraph.core.package import DeckPackage

logger = logging.getLogger(__name__)


def _check_position(position: object, hi: int) -> int:
    if isinstance(position, bool) or not isinstance(position, int) or not 1 <= position <= hi:
        raise IndexRangeError(position, 1, hi)
    return position


class SlideCollection:
    """The ordered slides of a package (the `p:sldIdLst`).

    Indexing with `[]` is 0-based like any Python sequence; `slide()`, `add()` and
    `remove_at()` take the 1-based positions PowerPoint shows.
    """

    def __init__(self, package: "DeckPackage") -> None:
        self._package = package

    def _refs(self) -> list["PartRef"]:
        pkg = self._package
        return [
            pkg.graph.resolve(entry.get(oxml.qn("r:id"), ""), pkg.presentation_ref)
            for entry in pml.slide_id_entries(pkg.presentation_element)
        ]

    def __len__(self) -> int:
        return len(pml.slide_id_entries(self._package.presentation_element))

    def __iter__(self) -> Iterator[Slide]:
        return iter([Slide(self._package, ref) for ref in self._refs()])

    def __getitem__(self, index: int) -> Slide:
        return Slide(self._package, self._refs()[index])

    def __contains__(self, slide: object) -> bool:
        return isinstance(slide, Slide) and slide.package is self._package and slide.ref in self._refs()

    def slide(self, number: int) -> Slide:
        """Slide by 1-based number."""
        refs = self._refs()
        _check_position(number, len(refs))
        return Slide(self._package, refs[number - 1])

    def index(self, slide: Slide) -> int:
        """0-based index of `slide`."""
        return self._refs().index(slide.ref)

    # ---------------------------------------------------------------- editing

    def add(self, item: Union[Slide, SlideLayout], position: Optional[int] = None) -> Slide:
        """Insert a slide at 1-based `position` (default: after the last slide).

        - a slide of another package is copied in, with its dependencies
        - a slide of this package is moved, keeping its slide id and rId
        - a layout of this package produces a new slide bound to it
        """
        count = len(self)
        if isinstance(item, SlideLayout):
            pos = count + 1 if position is None else _check_position(position, count + 1)
            return self._add_from_layout(item, pos - 1)
        if isinstance(item, Slide):
            if item.package is self._package:
                pos = count if position is None else _check_position(position, count + 1)
                return self.move(item, pos)
            pos = count + 1 if position is None else _check_position(position, count + 1)
            ref = self._package.copy_engine.copy(item.package, item.ref, pos - 1)
            return self._file_in_section(Slide(self._package, ref))
        raise TypeError(f"cannot add {type(item).__name__} to a slide collection")

    def move(self, slide: Slide, position: int) -> Slide:
        """Move one of this package's slides to 1-based `position`."""
        entries = pml.slide_id_entries(self._package.presentation_element)
        count = len(entries)
        _check_position(position, count + 1)
        entry = slide._entry()
        old_index = entries.index(entry)
        lst = entry.getparent()
        lst.remove(entry)
        rest = list(lst.iterchildren(oxml.qn("p:sldId")))
        index = min(position, count) - 1
        if index >= len(rest):
            if rest:
                rest[-1].addnext(entry)
            else:
                lst.insert(0, entry)
        else:
            rest[index].addprevious(entry)
        logger.info("moved %s to position %d", slide.partname, index + 1)
        if index != old_index:
            self._file_in_section(slide)
        return slide

    def duplicate(self, slide: Slide, position: Optional[int] = None) -> Slide:
        """Copy one of this package's slides within the package."""
        count = len(self)
        pos = count + 1 if position is None else _check_position(position, count + 1)
        ref = self._package.copy_engine.copy(slide.package, slide.ref, pos - 1)
        return self._file_in_section(Slide(self._package, ref))

    def remove(self, slide: Slide) -> None:
        """Remove `slide` with its notes and charts.

        Layouts, images and other shared parts it referenced are collected when
        nothing else uses them. The slide also leaves its section.
        """
        pkg = self._package
        if slide.package is not pkg:
            raise ValueError("slide belongs to another package")
        partname = slide.partname
        slide_id = slide.slide_id
        pkg.graph.unlink(pkg.presentation_ref, slide.ref)
        pml.remove_section_slide_id(pkg.presentation_element, slide_id)
        logger.info("removed %s", partname)

    def remove_at(self, position: int) -> None:
        self.remove(self.slide(position))

    def _add_from_layout(self, layout: SlideLayout, index: int) -> Slide:
        pkg = self._package
        if layout.package is not pkg:
            raise ValueError("layout belongs to another package")
        graph = pkg.graph
        el = pml.new_slide_xml()
        pml.clone_layout_placeholders(el, layout.element)
        ref = graph.add_part(PartKind.SLIDE, el)
        graph.link(ref, layout.ref, EdgeRole.REFERENCES, RT.SLIDE_LAYOUT)
        rid = graph.link(pkg.presentation_ref, ref, EdgeRole.OWNS, RT.SLIDE)
        pml.insert_slide_id(pkg.presentation_element, graph.ids.next_slide_id(), rid, index)
        logger.info("added %s from layout %r", graph.part(ref).partname, layout.name)
        return self._file_in_section(Slide(pkg, ref))

    def _file_in_section(self, slide: Slide) -> Slide:
        """Place `slide` in the section of the slide before it (the first section at 1)."""
        pres = self._package.presentation_element
        entries = pml.slide_id_entries(pres)
        index = entries.index(slide._entry())
        after = int(entries[index - 1].get("id")) if index > 0 else None
        pml.file_in_section(pres, slide.slide_id, after)
        return slide


__all__ = ["SlideCollection"]
