from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from deckgraph.core import pml
from deckgraph.core.slides.slide import Slide

if TYPE_CHECKING:
    from deckgraph.core.package import DeckPackage

logger = logging.getLogger(__name__)


class Section:
    """A named run of slides (`p14:section`)."""

    def __init__(self, package: "DeckPackage", element: Any) -> None:
        self.package = package
        self.element = element

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Section) and other.element is self.element

    def __hash__(self) -> int:
        return hash(id(self.element))

    def __repr__(self) -> str:
        return f"<Section {self.name!r}>"

    @property
    def name(self) -> str:
        return self.element.get("name", "")

    @property
    def slide_ids(self) -> list[int]:
        return [int(e.get("id")) for e in pml.section_slide_id_entries(self.element)]

    @property
    def slides(self) -> list[Slide]:
        by_id = {s.slide_id: s for s in self.package.slides}
        return [by_id[i] for i in self.slide_ids if i in by_id]

    def remove(self) -> None:
        self.package.sections.remove(self)


class SectionCollection:
    """Sections of a package. Removing a section keeps its slides."""

    def __init__(self, package: "DeckPackage") -> None:
        self._package = package

    def _sections(self) -> list[Section]:
        return [Section(self._package, el) for el in pml.section_entries(self._package.presentation_element)]

    def __len__(self) -> int:
        return len(pml.section_entries(self._package.presentation_element))

    def __iter__(self) -> Iterator[Section]:
        return iter(self._sections())

    def __getitem__(self, index: int) -> Section:
        return self._sections()[index]

    def get_by_name(self, name: str) -> Section:
        for section in self._sections():
            if section.name == name:
                return section
        raise KeyError(f"no section named {name!r}")

    def add(self, name: str, slides: Iterable[Slide] = ()) -> Section:
        """Append a section holding `slides`, taking them out of any other section."""
        pres = self._package.presentation_element
        ids = []
        for slide in slides:
            if slide.package is not self._package:
                raise ValueError("slide belongs to another package")
            ids.append(slide.slide_id)
        for slide_id in ids:
            pml.remove_section_slide_id(pres, slide_id)
        section_id = "{%s}" % str(uuid.uuid4()).upper()
        el = pml.add_section(pres, name, section_id, ids)
        logger.info("added section %r (%d slides)", name, len(ids))
        return Section(self._package, el)

    def remove(self, section: Section) -> None:
        if section.package is not self._package:
            raise ValueError("section belongs to another package")
        pml.remove_section(section.element)
        logger.info("removed section %r", section.name)


__all__ = ["Section", "SectionCollection"]
