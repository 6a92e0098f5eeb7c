from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import IO, Any, Optional, Union

from pptx import Presentation
from pptx.opc.constants import RELATIONSHIP_TYPE as RT

from deckgraph.core import oxml, pml
from deckgraph.core.chart.value_resolver import ValueResolver
from deckgraph.core.config import DEFAULT_CONTEXT, PackageContext
from deckgraph.core.copy.copy_engine import CopyEngine
from deckgraph.core.errors import PackageValidationError
from deckgraph.core.graph.part_graph import ROOT, PartGraph, PartRef
from deckgraph.core.opc.package_reader import read_package
from deckgraph.core.opc.package_writer import write_package
from deckgraph.core.slides.collection import SlideCollection
from deckgraph.core.slides.masters import SlideLayout, SlideMaster
from deckgraph.core.slides.sections import SectionCollection
from deckgraph.core.slides.slide import Slide
from deckgraph.core.validate.package_validate import build_manifest, validate_package

logger = logging.getLogger(__name__)

Source = Union[str, Path, IO[bytes]]


class DeckPackage:
    """An in-memory presentation package: a PartGraph plus its presentation part."""

    def __init__(
        self,
        graph: PartGraph,
        presentation_ref: PartRef,
        *,
        context: Optional[PackageContext] = None,
        source: Optional[Source] = None,
    ) -> None:
        self.graph = graph
        self.presentation_ref = presentation_ref
        self.context = context or DEFAULT_CONTEXT
        self._source = source
        self._values: Optional[ValueResolver] = None
        self._copy_engine: Optional[CopyEngine] = None

    # -------------------------------------------------------------- lifecycle

    @classmethod
    def open(cls, source: Source, context: Optional[PackageContext] = None) -> "DeckPackage":
        """Load a .pptx from a path or binary stream. Raises PackageFormatError."""
        if isinstance(source, (str, Path)):
            source = Path(source)
        graph, presentation = read_package(source)
        pkg = cls(graph, presentation, context=context, source=source)
        logger.info("opened %s (%d parts, %d slides)", _label(source), len(graph), len(pkg.slides))
        return pkg

    @classmethod
    def new(cls, context: Optional[PackageContext] = None) -> "DeckPackage":
        """A new, empty package from python-pptx's default template."""
        buf = BytesIO()
        Presentation().save(buf)
        buf.seek(0)
        graph, presentation = read_package(buf)
        pkg = cls(graph, presentation, context=context)
        core = pkg.core_properties
        if core is not None:
            now = pkg.context.now()
            core.created_datetime = now
            core.modified_datetime = now
        return pkg

    def save(self, target: Optional[Source] = None) -> None:
        """Write the package to `target`, or back to where it was opened from.

        Stamps `dcterms:modified` from the context clock. With
        `context.validate_on_save`, refuses to write an invalid package.
        """
        if target is None:
            target = self._source
        if target is None:
            raise ValueError("package was not opened from a file; pass a save target")

        if self.context.validate_on_save:
            self.validate()
        core = self.core_properties
        if core is not None:
            core.modified_datetime = self.context.now()

        if isinstance(target, (str, Path)):
            write_package(self.graph, Path(target))
        else:
            target.seek(0)
            target.truncate()
            write_package(self.graph, target)
        logger.info("saved %s (%d slides)", _label(target), len(self.slides))

    # ---------------------------------------------------------------- content

    @property
    def presentation_element(self) -> Any:
        return self.graph.part(self.presentation_ref).content

    @property
    def core_properties(self) -> Any:
        """The `cp:coreProperties` element, or None when the package has none."""
        ref = self.graph.related(ROOT, RT.CORE_PROPERTIES)
        if ref is None:
            return None
        part = self.graph.part(ref)
        return part.content if part.is_xml else None

    @property
    def slides(self) -> SlideCollection:
        return SlideCollection(self)

    def slide(self, number: int) -> Slide:
        """Slide by 1-based number."""
        return self.slides.slide(number)

    @property
    def sections(self) -> SectionCollection:
        return SectionCollection(self)

    @property
    def slide_masters(self) -> list[SlideMaster]:
        masters = []
        for entry in pml.master_id_entries(self.presentation_element):
            ref = self.graph.resolve(entry.get(oxml.qn("r:id"), ""), self.presentation_ref)
            masters.append(SlideMaster(self, ref))
        return masters

    @property
    def slide_layouts(self) -> list[SlideLayout]:
        return [layout for master in self.slide_masters for layout in master.layouts]

    @property
    def notes_master(self) -> Optional[PartRef]:
        return self.graph.related(self.presentation_ref, RT.NOTES_MASTER)

    @property
    def values(self) -> ValueResolver:
        if self._values is None:
            self._values = ValueResolver(self.graph)
        return self._values

    @property
    def copy_engine(self) -> CopyEngine:
        """The engine copying slides into this package; remembers earlier copies."""
        if self._copy_engine is None:
            self._copy_engine = CopyEngine(self)
        return self._copy_engine

    # ------------------------------------------------------------- validation

    def manifest(self) -> dict[str, Any]:
        return build_manifest(self)

    def validate(self) -> None:
        """Raise PackageValidationError when the package breaks any structural rule."""
        errors = validate_package(self)
        if errors:
            raise PackageValidationError(errors)


def _label(source: Any) -> str:
    if isinstance(source, (str, Path)):
        return str(source)
    return "<stream>"


__all__ = ["DeckPackage"]
