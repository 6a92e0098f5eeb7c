from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Protocol

from pptx.opc.constants import RELATIONSHIP_TYPE as RT

from deckgraph.core import oxml
from deckgraph.core.chart.formula import parse_formula
from deckgraph.core.chart.workbook import open_workbook, read_cells
from deckgraph.core.errors import MissingValueError, UnresolvableFormulaError

if TYPE_CHECKING:
    from deckgraph.core.graph.part_graph import PartGraph, PartRef

logger = logging.getLogger(__name__)


class ValueState(str, Enum):
    MISSING = "missing"
    FORMULA_ONLY = "formula_only"
    CACHED = "cached"


class ValueHolder(Protocol):
    """Anything in a chart part that carries a cached value, a formula, or both."""

    chart_ref: "PartRef"
    label: str

    def cached(self) -> Optional[Any]: ...

    def formula(self) -> Optional[str]: ...

    def formula_offset(self) -> int: ...

    def coerce(self, raw: Any) -> Any: ...

    def write_cache(self, value: Any) -> None: ...

    def detach_formula(self) -> None: ...

    def siblings(self) -> list["ValueHolder"]: ...


class ValueResolver:
    """Reads and writes dual-source chart values.

    The inline cache always wins; the formula is only evaluated (against the chart's
    embedded workbook) when no cache exists. Parsed workbooks are kept per data-source
    part until that part leaves the graph.
    """

    def __init__(self, graph: "PartGraph") -> None:
        self._graph = graph
        self._workbooks: dict["PartRef", Any] = {}
        graph.add_removal_listener(self._forget)

    def state(self, holder: ValueHolder) -> ValueState:
        if holder.cached() is not None:
            return ValueState.CACHED
        if holder.formula():
            return ValueState.FORMULA_ONLY
        return ValueState.MISSING

    def has_value(self, holder: ValueHolder) -> bool:
        return self.state(holder) is ValueState.CACHED

    def get_value(self, holder: ValueHolder) -> Any:
        cached = holder.cached()
        if cached is not None:
            return cached
        if not holder.formula():
            raise MissingValueError(f"{holder.label}: no cached value and no formula")
        return self.evaluate(holder)

    def evaluate(self, holder: ValueHolder) -> Any:
        """Evaluate the holder's formula, ignoring any cache."""
        formula = holder.formula()
        if not formula:
            raise MissingValueError(f"{holder.label}: no formula")
        cell_range = parse_formula(formula)
        wb = self._workbook_for(holder.chart_ref)
        values = read_cells(wb, cell_range, holder.label)
        offset = holder.formula_offset()
        if offset >= len(values):
            raise UnresolvableFormulaError(
                f"{holder.label}: {formula!r} has {len(values)} cells, point {offset} requested"
            )
        return holder.coerce(values[offset])

    def set_value(self, holder: ValueHolder, value: Any) -> None:
        """Write `value` into the cache and drop the formula.

        Formula-only siblings sharing the same reference are materialised first, so
        no value is lost when the formula goes away.
        """
        pending = []
        for sib in holder.siblings():
            if sib == holder or sib.cached() is not None or not sib.formula():
                continue
            pending.append((sib, self.evaluate(sib)))
        for sib, v in pending:
            sib.write_cache(v)
        holder.write_cache(value)
        holder.detach_formula()
        logger.debug("set %s (materialised %d siblings)", holder.label, len(pending))

    def materialize(self, holder: ValueHolder) -> Any:
        """Copy the formula's current value into the cache, keeping the formula."""
        value = self.evaluate(holder)
        holder.write_cache(value)
        return value

    def _data_source_for(self, chart: "PartRef") -> "PartRef":
        label = self._graph.part(chart).partname
        chart_el = self._graph.part(chart).content
        ext = chart_el.find(oxml.qn("c:externalData"))
        if ext is not None:
            rid = ext.get(oxml.qn("r:id"), "")
            e = self._graph.edge(chart, rid)
            if e is None:
                raise UnresolvableFormulaError(f"{label}: externalData {rid!r} has no relationship")
            if e.target is None:
                raise UnresolvableFormulaError(f"{label}: workbook is linked, not embedded ({e.target_ref})")
            return e.target
        ref = self._graph.related(chart, RT.PACKAGE)
        if ref is None:
            raise UnresolvableFormulaError(f"{label}: chart has no embedded workbook")
        return ref

    def _workbook_for(self, chart: "PartRef") -> Any:
        ref = self._data_source_for(chart)
        wb = self._workbooks.get(ref)
        if wb is None:
            part = self._graph.part(ref)
            if part.is_xml:
                raise UnresolvableFormulaError(f"{part.partname} is not a workbook")
            wb = open_workbook(bytes(part.content), part.partname)
            self._workbooks[ref] = wb
        return wb

    def _forget(self, ref: "PartRef") -> None:
        if self._workbooks.pop(ref, None) is not None:
            logger.debug("dropped cached workbook for %s", ref)


__all__ = ["ValueState", "ValueHolder", "ValueResolver"]
