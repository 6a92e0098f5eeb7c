"""Chart, series and data-point views over a chart part.

The objects here hold no state of their own beyond a PartRef and the `c:ser`
element; reads and writes go through the package's ValueResolver.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from deckgraph.core import oxml
from deckgraph.core.chart.formula import parse_formula
from deckgraph.core.chart.value_resolver import ValueState
from deckgraph.core.errors import UnresolvableFormulaError

if TYPE_CHECKING:
    from deckgraph.core.graph.part_graph import PartRef
    from deckgraph.core.package import DeckPackage

_qn = oxml.qn


def _child(el: Any, nsptag: str) -> Any:
    return None if el is None else el.find(_qn(nsptag))


def _text_of(el: Any) -> Optional[str]:
    if el is None or el.text is None:
        return None
    return el.text


def _insert_pt(cache: Any, idx: int, text: str) -> None:
    """Set point `idx` in a strCache/numCache/numLit, keeping points ordered by idx."""
    for pt in cache.iterchildren(_qn("c:pt")):
        if int(pt.get("idx", "-1")) == idx:
            v = pt.find(_qn("c:v"))
            if v is None:
                v = oxml.new_element("c:v")
                pt.append(v)
            v.text = text
            return

    pt = oxml.new_element("c:pt", idx=str(idx))
    v = oxml.new_element("c:v")
    v.text = text
    pt.append(v)

    later = [p for p in cache.iterchildren(_qn("c:pt")) if int(p.get("idx", "-1")) > idx]
    if later:
        later[0].addprevious(pt)
        return
    anchor = None
    for tag in ("c:pt", "c:ptCount", "c:formatCode"):
        found = list(cache.iterchildren(_qn(tag)))
        if found:
            anchor = found[-1]
            break
    if anchor is not None:
        anchor.addnext(pt)
    else:
        cache.insert(0, pt)


def _set_pt_count(cache: Any, count: int) -> None:
    pc = cache.find(_qn("c:ptCount"))
    if pc is None:
        pc = oxml.new_element("c:ptCount")
        fc = cache.find(_qn("c:formatCode"))
        if fc is not None:
            fc.addnext(pc)
        else:
            cache.insert(0, pc)
    current = int(pc.get("val", "0"))
    pc.set("val", str(max(current, count)))


def _ensure_cache_after_f(ref_el: Any, cache_tag: str) -> Any:
    cache = ref_el.find(_qn(cache_tag))
    if cache is None:
        cache = oxml.new_element(cache_tag)
        f = ref_el.find(_qn("c:f"))
        if f is not None:
            f.addnext(cache)
        else:
            ref_el.insert(0, cache)
    return cache


class SeriesName:
    """The `c:tx` of a series: literal `c:v`, or `c:strRef` with formula and cache."""

    def __init__(self, series: "Series") -> None:
        self._series = series
        self.chart_ref = series.chart.ref
        self.label = f"{series.chart.partname} series {series.index} name"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SeriesName) and other._series.element is self._series.element

    def __hash__(self) -> int:
        return hash(id(self._series.element))

    @property
    def _tx(self) -> Any:
        return _child(self._series.element, "c:tx")

    def formula(self) -> Optional[str]:
        return _text_of(_child(_child(self._tx, "c:strRef"), "c:f"))

    def formula_offset(self) -> int:
        return 0

    def cached(self) -> Optional[str]:
        tx = self._tx
        if tx is None:
            return None
        literal = tx.find(_qn("c:v"))
        if literal is not None:
            return literal.text or ""
        cache = _child(tx.find(_qn("c:strRef")), "c:strCache")
        if cache is None:
            return None
        for pt in cache.iterchildren(_qn("c:pt")):
            v = pt.find(_qn("c:v"))
            if v is not None:
                return v.text or ""
        return None

    def coerce(self, raw: Any) -> str:
        return "" if raw is None else str(raw)

    def write_cache(self, value: Any) -> None:
        tx = self._series.element.get_or_add_tx()
        for literal in list(tx.iterchildren(_qn("c:v"))):
            tx.remove(literal)
        str_ref = tx.find(_qn("c:strRef"))
        if str_ref is None:
            str_ref = oxml.new_element("c:strRef")
            tx.insert(0, str_ref)
        cache = _ensure_cache_after_f(str_ref, "c:strCache")
        for pt in list(cache.iterchildren(_qn("c:pt"))):
            cache.remove(pt)
        pc = cache.find(_qn("c:ptCount"))
        if pc is not None:
            cache.remove(pc)
        _set_pt_count(cache, 1)
        _insert_pt(cache, 0, self.coerce(value))

    def detach_formula(self) -> None:
        str_ref = _child(self._tx, "c:strRef")
        f = _child(str_ref, "c:f")
        if f is not None:
            str_ref.remove(f)

    def siblings(self) -> list["SeriesName"]:
        return [self]


class ChartPoint:
    """One data point of a series' values (`c:val`, or `c:yVal` for XY/bubble)."""

    def __init__(self, series: "Series", idx: int) -> None:
        self._series = series
        self.idx = idx
        self.chart_ref = series.chart.ref
        self.label = f"{series.chart.partname} series {series.index} point {idx}"

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, ChartPoint)
            and other._series.element is self._series.element
            and other.idx == self.idx
        )

    def __hash__(self) -> int:
        return hash((id(self._series.element), self.idx))

    @property
    def series(self) -> "Series":
        return self._series

    def formula(self) -> Optional[str]:
        return self._series._values_formula()

    def formula_offset(self) -> int:
        return self.idx

    def cached(self) -> Optional[float]:
        cache = self._series._values_cache(create=False)
        if cache is None:
            return None
        for pt in cache.iterchildren(_qn("c:pt")):
            if int(pt.get("idx", "-1")) == self.idx:
                text = _text_of(pt.find(_qn("c:v")))
                if text is None:
                    return None
                try:
                    return float(text)
                except ValueError:
                    # "#N/A" and other error text is no usable value
                    return None
        return None

    def coerce(self, raw: Any) -> Optional[float]:
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            raise UnresolvableFormulaError(f"{self.label}: cell value {raw!r} is not a number") from None

    def write_cache(self, value: Any) -> None:
        cache = self._series._values_cache(create=True)
        _set_pt_count(cache, self.idx + 1)
        _insert_pt(cache, self.idx, str(value))

    def detach_formula(self) -> None:
        num_ref = self._series._num_ref()
        f = _child(num_ref, "c:f")
        if f is not None:
            num_ref.remove(f)

    def siblings(self) -> list["ChartPoint"]:
        return self._series.points

    @property
    def state(self) -> ValueState:
        return self._series.chart.package.values.state(self)

    @property
    def value(self) -> Optional[float]:
        return self._series.chart.package.values.get_value(self)

    @value.setter
    def value(self, value: float) -> None:
        self._series.chart.package.values.set_value(self, value)


class Series:
    def __init__(self, chart: "Chart", element: Any) -> None:
        self.chart = chart
        self.element = element

    @property
    def index(self) -> int:
        return int(self.element.find(_qn("c:idx")).get("val"))

    @property
    def order(self) -> int:
        return int(self.element.find(_qn("c:order")).get("val"))

    @property
    def name_holder(self) -> SeriesName:
        return SeriesName(self)

    @property
    def name(self) -> str:
        return self.chart.package.values.get_value(self.name_holder)

    @name.setter
    def name(self, value: str) -> None:
        self.chart.package.values.set_value(self.name_holder, value)

    @property
    def has_name(self) -> bool:
        return self.chart.package.values.has_value(self.name_holder)

    @property
    def name_state(self) -> ValueState:
        return self.chart.package.values.state(self.name_holder)

    @property
    def points(self) -> list[ChartPoint]:
        cache = self._values_cache(create=False)
        count = 0
        if cache is not None:
            pc = cache.find(_qn("c:ptCount"))
            if pc is not None:
                count = int(pc.get("val", "0"))
            idxs = [int(pt.get("idx", "-1")) for pt in cache.iterchildren(_qn("c:pt"))]
            if idxs:
                count = max(count, max(idxs) + 1)
        formula = self._values_formula()
        if formula:
            count = max(count, len(parse_formula(formula)))
        return [ChartPoint(self, i) for i in range(count)]

    @property
    def values(self) -> list[Optional[float]]:
        return [p.value for p in self.points]

    # -- value reference plumbing --

    def _values_el(self, create: bool = False) -> Any:
        for tag in ("c:val", "c:yVal"):
            el = self.element.find(_qn(tag))
            if el is not None:
                return el
        if not create:
            return None
        return self.element.get_or_add_val()

    def _num_ref(self) -> Any:
        return _child(self._values_el(), "c:numRef")

    def _values_formula(self) -> Optional[str]:
        return _text_of(_child(self._num_ref(), "c:f"))

    def _values_cache(self, create: bool) -> Any:
        values_el = self._values_el(create=create)
        if values_el is None:
            return None
        num_lit = values_el.find(_qn("c:numLit"))
        if num_lit is not None:
            return num_lit
        num_ref = values_el.find(_qn("c:numRef"))
        if num_ref is None:
            if not create:
                return None
            num_ref = oxml.new_element("c:numRef")
            values_el.insert(0, num_ref)
        if not create:
            return num_ref.find(_qn("c:numCache"))
        return _ensure_cache_after_f(num_ref, "c:numCache")


class Chart:
    """A chart part reached from a slide's graphic frame."""

    def __init__(self, package: "DeckPackage", ref: "PartRef") -> None:
        self.package = package
        self.ref = ref

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Chart) and other.package is self.package and other.ref == self.ref

    def __hash__(self) -> int:
        return hash((id(self.package), self.ref))

    @property
    def partname(self) -> str:
        return self.package.graph.part(self.ref).partname

    @property
    def element(self) -> Any:
        return self.package.graph.part(self.ref).content

    @property
    def chart_type(self) -> Optional[str]:
        """Local name of the first plot element, e.g. 'barChart'."""
        plot_area = self.element.find(".//" + _qn("c:plotArea"))
        if plot_area is None:
            return None
        for child in plot_area.iterchildren():
            if not isinstance(child.tag, str):
                continue
            local = child.tag.rsplit("}", 1)[-1]
            if local.endswith("Chart"):
                return local
        return None

    @property
    def series(self) -> list[Series]:
        plot_area = self.element.find(".//" + _qn("c:plotArea"))
        if plot_area is None:
            return []
        return [Series(self, ser) for ser in plot_area.iter(_qn("c:ser"))]

    @property
    def data_source(self) -> Optional["PartRef"]:
        ext = self.element.find(_qn("c:externalData"))
        if ext is None:
            return None
        e = self.package.graph.edge(self.ref, ext.get(_qn("r:id"), ""))
        return None if e is None else e.target


__all__ = ["Chart", "Series", "SeriesName", "ChartPoint"]
