"""Chart series values that are cached inline, computed from a formula, or both.

Public API:
- `Chart`, `Series`, `ChartPoint`
- `ValueResolver`, `ValueState`
- `parse_formula(text) -> CellRange`
"""

from __future__ import annotations

from .formula import CellRange, parse_formula
from .series import Chart, ChartPoint, Series, SeriesName
from .value_resolver import ValueResolver, ValueState

__all__ = [
    "CellRange",
    "parse_formula",
    "Chart",
    "ChartPoint",
    "Series",
    "SeriesName",
    "ValueResolver",
    "ValueState",
]
