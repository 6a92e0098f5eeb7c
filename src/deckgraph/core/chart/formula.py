from __future__ import annotations

from dataclasses import dataclass

from openpyxl.utils.cell import range_boundaries

from deckgraph.core.errors import UnresolvableFormulaError


@dataclass(frozen=True)
class CellRange:
    """A rectangular block of cells on one worksheet (1-based rows/columns)."""

    sheet: str
    min_col: int
    min_row: int
    max_col: int
    max_row: int

    def cells(self) -> list[tuple[int, int]]:
        """(row, col) pairs, row-major."""
        return [
            (row, col)
            for row in range(self.min_row, self.max_row + 1)
            for col in range(self.min_col, self.max_col + 1)
        ]

    def __len__(self) -> int:
        return (self.max_row - self.min_row + 1) * (self.max_col - self.min_col + 1)


def _sheet_name(raw: str, formula: str) -> str:
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == "'" and raw[-1] == "'":
        return raw[1:-1].replace("''", "'")
    if not raw or "'" in raw:
        raise UnresolvableFormulaError(f"bad sheet name in formula {formula!r}")
    return raw


def parse_formula(formula: str) -> CellRange:
    """Parse a chart cell reference like `Sheet1!$B$1` or `'My data'!$B$2:$B$4`.

    Only single-area references are supported; anything else raises
    UnresolvableFormulaError.
    """
    text = (formula or "").strip()
    if text.startswith("="):
        text = text[1:]
    sheet_part, sep, ref = text.rpartition("!")
    if not sep or not ref:
        raise UnresolvableFormulaError(f"not a sheet reference: {formula!r}")
    sheet = _sheet_name(sheet_part, formula)
    try:
        min_col, min_row, max_col, max_row = range_boundaries(ref.strip())
    except (ValueError, TypeError) as e:
        raise UnresolvableFormulaError(f"bad cell reference in {formula!r}: {e}") from e
    if None in (min_col, min_row, max_col, max_row):
        # whole-column/whole-row references have no fixed extent
        raise UnresolvableFormulaError(f"open-ended reference not supported: {formula!r}")
    return CellRange(sheet, min_col, min_row, max_col, max_row)


__all__ = ["CellRange", "parse_formula"]
