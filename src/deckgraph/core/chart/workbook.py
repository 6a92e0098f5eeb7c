from __future__ import annotations

import logging
import zipfile
from io import BytesIO
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from deckgraph.core.chart.formula import CellRange
from deckgraph.core.errors import UnresolvableFormulaError

logger = logging.getLogger(__name__)


def open_workbook(blob: bytes, label: str) -> Any:
    """Parse an embedded xlsx blob; cached formula results are read, not recomputed."""
    try:
        wb = load_workbook(BytesIO(blob), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise UnresolvableFormulaError(f"cannot open workbook {label}: {e}") from e
    logger.debug("loaded workbook %s (sheets=%s)", label, wb.sheetnames)
    return wb


def read_cells(wb: Any, cell_range: CellRange, label: str) -> list[Any]:
    if cell_range.sheet not in wb.sheetnames:
        raise UnresolvableFormulaError(f"{label}: no sheet named {cell_range.sheet!r}")
    ws = wb[cell_range.sheet]
    return [ws.cell(row=row, column=col).value for row, col in cell_range.cells()]


__all__ = ["open_workbook", "read_cells"]
