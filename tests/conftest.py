from __future__ import annotations

import base64
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path

import pytest
from pptx import Presentation
from pptx.chart.data import CategoryChartData
from pptx.enum.chart import XL_CHART_TYPE
from pptx.util import Inches

from deckgraph.core.config import PackageContext

PNG_1X1 = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

TITLE_ONLY = 5
BLANK = 6


def build_basic_deck(path: Path) -> Path:
    """Three slides: notes on 1, a picture and a jump to slide 3 on 2, a web link on 3."""
    prs = Presentation()
    s1 = prs.slides.add_slide(prs.slide_layouts[TITLE_ONLY])
    s1.shapes.title.text = "One"
    s1.notes_slide.notes_text_frame.text = "first notes"

    s2 = prs.slides.add_slide(prs.slide_layouts[TITLE_ONLY])
    s2.shapes.title.text = "Two"
    s2.shapes.add_picture(BytesIO(PNG_1X1), Inches(1), Inches(2))

    s3 = prs.slides.add_slide(prs.slide_layouts[BLANK])
    box = s3.shapes.add_textbox(Inches(1), Inches(1), Inches(4), Inches(1))
    box.text_frame.text = "Three"
    box.text_frame.paragraphs[0].runs[0].hyperlink.address = "https://example.com/"

    s2.shapes.title.click_action.target_slide = s3
    prs.save(str(path))
    return path


def build_chart_deck(path: Path) -> Path:
    """One slide with a two-series column chart backed by an embedded workbook."""
    prs = Presentation()
    slide = prs.slides.add_slide(prs.slide_layouts[TITLE_ONLY])
    slide.shapes.title.text = "Chart"
    data = CategoryChartData()
    data.categories = ["A", "B", "C"]
    data.add_series("Sales", (1, 2, 3))
    data.add_series("Costs", (4, 5, 6))
    slide.shapes.add_chart(
        XL_CHART_TYPE.COLUMN_CLUSTERED, Inches(1), Inches(1.5), Inches(6), Inches(4), data
    )
    slide.notes_slide.notes_text_frame.text = "chart notes"
    prs.save(str(path))
    return path


def build_layout_image_deck(path: Path) -> Path:
    """One "Blank" slide whose layout holds an image relationship of its own."""
    prs = Presentation()
    layout = prs.slide_layouts[BLANK]
    layout.part.get_or_add_image_part(BytesIO(PNG_1X1))
    prs.slides.add_slide(layout)
    prs.save(str(path))
    return path


@pytest.fixture
def basic_pptx(tmp_path: Path) -> Path:
    return build_basic_deck(tmp_path / "basic.pptx")


@pytest.fixture
def chart_pptx(tmp_path: Path) -> Path:
    return build_chart_deck(tmp_path / "chart.pptx")


@pytest.fixture
def layout_image_pptx(tmp_path: Path) -> Path:
    return build_layout_image_deck(tmp_path / "layout_image.pptx")


@pytest.fixture
def fixed_context() -> PackageContext:
    return PackageContext(clock=lambda: datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc))
