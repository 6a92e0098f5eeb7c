from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from deckgraph.apps.cli.main import main
from deckgraph.core.package import DeckPackage


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


def test_paths(capsys):
    assert _run(["paths"]) == 0
    assert "schema.package:" in capsys.readouterr().out


def test_info(basic_pptx: Path, tmp_path: Path, capsys):
    out = tmp_path / "manifest.json"
    assert _run(["info", str(basic_pptx), "--json", str(out)]) == 0
    text = capsys.readouterr().out
    assert "basic.pptx: 3 slides" in text
    assert "layout='Title Only' (notes)" in text
    assert "[OK] manifest written" in text
    assert len(orjson.loads(out.read_bytes())["slides"]) == 3


def test_missing_input(tmp_path: Path, capsys):
    assert _run(["validate", str(tmp_path / "nope.pptx")]) == 2
    assert "[NG] input not found" in capsys.readouterr().out


def test_validate_ok_and_ng(basic_pptx: Path, tmp_path: Path, capsys):
    assert _run(["validate", str(basic_pptx)]) == 0
    assert "[OK] basic.pptx" in capsys.readouterr().out

    pkg = DeckPackage.open(basic_pptx)
    pkg.slide(2)._entry().set("id", "256")
    broken = tmp_path / "broken.pptx"
    pkg.save(broken)
    assert _run(["validate", str(broken)]) == 2
    text = capsys.readouterr().out
    assert "[NG] broken.pptx" in text
    assert "slide id 256 used 2 times" in text


def test_remove_slide(basic_pptx: Path, tmp_path: Path, capsys):
    out = tmp_path / "removed.pptx"
    assert _run(["remove-slide", str(basic_pptx), "--slide", "1", "--out", str(out)]) == 0
    assert "[OK] removed slide 1" in capsys.readouterr().out
    assert len(DeckPackage.open(out).slides) == 2
    assert len(DeckPackage.open(basic_pptx).slides) == 3


def test_remove_slide_out_of_range(basic_pptx: Path, capsys):
    assert _run(["remove-slide", str(basic_pptx), "--slide", "9"]) == 2
    assert "[NG] position 9 out of range [1, 3]" in capsys.readouterr().out


def test_add_slide(basic_pptx: Path, capsys):
    assert _run(["add-slide", str(basic_pptx), "--layout", "Title Only", "--position", "1"]) == 0
    assert "[OK] added slide #1 (Title Only)" in capsys.readouterr().out
    pkg = DeckPackage.open(basic_pptx)
    assert len(pkg.slides) == 4
    assert pkg.slide(1).slide_id == 259


def test_add_slide_unknown_layout(basic_pptx: Path, capsys):
    assert _run(["add-slide", str(basic_pptx), "--layout", "Nope"]) == 2
    assert "no layout named 'Nope'" in capsys.readouterr().out


def test_move_slide(basic_pptx: Path, capsys):
    assert _run(["move-slide", str(basic_pptx), "--slide", "3", "--position", "1"]) == 0
    assert "[OK] moved slide 3 -> #1" in capsys.readouterr().out
    assert [s.slide_id for s in DeckPackage.open(basic_pptx).slides] == [258, 256, 257]


def test_copy_slide(basic_pptx: Path, chart_pptx: Path, tmp_path: Path, capsys):
    out = tmp_path / "merged.pptx"
    argv = ["copy-slide", str(chart_pptx), "--slide", "1", "--to", str(basic_pptx), "--out", str(out)]
    assert _run(argv) == 0
    assert "[OK] copied slide 1 -> merged.pptx #4" in capsys.readouterr().out
    merged = DeckPackage.open(out)
    assert len(merged.slides) == 4
    assert merged.slide(4).charts[0].series[0].name == "Sales"
    merged.validate()


def test_series_name_show_and_set(chart_pptx: Path, capsys):
    assert _run(["series-name", str(chart_pptx), "--slide", "1", "--series", "2"]) == 0
    assert "[OK] cached: Costs" in capsys.readouterr().out

    assert _run(["series-name", str(chart_pptx), "--slide", "1", "--set", "Revenue"]) == 0
    assert "[OK] series name set to 'Revenue'" in capsys.readouterr().out
    assert DeckPackage.open(chart_pptx).slide(1).charts[0].series[0].name == "Revenue"


def test_series_name_bad_chart(chart_pptx: Path, capsys):
    assert _run(["series-name", str(chart_pptx), "--slide", "1", "--chart", "2"]) == 2
    assert "[NG] slide 1 has no chart 2" in capsys.readouterr().out
