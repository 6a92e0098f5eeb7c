from __future__ import annotations

from pathlib import Path

import orjson
from pptx.opc.constants import RELATIONSHIP_TYPE as RT

from deckgraph.core import oxml
from deckgraph.core.config import schema_path
from deckgraph.core.graph import EdgeRole
from deckgraph.core.package import DeckPackage
from deckgraph.core.validate.package_validate import SCHEMA_VERSION, validate_package
from deckgraph.core.validate.schema_validate import validate_instance, validate_json_against_schema


def test_fresh_and_loaded_packages_are_valid(basic_pptx: Path, chart_pptx: Path):
    assert validate_package(DeckPackage.new()) == []
    assert validate_package(DeckPackage.open(basic_pptx)) == []
    assert validate_package(DeckPackage.open(chart_pptx)) == []


def test_manifest_describes_slides_and_masters(basic_pptx: Path):
    pkg = DeckPackage.open(basic_pptx)
    m = pkg.manifest()
    assert m["schema_version"] == SCHEMA_VERSION
    assert m["presentation"] == "/ppt/presentation.xml"
    assert [s["id"] for s in m["slides"]] == [256, 257, 258]
    assert [s["partname"] for s in m["slides"]] == [s.partname for s in pkg.slides]
    assert m["slides"][2]["layout"] == pkg.slide(3).layout.partname
    assert len(m["masters"]) == 1
    assert len(m["masters"][0]["layouts"]) == 11

    slide2 = next(p for p in m["parts"] if p["partname"] == "/ppt/slides/slide2.xml")
    assert slide2["kind"] == "slide"
    roles = {r["type"]: r["role"] for r in slide2["relationships"]}
    assert roles[RT.SLIDE_LAYOUT] == "references"
    assert validate_instance(m) == []


def test_manifest_file_validates_against_bundled_schema(basic_pptx: Path, tmp_path: Path):
    out = tmp_path / "manifest.json"
    out.write_bytes(orjson.dumps(DeckPackage.open(basic_pptx).manifest()))
    assert validate_json_against_schema(schema_path("package"), out) == []
    assert validate_json_against_schema(schema_path("package"), tmp_path / "missing.json")[0].startswith("[ERR]")


def test_out_of_range_slide_id_is_a_schema_error(basic_pptx: Path):
    pkg = DeckPackage.open(basic_pptx)
    pkg.slide(1)._entry().set("id", "5")
    errors = validate_package(pkg)
    assert any(e.startswith("- $['slides'][0]['id']") for e in errors)


def test_duplicate_slide_id(basic_pptx: Path):
    pkg = DeckPackage.open(basic_pptx)
    pkg.slide(3)._entry().set("id", str(pkg.slide(1).slide_id))
    errors = validate_package(pkg)
    assert any("slide id 256 used 2 times" in e for e in errors)


def test_r_attribute_without_relationship(basic_pptx: Path):
    pkg = DeckPackage.open(basic_pptx)
    pkg.slide(1).element.find(oxml.qn("p:cSld")).set(oxml.qn("r:id"), "rId99")
    errors = validate_package(pkg)
    assert any("/ppt/slides/slide1.xml" in e and "'rId99' has no relationship" in e for e in errors)


def test_slide_missing_from_slide_list(basic_pptx: Path):
    pkg = DeckPackage.open(basic_pptx)
    entry = pkg.slide(2)._entry()
    entry.getparent().remove(entry)
    errors = validate_package(pkg)
    assert any("/ppt/slides/slide2.xml: slide is not in p:sldIdLst" in e for e in errors)


def test_slide_with_two_layouts(basic_pptx: Path):
    pkg = DeckPackage.open(basic_pptx)
    slide = pkg.slide(1)
    other = pkg.slide_masters[0].layout("Blank")
    pkg.graph.link(slide.ref, other.ref, EdgeRole.REFERENCES, RT.SLIDE_LAYOUT)
    errors = validate_package(pkg)
    assert any("has 2 slide layouts, expected 1" in e for e in errors)


def test_slide_list_entry_pointing_at_wrong_kind(basic_pptx: Path):
    pkg = DeckPackage.open(basic_pptx)
    master_rid = pkg.graph.rid_of(pkg.presentation_ref, pkg.slide_masters[0].ref)
    pkg.slide(1)._entry().set(oxml.qn("r:id"), master_rid)
    errors = validate_package(pkg)
    assert any("targets a slideMaster, not a slide" in e for e in errors)
