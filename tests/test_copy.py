from __future__ import annotations

import logging
from pathlib import Path

import pytest
from pptx import Presentation

from deckgraph.core import oxml
from deckgraph.core.copy import Action, compute_closure, plan_copy
from deckgraph.core.errors import UnsupportedPartKindError
from deckgraph.core.graph import EdgeRole, PartKind
from deckgraph.core.package import DeckPackage


def _media(pkg: DeckPackage) -> list[str]:
    return [p.partname for p in pkg.graph if p.partname.startswith("/ppt/media/")]


def test_closure_follows_dependencies_not_other_slides(chart_pptx: Path):
    src = DeckPackage.open(chart_pptx)
    slide = src.slide(1)
    closure = compute_closure(src.graph, slide.ref)
    kinds = [n.kind for n in closure]

    assert closure.nodes[0].ref == slide.ref
    assert closure.node(slide.ref).parent is None
    assert kinds.count(PartKind.SLIDE) == 1
    assert kinds.count(PartKind.SLIDE_LAYOUT) == 1
    assert {
        PartKind.SLIDE_MASTER,
        PartKind.THEME,
        PartKind.NOTES,
        PartKind.NOTES_MASTER,
        PartKind.CHART,
        PartKind.EMBEDDED_DATA_SOURCE,
    } <= set(kinds)
    chart = slide.charts[0]
    assert closure.node(chart.ref).role is EdgeRole.OWNS
    assert closure.node(slide.layout.ref).role is EdgeRole.REFERENCES


def test_closure_of_a_non_slide_is_rejected(basic_pptx: Path):
    src = DeckPackage.open(basic_pptx)
    with pytest.raises(UnsupportedPartKindError):
        compute_closure(src.graph, src.slide_masters[0].ref)


def test_plan_reuses_equal_master_and_layout(chart_pptx: Path):
    src = DeckPackage.open(chart_pptx)
    dest = DeckPackage.new()
    parts_before = len(dest.graph)
    closure = compute_closure(src.graph, src.slide(1).ref)
    plan = plan_copy(closure, src.graph, dest.graph, dest.presentation_ref)

    actions = {n.kind: plan[n.ref].action for n in closure if n.kind is not PartKind.THEME}
    assert actions[PartKind.SLIDE] is Action.CLONE
    assert actions[PartKind.CHART] is Action.CLONE
    assert actions[PartKind.EMBEDDED_DATA_SOURCE] is Action.CLONE
    assert actions[PartKind.NOTES] is Action.CLONE
    assert actions[PartKind.SLIDE_MASTER] is Action.REUSE
    assert actions[PartKind.SLIDE_LAYOUT] is Action.REUSE
    # the new package has no notes master yet
    assert actions[PartKind.NOTES_MASTER] is Action.CLONE

    layout = next(n for n in closure if n.kind is PartKind.SLIDE_LAYOUT)
    assert plan[layout.ref].target == dest.slide_masters[0].layout("Title Only").ref
    assert len(dest.graph) == parts_before


def test_plan_within_one_package_reuses_every_reference(basic_pptx: Path):
    pkg = DeckPackage.open(basic_pptx)
    closure = compute_closure(pkg.graph, pkg.slide(2).ref)
    plan = plan_copy(closure, pkg.graph, pkg.graph, pkg.presentation_ref)
    for node in closure:
        if node.role is EdgeRole.REFERENCES:
            assert plan[node.ref].action is Action.REUSE
            assert plan[node.ref].target == node.ref


def test_copy_chart_slide_across_packages(chart_pptx: Path, tmp_path: Path):
    src = DeckPackage.open(chart_pptx)
    dest = DeckPackage.new()
    copied = dest.slides.add(src.slide(1))

    assert len(dest.slides) == 1
    assert copied.notes == "chart notes"
    assert copied.layout.name == "Title Only"
    assert len(dest.slide_masters) == 1

    chart = copied.charts[0]
    assert chart.chart_type == "barChart"
    assert [s.name for s in chart.series] == ["Sales", "Costs"]
    assert dest.graph.part(chart.data_source).kind is PartKind.EMBEDDED_DATA_SOURCE
    src_chart = src.slide(1).charts[0]
    assert dest.graph.part(chart.data_source).content == src.graph.part(src_chart.data_source).content
    # the copied formula still resolves, against the copied workbook
    assert dest.values.evaluate(chart.series[0].name_holder) == "Sales"
    dest.validate()

    out = tmp_path / "copied.pptx"
    dest.save(out)
    prs = Presentation(str(out))
    frames = [sh for sh in prs.slides[0].shapes if sh.has_chart]
    assert [s.name for s in frames[0].chart.plots[0].series] == ["Sales", "Costs"]
    assert prs.slides[0].notes_slide.notes_text_frame.text == "chart notes"


def test_copy_leaves_source_untouched(chart_pptx: Path):
    src = DeckPackage.open(chart_pptx)
    before = oxml.serialize(src.slide(1).element)
    parts = len(src.graph)
    dest = DeckPackage.new()
    dest.slides.add(src.slide(1))
    assert oxml.serialize(src.slide(1).element) == before
    assert len(src.graph) == parts


def test_copy_into_position(basic_pptx: Path, chart_pptx: Path):
    dest = DeckPackage.open(basic_pptx)
    src = DeckPackage.open(chart_pptx)
    ids = [s.slide_id for s in dest.slides]
    copied = dest.slides.add(src.slide(1), 2)
    assert copied.number == 2
    assert copied.slide_id > max(ids)
    assert [s.slide_id for s in dest.slides] == [ids[0], copied.slide_id, ids[1], ids[2]]
    # both decks came from the same template and both have notes
    assert len(dest.slide_masters) == 1
    assert len(dest.graph.parts(PartKind.NOTES_MASTER)) == 1
    dest.validate()


def test_link_to_uncopied_slide_is_dropped(basic_pptx: Path, caplog):
    src = DeckPackage.open(basic_pptx)
    dest = DeckPackage.new()
    with caplog.at_level(logging.WARNING, logger="deckgraph.core.copy.copy_engine"):
        copied = dest.slides.add(src.slide(2))
    assert copied.linked_slides == []
    assert copied.element.findall(".//" + oxml.qn("a:hlinkClick")) == []
    assert "dropped link" in caplog.text
    dest.validate()


def test_link_follows_an_earlier_copy(basic_pptx: Path):
    src = DeckPackage.open(basic_pptx)
    dest = DeckPackage.new()
    target = dest.slides.add(src.slide(3))
    copied = dest.slides.add(src.slide(2))
    assert copied.linked_slides == [target]
    dest.validate()


def test_external_hyperlink_is_carried(basic_pptx: Path):
    src = DeckPackage.open(basic_pptx)
    dest = DeckPackage.new()
    copied = dest.slides.add(src.slide(3))
    external = [e for e in dest.graph.edges_from(copied.ref) if e.is_external]
    assert [e.target_ref for e in external] == ["https://example.com/"]
    dest.validate()


def test_repeated_copies_share_one_image(basic_pptx: Path):
    src = DeckPackage.open(basic_pptx)
    dest = DeckPackage.new()
    media_before = _media(dest)
    dest.slides.add(src.slide(2))
    dest.slides.add(src.slide(2))
    assert len(_media(dest)) == len(media_before) + 1
    dest.validate()


def test_different_master_is_cloned_with_only_the_used_layout(basic_pptx: Path):
    src = DeckPackage.open(basic_pptx)
    dest = DeckPackage.new()
    dest.slide_masters[0].element.find(oxml.qn("p:cSld")).set("name", "House style")

    copied = dest.slides.add(src.slide(1))
    masters = dest.slide_masters
    assert len(masters) == 2
    assert copied.layout.master == masters[1]
    assert [layout.name for layout in masters[1].layouts] == ["Title Only"]
    assert masters[1].theme is not None
    assert masters[1].theme != masters[0].theme
    dest.validate()


def test_unsupported_part_kind_fails_before_mutation(basic_pptx: Path):
    src = DeckPackage.open(basic_pptx)
    slide = src.slide(1)
    odd = src.graph.add_part(PartKind.OTHER, b"\x00")
    src.graph.link(slide.ref, odd, EdgeRole.REFERENCES, "urn:example:custom")

    dest = DeckPackage.new()
    parts = len(dest.graph)
    pres_xml = oxml.serialize(dest.presentation_element)
    with pytest.raises(UnsupportedPartKindError):
        dest.slides.add(slide)
    assert len(dest.graph) == parts
    assert oxml.serialize(dest.presentation_element) == pres_xml


def test_image_of_a_reused_layout_is_not_cloned(layout_image_pptx: Path):
    src = DeckPackage.open(layout_image_pptx)
    slide = src.slide(1)
    dest = DeckPackage.new()
    media_before = _media(dest)

    closure = compute_closure(src.graph, slide.ref)
    image = next(n for n in closure if n.kind is PartKind.IMAGE)
    assert image.parent == slide.layout.ref
    plan = plan_copy(closure, src.graph, dest.graph, dest.presentation_ref)
    assert plan[slide.layout.ref].action is Action.REUSE
    assert plan[image.ref].action is Action.SKIP

    copied = dest.slides.add(slide)
    assert copied.layout == dest.slide_masters[0].layout("Blank")
    assert _media(dest) == media_before
    orphans = [p.partname for p in dest.graph if not dest.graph.edges_to(p.ref)]
    assert orphans == []
    dest.validate()
