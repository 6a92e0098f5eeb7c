from __future__ import annotations

import pytest
from pptx.opc.constants import RELATIONSHIP_TYPE as RT
from pptx.oxml import parse_xml
from pptx.oxml.ns import nsdecls

from deckgraph.core import oxml
from deckgraph.core.errors import DanglingReferenceError, DuplicateReferenceError
from deckgraph.core.graph import EdgeRole, IdAllocator, PartGraph, PartKind, ROOT
from deckgraph.core.graph.kinds import edge_role, partname_template


def _slide_xml(*rids: str):
    pics = "".join(
        '<p:pic><p:blipFill><a:blip r:embed="%s"/></p:blipFill></p:pic>' % rid for rid in rids
    )
    return parse_xml(
        '<p:sld %s><p:cSld><p:spTree>%s</p:spTree></p:cSld></p:sld>' % (nsdecls("a", "p", "r"), pics)
    )


def _master_xml(*rids: str):
    entries = "".join(
        '<p:sldLayoutId id="%d" r:id="%s"/>' % (2147483649 + i, rid) for i, rid in enumerate(rids)
    )
    return parse_xml(
        '<p:sldMaster %s><p:cSld><p:spTree/></p:cSld><p:sldLayoutIdLst>%s</p:sldLayoutIdLst></p:sldMaster>'
        % (nsdecls("p", "r"), entries)
    )


@pytest.fixture
def graph():
    g = PartGraph()
    pres = g.add_part(PartKind.PRESENTATION, b"", partname="/ppt/presentation.xml")
    g.link(ROOT, pres)
    return g, pres


# -- IdAllocator --


def test_slide_ids_start_at_256_and_never_repeat():
    ids = IdAllocator()
    assert ids.next_slide_id() == 256
    assert ids.next_slide_id() == 257
    ids.observe_slide_id(300)
    assert ids.next_slide_id() == 301
    ids.observe_slide_id(10)
    assert ids.next_slide_id() == 302


def test_master_and_layout_ids_share_one_space():
    ids = IdAllocator()
    assert ids.next_master_id() == 2147483648
    ids.observe_master_id(2147483700)
    assert ids.next_master_id() == 2147483701


def test_relationship_ids_are_scoped_per_owner():
    ids = IdAllocator()
    assert ids.next_relationship_id("a") == "rId1"
    assert ids.next_relationship_id("a") == "rId2"
    assert ids.next_relationship_id("b") == "rId1"
    ids.observe_relationship_id("a", "rId9")
    ids.observe_relationship_id("a", "custom")
    assert ids.next_relationship_id("a") == "rId10"


def test_partnames_skip_observed_and_are_never_reissued():
    ids = IdAllocator()
    ids.observe_partname("/ppt/slides/slide1.xml")
    ids.observe_partname("/ppt/slides/slide2.xml")
    assert ids.next_partname("/ppt/slides/slide%d.xml") == "/ppt/slides/slide3.xml"
    assert ids.next_partname("/ppt/slides/slide%d.xml") == "/ppt/slides/slide4.xml"


def test_partname_template_follows_like():
    assert partname_template(PartKind.IMAGE, "/ppt/media/image7.jpeg") == "/ppt/media/image%d.jpeg"
    assert partname_template(PartKind.IMAGE) == "/ppt/media/image%d.png"


def test_edge_roles():
    assert edge_role(None, PartKind.PRESENTATION) is EdgeRole.OWNS
    assert edge_role(PartKind.SLIDE, PartKind.NOTES) is EdgeRole.OWNS
    assert edge_role(PartKind.SLIDE, PartKind.SLIDE_LAYOUT) is EdgeRole.REFERENCES
    assert edge_role(PartKind.SLIDE, PartKind.IMAGE) is EdgeRole.REFERENCES
    assert edge_role(PartKind.SLIDE, None) is EdgeRole.REFERENCES


# -- PartGraph --


def test_add_part_allocates_fresh_partnames(graph):
    g, _ = graph
    a = g.add_part(PartKind.SLIDE, _slide_xml())
    b = g.add_part(PartKind.SLIDE, _slide_xml())
    assert g.part(a).partname == "/ppt/slides/slide1.xml"
    assert g.part(b).partname == "/ppt/slides/slide2.xml"
    img = g.add_part(PartKind.IMAGE, b"x", like="/ppt/media/image7.jpeg")
    assert g.part(img).partname == "/ppt/media/image1.jpeg"


def test_add_part_rejects_partname_collision(graph):
    g, _ = graph
    with pytest.raises(DuplicateReferenceError):
        g.add_part(PartKind.SLIDE, _slide_xml(), partname="/ppt/presentation.xml")


def test_link_returns_unique_rids_and_resolves(graph):
    g, pres = graph
    s1 = g.add_part(PartKind.SLIDE, _slide_xml())
    s2 = g.add_part(PartKind.SLIDE, _slide_xml())
    r1 = g.link(pres, s1)
    r2 = g.link(pres, s2)
    assert r1 != r2
    assert g.resolve(r1, pres) == s1
    assert g.resolve(r2, pres) == s2
    assert g.edge(pres, r1).role is EdgeRole.OWNS
    assert g.edge(pres, r1).reltype == RT.SLIDE


def test_second_owner_is_rejected(graph):
    g, pres = graph
    slide = g.add_part(PartKind.SLIDE, _slide_xml())
    g.link(pres, slide)
    with pytest.raises(DuplicateReferenceError):
        g.link(pres, slide)


def test_explicit_duplicate_rid_is_rejected(graph):
    g, pres = graph
    slide = g.add_part(PartKind.SLIDE, _slide_xml())
    img = g.add_part(PartKind.IMAGE, b"png")
    g.link(slide, img, rid="rId1")
    with pytest.raises(DuplicateReferenceError):
        g.link(slide, img, rid="rId1")


def test_resolve_unknown_or_external_raises(graph):
    g, pres = graph
    with pytest.raises(DanglingReferenceError):
        g.resolve("rId99", pres)
    rid = g.link_external(pres, RT.HYPERLINK, "https://example.com/")
    with pytest.raises(DanglingReferenceError):
        g.resolve(rid, pres)


def test_shared_image_survives_until_last_reference(graph):
    g, pres = graph
    img = g.add_part(PartKind.IMAGE, b"png")
    s1 = g.add_part(PartKind.SLIDE, _slide_xml("rId1"))
    s2 = g.add_part(PartKind.SLIDE, _slide_xml("rId1"))
    g.link(s1, img, rid="rId1")
    g.link(s2, img, rid="rId1")
    g.link(pres, s1)
    g.link(pres, s2)

    g.unlink(pres, s1)
    assert s1 not in g
    assert img in g
    assert g.reference_count(img) == 1

    g.unlink(pres, s2)
    assert img not in g


def test_unlink_scrubs_source_xml(graph):
    g, pres = graph
    slide = g.add_part(PartKind.SLIDE, _slide_xml("rId1"))
    g.link(pres, slide)
    img = g.add_part(PartKind.IMAGE, b"png")
    g.link(slide, img, rid="rId1")

    g.unlink(slide, img)
    assert img not in g
    assert oxml.referenced_rids(g.part(slide).content) == set()


def test_owned_subtree_goes_with_owner(graph):
    g, pres = graph
    slide = g.add_part(PartKind.SLIDE, _slide_xml())
    notes = g.add_part(PartKind.NOTES, b"")
    g.link(pres, slide)
    g.link(slide, notes)
    g.link(notes, slide)
    # the notes back-link does not keep the slide alive
    assert g.reference_count(slide) == 0

    g.unlink(pres, slide)
    assert slide not in g
    assert notes not in g


def test_unused_layout_is_collected_and_removed_from_master(graph):
    g, pres = graph
    master = g.add_part(PartKind.SLIDE_MASTER, _master_xml("rId1", "rId2"))
    g.link(pres, master)
    used = g.add_part(PartKind.SLIDE_LAYOUT, b"")
    spare = g.add_part(PartKind.SLIDE_LAYOUT, b"")
    g.link(master, used, rid="rId1")
    g.link(master, spare, rid="rId2")
    g.link(used, master)
    g.link(spare, master)
    slide = g.add_part(PartKind.SLIDE, _slide_xml())
    g.link(slide, used)
    g.link(pres, slide)

    g.unlink(pres, slide)
    assert used not in g
    # never referenced by a slide, so nothing triggered its collection
    assert spare in g
    assert master in g
    entries = list(g.part(master).content.iter(oxml.qn("p:sldLayoutId")))
    assert [e.get(oxml.qn("r:id")) for e in entries] == ["rId2"]


def test_pinned_parts_are_never_collected(graph):
    g, pres = graph
    master = g.add_part(PartKind.SLIDE_MASTER, _master_xml())
    g.link(pres, master)
    assert g.is_pinned(master)
    assert g.is_pinned(pres)
    layout = g.add_part(PartKind.SLIDE_LAYOUT, b"")
    g.link(master, layout)
    g.link(layout, master)
    g.unlink(layout, master)
    assert master in g


def test_removal_listener_sees_whole_subtree(graph):
    g, pres = graph
    removed = []
    g.add_removal_listener(removed.append)
    slide = g.add_part(PartKind.SLIDE, _slide_xml())
    chart = g.add_part(PartKind.CHART, b"")
    xlsx = g.add_part(PartKind.EMBEDDED_DATA_SOURCE, b"")
    g.link(pres, slide)
    g.link(slide, chart)
    g.link(chart, xlsx)

    g.unlink(pres, slide)
    assert set(removed) == {slide, chart, xlsx}


def test_part_refs_are_not_reused(graph):
    g, pres = graph
    slide = g.add_part(PartKind.SLIDE, _slide_xml())
    g.link(pres, slide)
    g.unlink(pres, slide)
    again = g.add_part(PartKind.SLIDE, _slide_xml())
    assert again != slide
    with pytest.raises(DanglingReferenceError):
        g.part(slide)
