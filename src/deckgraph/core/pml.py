"""PresentationML list bookkeeping.

The id lists in presentation.xml (`p:sldIdLst`, `p:sldMasterIdLst`,
`p:notesMasterIdLst`) and in a master (`p:sldLayoutIdLst`) mirror relationship edges.
These helpers keep the XML side in step with PartGraph edits and insert missing list
elements at their schema position.

Sections (`p14:sectionLst`) name slides by slide id rather than by rId, so they are
kept in step by slide id.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from lxml import etree
from pptx.oxml import parse_xml
from pptx.oxml.ns import nsdecls, qn

from deckgraph.core.oxml import new_element

_PRESENTATION_ORDER: tuple[str, ...] = (
    "p:sldMasterIdLst",
    "p:notesMasterIdLst",
    "p:handoutMasterIdLst",
    "p:sldIdLst",
    "p:sldSz",
    "p:notesSz",
    "p:smartTags",
    "p:embeddedFontLst",
    "p:custShowLst",
    "p:photoAlbum",
    "p:custDataLst",
    "p:kinsoku",
    "p:defaultTextStyle",
    "p:modifyVerifier",
    "p:extLst",
)

_MASTER_ORDER: tuple[str, ...] = (
    "p:cSld",
    "p:clrMap",
    "p:sldLayoutIdLst",
    "p:transition",
    "p:timing",
    "p:hf",
    "p:txStyles",
    "p:extLst",
)

# Placeholder types a new slide does not inherit from its layout.
_SKIPPED_PLACEHOLDER_TYPES = frozenset({"dt", "ftr", "sldNum"})


def _get_or_add(parent: Any, nsptag: str, order: Sequence[str]) -> Any:
    el = parent.find(qn(nsptag))
    if el is not None:
        return el
    el = new_element(nsptag)
    successors = order[order.index(nsptag) + 1 :]
    for tag in successors:
        nxt = parent.find(qn(tag))
        if nxt is not None:
            nxt.addprevious(el)
            return el
    parent.append(el)
    return el


# -- presentation part --


def slide_id_entries(presentation: Any) -> list[Any]:
    lst = presentation.find(qn("p:sldIdLst"))
    if lst is None:
        return []
    return list(lst.iterchildren(qn("p:sldId")))


def insert_slide_id(presentation: Any, slide_id: int, rid: str, index: Optional[int] = None) -> Any:
    """Insert a `p:sldId` at 0-based `index` (append when None)."""
    lst = _get_or_add(presentation, "p:sldIdLst", _PRESENTATION_ORDER)
    entry = new_element("p:sldId", with_r=True, id=str(slide_id))
    entry.set(qn("r:id"), rid)
    entries = list(lst.iterchildren(qn("p:sldId")))
    if index is None or index >= len(entries):
        if entries:
            entries[-1].addnext(entry)
        else:
            lst.insert(0, entry)
    else:
        entries[index].addprevious(entry)
    return entry


def master_id_entries(presentation: Any) -> list[Any]:
    lst = presentation.find(qn("p:sldMasterIdLst"))
    if lst is None:
        return []
    return list(lst.iterchildren(qn("p:sldMasterId")))


def add_master_id(presentation: Any, master_id: int, rid: str) -> Any:
    lst = _get_or_add(presentation, "p:sldMasterIdLst", _PRESENTATION_ORDER)
    entry = new_element("p:sldMasterId", with_r=True, id=str(master_id))
    entry.set(qn("r:id"), rid)
    entries = list(lst.iterchildren(qn("p:sldMasterId")))
    if entries:
        entries[-1].addnext(entry)
    else:
        lst.insert(0, entry)
    return entry


def set_notes_master_id(presentation: Any, rid: str) -> Any:
    lst = _get_or_add(presentation, "p:notesMasterIdLst", _PRESENTATION_ORDER)
    for old in list(lst.iterchildren(qn("p:notesMasterId"))):
        lst.remove(old)
    entry = new_element("p:notesMasterId", with_r=True)
    entry.set(qn("r:id"), rid)
    lst.insert(0, entry)
    return entry


# -- slide master part --


def layout_id_entries(master: Any) -> list[Any]:
    lst = master.find(qn("p:sldLayoutIdLst"))
    if lst is None:
        return []
    return list(lst.iterchildren(qn("p:sldLayoutId")))


def add_layout_id(master: Any, layout_id: int, rid: str) -> Any:
    lst = _get_or_add(master, "p:sldLayoutIdLst", _MASTER_ORDER)
    entry = new_element("p:sldLayoutId", with_r=True, id=str(layout_id))
    entry.set(qn("r:id"), rid)
    entries = list(lst.iterchildren(qn("p:sldLayoutId")))
    if entries:
        entries[-1].addnext(entry)
    else:
        lst.insert(0, entry)
    return entry


# -- slides --


def new_slide_xml() -> Any:
    return parse_xml(
        "<p:sld %s>"
        "<p:cSld><p:spTree>"
        '<p:nvGrpSpPr><p:cNvPr id="1" name=""/><p:cNvGrpSpPr/><p:nvPr/></p:nvGrpSpPr>'
        "<p:grpSpPr/>"
        "</p:spTree></p:cSld>"
        "<p:clrMapOvr><a:masterClrMapping/></p:clrMapOvr>"
        "</p:sld>" % nsdecls("a", "p", "r")
    )


def _placeholder_sp(shape_id: int, name: str, ph: Any, with_text: bool) -> Any:
    sp = parse_xml(
        "<p:sp %s>"
        "<p:nvSpPr>"
        "<p:cNvPr/>"
        '<p:cNvSpPr><a:spLocks noGrp="1"/></p:cNvSpPr>'
        "<p:nvPr/>"
        "</p:nvSpPr>"
        "<p:spPr/>"
        "</p:sp>" % nsdecls("a", "p")
    )
    cNvPr = sp.find(qn("p:nvSpPr")).find(qn("p:cNvPr"))
    cNvPr.set("id", str(shape_id))
    cNvPr.set("name", name)
    new_ph = new_element("p:ph")
    for k, v in ph.attrib.items():
        new_ph.set(k, v)
    sp.find(qn("p:nvSpPr")).find(qn("p:nvPr")).append(new_ph)
    if with_text:
        sp.append(
            parse_xml(
                "<p:txBody %s><a:bodyPr/><a:lstStyle/><a:p/></p:txBody>" % nsdecls("a", "p")
            )
        )
    return sp


def clone_layout_placeholders(slide: Any, layout: Any) -> int:
    """Give `slide` an empty placeholder for each inheritable layout placeholder.

    Date, footer and slide-number placeholders are left out. Returns the number of
    placeholders added.
    """
    layout_tree = layout.find(qn("p:cSld")).find(qn("p:spTree"))
    slide_tree = slide.find(qn("p:cSld")).find(qn("p:spTree"))
    added = 0
    next_id = 2
    for sp in layout_tree.iterchildren(qn("p:sp")):
        nvSpPr = sp.find(qn("p:nvSpPr"))
        if nvSpPr is None:
            continue
        ph = nvSpPr.find(qn("p:nvPr")).find(qn("p:ph"))
        if ph is None or ph.get("type") in _SKIPPED_PLACEHOLDER_TYPES:
            continue
        name = nvSpPr.find(qn("p:cNvPr")).get("name", "")
        slide_tree.append(_placeholder_sp(next_id, name, ph, sp.find(qn("p:txBody")) is not None))
        next_id += 1
        added += 1
    return added


# -- sections (PowerPoint 2010 extension in presentation.xml) --

P14_NS = "http://schemas.microsoft.com/office/powerpoint/2010/main"
SECTION_LIST_EXT_URI = "{521415D9-36F7-43E2-AB2F-B90AF26B5E84}"


def _p14(tag: str) -> str:
    return "{%s}%s" % (P14_NS, tag)


def _section_ext(presentation: Any) -> Any:
    ext_lst = presentation.find(qn("p:extLst"))
    if ext_lst is None:
        return None
    for ext in ext_lst.iterchildren(qn("p:ext")):
        if ext.get("uri") == SECTION_LIST_EXT_URI:
            return ext
    return None


def section_entries(presentation: Any) -> list[Any]:
    ext = _section_ext(presentation)
    lst = ext.find(_p14("sectionLst")) if ext is not None else None
    if lst is None:
        return []
    return list(lst.iterchildren(_p14("section")))


def section_slide_id_entries(section: Any) -> list[Any]:
    lst = section.find(_p14("sldIdLst"))
    if lst is None:
        return []
    return list(lst.iterchildren(_p14("sldId")))


def add_section(presentation: Any, name: str, section_id: str, slide_ids: Sequence[int] = ()) -> Any:
    """Append a `p14:section`, creating the section list extension when missing."""
    ext = _section_ext(presentation)
    if ext is None:
        ext_lst = _get_or_add(presentation, "p:extLst", _PRESENTATION_ORDER)
        ext = etree.SubElement(ext_lst, qn("p:ext"), uri=SECTION_LIST_EXT_URI)
    lst = ext.find(_p14("sectionLst"))
    if lst is None:
        lst = etree.SubElement(ext, _p14("sectionLst"), nsmap={"p14": P14_NS})
    section = etree.SubElement(lst, _p14("section"), name=name, id=section_id)
    ids = etree.SubElement(section, _p14("sldIdLst"))
    for slide_id in slide_ids:
        etree.SubElement(ids, _p14("sldId"), id=str(slide_id))
    return section


def remove_section(section: Any) -> None:
    """Drop a section; the extension (and an emptied p:extLst) go with the last one."""
    lst = section.getparent()
    lst.remove(section)
    if len(lst.findall(_p14("section"))):
        return
    ext = lst.getparent()
    ext_lst = ext.getparent()
    ext_lst.remove(ext)
    if not len(ext_lst):
        ext_lst.getparent().remove(ext_lst)


def remove_section_slide_id(presentation: Any, slide_id: int) -> int:
    """Take `slide_id` out of every section; returns the number of entries removed."""
    removed = 0
    for section in section_entries(presentation):
        for entry in section_slide_id_entries(section):
            if entry.get("id") == str(slide_id):
                entry.getparent().remove(entry)
                removed += 1
    return removed


def file_in_section(presentation: Any, slide_id: int, after_id: Optional[int]) -> None:
    """Put `slide_id` in the section of the slide `after_id`, right behind it.

    With `after_id=None` the slide opens the first section. Nothing happens when the
    presentation has no sections.
    """
    sections = section_entries(presentation)
    if not sections:
        return
    remove_section_slide_id(presentation, slide_id)
    if after_id is not None:
        for section in sections:
            for entry in section_slide_id_entries(section):
                if entry.get("id") == str(after_id):
                    entry.addnext(etree.SubElement(entry.getparent(), _p14("sldId"), id=str(slide_id)))
                    return
    first = sections[0]
    ids = first.find(_p14("sldIdLst"))
    if ids is None:
        ids = etree.SubElement(first, _p14("sldIdLst"))
    ids.insert(0, etree.SubElement(ids, _p14("sldId"), id=str(slide_id)))


__all__ = [
    "slide_id_entries",
    "insert_slide_id",
    "master_id_entries",
    "add_master_id",
    "set_notes_master_id",
    "layout_id_entries",
    "add_layout_id",
    "new_slide_xml",
    "clone_layout_placeholders",
    "P14_NS",
    "section_entries",
    "section_slide_id_entries",
    "add_section",
    "remove_section",
    "remove_section_slide_id",
    "file_in_section",
]
