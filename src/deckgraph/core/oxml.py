from __future__ import annotations

import copy
import hashlib
from typing import Any, Iterable, Iterator

from lxml import etree
from pptx.opc.constants import NAMESPACE
from pptx.opc.oxml import serialize_part_xml
from pptx.oxml import parse_xml
from pptx.oxml.ns import namespaces, qn
from pptx.oxml.xmlchemy import OxmlElement

R_NS = NAMESPACE.OFC_RELATIONSHIPS
_R_PREFIX = "{%s}" % R_NS

# Elements that exist only to carry a relationship reference. When the relationship
# goes away the whole element goes with it instead of leaving a dangling attribute.
_REFERENCE_ONLY_TAGS: frozenset[str] = frozenset(
    {
        qn("p:sldId"),
        qn("p:sldMasterId"),
        qn("p:sldLayoutId"),
        qn("p:notesMasterId"),
        qn("p:handoutMasterId"),
        qn("a:hlinkClick"),
        qn("a:hlinkHover"),
        qn("a:hlinkMouseOver"),
        qn("c:externalData"),
    }
)


def parse_part_xml(blob: bytes) -> Any:
    return parse_xml(blob)


def serialize(element: Any) -> bytes:
    return serialize_part_xml(element)


def new_element(nsptag: str, *, with_r: bool = False, **attrs: str) -> Any:
    """New loose element; `with_r` also declares the relationships prefix on it."""
    nsmap = namespaces(nsptag.split(":")[0], "r") if with_r else None
    el = OxmlElement(nsptag, nsmap)
    for k, v in attrs.items():
        el.set(k, v)
    return el


def clone(element: Any) -> Any:
    return copy.deepcopy(element)


def iter_r_attrs(element: Any) -> Iterator[tuple[Any, str, str]]:
    """Yield (element, attribute name, value) for every r:* attribute in the tree."""
    for el in element.iter():
        if not isinstance(el.tag, str):
            continue
        for name, value in el.attrib.items():
            if name.startswith(_R_PREFIX):
                yield el, name, value


def referenced_rids(element: Any) -> set[str]:
    return {v for _, _, v in iter_r_attrs(element)}


def rewrite_rids(element: Any, rid_map: dict[str, str]) -> int:
    """Replace r:* attribute values through `rid_map` in a single pass.

    A single pass means rId4->rId5 and rId5->rId4 in the same map swap cleanly.
    Returns the number of attributes changed.
    """
    hits = [(el, name, rid_map[value]) for el, name, value in iter_r_attrs(element) if value in rid_map]
    for el, name, new in hits:
        el.set(name, new)
    return len(hits)


def scrub_rid(element: Any, rid: str) -> int:
    """Remove every reference to `rid` from the tree; returns the number removed."""
    hits = [(el, name) for el, name, value in iter_r_attrs(element) if value == rid]
    for el, name in hits:
        parent = el.getparent()
        if el.tag in _REFERENCE_ONLY_TAGS and parent is not None:
            parent.remove(el)
        elif name in el.attrib:
            del el.attrib[name]
    return len(hits)


def canonical_digest(element: Any, *, drop_tags: Iterable[str] = ()) -> str:
    """Digest of the element's canonical XML with relationship ids masked.

    Two parts that differ only in their rIds (or in the dropped child lists) hash
    equal, which is what structural equivalence across packages needs.
    """
    el = copy.deepcopy(element)
    drop = set(drop_tags)
    for child in [c for c in el.iter() if isinstance(c.tag, str) and c.tag in drop]:
        parent = child.getparent()
        if parent is not None:
            parent.remove(child)
    for node, name, _ in list(iter_r_attrs(el)):
        node.set(name, "")
    data = etree.tostring(el, method="c14n")
    return hashlib.sha1(data).hexdigest()


def blob_digest(blob: bytes) -> str:
    return hashlib.sha1(blob).hexdigest()


__all__ = [
    "R_NS",
    "qn",
    "parse_part_xml",
    "serialize",
    "new_element",
    "clone",
    "iter_r_attrs",
    "referenced_rids",
    "rewrite_rids",
    "scrub_rid",
    "canonical_digest",
    "blob_digest",
]
