from __future__ import annotations

import re
from typing import Hashable


_RID_RE = re.compile(r"^rId(\d+)$")

SLIDE_ID_MIN = 256
MASTER_ID_MIN = 2147483648


class IdAllocator:
    """Issues structural identifiers for one package.

    Allocation is monotonic: an id handed out (or observed on load) is never issued
    again during the package's in-memory lifetime, even after the thing that carried
    it is removed.
    """

    def __init__(self) -> None:
        self._slide_hwm = SLIDE_ID_MIN - 1
        self._master_hwm = MASTER_ID_MIN - 1
        self._rid_hwm: dict[Hashable, int] = {}
        self._partnames: set[str] = set()
        self._partname_hwm: dict[str, int] = {}

    # -- slide ids (p:sldId/@id) --

    def observe_slide_id(self, slide_id: int) -> None:
        if slide_id > self._slide_hwm:
            self._slide_hwm = slide_id

    def next_slide_id(self) -> int:
        self._slide_hwm += 1
        return self._slide_hwm

    # -- master/layout ids (p:sldMasterId/@id, p:sldLayoutId/@id share one space) --

    def observe_master_id(self, master_id: int) -> None:
        if master_id > self._master_hwm:
            self._master_hwm = master_id

    def next_master_id(self) -> int:
        self._master_hwm += 1
        return self._master_hwm

    # -- relationship ids, scoped per owning part --

    def observe_relationship_id(self, owner: Hashable, rid: str) -> None:
        m = _RID_RE.match(rid)
        if not m:
            return
        n = int(m.group(1))
        if n > self._rid_hwm.get(owner, 0):
            self._rid_hwm[owner] = n

    def next_relationship_id(self, owner: Hashable) -> str:
        n = self._rid_hwm.get(owner, 0) + 1
        self._rid_hwm[owner] = n
        return f"rId{n}"

    def forget_owner(self, owner: Hashable) -> None:
        """Drop rId bookkeeping for a part that no longer exists."""
        self._rid_hwm.pop(owner, None)

    # -- partnames --

    def observe_partname(self, partname: str) -> None:
        self._partnames.add(partname)

    def next_partname(self, template: str) -> str:
        n = self._partname_hwm.get(template, 0) + 1
        while (template % n) in self._partnames:
            n += 1
        self._partname_hwm[template] = n
        name = template % n
        self._partnames.add(name)
        return name


__all__ = [
    "IdAllocator",
    "SLIDE_ID_MIN",
    "MASTER_ID_MIN",
]
