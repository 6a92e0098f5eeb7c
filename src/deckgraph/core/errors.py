from __future__ import annotations


class DeckGraphError(Exception):
    """Base class for every error raised by deckgraph."""


class DuplicateReferenceError(DeckGraphError):
    """An `owns` edge would give a part a second owner, or a partname collides."""


class DanglingReferenceError(DeckGraphError):
    """A relationship id does not resolve to an internal part."""


class IndexRangeError(DeckGraphError, IndexError):
    """A 1-based slide position or number is out of range."""

    def __init__(self, position: int, lo: int, hi: int) -> None:
        super().__init__(f"position {position} out of range [{lo}, {hi}]")
        self.position = position
        self.lo = lo
        self.hi = hi


class MissingValueError(DeckGraphError):
    """A series/point has neither a cached value nor a formula."""


class UnresolvableFormulaError(DeckGraphError):
    """A formula is present but its data source, sheet or cell cannot be reached."""


class UnsupportedPartKindError(DeckGraphError):
    """A copy closure contains a part kind the copy engine cannot clone."""

    def __init__(self, kind: object, partname: str) -> None:
        super().__init__(f"cannot copy part of kind {kind}: {partname}")
        self.kind = kind
        self.partname = partname


class PackageFormatError(DeckGraphError):
    """The input container is not a well-formed presentation package."""


class PackageValidationError(DeckGraphError):
    """Opt-in package validation found problems."""

    def __init__(self, errors: list[str]) -> None:
        head = errors[0] if errors else "unknown error"
        more = f" (+{len(errors) - 1} more)" if len(errors) > 1 else ""
        super().__init__(f"package does not validate: {head}{more}")
        self.errors = list(errors)


__all__ = [
    "DeckGraphError",
    "DuplicateReferenceError",
    "DanglingReferenceError",
    "IndexRangeError",
    "MissingValueError",
    "UnresolvableFormulaError",
    "UnsupportedPartKindError",
    "PackageFormatError",
    "PackageValidationError",
]
