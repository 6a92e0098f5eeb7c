from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

import orjson

from deckgraph.core.config import schema_paths
from deckgraph.core.errors import DeckGraphError
from deckgraph.core.package import DeckPackage
from deckgraph.core.validate.package_validate import validate_package


def _setup_logging(verbose: int) -> None:
    if verbose <= 0:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbose > 1 else logging.INFO,
        format="%(levelname)s: %(message)s",
    )


def _require_input(path: Path) -> bool:
    if not path.exists():
        print(f"[NG] input not found: {path}")
        return False
    return True


def _save(pkg: DeckPackage, in_path: Path, out: Optional[str]) -> Path:
    out_path = Path(out).resolve() if out else in_path
    out_path.parent.mkdir(parents=True, exist_ok=True)
    pkg.save(out_path)
    return out_path


def cmd_paths(_: argparse.Namespace) -> int:
    for k, v in schema_paths().items():
        print(f"schema.{k}: {v}")
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    in_path = Path(args.input).resolve()
    if not _require_input(in_path):
        return 2
    pkg = DeckPackage.open(in_path)

    print(f"{in_path.name}: {len(pkg.slides)} slides, {len(pkg.graph)} parts")
    for slide in pkg.slides:
        extras = []
        charts = slide.charts
        if charts:
            extras.append(f"charts={len(charts)}")
        if slide.has_notes:
            extras.append("notes")
        tail = f" ({', '.join(extras)})" if extras else ""
        print(f"  {slide.number:>3}. id={slide.slide_id} {slide.partname} layout={slide.layout.name!r}{tail}")
    for i, master in enumerate(pkg.slide_masters, 1):
        print(f"  master {i}: {master.partname} ({len(master.layouts)} layouts)")
    for section in pkg.sections:
        print(f"  section {section.name!r}: {len(section.slide_ids)} slides")

    if args.json:
        out_path = Path(args.json).resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(orjson.dumps(pkg.manifest(), option=orjson.OPT_INDENT_2))
        print(f"[OK] manifest written: {out_path}")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    in_path = Path(args.input).resolve()
    if not _require_input(in_path):
        return 2
    pkg = DeckPackage.open(in_path)
    errs = validate_package(pkg)
    if not errs:
        print(f"[OK] {in_path.name}")
        return 0
    print(f"[NG] {in_path.name}")
    for m in errs[:30]:
        print(f"  {m}")
    if len(errs) > 30:
        print(f"  ... ({len(errs)} errors)")
    return 2


def cmd_copy_slide(args: argparse.Namespace) -> int:
    src_path = Path(args.input).resolve()
    dest_path = Path(args.to).resolve()
    if not _require_input(src_path) or not _require_input(dest_path):
        return 2
    src = DeckPackage.open(src_path)
    dest = DeckPackage.open(dest_path)
    slide = dest.slides.add(src.slide(args.slide), args.position)
    out_path = _save(dest, dest_path, args.out)
    print(f"[OK] copied slide {args.slide} -> {out_path.name} #{slide.number} (id={slide.slide_id})")
    return 0


def cmd_move_slide(args: argparse.Namespace) -> int:
    in_path = Path(args.input).resolve()
    if not _require_input(in_path):
        return 2
    pkg = DeckPackage.open(in_path)
    slide = pkg.slides.add(pkg.slide(args.slide), args.position)
    out_path = _save(pkg, in_path, args.out)
    print(f"[OK] moved slide {args.slide} -> #{slide.number}: {out_path.name}")
    return 0


def cmd_remove_slide(args: argparse.Namespace) -> int:
    in_path = Path(args.input).resolve()
    if not _require_input(in_path):
        return 2
    pkg = DeckPackage.open(in_path)
    pkg.slides.remove_at(args.slide)
    out_path = _save(pkg, in_path, args.out)
    print(f"[OK] removed slide {args.slide}: {out_path.name} ({len(pkg.slides)} slides left)")
    return 0


def cmd_add_slide(args: argparse.Namespace) -> int:
    in_path = Path(args.input).resolve()
    if not _require_input(in_path):
        return 2
    pkg = DeckPackage.open(in_path)
    masters = pkg.slide_masters
    if not 1 <= args.master <= len(masters):
        print(f"[NG] no slide master {args.master} (package has {len(masters)})")
        return 2
    try:
        layout = masters[args.master - 1].layout(args.layout)
    except KeyError:
        names = ", ".join(repr(la.name) for la in masters[args.master - 1].layouts)
        print(f"[NG] no layout named {args.layout!r}; available: {names}")
        return 2
    slide = pkg.slides.add(layout, args.position)
    out_path = _save(pkg, in_path, args.out)
    print(f"[OK] added slide #{slide.number} ({layout.name}): {out_path.name}")
    return 0


def cmd_series_name(args: argparse.Namespace) -> int:
    in_path = Path(args.input).resolve()
    if not _require_input(in_path):
        return 2
    pkg = DeckPackage.open(in_path)
    charts = pkg.slide(args.slide).charts
    if not 1 <= args.chart <= len(charts):
        print(f"[NG] slide {args.slide} has no chart {args.chart} ({len(charts)} charts)")
        return 2
    series = charts[args.chart - 1].series
    if not 1 <= args.series <= len(series):
        print(f"[NG] chart {args.chart} has no series {args.series} ({len(series)} series)")
        return 2
    ser = series[args.series - 1]

    if args.set is None:
        print(f"[OK] {ser.name_state.value}: {ser.name}")
        return 0

    ser.name = args.set
    out_path = _save(pkg, in_path, args.out)
    print(f"[OK] series name set to {args.set!r}: {out_path.name}")
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="deckgraph")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="log INFO (-v) or DEBUG (-vv)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_paths = sub.add_parser("paths", help="show bundled schema paths")
    p_paths.set_defaults(func=cmd_paths)

    p_info = sub.add_parser("info", help="list slides and masters of a .pptx")
    p_info.add_argument("input", help="path to .pptx")
    p_info.add_argument("--json", required=False, help="also write the package manifest to this path")
    p_info.set_defaults(func=cmd_info)

    p_val = sub.add_parser("validate", help="check ids, relationships and layout links")
    p_val.add_argument("input", help="path to .pptx")
    p_val.set_defaults(func=cmd_validate)

    p_cp = sub.add_parser("copy-slide", help="copy a slide into another package")
    p_cp.add_argument("input", help="source .pptx")
    p_cp.add_argument("--slide", type=int, required=True, help="1-based slide number in the source")
    p_cp.add_argument("--to", required=True, help="destination .pptx")
    p_cp.add_argument("--position", type=int, required=False, help="1-based position (default: end)")
    p_cp.add_argument("--out", required=False, help="output .pptx path (default: overwrite destination)")
    p_cp.set_defaults(func=cmd_copy_slide)

    p_mv = sub.add_parser("move-slide", help="move a slide within a package")
    p_mv.add_argument("input", help="path to .pptx")
    p_mv.add_argument("--slide", type=int, required=True, help="1-based slide number")
    p_mv.add_argument("--position", type=int, required=True, help="1-based target position")
    p_mv.add_argument("--out", required=False, help="output .pptx path (default: overwrite input)")
    p_mv.set_defaults(func=cmd_move_slide)

    p_rm = sub.add_parser("remove-slide", help="remove a slide and whatever only it used")
    p_rm.add_argument("input", help="path to .pptx")
    p_rm.add_argument("--slide", type=int, required=True, help="1-based slide number")
    p_rm.add_argument("--out", required=False, help="output .pptx path (default: overwrite input)")
    p_rm.set_defaults(func=cmd_remove_slide)

    p_add = sub.add_parser("add-slide", help="add a new slide from a layout")
    p_add.add_argument("input", help="path to .pptx")
    p_add.add_argument("--layout", required=True, help="layout name, e.g. 'Title Only'")
    p_add.add_argument("--master", type=int, default=1, help="1-based slide master number (default: 1)")
    p_add.add_argument("--position", type=int, required=False, help="1-based position (default: end)")
    p_add.add_argument("--out", required=False, help="output .pptx path (default: overwrite input)")
    p_add.set_defaults(func=cmd_add_slide)

    p_sn = sub.add_parser("series-name", help="show or set a chart series name")
    p_sn.add_argument("input", help="path to .pptx")
    p_sn.add_argument("--slide", type=int, required=True, help="1-based slide number")
    p_sn.add_argument("--chart", type=int, default=1, help="1-based chart number on the slide")
    p_sn.add_argument("--series", type=int, default=1, help="1-based series number in the chart")
    p_sn.add_argument("--set", required=False, help="new series name (cached; drops the formula)")
    p_sn.add_argument("--out", required=False, help="output .pptx path (default: overwrite input)")
    p_sn.set_defaults(func=cmd_series_name)

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    try:
        code = args.func(args)
    except DeckGraphError as e:
        print(f"[NG] {e}")
        code = 2
    raise SystemExit(code)


if __name__ == "__main__":
    main()
