#!/usr/bin/env python3
# castudio
# Copyright 2025 - Ricardo Quesada

import argparse
import logging
import os.path
import sys

from PySide6.QtCore import QCoreApplication

from ca_file import BACKGROUND_CA, FLOATING_CA, CAFileError, unpack_ca, unpack_dual_ca_zip
from document import CADocument
from layer import GroupLayer
from layer_tree import iter_layers
from preferences import get_global_preferences
from tendies import TENDIES_WALLPAPER_DIR, TendiesError, build_tendies, build_tendies_from_bundle

logger = logging.getLogger(__name__)


def _read(filename: str) -> bytes:
    with open(filename, "rb") as f:
        return f.read()


def cmd_pack(args) -> int:
    doc = CADocument.load_from_filename(args.project)
    if doc is None:
        return 1
    doc.export_ca(args.output)
    return 0


def cmd_unpack(args) -> int:
    doc = CADocument.import_ca(args.input)
    if doc is None:
        return 1
    doc.save_to_filename(args.output)
    return 0


def cmd_tendies(args) -> int:
    filename = args.filename or get_global_preferences().get_tendies_ca_filename()
    try:
        template = _read(args.template)
        ca_data = _read(args.input)
        if args.bundle:
            data = build_tendies_from_bundle(template, ca_data, TENDIES_WALLPAPER_DIR + filename)
        else:
            data = build_tendies(template, ca_data, filename)
    except (FileNotFoundError, TendiesError) as e:
        logger.error(f"Could not build tendies file: {e}")
        return 1
    with open(args.output, "wb") as f:
        f.write(data)
    logger.info(f"Wrote {args.output}")
    return 0


def _print_bundle(bundle) -> None:
    print(f"Layers: {sum(1 for _ in iter_layers(bundle.root))}")
    for layer in iter_layers(bundle.root):
        children = f" ({len(layer.children)} children)" if isinstance(layer, GroupLayer) else ""
        print(f"  {layer.kind:6} {layer.id} '{layer.name}'{children}")
    print(f"Assets: {', '.join(bundle.assets) or '-'}")
    print(f"States: {', '.join(bundle.states) or '-'}")
    for name, overrides in bundle.state_overrides.items():
        print(f"  {name}: {len(overrides)} override(s)")
    print(f"Transitions: {len(bundle.state_transitions)}")


def cmd_info(args) -> int:
    try:
        data = _read(args.input)
        bundle = unpack_dual_ca_zip(data) if args.dual else unpack_ca(data)
    except (FileNotFoundError, CAFileError) as e:
        logger.error(f"Could not read {args.input}: {e}")
        return 1
    project = bundle.project
    print(f"Size: {project.width} x {project.height}")
    if not args.dual:
        _print_bundle(bundle)
        return 0
    for title, scene in ((BACKGROUND_CA, bundle.background), (FLOATING_CA, bundle.floating)):
        print(f"{title}:")
        _print_bundle(scene)
    return 0


def cmd_recent(args) -> int:
    prefs = get_global_preferences()
    if args.clear:
        prefs.clear_recent_files()
    for filename in args.remove:
        if not prefs.remove_recent_file(os.path.abspath(filename)):
            logger.warning(f"Not a recent project: {filename}")
    for filename in prefs.get_recent_files():
        print(filename)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Core Animation wallpaper tools")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    pack = subparsers.add_parser("pack", help="Create a .ca file from a project")
    pack.add_argument("project", help="Project file (.toml)")
    pack.add_argument("output", help="Output .ca file")
    pack.set_defaults(func=cmd_pack)

    unpack = subparsers.add_parser("unpack", help="Create a project from a .ca file")
    unpack.add_argument("input", help="Input .ca file")
    unpack.add_argument("output", help="Output project file (.toml)")
    unpack.set_defaults(func=cmd_unpack)

    tendies = subparsers.add_parser("tendies", help="Create a .tendies file from a template")
    tendies.add_argument("template", help="Template .zip file")
    tendies.add_argument("input", help="Input .ca file")
    tendies.add_argument("output", help="Output .tendies file")
    tendies.add_argument("-f", "--filename", help="Name of the .ca inside the package")
    tendies.add_argument(
        "-b", "--bundle", action="store_true", help="Expand the .ca file into a folder"
    )
    tendies.set_defaults(func=cmd_tendies)

    info = subparsers.add_parser("info", help="Describe a .ca file")
    info.add_argument("input", help="Input .ca file")
    info.add_argument(
        "-d", "--dual", action="store_true", help="Input is a zip with Background.ca and Floating.ca"
    )
    info.set_defaults(func=cmd_info)

    recent = subparsers.add_parser("recent", help="List the recently used projects")
    recent.add_argument("--clear", action="store_true", help="Forget every recent project")
    recent.add_argument(
        "-r", "--remove", action="append", default=[], metavar="PROJECT", help="Forget a recent project"
    )
    recent.set_defaults(func=cmd_recent)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",  # Customize the date format
    )

    # Must be set before QSettings gets created. See preferences.get_global_preferences()
    QCoreApplication.setApplicationName("castudio")
    QCoreApplication.setOrganizationName("Retro Moe")
    QCoreApplication.setOrganizationDomain("retro.moe")
    # Needed by QImage, QUndoStack and signals
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])  # noqa: F841

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
