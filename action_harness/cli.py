from __future__ import annotations

import argparse
import asyncio
import base64
import io
import json
import zipfile
from pathlib import Path
from typing import Sequence

from action_harness import __version__
from action_harness.core.config import get_harness_config
from action_harness.core.errors import HarnessError, format_error
from action_harness.core.logging import configure_logging
from action_harness.core.outcome import to_plain_data
from action_harness.core.runner import ActionRunner
from action_harness.runtime.service import ActionRuntime


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="action-harness",
        description="Load a user action once and run it with normalized results.",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Print version and exit.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override ACTION_LOG_LEVEL for this process.",
    )

    subparsers = parser.add_subparsers(dest="command")

    invoke_parser = subparsers.add_parser(
        "invoke",
        help="Initialize an action from a file, archive or directory and run it once.",
    )
    invoke_parser.add_argument(
        "source",
        help="A .py file (inline source), a .zip archive, or a directory to zip.",
    )
    invoke_parser.add_argument(
        "--main",
        default="main",
        help="Handler specifier, e.g. 'main' or 'module.function' (default: main).",
    )
    invoke_parser.add_argument(
        "--input",
        dest="input_json",
        default="{}",
        help="JSON value passed to the action (default: {}).",
    )
    invoke_parser.add_argument(
        "--binary",
        action="store_true",
        help="Treat a single .py file as an archive containing only that file.",
    )
    invoke_parser.set_defaults(handler=handle_invoke)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the JSON-lines runtime on stdin/stdout.",
    )
    serve_parser.set_defaults(handler=handle_serve)

    bundle_parser = subparsers.add_parser(
        "bundle",
        help="Package an action directory into a zip archive with a manifest.",
    )
    bundle_parser.add_argument(
        "directory",
        help="Directory holding the action's Python files.",
    )
    bundle_parser.add_argument(
        "--entrypoint",
        help="File recorded as the manifest entrypoint (relative to the directory).",
    )
    bundle_parser.add_argument(
        "-o",
        "--output",
        help="Output file (.zip). Defaults to <directory name>.zip in the current directory.",
    )
    bundle_parser.set_defaults(handler=handle_bundle)

    config_parser = subparsers.add_parser(
        "print-config",
        help="Print the resolved harness configuration to stdout.",
    )
    config_parser.set_defaults(handler=handle_print_config)

    return parser


def handle_invoke(args: argparse.Namespace) -> None:
    source = Path(args.source).expanduser()
    if not source.exists():
        raise SystemExit(f"Action source not found: {source}")

    try:
        payload = json.loads(args.input_json)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"--input is not valid JSON: {exc}")

    message = _build_init_message(source, main=args.main, binary=args.binary)
    runner = ActionRunner(config=get_harness_config())
    try:
        runner.init(message)
    except HarnessError as exc:
        raise SystemExit(format_error(exc))

    envelope = asyncio.run(runner.run(payload))
    print(json.dumps(to_plain_data(envelope), indent=2))


def _build_init_message(source: Path, *, main: str, binary: bool) -> dict[str, object]:
    if source.is_dir():
        data = _zip_directory(source)
    elif source.suffix.lower() == ".zip":
        data = source.read_bytes()
    elif binary:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.write(source, arcname=source.name)
        data = buffer.getvalue()
    else:
        return {
            "binary": False,
            "code": source.read_text(encoding="utf-8"),
            "main": main,
        }

    return {
        "binary": True,
        "code": base64.b64encode(data).decode("ascii"),
        "main": main,
    }


def _zip_directory(directory: Path, manifest: dict[str, object] | None = None) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        if manifest is not None:
            archive.writestr("manifest.json", json.dumps(manifest, indent=2))
        for path in sorted(directory.rglob("*")):
            if not path.is_file() or "__pycache__" in path.parts:
                continue
            arcname = path.relative_to(directory).as_posix()
            if manifest is not None and arcname == "manifest.json":
                continue
            archive.write(path, arcname=arcname)
    return buffer.getvalue()


def handle_serve(_args: argparse.Namespace) -> None:
    ActionRuntime().serve()


def handle_bundle(args: argparse.Namespace) -> None:
    directory = Path(args.directory).expanduser()
    if not directory.is_dir():
        raise SystemExit(f"Action directory not found: {directory}")

    manifest: dict[str, object] | None = None
    if args.entrypoint:
        entry = directory / args.entrypoint
        if not entry.is_file():
            raise SystemExit(f"Entrypoint not found: {entry}")
        manifest = {"entrypoint": Path(args.entrypoint).as_posix()}

    bundle_path = (
        Path(args.output).expanduser()
        if args.output
        else Path.cwd() / f"{directory.resolve().name}.zip"
    )
    if bundle_path.suffix.lower() != ".zip":
        bundle_path = bundle_path.with_suffix(".zip")

    bundle_path.parent.mkdir(parents=True, exist_ok=True)
    bundle_path.write_bytes(_zip_directory(directory, manifest))
    print(f"Bundle created: {bundle_path}")


def handle_print_config(_args: argparse.Namespace) -> None:
    config = get_harness_config()
    print(json.dumps(config.model_dump(mode="json"), indent=2))


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = get_harness_config()
    configure_logging(
        level=args.log_level or config.log_level,
        format_name=config.log_format,
    )

    if args.command is None:
        parser.print_help()
        return

    args.handler(args)


if __name__ == "__main__":
    main()
