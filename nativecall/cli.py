#!/usr/bin/env python3
"""
nativecall Command Line Interface.

This module provides a CLI for building and exercising native libraries. It
can be used in multiple ways:

1. As a module: python -m nativecall
2. As an entry point: nativecall (after pip install)

Commands:
    build            - Compile the extensions of a build description
    run              - Load the demo library and call it
    inspect <header> - Show the signatures declared in a C header
    doctor           - Check compilers, numpy and built artifacts
    version          - Show version information
"""

import argparse
import logging
import platform
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from nativecall.config import DEFAULT_DESCRIPTION_FILE, Settings
from nativecall.exceptions import NativeCallError


# ANSI color codes
class Colors:
    """ANSI color codes for terminal output."""
    RED = '\033[0;31m'
    GREEN = '\033[0;32m'
    YELLOW = '\033[1;33m'
    BLUE = '\033[0;34m'
    BOLD = '\033[1m'
    NC = '\033[0m'  # No Color

    @classmethod
    def disable(cls):
        """Disable colors (for non-TTY output)."""
        cls.RED = ''
        cls.GREEN = ''
        cls.YELLOW = ''
        cls.BLUE = ''
        cls.BOLD = ''
        cls.NC = ''


# Check if output is a TTY
if not sys.stdout.isatty():
    Colors.disable()


def print_info(msg: str) -> None:
    """Print info message."""
    print(f"{Colors.BLUE}[INFO]{Colors.NC} {msg}")


def print_success(msg: str) -> None:
    """Print success message."""
    print(f"{Colors.GREEN}[OK]{Colors.NC} {msg}")


def print_warning(msg: str) -> None:
    """Print warning message."""
    print(f"{Colors.YELLOW}[WARN]{Colors.NC} {msg}")


def print_error(msg: str) -> None:
    """Print error message."""
    print(f"{Colors.RED}[ERROR]{Colors.NC} {msg}")


def get_project_root() -> Path:
    """Get the project root directory (the one holding nativecall.toml)."""
    current = Path.cwd()
    for candidate in [current, *current.parents]:
        if (candidate / DEFAULT_DESCRIPTION_FILE).exists():
            return candidate
    return Path(__file__).resolve().parent.parent


def default_description() -> Path:
    return get_project_root() / DEFAULT_DESCRIPTION_FILE


def cmd_build(args: argparse.Namespace) -> int:
    """Compile the extensions of a build description."""
    from nativecall.build import build_extensions, load_build_description

    path = Path(args.description) if args.description else default_description()
    try:
        description = load_build_description(path)
        print_info(f"Building from: {path}")
        artifacts = build_extensions(
            description,
            build_dir=args.build_dir,
            names=args.extension or None,
            force=args.force,
        )
    except NativeCallError as e:
        print_error(str(e))
        return 1

    for name, artifact in artifacts.items():
        print_success(f"{name}: {artifact}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Load the demo library and sum an array in native code."""
    import numpy as np

    from nativecall.demo import SumDemo

    try:
        demo = SumDemo.open(args.library)
        values = np.linspace(0.0, 1.0, args.size)
        total = demo.sum(values)
        above = demo.count_above(values, 0.5)
    except NativeCallError as e:
        print_error(str(e))
        return 1

    print_info(f"Library: {demo.library.path}")
    print_success(f"sum_array(linspace(0, 1, {args.size})) = {total!r}")
    print_success(f"count_above(values, 0.5) = {above}")
    print_success(f"greeting() = {demo.greeting()!r}")
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    """Show the signatures declared in a C header."""
    from nativecall.signature import parse_header

    header = Path(args.header)
    if not header.exists():
        print_error(f"Header not found: {header}")
        return 1

    try:
        signatures = parse_header(header.read_text(), ignore=args.ignore or ())
    except NativeCallError as e:
        print_error(str(e))
        return 1

    library = None
    if args.library:
        from nativecall.library import NativeLibrary

        try:
            library = NativeLibrary(args.library).load()
        except NativeCallError as e:
            print_error(str(e))
            return 1

    missing = 0
    for signature in signatures:
        if library is None:
            print(f"  {signature}")
        elif library.has_symbol(signature.name):
            print_success(str(signature))
        else:
            missing += 1
            print_warning(f"{signature}  (not exported)")

    if library is not None:
        library.release()
    return 1 if missing else 0


def _tool_version(tool: str) -> Optional[str]:
    path = shutil.which(tool)
    if not path:
        return None
    try:
        result = subprocess.run([path, "--version"], capture_output=True, text=True)
        return result.stdout.split('\n')[0] or "Found"
    except OSError:
        return "Found"


def cmd_doctor(args: argparse.Namespace) -> int:
    """Check system requirements and installation."""
    from nativecall._loader import LibraryLocator, get_platform_tag

    print_info("nativecall System Check")
    print()

    print("System Information:")
    print(f"  Platform: {platform.system()}")
    print(f"  Architecture: {platform.machine()}")
    try:
        print(f"  Platform tag: {get_platform_tag()}")
    except NativeCallError as e:
        print_warning(f"  Platform tag: {e.message}")
    print()

    print("Python:")
    print_success(f"  python3: Python {platform.python_version()}")
    try:
        import numpy
        print_success(f"  numpy: {numpy.__version__}")
    except ImportError:
        print_error("  numpy: Not installed")
    print()

    print("Build Tools:")
    compilers = 0
    for tool in ("cc", "gcc", "clang"):
        version = _tool_version(tool)
        if version:
            compilers += 1
            print_success(f"  {tool}: {version}")
        else:
            print_warning(f"  {tool}: Not found")
    print()

    print("Demo Library:")
    description = default_description()
    if description.exists():
        print_success(f"  build description: {description}")
    else:
        print_warning(f"  build description: Not found ({DEFAULT_DESCRIPTION_FILE})")

    artifact = None
    try:
        artifact = LibraryLocator.find("sumdemo", Settings.from_env())
        print_success(f"  sumdemo: {artifact}")
    except NativeCallError:
        print_warning("  sumdemo: Not built (run: nativecall build)")

    # Summary
    print()
    print("---")
    if artifact:
        print_success("nativecall is ready to use!")
        print()
        print("Quick start:")
        print("  nativecall run       - Sum an array in native code")
    elif compilers:
        print_warning("The demo library needs to be built")
        print()
        print("  nativecall build")
    else:
        print_error("No C compiler found; install gcc or clang")
        return 1

    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    from nativecall import __version__

    print(f"nativecall v{__version__}")
    print()
    print(f"Project: {get_project_root()}")
    print(f"Python: {platform.python_version()}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="nativecall",
        description="Call C functions from Python with declared, checked signatures",
    )

    parser.add_argument(
        "--version", "-V",
        action="store_true",
        help="Show version information"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # build command
    build_parser = subparsers.add_parser("build", help="Compile native extensions")
    build_parser.add_argument(
        "-d", "--description",
        help=f"Build description (default: {DEFAULT_DESCRIPTION_FILE} in the project root)"
    )
    build_parser.add_argument("-o", "--build-dir", help="Output directory")
    build_parser.add_argument(
        "-e", "--extension",
        action="append",
        help="Build only this extension (repeatable)"
    )
    build_parser.add_argument("-f", "--force", action="store_true", help="Rebuild everything")
    build_parser.set_defaults(func=cmd_build)

    # run command
    run_parser = subparsers.add_parser("run", help="Load the demo library and call it")
    run_parser.add_argument("-l", "--library", help="Path to the demo library")
    run_parser.add_argument(
        "-n", "--size",
        type=int,
        default=100000,
        help="Number of values to sum (default: 100000)"
    )
    run_parser.set_defaults(func=cmd_run)

    # inspect command
    inspect_parser = subparsers.add_parser("inspect", help="Show signatures declared in a C header")
    inspect_parser.add_argument("header", help="Path to the C header")
    inspect_parser.add_argument("-l", "--library", help="Check the symbols against this library")
    inspect_parser.add_argument(
        "-i", "--ignore",
        action="append",
        help="Token to ignore in declarations (repeatable)"
    )
    inspect_parser.set_defaults(func=cmd_inspect)

    # doctor command
    doctor_parser = subparsers.add_parser("doctor", help="Check system requirements")
    doctor_parser.set_defaults(func=cmd_doctor)

    # version command
    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=cmd_version)

    return parser


def configure_logging(debug: bool = False) -> None:
    settings = Settings.from_env()
    level = logging.DEBUG if debug else getattr(logging, settings.log_level, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(args.debug)

    if args.version:
        return cmd_version(args)

    if args.command is None:
        parser.print_help()
        return 0

    if hasattr(args, 'func'):
        return args.func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
