#!/usr/bin/env python3
"""
Example 0: Build the demo library.

Compiles nativecall/csrc/sumdemo.c into a shared library using the build
description in nativecall.toml, then shows where the artifact ended up. The
file name depends on the platform and Python version, which is why later
examples look it up instead of hard-coding it.
"""

import argparse
import sys
from pathlib import Path

from nativecall import NativeCallError, build_extensions, find_artifact, load_build_description


def main():
    """Build example."""
    parser = argparse.ArgumentParser(description="Build the demo library")
    parser.add_argument("--description", default=str(Path(__file__).parent.parent / "nativecall.toml"),
                        help="Build description (default: nativecall.toml)")
    parser.add_argument("--force", action="store_true", help="Rebuild even if up to date")
    args = parser.parse_args()

    print("=== Build Example ===\n")

    try:
        description = load_build_description(args.description)
        print(f"[+] Loaded build description with extensions: {description.names}")

        artifacts = build_extensions(description, force=args.force)
        for name, path in artifacts.items():
            print(f"[+] Built {name}: {path}")

        found = find_artifact(description.build_dir, "sumdemo")
        print(f"[+] Discovered by pattern matching: {found}")

    except NativeCallError as e:
        print(f"[-] {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
