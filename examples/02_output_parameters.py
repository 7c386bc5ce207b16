#!/usr/bin/env python3
"""
Example 2: Output parameters, NULL and text.

Uses declarations generated from sumdemo.h and demonstrates:

- a by-reference output slot (int64_t *out_count) filled by C,
- None arriving in C as a NULL pointer,
- ASCII text passed as a NUL-terminated char pointer.
"""

import argparse
import sys

import numpy as np

from nativecall import NativeCallError, Ref, load_library
from nativecall.demo import read_header


def main():
    """Output parameter example."""
    parser = argparse.ArgumentParser(description="Output parameters, NULL and text")
    parser.add_argument("--library", help="Path to the demo library (default: search)")
    args = parser.parse_args()

    print("=== Output Parameters Example ===\n")

    try:
        lib = load_library(args.library, name="sumdemo")
        lib.bind_header(read_header())
        print(f"[+] Bound from header: {sorted(lib.functions)}")

        values = np.array([0.1, 0.7, 0.4, 0.9, 0.6])
        count = Ref(0)
        status = lib.count_above(values, values.size, 0.5, count)
        print(f"[+] count_above(..., 0.5, out_count) -> status={status}, out_count={count.value}")

        print(f"[+] is_null(None) = {lib.is_null(None)}")
        print(f"[+] is_null(values) = {lib.is_null(values)}")

        print(f"[+] text_length('hello') = {lib.text_length('hello')}")
        print(f"[+] greeting() = {lib.greeting()!r}")

    except NativeCallError as e:
        print(f"[-] {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
