#!/usr/bin/env python3
"""
Example 3: What is checked, and what is not.

Passing an int32 array or a 2-D array where a 1-D float64 buffer is declared
raises ShapeError before C is entered. A wrong declaration, on the other
hand, is never detected: that part is up to you.
"""

import argparse
import sys

import numpy as np

from nativecall import MarshalError, NativeCallError, ShapeError
from nativecall.demo import SumDemo


def main():
    """Checked error example."""
    parser = argparse.ArgumentParser(description="Checked errors")
    parser.add_argument("--library", help="Path to the demo library (default: search)")
    args = parser.parse_args()

    print("=== Checked Errors Example ===\n")

    try:
        demo = SumDemo.open(args.library)
        demo.reset_calls()

        for bad in (np.arange(10, dtype=np.int32), np.zeros((3, 3)), np.zeros(10)[::2]):
            try:
                demo.sum(bad)
            except ShapeError as e:
                print(f"[+] Rejected: {e.message}")
                print(f"    expected {e.expected}, got {e.actual}")

        try:
            demo.identity("int8", 300)
        except MarshalError as e:
            print(f"[+] Rejected: {e.message}")

        print(f"[+] sum_array ran {demo.native_sum_calls()} time(s) in C")

    except NativeCallError as e:
        print(f"[-] {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
