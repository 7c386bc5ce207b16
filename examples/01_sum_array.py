#!/usr/bin/env python3
"""
Example 1: Sum an array in C.

Loads the demo library, declares the signature of sum_array by hand and
passes a numpy array to it. The length travels as a separate argument,
exactly like in the C prototype:

    double sum_array(const double *values, int64_t n);
"""

import argparse
import sys

import numpy as np

from nativecall import FLOAT64, INT64, Buffer, NativeCallError, load_library


def main():
    """Sum example."""
    parser = argparse.ArgumentParser(description="Sum an array in native code")
    parser.add_argument("--library", help="Path to the demo library (default: search)")
    parser.add_argument("--size", type=int, default=100000, help="Number of values")
    args = parser.parse_args()

    print("=== Sum Array Example ===\n")

    try:
        lib = load_library(args.library, name="sumdemo")
        print(f"[+] Loaded {lib.path}")

        # The declaration is trusted, not verified against the C code
        sum_array = lib.bind(
            "sum_array",
            [Buffer("float64", ndim=1), INT64],
            FLOAT64,
            argnames=["values", "n"],
        )
        print(f"[+] Declared: {sum_array.signature}")

        values = np.linspace(0.0, 1.0, args.size)
        total = sum_array(values, values.size)
        print(f"[+] sum_array(linspace(0, 1, {args.size})) = {total}")
        print(f"[+] numpy.sum for comparison          = {values.sum()}")

    except NativeCallError as e:
        print(f"[-] {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
