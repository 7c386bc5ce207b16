"""
Python side of the tutorial's demo library.

The native code lives in csrc/sumdemo.c. Its declarations are not written by
hand here: they are generated from csrc/sumdemo.h, the header the C file is
compiled against, so the Python declaration and the native code share one
source of truth.
"""

import logging
from pathlib import Path
from typing import Optional

import numpy as np

from nativecall.library import NativeLibrary, load_library
from nativecall.types import Ref

logger = logging.getLogger(__name__)

DEMO_NAME = "sumdemo"
CSRC_DIR = Path(__file__).parent / "csrc"
HEADER_PATH = CSRC_DIR / "sumdemo.h"
SOURCE_PATH = CSRC_DIR / "sumdemo.c"


def read_header() -> str:
    """Return the text of the demo header."""
    return HEADER_PATH.read_text(encoding="ascii")


def _length(values) -> int:
    """Element count passed next to a buffer. Validation is left to the marshaller."""
    return 0 if values is None else int(np.size(values))


class SumDemo:
    """
    Typed wrapper around the demo library.

    Usage:
        demo = SumDemo.open()
        total = demo.sum(numpy.linspace(0.0, 1.0, 100000))
    """

    def __init__(self, library: NativeLibrary) -> None:
        self.library = library
        self.functions = library.bind_header(read_header())

    @classmethod
    def open(cls, path: Optional[str] = None) -> "SumDemo":
        """Load the demo library (by path, or by searching for 'sumdemo')."""
        return cls(load_library(path, name=DEMO_NAME))

    def sum(self, values: np.ndarray) -> float:
        """Sum a one-dimensional float64 array in native code."""
        return self.library.sum_array(values, _length(values))

    def count_above(self, values: np.ndarray, threshold: float) -> int:
        """Count elements greater than `threshold` through an output parameter."""
        count = Ref(0)
        status = self.library.count_above(values, _length(values), threshold, count)
        if status != 0:
            raise ValueError(f"count_above failed with status {status}")
        return count.value

    def scale(self, values: np.ndarray, factor: float) -> None:
        """Multiply a writeable float64 array in place."""
        self.library.scale_inplace(values, _length(values), factor)

    def is_null(self, pointer=None) -> bool:
        """Ask the native side whether it received a NULL pointer."""
        return bool(self.library.is_null(pointer))

    def text_length(self, text: Optional[str]) -> int:
        """Length of an ASCII string measured by native code (-1 for None)."""
        return self.library.text_length(text)

    def greeting(self) -> str:
        return self.library.greeting()

    def native_sum_calls(self) -> int:
        """Number of times sum_array actually ran in native code."""
        return self.library.sum_array_calls()

    def reset_calls(self) -> None:
        self.library.reset_calls()

    def identity(self, kind: str, value):
        """Pass `value` through identity_<kind> and return what came back."""
        return self.library.function(f"identity_{kind}")(value)
