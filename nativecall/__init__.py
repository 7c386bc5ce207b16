"""
nativecall: call C functions from Python through ctypes.

This package makes the foreign-function calling contract explicit:

- Loading a shared library (LoadError on failure)
- Declaring symbol signatures (mandatory, unchecked against the C code)
- Marshalling scalars, ASCII text, numpy buffers, output slots and NULL
- Invoking native code synchronously on the calling thread
- Compiling C sources into a shared artifact from a TOML build description

Typical usage:

    import numpy as np
    from nativecall import NativeLibrary, Buffer, FLOAT64, INT64

    with NativeLibrary("build/nativecall/sumdemo.so") as lib:
        lib.bind("sum_array", [Buffer("float64", ndim=1), INT64], FLOAT64,
                 argnames=["values", "n"])
        values = np.linspace(0.0, 1.0, 100000)
        print(lib.sum_array(values, values.size))   # 50000.0

Declarations can be generated from the C header instead:

    lib.bind_header(open("sumdemo.h").read())

Output parameters use Ref:

    from nativecall import Ref

    count = Ref(0)
    lib.count_above(values, values.size, 0.5, count)
    print(count.value)

A declaration that does not match the compiled function is undefined
behavior: ctypes cannot see the real C signature. Crashes inside native code
terminate the interpreter.
"""

from nativecall.exceptions import (
    NativeCallError,
    LoadError,
    SymbolNotFoundError,
    SignatureError,
    MarshalError,
    ShapeError,
    LibraryReleasedError,
    BuildError,
)
from nativecall.types import (
    TypeTag,
    Scalar,
    Buffer,
    ByRef,
    Ref,
    INT8,
    INT16,
    INT32,
    INT64,
    UINT8,
    UINT16,
    UINT32,
    UINT64,
    FLOAT32,
    FLOAT64,
    VOID,
    POINTER,
    TEXT,
)
from nativecall.signature import Signature, parse_header, parse_prototype
from nativecall.library import (
    NativeLibrary,
    BoundFunction,
    LibraryState,
    LibraryRegistry,
    load_library,
    unload_library,
    unload_all,
)
from nativecall.build import (
    BuildDescription,
    ExtensionSpec,
    build_extensions,
    load_build_description,
)
from nativecall._loader import find_artifact, find_library
from nativecall.config import Settings

# Read version from version.txt to ensure consistency with packaging
import os

_version_file = os.path.join(os.path.dirname(__file__), "version.txt")
try:
    with open(_version_file, "r") as f:
        __version__ = f.read().strip()
except (IOError, OSError):
    # Fallback if version.txt is missing (e.g., in development)
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    # Exceptions
    "NativeCallError",
    "LoadError",
    "SymbolNotFoundError",
    "SignatureError",
    "MarshalError",
    "ShapeError",
    "LibraryReleasedError",
    "BuildError",
    # Type tags
    "TypeTag",
    "Scalar",
    "Buffer",
    "ByRef",
    "Ref",
    "INT8",
    "INT16",
    "INT32",
    "INT64",
    "UINT8",
    "UINT16",
    "UINT32",
    "UINT64",
    "FLOAT32",
    "FLOAT64",
    "VOID",
    "POINTER",
    "TEXT",
    # Signatures
    "Signature",
    "parse_header",
    "parse_prototype",
    # Libraries
    "NativeLibrary",
    "BoundFunction",
    "LibraryState",
    "LibraryRegistry",
    "load_library",
    "unload_library",
    "unload_all",
    # Build
    "BuildDescription",
    "ExtensionSpec",
    "build_extensions",
    "load_build_description",
    "find_artifact",
    "find_library",
    "Settings",
]
