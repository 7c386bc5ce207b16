"""
Shared library handles, bound functions and the process-wide registry.

This module ties the four stages of a foreign-function call together:

- NativeLibrary.load() opens the shared object (loader),
- NativeLibrary.bind() registers a Signature for one symbol (binder),
- BoundFunction marshals arguments through a Marshaller (marshaller),
- BoundFunction.__call__ runs the native code synchronously (invoker).

Life cycle of a handle:

    UNLOADED -> LOADED -> BOUND -> (calls)* -> RELEASED

BOUND may be re-entered to declare more symbols; RELEASED is terminal. Any
use of a released handle raises LibraryReleasedError instead of jumping into
unmapped memory.

Calls are not serialized. Concurrent calls are only safe if the native code
is reentrant, and arrays passed to a call must not be mutated by another
thread until it returns. A crash inside native code terminates the process.

Usage:
    from nativecall import NativeLibrary, Buffer, FLOAT64, INT64

    with NativeLibrary("build/nativecall/sumdemo.so") as lib:
        total = lib.bind("sum_array", [Buffer("float64", ndim=1), INT64], FLOAT64)
        print(total(values, len(values)))
"""

import ctypes
import logging
import os
import sys
import threading
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from nativecall import types as t
from nativecall._loader import find_library, open_library
from nativecall.config import Settings
from nativecall.exceptions import (
    LibraryReleasedError,
    LoadError,
    MarshalError,
    SignatureError,
    SymbolNotFoundError,
)
from nativecall.marshal import Marshaller
from nativecall.signature import Signature, parse_header

logger = logging.getLogger(__name__)


class LibraryState(Enum):
    """Life-cycle states of a NativeLibrary."""
    UNLOADED = "unloaded"
    LOADED = "loaded"
    BOUND = "bound"
    RELEASED = "released"


class BoundFunction:
    """
    A native symbol together with its declared Signature.

    Calling the object marshals the arguments, invokes the native function on
    the calling thread and converts the return value.

    Attributes:
        signature: The declared (unchecked) contract
        call_count: Number of completed native invocations through this object
    """

    def __init__(self, library: "NativeLibrary", signature: Signature,
                 cfunc: Any, strict: bool = True) -> None:
        self.library = library
        self.signature = signature
        self.marshaller = Marshaller(signature, strict=strict)
        self.call_count = 0
        self._cfunc = cfunc
        self._cfunc.argtypes = signature.ctypes_argtypes
        self._cfunc.restype = signature.ctypes_restype

    @property
    def name(self) -> str:
        return self.signature.name

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        self.library._ensure_live()

        with self.marshaller.call_frame(*args, **kwargs) as native_args:
            try:
                raw = self._cfunc(*native_args)
            except ctypes.ArgumentError as e:
                # ctypes rejected an argument before entering native code
                raise MarshalError(
                    f"{self.name}(): {e}",
                    context={"declared": str(self.signature)},
                ) from e
            self.call_count += 1

        return self.marshaller.unmarshal(raw)

    def __repr__(self) -> str:
        return f"<BoundFunction {self.signature} from {self.library.path}>"


class NativeLibrary:
    """
    Handle to one loaded shared library.

    Args:
        path: Filesystem path to the shared library
        strict: Range-check scalar arguments (defaults to NATIVECALL_STRICT)

    Raises:
        LoadError: From load() if the library cannot be opened
    """

    def __init__(self, path: Union[str, "os.PathLike[str]"], strict: Optional[bool] = None) -> None:
        self.path = os.fspath(path)
        self.strict = Settings.from_env().strict if strict is None else strict
        self.state = LibraryState.UNLOADED
        self._cdll: Optional[ctypes.CDLL] = None
        self._functions: Dict[str, BoundFunction] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> "NativeLibrary":
        """Load the library when entering the context manager."""
        if self.state is LibraryState.UNLOADED:
            self.load()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Release the library when leaving the context manager."""
        self.release()

    def load(self) -> "NativeLibrary":
        """Open the shared library.

        Returns:
            self, for chaining

        Raises:
            LoadError: If the file is missing or cannot be loaded
            LibraryReleasedError: If the handle was already released
        """
        with self._lock:
            if self.state is LibraryState.RELEASED:
                raise LibraryReleasedError(
                    f"Library {self.path} has been released", library=self.path
                )
            if self.state is not LibraryState.UNLOADED:
                logger.debug(f"Library already loaded: {self.path}")
                return self

            self._cdll = open_library(self.path)
            self.state = LibraryState.LOADED
        return self

    @property
    def is_loaded(self) -> bool:
        return self.state in (LibraryState.LOADED, LibraryState.BOUND)

    @property
    def functions(self) -> Dict[str, BoundFunction]:
        """Bound functions by symbol name."""
        return dict(self._functions)

    def has_symbol(self, name: str) -> bool:
        """Return True if the library exports `name` (bound or not)."""
        self._ensure_live()
        try:
            self._cdll[name]
        except AttributeError:
            return False
        return True

    def bind(self, name: Union[str, Signature], argtypes: Sequence[t.TypeTag] = (),
             restype: t.TypeTag = t.VOID, argnames: Sequence[str] = ()) -> BoundFunction:
        """
        Declare the signature of an exported symbol.

        The declaration is NOT checked against the compiled function. If it
        disagrees with the real C signature, calls have undefined behavior
        (wrong results, memory corruption or a crash).

        Args:
            name: Symbol name, or a complete Signature
            argtypes: Ordered argument tags (ignored when name is a Signature)
            restype: Return tag (ignored when name is a Signature)
            argnames: Argument names for error messages

        Returns:
            BoundFunction for the symbol

        Raises:
            SymbolNotFoundError: If the library does not export the symbol
            SignatureError: If the declaration itself is invalid
        """
        self._ensure_live()

        if isinstance(name, Signature):
            signature = name
        else:
            signature = Signature(name, tuple(argtypes), restype, tuple(argnames))

        try:
            # Indexing returns a fresh function pointer, so rebinding a symbol
            # never mutates a pointer that an older BoundFunction still uses
            cfunc = self._cdll[signature.name]
        except AttributeError as e:
            raise SymbolNotFoundError(
                f"Symbol {signature.name!r} not found in {self.path}",
                symbol=signature.name,
                library=self.path,
            ) from e

        function = BoundFunction(self, signature, cfunc, strict=self.strict)
        self._functions[signature.name] = function
        self.state = LibraryState.BOUND
        logger.debug(f"Bound {signature}")
        return function

    def bind_header(self, header: str, ignore: Iterable[str] = (),
                    only: Optional[Iterable[str]] = None) -> Dict[str, BoundFunction]:
        """
        Bind every prototype found in C header text.

        Args:
            header: Header source
            ignore: Extra tokens to drop from declarations
            only: If given, bind only these symbol names

        Returns:
            Bound functions by symbol name
        """
        wanted = set(only) if only is not None else None
        bound = {}
        for signature in parse_header(header, ignore=ignore):
            if wanted is not None and signature.name not in wanted:
                continue
            bound[signature.name] = self.bind(signature)
        if wanted is not None and wanted - set(bound):
            missing = ", ".join(sorted(wanted - set(bound)))
            raise SignatureError(f"Header does not declare: {missing}")
        logger.info(f"Bound {len(bound)} function(s) from header for {self.path}")
        return bound

    def function(self, name: str) -> BoundFunction:
        """Return the bound function for `name`.

        Raises:
            SignatureError: If the symbol has not been declared yet
        """
        self._ensure_live()
        try:
            return self._functions[name]
        except KeyError:
            raise SignatureError(
                f"Symbol {name!r} has not been bound; declare its signature with bind() first",
                symbol=name,
            ) from None

    def __getattr__(self, name: str) -> BoundFunction:
        functions = self.__dict__.get("_functions")
        if name.startswith("_") or functions is None:
            raise AttributeError(name)
        if self.__dict__.get("state") is LibraryState.RELEASED:
            self._ensure_live()
        try:
            return functions[name]
        except KeyError:
            raise AttributeError(
                f"Symbol {name!r} has not been bound; declare its signature with bind() first"
            ) from None

    def release(self) -> None:
        """Release the handle and unmap the library from the process.

        Released is terminal: later binds and calls raise
        LibraryReleasedError. Arrays returned as views of native memory are
        invalid after release.
        """
        with self._lock:
            if self.state is LibraryState.RELEASED:
                return
            cdll = self._cdll
            self._cdll = None
            self._functions.clear()
            self.state = LibraryState.RELEASED

        if cdll is not None:
            _close_handle(cdll)
            logger.info(f"Released shared library: {self.path}")

    def _ensure_live(self) -> None:
        if self.state is LibraryState.RELEASED:
            raise LibraryReleasedError(
                f"Library {self.path} has been released", library=self.path
            )
        if self.state is LibraryState.UNLOADED:
            raise LoadError(
                f"Library {self.path} is not loaded",
                path=self.path,
                suggestion="Call load() or use the library as a context manager.",
            )

    def __repr__(self) -> str:
        return f"<NativeLibrary {self.path} state={self.state.value} bound={sorted(self._functions)}>"


def _close_handle(cdll: ctypes.CDLL) -> None:
    """Ask the dynamic loader to drop its reference to the library."""
    import _ctypes

    handle = cdll._handle
    try:
        if sys.platform == "win32":
            _ctypes.FreeLibrary(handle)
        else:
            _ctypes.dlclose(handle)
    except (AttributeError, OSError) as e:
        logger.warning(f"Could not close library handle: {e}")


class LibraryRegistry:
    """
    Process-wide cache of loaded libraries keyed by resolved path and
    strictness.

    A checked and an unchecked handle to the same file are separate
    NativeLibrary objects with their own bindings. Loading and unloading are
    serialized by a lock; calls through the returned libraries are not.
    """

    def __init__(self) -> None:
        self._libraries: Dict[Tuple[str, bool], NativeLibrary] = {}
        self._lock = threading.Lock()

    def load(self, path: Optional[str] = None, name: Optional[str] = None,
             strict: Optional[bool] = None, settings: Optional[Settings] = None) -> NativeLibrary:
        """
        Load a library once per process and strictness.

        Tries to resolve the library in the following order:
        1. Explicit path (if provided)
        2. Library search by extension name (NATIVECALL_LIBRARY_PATH, build
           directory, installed package, current directory)
        3. NATIVECALL_LIBRARY_PATH when no name is given

        Raises:
            LoadError: If the library cannot be resolved or opened
        """
        settings = settings or Settings.from_env()
        if path is None:
            if name is not None:
                path = find_library(name, settings)
            elif settings.library_path:
                path = settings.library_path
            else:
                raise LoadError(
                    "No library path or name given and NATIVECALL_LIBRARY_PATH is not set"
                )

        strict = settings.strict if strict is None else strict
        key = (os.path.realpath(os.fspath(path)), strict)
        with self._lock:
            library = self._libraries.get(key)
            if library is not None and library.is_loaded:
                return library

            library = NativeLibrary(path, strict=strict)
            library.load()
            self._libraries[key] = library
            return library

    def unload(self, path: str) -> bool:
        """Release every handle loaded from `path`. Returns False if none was loaded."""
        realpath = os.path.realpath(os.fspath(path))
        with self._lock:
            keys = [key for key in self._libraries if key[0] == realpath]
            libraries = [self._libraries.pop(key) for key in keys]
        if not libraries:
            return False
        for library in libraries:
            library.release()
        return True

    def unload_all(self) -> None:
        """Release every library loaded through the registry."""
        with self._lock:
            libraries = list(self._libraries.values())
            self._libraries.clear()
        for library in libraries:
            library.release()

    def loaded(self) -> List[str]:
        """Paths of the libraries currently held by the registry."""
        with self._lock:
            return [lib.path for lib in self._libraries.values() if lib.is_loaded]

    def __len__(self) -> int:
        return len(self.loaded())


_registry = LibraryRegistry()


def get_registry() -> LibraryRegistry:
    """Return the process-wide registry."""
    return _registry


def load_library(path: Optional[str] = None, name: Optional[str] = None,
                 strict: Optional[bool] = None) -> NativeLibrary:
    """Load a library through the process-wide registry."""
    return _registry.load(path, name=name, strict=strict)


def unload_library(path: str) -> bool:
    """Release a library loaded through load_library()."""
    return _registry.unload(path)


def unload_all() -> None:
    """Release every library loaded through load_library()."""
    _registry.unload_all()
