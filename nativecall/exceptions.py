"""
Exception hierarchy for nativecall.

This module defines every error raised by the checked part of the
foreign-function contract: loading a shared library, binding a symbol,
marshalling arguments, and building the native artifact.

Failures inside native code (segmentation faults, aborts) are not represented
here. They terminate the process and cannot be caught from Python.
"""

from typing import Any, Dict, Optional

# Error code constants
ERROR_CODE_UNKNOWN = "NC_ERR_UNKNOWN"
ERROR_CODE_LOAD = "NC_ERR_LOAD"
ERROR_CODE_SYMBOL_NOT_FOUND = "NC_ERR_SYMBOL_NOT_FOUND"
ERROR_CODE_SIGNATURE = "NC_ERR_SIGNATURE"
ERROR_CODE_MARSHAL = "NC_ERR_MARSHAL"
ERROR_CODE_SHAPE = "NC_ERR_SHAPE"
ERROR_CODE_RELEASED = "NC_ERR_RELEASED"
ERROR_CODE_BUILD = "NC_ERR_BUILD"


class NativeCallError(Exception):
    """
    Base exception class for all nativecall errors.

    Attributes:
        code: The error code identifying the type of error
        message: Human-readable error description
        context: Additional context information about the error
        suggestion: A suggested remediation action for the error
    """

    def __init__(
        self,
        message: str,
        code: str = ERROR_CODE_UNKNOWN,
        context: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Initialize a NativeCallError instance.

        Args:
            message: A human-readable description of the error
            code: An error code identifying the type of error
            context: Additional context information relevant to the error
            suggestion: A suggested action to resolve the error
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.context = context or {}
        self.suggestion = suggestion

    def __str__(self) -> str:
        """Return a formatted string representation of the error."""
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f"\nSuggestion: {self.suggestion}"
        return result

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return (
            f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r}, "
            f"context={self.context!r}, suggestion={self.suggestion!r})"
        )


class LoadError(NativeCallError):
    """
    Raised when a shared library cannot be located or opened.

    The path may not exist, may not be a shared-library image for the current
    platform and architecture, or may depend on libraries the dynamic loader
    cannot find.

    Attributes:
        path: The path that failed to load, if there was a single one
        search_paths: Every path that was tried
        platform: The platform identifier (e.g., 'linux_x86_64')
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        search_paths: Optional[list] = None,
        platform: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        ctx = context or {}
        if path:
            ctx["path"] = path
        if search_paths:
            ctx["search_paths"] = search_paths
        if platform:
            ctx["platform"] = platform

        default_suggestion = suggestion or (
            "Try one of the following:\n"
            "  1. Build the library: nativecall build\n"
            "  2. Set NATIVECALL_LIBRARY_PATH to the shared library location\n"
            "  3. Pass an explicit path to load_library()"
        )
        super().__init__(
            message,
            code=ERROR_CODE_LOAD,
            context=ctx,
            suggestion=default_suggestion,
        )
        self.path = path
        self.search_paths = search_paths or []
        self.platform = platform


class SymbolNotFoundError(NativeCallError):
    """Raised when a loaded library does not export the requested symbol."""

    def __init__(
        self,
        message: str,
        symbol: Optional[str] = None,
        library: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        ctx = context or {}
        if symbol:
            ctx["symbol"] = symbol
        if library:
            ctx["library"] = library

        default_suggestion = suggestion or (
            "Check the exported name with `nm -D` and make sure the function is "
            "declared extern \"C\" so its name is not mangled."
        )
        super().__init__(
            message,
            code=ERROR_CODE_SYMBOL_NOT_FOUND,
            context=ctx,
            suggestion=default_suggestion,
        )
        self.symbol = symbol
        self.library = library


class SignatureError(NativeCallError):
    """
    Raised for invalid declarations and for calls that do not match them.

    A declaration that is syntactically valid but disagrees with the compiled
    function is NOT detected; that case stays undefined behavior.
    """

    def __init__(
        self,
        message: str,
        symbol: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        ctx = context or {}
        if symbol:
            ctx["symbol"] = symbol

        default_suggestion = suggestion or "Compare the declaration with the C prototype in the header."
        super().__init__(
            message,
            code=ERROR_CODE_SIGNATURE,
            context=ctx,
            suggestion=default_suggestion,
        )
        self.symbol = symbol


class MarshalError(NativeCallError, TypeError):
    """
    Raised when a Python value cannot be converted to its declared native form.

    Attributes:
        argument: Name of the offending argument
    """

    def __init__(
        self,
        message: str,
        argument: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
        code: str = ERROR_CODE_MARSHAL,
    ) -> None:
        ctx = context or {}
        if argument:
            ctx["argument"] = argument

        default_suggestion = suggestion or "Check the type and range of the argument against its declaration."
        super().__init__(
            message,
            code=code,
            context=ctx,
            suggestion=default_suggestion,
        )
        self.argument = argument


class ShapeError(MarshalError):
    """
    Raised when a buffer violates its declared dtype, shape or contiguity.

    The check runs before the native function is invoked, so the call never
    happens and the caller may retry with a corrected array.

    Attributes:
        argument: Name of the offending argument
        expected: Description of the declared constraint
        actual: Description of what was passed
    """

    def __init__(
        self,
        message: str,
        argument: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        ctx = context or {}
        if expected is not None:
            ctx["expected"] = expected
        if actual is not None:
            ctx["actual"] = actual

        default_suggestion = suggestion or (
            "Convert the array first, e.g. numpy.ascontiguousarray(arr, dtype=...)."
        )
        super().__init__(
            message,
            argument=argument,
            context=ctx,
            suggestion=default_suggestion,
            code=ERROR_CODE_SHAPE,
        )
        self.expected = expected
        self.actual = actual


class LibraryReleasedError(NativeCallError):
    """Raised when a released library handle is used again."""

    def __init__(
        self,
        message: str,
        library: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        ctx = context or {}
        if library:
            ctx["library"] = library

        default_suggestion = suggestion or "Load the library again with load_library()."
        super().__init__(
            message,
            code=ERROR_CODE_RELEASED,
            context=ctx,
            suggestion=default_suggestion,
        )
        self.library = library


class BuildError(NativeCallError):
    """
    Raised when a build description is invalid or compilation fails.

    Attributes:
        extension: Name of the extension being built, if known
    """

    def __init__(
        self,
        message: str,
        extension: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        ctx = context or {}
        if extension:
            ctx["extension"] = extension

        default_suggestion = suggestion or (
            "Make sure a C compiler is installed (run `nativecall doctor`)."
        )
        super().__init__(
            message,
            code=ERROR_CODE_BUILD,
            context=ctx,
            suggestion=default_suggestion,
        )
        self.extension = extension


# Mapping of error codes to exception classes
ERROR_CODE_MAP: Dict[str, type] = {
    ERROR_CODE_LOAD: LoadError,
    ERROR_CODE_SYMBOL_NOT_FOUND: SymbolNotFoundError,
    ERROR_CODE_SIGNATURE: SignatureError,
    ERROR_CODE_MARSHAL: MarshalError,
    ERROR_CODE_SHAPE: ShapeError,
    ERROR_CODE_RELEASED: LibraryReleasedError,
    ERROR_CODE_BUILD: BuildError,
}


def create_error_from_code(
    code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
) -> NativeCallError:
    """
    Create an appropriate exception instance from an error code.

    Args:
        code: The error code
        message: The error message
        context: Additional context information

    Returns:
        An instance of the appropriate NativeCallError subclass
    """
    exception_class = ERROR_CODE_MAP.get(code, NativeCallError)
    if exception_class is NativeCallError:
        return NativeCallError(message, code=code, context=context)
    return exception_class(message, context=context)
