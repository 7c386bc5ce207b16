"""
Value representation tags.

A tag describes how one argument or return value crosses the boundary
between Python and native code. Each tag knows:

- the ctypes type used in the function's argtypes/restype,
- how to marshal a Python value into that representation for one call,
- how to turn the raw ctypes return value back into a Python value.

Tags never verify that the native function really expects what they
describe. They only check that the Python value fits the declaration.

Example:
    from nativecall.types import FLOAT64, INT64, Buffer, ByRef

    sum_args = [Buffer("float64", ndim=1), INT64]
    count_args = [Buffer("float64", ndim=1), INT64, FLOAT64, ByRef(INT64)]
"""

import ctypes
import math
import numbers
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from nativecall.exceptions import MarshalError, ShapeError


class TypeTag:
    """Base class for all value representation tags."""

    #: Short name used in error messages and signatures
    name: str = "tag"
    #: True if None marshals to a NULL pointer
    nullable: bool = False

    @property
    def ctype(self) -> Any:
        """ctypes type for argtypes/restype."""
        raise NotImplementedError

    def marshal(self, value: Any, argument: str, frame: Any, strict: bool = True) -> Any:
        """Convert `value` into the object handed to the ctypes function.

        Args:
            value: Python value supplied by the caller
            argument: Argument name, used in error messages
            frame: Call frame that keeps borrowed objects alive and collects
                post-call write-backs
            strict: Validate range and kind of scalar values

        Returns:
            Object accepted by ``self.ctype``
        """
        raise NotImplementedError

    def unmarshal(self, raw: Any) -> Any:
        """Convert a raw ctypes return value into a Python value."""
        return raw

    def __repr__(self) -> str:
        return self.name


class Scalar(TypeTag):
    """Fixed-width integer or floating point value passed by copy."""

    def __init__(self, name: str, kind: str, bits: int, ctype: Any) -> None:
        if kind not in ("signed", "unsigned", "float"):
            raise ValueError(f"Unknown scalar kind: {kind}")
        self.name = name
        self.kind = kind
        self.bits = bits
        self._ctype = ctype

    @property
    def ctype(self) -> Any:
        return self._ctype

    @property
    def is_integer(self) -> bool:
        return self.kind != "float"

    def bounds(self) -> Tuple[float, float]:
        """Return the inclusive (min, max) range representable by this tag."""
        if self.kind == "signed":
            return -(1 << (self.bits - 1)), (1 << (self.bits - 1)) - 1
        if self.kind == "unsigned":
            return 0, (1 << self.bits) - 1
        info = np.finfo(np.float32 if self.bits == 32 else np.float64)
        return float(-info.max), float(info.max)

    def check(self, value: Any, argument: str) -> Any:
        """Validate kind and range of `value`, returning a plain Python number."""
        if self.is_integer:
            if not isinstance(value, numbers.Integral):
                raise MarshalError(
                    f"Argument {argument!r} expects {self.name}, got {type(value).__name__}",
                    argument=argument,
                    context={"expected": self.name, "actual": type(value).__name__},
                )
            value = int(value)
            low, high = self.bounds()
            if not low <= value <= high:
                raise MarshalError(
                    f"Argument {argument!r} value {value} does not fit in {self.name} "
                    f"(range {low}..{high})",
                    argument=argument,
                    context={"expected": self.name, "value": value},
                )
            return value

        if not isinstance(value, numbers.Real):
            raise MarshalError(
                f"Argument {argument!r} expects {self.name}, got {type(value).__name__}",
                argument=argument,
                context={"expected": self.name, "actual": type(value).__name__},
            )
        value = float(value)
        low, high = self.bounds()
        if math.isfinite(value) and not low <= value <= high:
            raise MarshalError(
                f"Argument {argument!r} value {value!r} overflows {self.name}",
                argument=argument,
                context={"expected": self.name, "value": value},
            )
        return value

    def marshal(self, value: Any, argument: str, frame: Any, strict: bool = True) -> Any:
        if value is None:
            raise MarshalError(
                f"Argument {argument!r} is a {self.name} scalar and cannot be None",
                argument=argument,
            )
        if strict:
            return self.check(value, argument)
        # Forwarded as-is: ctypes truncates out-of-range integers silently
        return value


class _Void(TypeTag):
    """No value. Only valid as a return tag."""

    name = "void"

    @property
    def ctype(self) -> Any:
        return None

    def marshal(self, value: Any, argument: str, frame: Any, strict: bool = True) -> Any:
        raise MarshalError(f"Argument {argument!r} cannot be declared void", argument=argument)

    def unmarshal(self, raw: Any) -> Any:
        return None


class _Pointer(TypeTag):
    """Opaque pointer (void *)."""

    name = "pointer"
    nullable = True

    @property
    def ctype(self) -> Any:
        return ctypes.c_void_p

    def marshal(self, value: Any, argument: str, frame: Any, strict: bool = True) -> Any:
        if value is None:
            return None
        if isinstance(value, np.ndarray):
            frame.keep(value)
            return value.ctypes.data_as(ctypes.c_void_p)
        if isinstance(value, (ctypes._SimpleCData, ctypes.Array, ctypes.Structure)):
            frame.keep(value)
            return ctypes.cast(ctypes.pointer(value), ctypes.c_void_p)
        if isinstance(value, ctypes._Pointer):
            frame.keep(value)
            return ctypes.cast(value, ctypes.c_void_p)
        if isinstance(value, numbers.Integral) and not isinstance(value, bool):
            return ctypes.c_void_p(int(value))
        raise MarshalError(
            f"Argument {argument!r} expects a pointer, got {type(value).__name__}",
            argument=argument,
            context={"expected": self.name, "actual": type(value).__name__},
        )

    def unmarshal(self, raw: Any) -> Optional[int]:
        return raw


class _Text(TypeTag):
    """NUL-terminated single-byte (ASCII) string."""

    name = "text"
    nullable = True
    encoding = "ascii"

    @property
    def ctype(self) -> Any:
        return ctypes.c_char_p

    def marshal(self, value: Any, argument: str, frame: Any, strict: bool = True) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            try:
                data = value.encode(self.encoding)
            except UnicodeEncodeError as e:
                raise MarshalError(
                    f"Argument {argument!r} contains non-ASCII text at position {e.start}",
                    argument=argument,
                    suggestion="Only ASCII text can be passed as a C string.",
                ) from e
        elif isinstance(value, (bytes, bytearray)):
            data = bytes(value)
        else:
            raise MarshalError(
                f"Argument {argument!r} expects text, got {type(value).__name__}",
                argument=argument,
                context={"expected": self.name, "actual": type(value).__name__},
            )
        if b"\x00" in data:
            raise MarshalError(
                f"Argument {argument!r} contains an embedded NUL byte",
                argument=argument,
            )
        # The bytes object backs the char* only while the call frame is alive
        frame.keep(data)
        return data

    def unmarshal(self, raw: Any) -> Optional[str]:
        if raw is None:
            return None
        try:
            return raw.decode(self.encoding)
        except UnicodeDecodeError as e:
            raise MarshalError(
                f"Native function returned non-ASCII text: {raw!r}",
                context={"position": e.start},
            ) from e


class Buffer(TypeTag):
    """
    Contiguous numeric array passed as a pointer to its first element.

    The array stays owned by Python; native code borrows it for the duration
    of the call. The length travels as a separate argument.

    Args:
        dtype: Element type (anything numpy.dtype accepts)
        ndim: Required number of dimensions, or None for any
        shape: Required shape; None entries match any extent
        writable: Require a writeable array (native code writes into it)
    """

    nullable = True

    def __init__(
        self,
        dtype: Any,
        ndim: Optional[int] = None,
        shape: Optional[Sequence[Optional[int]]] = None,
        writable: bool = False,
    ) -> None:
        self.dtype = np.dtype(dtype)
        if shape is not None:
            shape = tuple(shape)
            if ndim is not None and ndim != len(shape):
                raise ValueError(f"ndim={ndim} conflicts with shape {shape}")
            ndim = len(shape)
        self.ndim = ndim
        self.shape = shape
        self.writable = writable
        self.element_ctype = np.ctypeslib.as_ctypes_type(self.dtype)

    @property
    def name(self) -> str:
        parts = [self.dtype.name]
        if self.shape is not None:
            parts.append("shape=(" + ", ".join("*" if s is None else str(s) for s in self.shape) + ")")
        elif self.ndim is not None:
            parts.append(f"ndim={self.ndim}")
        return f"buffer[{', '.join(parts)}]"

    @property
    def ctype(self) -> Any:
        return ctypes.POINTER(self.element_ctype)

    def describe(self, arr: np.ndarray) -> str:
        """Describe an array in the same vocabulary as ``name``."""
        contiguity = "C-contiguous" if arr.flags["C_CONTIGUOUS"] else "non-contiguous"
        return f"ndarray[{arr.dtype.name}, shape={arr.shape}, {contiguity}]"

    def check(self, value: Any, argument: str) -> np.ndarray:
        """Validate an array against the declared constraint.

        Raises:
            ShapeError: If the value is not an ndarray or violates dtype,
                dimensionality, shape, contiguity or writability
        """
        if not isinstance(value, np.ndarray):
            raise ShapeError(
                f"Argument {argument!r} expects {self.name}, got {type(value).__name__}",
                argument=argument,
                expected=self.name,
                actual=type(value).__name__,
                suggestion="Pass a numpy array, e.g. numpy.asarray(values, dtype=...).",
            )
        actual = self.describe(value)
        if value.dtype != self.dtype:
            raise ShapeError(
                f"Argument {argument!r} has dtype {value.dtype.name}, expected {self.dtype.name}",
                argument=argument,
                expected=self.name,
                actual=actual,
            )
        if self.ndim is not None and value.ndim != self.ndim:
            raise ShapeError(
                f"Argument {argument!r} has {value.ndim} dimension(s), expected {self.ndim}",
                argument=argument,
                expected=self.name,
                actual=actual,
            )
        if self.shape is not None:
            for axis, (want, got) in enumerate(zip(self.shape, value.shape)):
                if want is not None and want != got:
                    raise ShapeError(
                        f"Argument {argument!r} has extent {got} on axis {axis}, expected {want}",
                        argument=argument,
                        expected=self.name,
                        actual=actual,
                    )
        if not value.flags["C_CONTIGUOUS"]:
            raise ShapeError(
                f"Argument {argument!r} is not C-contiguous",
                argument=argument,
                expected=self.name,
                actual=actual,
                suggestion="Use numpy.ascontiguousarray() before the call.",
            )
        if self.writable and not value.flags["WRITEABLE"]:
            raise ShapeError(
                f"Argument {argument!r} must be writeable",
                argument=argument,
                expected=self.name + " (writeable)",
                actual=actual + " (read-only)",
            )
        return value

    def marshal(self, value: Any, argument: str, frame: Any, strict: bool = True) -> Any:
        if value is None:
            return None
        arr = self.check(value, argument)
        frame.keep(arr)
        return arr.ctypes.data_as(self.ctype)

    def unmarshal(self, raw: Any) -> Optional[np.ndarray]:
        """Wrap a returned pointer as a numpy view. Requires a fixed shape.

        The view does not own the memory; it is valid only as long as the
        native side keeps the memory alive.
        """
        if not raw:
            return None
        if self.shape is None or any(s is None for s in self.shape):
            raise MarshalError(
                f"Cannot wrap returned {self.name} without a fixed shape",
                suggestion="Declare the return tag with a complete shape.",
            )
        return np.ctypeslib.as_array(raw, shape=self.shape)

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, Buffer)
            and self.dtype == other.dtype
            and self.ndim == other.ndim
            and self.shape == other.shape
            and self.writable == other.writable
        )

    def __hash__(self) -> int:
        return hash((self.dtype, self.ndim, self.shape, self.writable))


class Ref:
    """
    Mutable scalar slot for by-reference (output) parameters.

    Example:
        count = Ref(0)
        lib.count_above(values, len(values), 0.5, count)
        print(count.value)
    """

    __slots__ = ("value",)

    def __init__(self, value: Any = 0) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"Ref({self.value!r})"


class ByRef(TypeTag):
    """Pointer to a mutable scalar slot; the callee writes through it."""

    nullable = True

    def __init__(self, target: Scalar) -> None:
        if not isinstance(target, Scalar):
            raise ValueError(f"ByRef needs a scalar tag, got {target!r}")
        self.target = target

    @property
    def name(self) -> str:
        return f"{self.target.name}*"

    @property
    def ctype(self) -> Any:
        return ctypes.POINTER(self.target.ctype)

    def marshal(self, value: Any, argument: str, frame: Any, strict: bool = True) -> Any:
        if value is None:
            return None
        if not isinstance(value, Ref):
            raise MarshalError(
                f"Argument {argument!r} is an output parameter and expects a Ref, "
                f"got {type(value).__name__}",
                argument=argument,
                suggestion="Pass nativecall.Ref() and read .value after the call.",
            )
        initial = value.value
        if strict:
            initial = self.target.check(initial, argument)
        slot = self.target.ctype(initial)
        frame.keep(slot)

        def write_back() -> None:
            value.value = slot.value

        frame.on_return(write_back)
        return ctypes.byref(slot)

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, ByRef) and self.target is other.target

    def __hash__(self) -> int:
        return hash(("byref", self.target.name))


INT8 = Scalar("int8", "signed", 8, ctypes.c_int8)
INT16 = Scalar("int16", "signed", 16, ctypes.c_int16)
INT32 = Scalar("int32", "signed", 32, ctypes.c_int32)
INT64 = Scalar("int64", "signed", 64, ctypes.c_int64)
UINT8 = Scalar("uint8", "unsigned", 8, ctypes.c_uint8)
UINT16 = Scalar("uint16", "unsigned", 16, ctypes.c_uint16)
UINT32 = Scalar("uint32", "unsigned", 32, ctypes.c_uint32)
UINT64 = Scalar("uint64", "unsigned", 64, ctypes.c_uint64)
FLOAT32 = Scalar("float32", "float", 32, ctypes.c_float)
FLOAT64 = Scalar("float64", "float", 64, ctypes.c_double)

VOID = _Void()
POINTER = _Pointer()
TEXT = _Text()

SCALARS = {
    tag.name: tag
    for tag in (INT8, INT16, INT32, INT64, UINT8, UINT16, UINT32, UINT64, FLOAT32, FLOAT64)
}


def scalar_for_ctype(ctype: Any) -> Scalar:
    """Return the fixed-width tag with the same size and kind as a ctypes type.

    Used to map platform-dependent C names (int, long, size_t) onto tags.
    """
    size_bits = ctypes.sizeof(ctype) * 8
    if ctype in (ctypes.c_float, ctypes.c_double, ctypes.c_longdouble):
        if ctype is ctypes.c_longdouble:
            raise ValueError("long double is not supported")
        return SCALARS[f"float{size_bits}"]
    signed = ctype(-1).value < 0
    return SCALARS[f"{'int' if signed else 'uint'}{size_bits}"]
