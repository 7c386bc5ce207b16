"""
Tests for value representation tags.

These tests do not call native code: they check what each tag accepts and
what it hands to ctypes.
"""

import ctypes

import numpy as np
import pytest

from nativecall.exceptions import MarshalError, ShapeError
from nativecall.marshal import CallFrame
from nativecall.types import (
    FLOAT32,
    FLOAT64,
    INT8,
    INT32,
    INT64,
    POINTER,
    TEXT,
    UINT8,
    UINT64,
    VOID,
    Buffer,
    ByRef,
    Ref,
    scalar_for_ctype,
)


@pytest.fixture
def frame():
    return CallFrame()


class TestScalar:
    """Tests for fixed-width scalar tags."""

    def test_bounds(self):
        assert INT8.bounds() == (-128, 127)
        assert UINT8.bounds() == (0, 255)
        assert INT64.bounds() == (-(2 ** 63), 2 ** 63 - 1)
        assert UINT64.bounds() == (0, 2 ** 64 - 1)

    def test_ctype(self):
        assert INT32.ctype is ctypes.c_int32
        assert FLOAT64.ctype is ctypes.c_double

    def test_accepts_values_in_range(self, frame):
        assert INT8.marshal(-128, "v", frame) == -128
        assert UINT64.marshal(2 ** 64 - 1, "v", frame) == 2 ** 64 - 1

    def test_accepts_numpy_integers(self, frame):
        value = INT64.marshal(np.int64(7), "v", frame)
        assert value == 7
        assert type(value) is int

    def test_rejects_out_of_range(self, frame):
        with pytest.raises(MarshalError) as exc_info:
            INT8.marshal(300, "value", frame)
        assert exc_info.value.argument == "value"
        assert "int8" in exc_info.value.message

    def test_rejects_negative_unsigned(self, frame):
        with pytest.raises(MarshalError):
            UINT8.marshal(-1, "value", frame)

    def test_rejects_float_for_integer(self, frame):
        with pytest.raises(MarshalError):
            INT32.marshal(1.5, "value", frame)

    def test_rejects_text_for_float(self, frame):
        with pytest.raises(MarshalError):
            FLOAT64.marshal("1.0", "value", frame)

    def test_accepts_int_for_float(self, frame):
        assert FLOAT64.marshal(3, "value", frame) == 3.0

    def test_float32_overflow(self, frame):
        with pytest.raises(MarshalError):
            FLOAT32.marshal(1e39, "value", frame)
        assert FLOAT32.marshal(float("inf"), "value", frame) == float("inf")

    def test_none_is_rejected(self, frame):
        with pytest.raises(MarshalError):
            INT32.marshal(None, "value", frame)

    def test_unchecked_forwards_value(self, frame):
        assert INT8.marshal(300, "value", frame, strict=False) == 300

    def test_unknown_kind(self):
        from nativecall.types import Scalar
        with pytest.raises(ValueError):
            Scalar("int128", "complex", 128, ctypes.c_int64)


class TestScalarForCtype:
    """Tests for mapping ctypes types onto tags."""

    def test_fixed_width(self):
        assert scalar_for_ctype(ctypes.c_int32) is INT32
        assert scalar_for_ctype(ctypes.c_uint8) is UINT8
        assert scalar_for_ctype(ctypes.c_double) is FLOAT64
        assert scalar_for_ctype(ctypes.c_float) is FLOAT32

    def test_long_double_is_unsupported(self):
        with pytest.raises(ValueError):
            scalar_for_ctype(ctypes.c_longdouble)


class TestVoidAndPointer:
    """Tests for VOID and POINTER."""

    def test_void_cannot_be_marshalled(self, frame):
        assert VOID.ctype is None
        with pytest.raises(MarshalError):
            VOID.marshal(1, "value", frame)

    def test_pointer_none_is_null(self, frame):
        assert POINTER.marshal(None, "ptr", frame) is None

    def test_pointer_from_address(self, frame):
        assert POINTER.marshal(0x1000, "ptr", frame).value == 0x1000

    def test_pointer_from_array_keeps_array_alive(self, frame):
        arr = np.zeros(4)
        pointer = POINTER.marshal(arr, "ptr", frame)
        assert pointer.value == arr.ctypes.data
        assert frame.borrowed == 1

    def test_pointer_from_ctypes_object(self, frame):
        slot = ctypes.c_int32(5)
        pointer = POINTER.marshal(slot, "ptr", frame)
        assert pointer.value == ctypes.addressof(slot)

    def test_pointer_rejects_text(self, frame):
        with pytest.raises(MarshalError):
            POINTER.marshal("abc", "ptr", frame)


class TestText:
    """Tests for ASCII text."""

    def test_encodes_ascii(self, frame):
        assert TEXT.marshal("hello", "text", frame) == b"hello"
        assert frame.borrowed == 1

    def test_none_is_null(self, frame):
        assert TEXT.marshal(None, "text", frame) is None

    def test_bytes_pass_through(self, frame):
        assert TEXT.marshal(b"raw", "text", frame) == b"raw"

    def test_rejects_non_ascii(self, frame):
        with pytest.raises(MarshalError) as exc_info:
            TEXT.marshal("café", "text", frame)
        assert "position 3" in exc_info.value.message

    def test_rejects_embedded_nul(self, frame):
        with pytest.raises(MarshalError):
            TEXT.marshal("a\x00b", "text", frame)

    def test_rejects_numbers(self, frame):
        with pytest.raises(MarshalError):
            TEXT.marshal(42, "text", frame)

    def test_unmarshal(self):
        assert TEXT.unmarshal(b"hi") == "hi"
        assert TEXT.unmarshal(None) is None
        with pytest.raises(MarshalError):
            TEXT.unmarshal(b"\xff")


class TestBuffer:
    """Tests for array buffers."""

    def test_name(self):
        assert Buffer("float64", ndim=1).name == "buffer[float64, ndim=1]"
        assert Buffer("int32", shape=(None, 3)).name == "buffer[int32, shape=(*, 3)]"
        assert Buffer(np.float32).name == "buffer[float32]"

    def test_shape_sets_ndim(self):
        assert Buffer("float64", shape=(2, 3)).ndim == 2

    def test_conflicting_ndim_and_shape(self):
        with pytest.raises(ValueError):
            Buffer("float64", ndim=1, shape=(2, 3))

    def test_ctype_points_to_elements(self):
        assert Buffer("float64").ctype is ctypes.POINTER(ctypes.c_double)

    def test_marshal_passes_address_of_first_element(self, frame):
        arr = np.linspace(0.0, 1.0, 5)
        pointer = Buffer("float64", ndim=1).marshal(arr, "values", frame)
        assert ctypes.cast(pointer, ctypes.c_void_p).value == arr.ctypes.data
        assert pointer[4] == 1.0
        assert frame.borrowed == 1

    def test_none_is_null(self, frame):
        assert Buffer("float64").marshal(None, "values", frame) is None

    def test_rejects_wrong_dtype(self, frame):
        with pytest.raises(ShapeError) as exc_info:
            Buffer("float64", ndim=1).marshal(np.arange(3, dtype=np.int32), "values", frame)
        error = exc_info.value
        assert error.argument == "values"
        assert error.expected == "buffer[float64, ndim=1]"
        assert error.actual == "ndarray[int32, shape=(3,), C-contiguous]"
        assert frame.borrowed == 0

    def test_rejects_wrong_ndim(self, frame):
        with pytest.raises(ShapeError):
            Buffer("float64", ndim=1).marshal(np.zeros((2, 2)), "values", frame)

    def test_rejects_wrong_extent(self, frame):
        tag = Buffer("float64", shape=(None, 3))
        tag.marshal(np.zeros((5, 3)), "m", frame)
        with pytest.raises(ShapeError) as exc_info:
            tag.marshal(np.zeros((5, 4)), "m", frame)
        assert "axis 1" in exc_info.value.message

    def test_rejects_non_contiguous(self, frame):
        with pytest.raises(ShapeError) as exc_info:
            Buffer("float64", ndim=1).marshal(np.zeros(10)[::2], "values", frame)
        assert "non-contiguous" in exc_info.value.actual

    def test_rejects_read_only_when_writable(self, frame):
        arr = np.zeros(3)
        arr.setflags(write=False)
        Buffer("float64", ndim=1).marshal(arr, "values", frame)
        with pytest.raises(ShapeError):
            Buffer("float64", ndim=1, writable=True).marshal(arr, "values", frame)

    def test_rejects_lists(self, frame):
        with pytest.raises(ShapeError) as exc_info:
            Buffer("float64").marshal([1.0, 2.0], "values", frame)
        assert exc_info.value.actual == "list"

    def test_unmarshal_with_fixed_shape(self):
        arr = np.array([1.0, 2.0, 3.0])
        pointer = arr.ctypes.data_as(ctypes.POINTER(ctypes.c_double))
        view = Buffer("float64", shape=(3,)).unmarshal(pointer)
        np.testing.assert_array_equal(view, arr)

    def test_unmarshal_needs_fixed_shape(self):
        arr = np.array([1.0, 2.0, 3.0])
        pointer = arr.ctypes.data_as(ctypes.POINTER(ctypes.c_double))
        with pytest.raises(MarshalError):
            Buffer("float64", ndim=1).unmarshal(pointer)

    def test_equality(self):
        assert Buffer("float64", ndim=1) == Buffer(np.float64, ndim=1)
        assert Buffer("float64", ndim=1) != Buffer("float64", ndim=1, writable=True)
        assert len({Buffer("float64", ndim=1), Buffer("float64", ndim=1)}) == 1


class TestByRef:
    """Tests for by-reference output slots."""

    def test_name_and_ctype(self):
        tag = ByRef(INT64)
        assert tag.name == "int64*"
        assert tag.ctype is ctypes.POINTER(ctypes.c_int64)

    def test_needs_scalar_target(self):
        with pytest.raises(ValueError):
            ByRef(TEXT)

    def test_writes_slot_back_into_ref(self, frame):
        ref = Ref(0)
        native = ByRef(INT64).marshal(ref, "out_count", frame)
        native._obj.value = 42
        assert ref.value == 0
        frame.write_back()
        assert ref.value == 42

    def test_requires_ref(self, frame):
        with pytest.raises(MarshalError) as exc_info:
            ByRef(INT64).marshal(5, "out_count", frame)
        assert "Ref" in exc_info.value.suggestion

    def test_checks_initial_value(self, frame):
        with pytest.raises(MarshalError):
            ByRef(INT8).marshal(Ref(1000), "out_value", frame)

    def test_none_is_null(self, frame):
        assert ByRef(INT64).marshal(None, "out_count", frame) is None

    def test_equality(self):
        assert ByRef(INT64) == ByRef(INT64)
        assert ByRef(INT64) != ByRef(INT32)

    def test_ref_repr(self):
        assert repr(Ref(3)) == "Ref(3)"
