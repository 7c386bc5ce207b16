"""
Tests for NativeLibrary, BoundFunction and the process-wide registry.

Tests in classes that use the demo_library fixture call real native code
and are skipped when the demo library cannot be compiled.
"""

import numpy as np
import pytest

from conftest import HEADER
from nativecall import (
    FLOAT64,
    INT8,
    INT64,
    Buffer,
    LibraryReleasedError,
    LibraryState,
    LoadError,
    MarshalError,
    NativeLibrary,
    ShapeError,
    SignatureError,
    SymbolNotFoundError,
    load_library,
    unload_all,
    unload_library,
)
from nativecall.library import get_registry


def bind_sum(library):
    return library.bind(
        "sum_array", [Buffer("float64", ndim=1), INT64], FLOAT64, argnames=["values", "n"]
    )


class TestWithoutNativeCode:
    """Life-cycle checks that fail before any library is opened."""

    def test_load_nonexistent_path(self, tmp_path):
        library = NativeLibrary(tmp_path / "missing.so")
        with pytest.raises(LoadError):
            library.load()
        assert library.state is LibraryState.UNLOADED

    def test_bind_before_load(self, tmp_path):
        library = NativeLibrary(tmp_path / "missing.so")
        with pytest.raises(LoadError):
            library.bind("sum_array", [], FLOAT64)

    def test_released_before_load(self, tmp_path):
        library = NativeLibrary(tmp_path / "missing.so")
        library.release()
        assert library.state is LibraryState.RELEASED
        with pytest.raises(LibraryReleasedError):
            library.load()

    def test_strict_follows_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("NATIVECALL_STRICT", "0")
        assert NativeLibrary(tmp_path / "x.so").strict is False
        assert NativeLibrary(tmp_path / "x.so", strict=True).strict is True

    def test_private_attributes_are_not_symbols(self, tmp_path):
        library = NativeLibrary(tmp_path / "x.so")
        assert not hasattr(library, "_missing")
        assert not hasattr(library, "sum_array")

    def test_registry_needs_path_or_name(self):
        with pytest.raises(LoadError):
            load_library()

    def test_registry_missing_path(self, tmp_path):
        with pytest.raises(LoadError):
            load_library(str(tmp_path / "missing.so"))
        assert len(get_registry()) == 0


class TestLifeCycle:
    """Tests for the UNLOADED -> LOADED -> BOUND -> RELEASED cycle."""

    def test_states(self, demo_library_path):
        library = NativeLibrary(demo_library_path)
        assert library.state is LibraryState.UNLOADED
        library.load()
        assert library.state is LibraryState.LOADED
        assert library.load() is library
        bind_sum(library)
        assert library.state is LibraryState.BOUND
        library.release()
        assert library.state is LibraryState.RELEASED
        assert not library.is_loaded

    def test_context_manager(self, demo_library_path):
        with NativeLibrary(demo_library_path) as library:
            assert library.is_loaded
            sum_array = bind_sum(library)
        assert library.state is LibraryState.RELEASED
        with pytest.raises(LibraryReleasedError):
            sum_array(np.zeros(3), 3)

    def test_use_after_release(self, demo_library):
        sum_array = bind_sum(demo_library)
        demo_library.release()
        demo_library.release()
        with pytest.raises(LibraryReleasedError):
            sum_array(np.zeros(3), 3)
        with pytest.raises(LibraryReleasedError):
            demo_library.sum_array
        with pytest.raises(LibraryReleasedError):
            bind_sum(demo_library)
        with pytest.raises(LibraryReleasedError):
            demo_library.load()
        assert demo_library.functions == {}


class TestBinding:
    """Tests for declaring signatures."""

    def test_bind_and_call(self, demo_library):
        sum_array = bind_sum(demo_library)
        values = np.linspace(0.0, 1.0, 100000)
        assert sum_array(values, values.size) == pytest.approx(50000.0, rel=1e-6)
        assert demo_library.sum_array is sum_array
        assert demo_library.function("sum_array") is sum_array
        assert sum_array.call_count == 1

    def test_keyword_arguments(self, demo_library):
        sum_array = bind_sum(demo_library)
        assert sum_array(n=3, values=np.ones(3)) == 3.0

    def test_missing_symbol(self, demo_library):
        with pytest.raises(SymbolNotFoundError) as exc_info:
            demo_library.bind("no_such_symbol", [], INT64)
        assert exc_info.value.symbol == "no_such_symbol"
        assert exc_info.value.library == demo_library.path

    def test_has_symbol(self, demo_library):
        assert demo_library.has_symbol("sum_array")
        assert not demo_library.has_symbol("no_such_symbol")

    def test_unbound_symbol(self, demo_library):
        with pytest.raises(SignatureError):
            demo_library.function("sum_array")
        with pytest.raises(AttributeError):
            demo_library.sum_array

    def test_bind_header(self, demo_library):
        bound = demo_library.bind_header(HEADER.read_text())
        assert "count_above" in bound
        assert set(demo_library.functions) == set(bound)

    def test_bind_header_subset(self, demo_library):
        bound = demo_library.bind_header(HEADER.read_text(), only=["greeting"])
        assert list(bound) == ["greeting"]
        assert demo_library.greeting() == "hello from sumdemo"

    def test_bind_header_unknown_name(self, demo_library):
        with pytest.raises(SignatureError):
            demo_library.bind_header(HEADER.read_text(), only=["greeting", "farewell"])

    def test_rebinding_replaces_declaration(self, demo_library):
        first = bind_sum(demo_library)
        second = bind_sum(demo_library)
        assert demo_library.sum_array is second
        values = np.ones(4)
        assert first(values, 4) == second(values, 4) == 4.0


class TestCallChecks:
    """Tests for checks that run before native code is entered."""

    def test_shape_error_skips_native_call(self, demo_library):
        demo_library.bind_header(HEADER.read_text())
        demo_library.reset_calls()
        sum_array = demo_library.sum_array

        with pytest.raises(ShapeError):
            sum_array(np.zeros((2, 2)), 4)
        with pytest.raises(ShapeError):
            sum_array(np.arange(4, dtype=np.int32), 4)

        assert sum_array.call_count == 0
        assert demo_library.sum_array_calls() == 0

    def test_argument_count(self, demo_library):
        sum_array = bind_sum(demo_library)
        with pytest.raises(SignatureError):
            sum_array(np.zeros(3))
        with pytest.raises(SignatureError):
            sum_array(np.zeros(3), 3, 3)
        assert sum_array.call_count == 0

    def test_strict_range_check(self, demo_library):
        identity = demo_library.bind("identity_int8", [INT8], INT8)
        with pytest.raises(MarshalError):
            identity(300)
        with pytest.raises(TypeError):
            identity(300)

    def test_unchecked_truncates(self, demo_library_path):
        with NativeLibrary(demo_library_path, strict=False) as library:
            identity = library.bind("identity_int8", [INT8], INT8)
            assert identity(300) == 44
            assert identity(-129) == 127

    def test_ctypes_rejection_is_a_marshal_error(self, demo_library_path):
        with NativeLibrary(demo_library_path, strict=False) as library:
            identity = library.bind("identity_int64", [INT64], INT64)
            with pytest.raises(MarshalError) as exc_info:
                identity("seven")
            assert "identity_int64" in exc_info.value.message
            assert identity.call_count == 0


class TestRegistry:
    """Tests for the process-wide registry."""

    def test_load_once(self, demo_library_path):
        first = load_library(demo_library_path)
        second = load_library(demo_library_path)
        assert first is second
        assert get_registry().loaded() == [demo_library_path]

    def test_unload(self, demo_library_path):
        library = load_library(demo_library_path)
        assert unload_library(demo_library_path) is True
        assert library.state is LibraryState.RELEASED
        assert unload_library(demo_library_path) is False

        reloaded = load_library(demo_library_path)
        assert reloaded is not library
        assert reloaded.is_loaded

    def test_unload_all(self, demo_library_path):
        library = load_library(demo_library_path)
        unload_all()
        assert library.state is LibraryState.RELEASED
        assert len(get_registry()) == 0

    def test_load_by_name_from_environment(self, demo_library_path, monkeypatch):
        monkeypatch.setenv("NATIVECALL_LIBRARY_PATH", demo_library_path)
        assert load_library(name="sumdemo").path == demo_library_path
        unload_all()
        assert load_library().path == demo_library_path

    def test_load_by_name_from_build_dir(self, demo_library_path, monkeypatch):
        from pathlib import Path

        monkeypatch.setenv("NATIVECALL_BUILD_DIR", str(Path(demo_library_path).parent))
        assert load_library(name="sumdemo").path == demo_library_path

    def test_registry_strict_setting(self, demo_library_path):
        assert load_library(demo_library_path, strict=False).strict is False

    def test_strictness_is_part_of_the_key(self, demo_library_path):
        checked = load_library(demo_library_path, strict=True)
        unchecked = load_library(demo_library_path, strict=False)
        assert checked is not unchecked
        assert checked.strict is True
        assert unchecked.strict is False
        assert load_library(demo_library_path, strict=True) is checked

        assert unload_library(demo_library_path) is True
        assert checked.state is LibraryState.RELEASED
        assert unchecked.state is LibraryState.RELEASED
        assert len(get_registry()) == 0
