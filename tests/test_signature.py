"""
Tests for Signature and the C prototype parser.
"""

import ctypes

import pytest

from conftest import HEADER
from nativecall.exceptions import SignatureError
from nativecall.signature import Signature, parse_header, parse_prototype
from nativecall.types import (
    FLOAT32,
    FLOAT64,
    INT32,
    INT64,
    POINTER,
    TEXT,
    UINT8,
    VOID,
    Buffer,
    ByRef,
)


class TestSignature:
    """Tests for declaring signatures by hand."""

    def test_defaults(self):
        sig = Signature("reset_calls")
        assert sig.argtypes == ()
        assert sig.restype is VOID
        assert sig.arity == 0
        assert sig.ctypes_restype is None

    def test_generated_argnames(self):
        sig = Signature("f", [INT32, FLOAT64])
        assert sig.argnames == ("arg0", "arg1")
        assert isinstance(sig.argtypes, tuple)

    def test_ctypes_types(self):
        sig = Signature("sum_array", (Buffer("float64", ndim=1), INT64), FLOAT64)
        assert sig.ctypes_argtypes == [ctypes.POINTER(ctypes.c_double), ctypes.c_int64]
        assert sig.ctypes_restype is ctypes.c_double

    def test_str(self):
        sig = Signature("sum_array", (Buffer("float64", ndim=1), INT64), FLOAT64, ("values", "n"))
        assert str(sig) == "float64 sum_array(buffer[float64, ndim=1] values, int64 n)"

    def test_invalid_name(self):
        with pytest.raises(SignatureError):
            Signature("1sum")
        with pytest.raises(SignatureError):
            Signature("")

    def test_argument_must_be_a_tag(self):
        with pytest.raises(SignatureError) as exc_info:
            Signature("f", [ctypes.c_int])
        assert exc_info.value.symbol == "f"

    def test_void_argument(self):
        with pytest.raises(SignatureError):
            Signature("f", [VOID])

    def test_by_reference_return(self):
        with pytest.raises(SignatureError):
            Signature("f", [], ByRef(INT64))

    def test_argname_count_mismatch(self):
        with pytest.raises(SignatureError):
            Signature("f", [INT32, INT32], VOID, ["only_one"])


class TestParsePrototype:
    """Tests for parse_prototype()."""

    def test_sum_array(self):
        sig = parse_prototype("double sum_array(const double *values, int64_t n);")
        assert sig.name == "sum_array"
        assert sig.argtypes == (Buffer("float64", ndim=1), INT64)
        assert sig.argnames == ("values", "n")
        assert sig.restype is FLOAT64

    def test_output_parameter(self):
        sig = parse_prototype(
            "int32_t count_above(const double *values, int64_t n, double threshold, int64_t *out_count);"
        )
        assert sig.argtypes[3] == ByRef(INT64)
        assert sig.argnames[3] == "out_count"
        assert sig.restype is INT32

    def test_writable_buffer(self):
        sig = parse_prototype("void scale_inplace(double *values, int64_t n, double factor);")
        assert sig.argtypes[0] == Buffer("float64", ndim=1, writable=True)
        assert sig.restype is VOID

    def test_array_parameter(self):
        sig = parse_prototype("float mean(const float values[], int count);")
        assert sig.argtypes[0] == Buffer("float32", ndim=1)
        assert sig.argnames == ("values", "count")
        assert sig.restype is FLOAT32

    def test_pointers_and_text(self):
        sig = parse_prototype("int32_t inspect(const void *ptr, const char *label, char **argv);")
        assert sig.argtypes == (POINTER, TEXT, POINTER)

    def test_text_and_pointer_returns(self):
        assert parse_prototype("const char *greeting(void);").restype is TEXT
        assert parse_prototype("double *data(void);").restype is POINTER

    def test_unnamed_parameters(self):
        sig = parse_prototype("uint8_t clamp(unsigned int, unsigned char);")
        assert sig.argnames == ("arg0", "arg1")
        assert sig.argtypes[1] is UINT8

    def test_void_parameter_list(self):
        assert parse_prototype("int64_t sum_array_calls(void);").arity == 0
        assert parse_prototype("void reset_calls();").arity == 0

    def test_uppercase_macros_are_ignored(self):
        sig = parse_prototype("SUMDEMO_API double identity_double(double value);")
        assert sig.name == "identity_double"
        assert sig.restype is FLOAT64

    def test_uppercase_parameter_names(self):
        sig = parse_prototype("SUMDEMO_API double sum_array(const double *values, int64_t N);")
        assert sig.argnames == ("values", "N")
        assert sig.argtypes == (Buffer("float64", ndim=1), INT64)

        sig = parse_prototype("void fill(double *OUT, int32_t LEN);")
        assert sig.argnames == ("OUT", "LEN")
        assert sig.arity == 2

    def test_custom_ignore_tokens(self):
        text = "my_export double half(double x);"
        with pytest.raises(SignatureError):
            parse_prototype(text)
        assert parse_prototype(text, ignore=["my_export"]).name == "half"

    def test_unsupported_type(self):
        with pytest.raises(SignatureError) as exc_info:
            parse_prototype("void draw(struct point *p);")
        assert "struct point" in exc_info.value.message

    def test_void_parameter_with_name(self):
        with pytest.raises(SignatureError):
            parse_prototype("void f(void x);")

    def test_exactly_one_prototype(self):
        with pytest.raises(SignatureError):
            parse_prototype("void a(void); void b(void);")
        with pytest.raises(SignatureError):
            parse_prototype("")

    def test_from_prototype_alias(self):
        assert Signature.from_prototype("void reset_calls(void);").name == "reset_calls"


class TestParseHeader:
    """Tests for parse_header()."""

    def test_demo_header(self):
        signatures = parse_header(HEADER.read_text())
        names = [sig.name for sig in signatures]
        assert names[:3] == ["sum_array", "sum_array_calls", "reset_calls"]
        assert "count_above" in names
        assert "greeting" in names
        assert len(names) == len(set(names))

    def test_skips_comments_and_preprocessor(self):
        header = """
        // a comment
        /* a block
           comment; with a semicolon */
        #define LIMIT 10
        #ifdef __cplusplus
        extern "C" {
        #endif
        int32_t twice(int32_t x);
        #ifdef __cplusplus
        }
        #endif
        """
        signatures = parse_header(header)
        assert [sig.name for sig in signatures] == ["twice"]

    def test_rejects_non_prototypes(self):
        with pytest.raises(SignatureError):
            parse_header("typedef int handle_t;")
