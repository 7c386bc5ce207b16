"""
Signature descriptors and a small C prototype parser.

A Signature is the declared contract of one exported symbol: the ordered
argument tags and the return tag. Declaring it is mandatory before a symbol
can be called, and it is UNCHECKED: nothing compares it with the compiled
function. A wrong declaration is undefined behavior at call time.

Writing the declaration by hand is the main source of such mistakes, so
signatures can also be generated from the C header that the native code is
compiled against:

    sig = parse_prototype("double sum_array(const double *values, int64_t n);")
    sig.argtypes   # (buffer[float64, ndim=1], int64)

Pointer parameters map as follows: char* is text, void* is an opaque
pointer, T* named out_* is a by-reference output slot, and any other T* is a
one-dimensional buffer of T (writeable unless declared const).
"""

import ctypes
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from nativecall.exceptions import SignatureError
from nativecall import types as t

logger = logging.getLogger(__name__)

# C scalar type names -> tags. Platform-dependent names are sized from ctypes.
C_SCALAR_TYPES: Dict[str, t.Scalar] = {
    "int8_t": t.INT8,
    "int16_t": t.INT16,
    "int32_t": t.INT32,
    "int64_t": t.INT64,
    "uint8_t": t.UINT8,
    "uint16_t": t.UINT16,
    "uint32_t": t.UINT32,
    "uint64_t": t.UINT64,
    "float": t.FLOAT32,
    "double": t.FLOAT64,
    "char": t.INT8,
    "signed char": t.INT8,
    "unsigned char": t.UINT8,
    "short": t.scalar_for_ctype(ctypes.c_short),
    "short int": t.scalar_for_ctype(ctypes.c_short),
    "unsigned short": t.scalar_for_ctype(ctypes.c_ushort),
    "int": t.scalar_for_ctype(ctypes.c_int),
    "signed": t.scalar_for_ctype(ctypes.c_int),
    "signed int": t.scalar_for_ctype(ctypes.c_int),
    "unsigned": t.scalar_for_ctype(ctypes.c_uint),
    "unsigned int": t.scalar_for_ctype(ctypes.c_uint),
    "long": t.scalar_for_ctype(ctypes.c_long),
    "long int": t.scalar_for_ctype(ctypes.c_long),
    "unsigned long": t.scalar_for_ctype(ctypes.c_ulong),
    "long long": t.scalar_for_ctype(ctypes.c_longlong),
    "unsigned long long": t.scalar_for_ctype(ctypes.c_ulonglong),
    "size_t": t.scalar_for_ctype(ctypes.c_size_t),
    "ssize_t": t.scalar_for_ctype(ctypes.c_ssize_t),
    "ptrdiff_t": t.scalar_for_ctype(ctypes.c_ssize_t),
}

# Tokens that carry no type information for marshalling
_QUALIFIERS = {"const", "volatile", "restrict", "__restrict", "extern", "static", "inline"}

# Words that can only be part of a type, never a parameter name
_TYPE_WORDS = {word for name in C_SCALAR_TYPES for word in name.split()} | {"void"}

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"//[^\n]*")
_EXTERN_C = re.compile(r'extern\s+"C"\s*\{?')
_PROTOTYPE = re.compile(r"^(?P<ret>.+?)\s*\b(?P<name>[A-Za-z_]\w*)\s*\((?P<params>.*)\)$", re.DOTALL)
_MACRO = re.compile(r"^[A-Z][A-Z0-9_]*$")


@dataclass
class Signature:
    """Declared contract of one exported symbol.

    Attributes:
        name: Exported (unmangled) symbol name
        argtypes: Ordered argument tags
        restype: Return tag (VOID for no return value)
        argnames: Argument names used in error messages
    """
    name: str
    argtypes: Tuple[t.TypeTag, ...] = ()
    restype: t.TypeTag = t.VOID
    argnames: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        self.argtypes = tuple(self.argtypes)
        if not self.name or not re.match(r"^[A-Za-z_]\w*$", self.name):
            raise SignatureError(f"Invalid symbol name: {self.name!r}", symbol=self.name)

        for index, tag in enumerate(self.argtypes):
            if not isinstance(tag, t.TypeTag):
                raise SignatureError(
                    f"Argument {index} of {self.name} is not a type tag: {tag!r}",
                    symbol=self.name,
                )
            if tag is t.VOID:
                raise SignatureError(
                    f"Argument {index} of {self.name} cannot be void",
                    symbol=self.name,
                )
        if not isinstance(self.restype, t.TypeTag) or isinstance(self.restype, t.ByRef):
            raise SignatureError(
                f"Invalid return tag for {self.name}: {self.restype!r}",
                symbol=self.name,
            )

        if not self.argnames:
            self.argnames = tuple(f"arg{i}" for i in range(len(self.argtypes)))
        self.argnames = tuple(self.argnames)
        if len(self.argnames) != len(self.argtypes):
            raise SignatureError(
                f"{self.name} declares {len(self.argtypes)} argument tag(s) "
                f"but {len(self.argnames)} name(s)",
                symbol=self.name,
            )

    @property
    def arity(self) -> int:
        return len(self.argtypes)

    @property
    def ctypes_argtypes(self) -> List[object]:
        """argtypes list for the ctypes function pointer."""
        return [tag.ctype for tag in self.argtypes]

    @property
    def ctypes_restype(self) -> object:
        """restype for the ctypes function pointer."""
        return self.restype.ctype

    def __str__(self) -> str:
        params = ", ".join(f"{tag.name} {name}" for tag, name in zip(self.argtypes, self.argnames))
        return f"{self.restype.name} {self.name}({params})"

    @classmethod
    def from_prototype(cls, text: str, ignore: Iterable[str] = ()) -> "Signature":
        """Alias for parse_prototype()."""
        return parse_prototype(text, ignore=ignore)


def _strip_source(text: str) -> str:
    """Remove comments, preprocessor lines and extern "C" wrappers."""
    text = _BLOCK_COMMENT.sub(" ", text)
    text = _LINE_COMMENT.sub(" ", text)
    lines = [line for line in text.splitlines() if not line.lstrip().startswith("#")]
    text = "\n".join(lines)
    text = _EXTERN_C.sub(" ", text)
    return text.replace("{", " ").replace("}", " ")


def _tokens(text: str, ignore: Sequence[str], drop_macros: bool = True) -> List[str]:
    """Split a declaration into tokens, dropping qualifiers and macros.

    All-uppercase words are export or calling-convention macros only in the
    return part of a prototype; inside a parameter they may be its name.
    """
    text = text.replace("*", " * ").replace("[", " [ ").replace("]", " ] ")
    result = []
    for token in text.split():
        if token in _QUALIFIERS or token in ignore:
            continue
        if drop_macros and _MACRO.match(token):
            continue
        result.append(token)
    return result


def _scalar(type_name: str, symbol: str) -> t.Scalar:
    try:
        return C_SCALAR_TYPES[type_name]
    except KeyError:
        raise SignatureError(
            f"Unsupported C type {type_name!r} in {symbol}",
            symbol=symbol,
            suggestion=f"Supported scalar types: {', '.join(sorted(C_SCALAR_TYPES))}",
        ) from None


def _parse_param(text: str, index: int, symbol: str, ignore: Sequence[str]) -> Tuple[t.TypeTag, str]:
    writable = "const" not in text.split("*")[0].split()
    tokens = _tokens(text, ignore, drop_macros=False)

    pointers = tokens.count("*")
    if "[" in tokens:
        pointers += 1
        tokens = tokens[: tokens.index("[")]
    tokens = [tok for tok in tokens if tok != "*"]

    if not tokens:
        raise SignatureError(f"Cannot parse parameter {text!r} of {symbol}", symbol=symbol)

    name = f"arg{index}"
    if len(tokens) > 1 and tokens[-1] not in _TYPE_WORDS:
        name = tokens.pop()
    base = " ".join(tokens)

    if pointers == 0:
        if base == "void":
            raise SignatureError(f"Parameter {name!r} of {symbol} cannot be void", symbol=symbol)
        return _scalar(base, symbol), name
    if pointers > 1:
        return t.POINTER, name
    if base == "void":
        return t.POINTER, name
    if base == "char":
        return t.TEXT, name

    scalar = _scalar(base, symbol)
    if name.startswith("out_"):
        return t.ByRef(scalar), name
    return t.Buffer(scalar.name, ndim=1, writable=writable), name


def _parse_return(text: str, symbol: str, ignore: Sequence[str]) -> t.TypeTag:
    tokens = _tokens(text, ignore)
    pointers = tokens.count("*")
    base = " ".join(tok for tok in tokens if tok != "*")

    if pointers == 0:
        if base == "void":
            return t.VOID
        return _scalar(base, symbol)
    if pointers == 1 and base == "char":
        return t.TEXT
    return t.POINTER


def parse_prototype(text: str, ignore: Iterable[str] = ()) -> Signature:
    """
    Parse one C function prototype into a Signature.

    Args:
        text: Prototype such as ``"int64_t sum(const int64_t *v, int64_t n);"``
        ignore: Extra tokens to drop (e.g. export macros that are not
            all-uppercase)

    Returns:
        Signature for the prototype

    Raises:
        SignatureError: If the text is not exactly one supported prototype
    """
    signatures = parse_header(text, ignore=ignore)
    if len(signatures) != 1:
        raise SignatureError(f"Expected exactly one prototype, found {len(signatures)}")
    return signatures[0]


def parse_header(text: str, ignore: Iterable[str] = ()) -> List[Signature]:
    """
    Parse every function prototype in C header text.

    Comments, preprocessor directives and extern "C" blocks are skipped.
    Declarations that are not function prototypes (typedefs, variables)
    raise SignatureError rather than being silently dropped.

    Args:
        text: Header source
        ignore: Extra tokens to drop from declarations

    Returns:
        Signatures in declaration order
    """
    ignore = tuple(ignore)
    signatures = []

    for statement in _strip_source(text).split(";"):
        statement = " ".join(statement.split())
        if not statement:
            continue

        match = _PROTOTYPE.match(statement)
        if not match:
            raise SignatureError(f"Not a function prototype: {statement!r}")

        symbol = match.group("name")
        restype = _parse_return(match.group("ret"), symbol, ignore)

        params_text = match.group("params").strip()
        argtypes: List[t.TypeTag] = []
        argnames: List[str] = []
        if params_text and params_text != "void":
            for index, param in enumerate(params_text.split(",")):
                tag, name = _parse_param(param.strip(), index, symbol, ignore)
                argtypes.append(tag)
                argnames.append(name)

        signature = Signature(symbol, tuple(argtypes), restype, tuple(argnames))
        logger.debug(f"Parsed prototype: {signature}")
        signatures.append(signature)

    return signatures
