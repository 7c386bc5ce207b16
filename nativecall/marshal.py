"""
Per-call argument marshalling.

The Marshaller turns the Python arguments of one call into the objects
handed to a ctypes function pointer, following the argument tags of a
Signature. Everything the native side borrows (arrays, encoded strings,
by-reference slots) is held by a CallFrame for exactly the duration of the
call:

    with marshaller.call_frame(values, len(values)) as native_args:
        raw = cfunc(*native_args)
    # by-reference slots have been copied back into their Ref objects here

Write-backs only run when the body of the with-block completes normally.
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Sequence

from nativecall.exceptions import SignatureError
from nativecall.signature import Signature

logger = logging.getLogger(__name__)

_MISSING = object()


class CallFrame:
    """Objects borrowed by one native call and the write-backs to run after it."""

    def __init__(self) -> None:
        self._borrowed: List[Any] = []
        self._write_backs: List[Callable[[], None]] = []

    def keep(self, obj: Any) -> None:
        """Keep `obj` referenced until the frame is released."""
        self._borrowed.append(obj)

    def on_return(self, callback: Callable[[], None]) -> None:
        """Register a callback that copies an output slot back to Python."""
        self._write_backs.append(callback)

    @property
    def borrowed(self) -> int:
        return len(self._borrowed)

    def write_back(self) -> None:
        for callback in self._write_backs:
            callback()

    def release(self) -> None:
        self._borrowed.clear()
        self._write_backs.clear()


class Marshaller:
    """
    Converts Python arguments according to a Signature.

    Args:
        signature: Declared contract of the symbol
        strict: Range-check scalar arguments. When False, scalar values are
            forwarded unchanged and ctypes truncates them silently if they do
            not fit the declared width.
    """

    def __init__(self, signature: Signature, strict: bool = True) -> None:
        self.signature = signature
        self.strict = strict

    def bind_arguments(self, args: Sequence[Any], kwargs: Dict[str, Any]) -> List[Any]:
        """Match positional and keyword arguments to declared parameters.

        Raises:
            SignatureError: On too many, missing, duplicate or unknown arguments
        """
        sig = self.signature
        if len(args) > sig.arity:
            raise SignatureError(
                f"{sig.name}() takes {sig.arity} argument(s) but {len(args)} were given",
                symbol=sig.name,
                context={"declared": str(sig)},
            )

        values = list(args) + [_MISSING] * (sig.arity - len(args))
        for key, value in kwargs.items():
            try:
                index = sig.argnames.index(key)
            except ValueError:
                raise SignatureError(
                    f"{sig.name}() got an unexpected keyword argument {key!r}",
                    symbol=sig.name,
                    context={"declared": str(sig)},
                ) from None
            if values[index] is not _MISSING:
                raise SignatureError(
                    f"{sig.name}() got multiple values for argument {key!r}",
                    symbol=sig.name,
                )
            values[index] = value

        missing = [name for name, value in zip(sig.argnames, values) if value is _MISSING]
        if missing:
            raise SignatureError(
                f"{sig.name}() missing argument(s): {', '.join(missing)}",
                symbol=sig.name,
                context={"declared": str(sig)},
            )
        return values

    def marshal(self, args: Sequence[Any], kwargs: Dict[str, Any], frame: CallFrame) -> List[Any]:
        """Convert every argument, registering borrows and write-backs on `frame`."""
        values = self.bind_arguments(args, kwargs)
        native_args = []
        for tag, name, value in zip(self.signature.argtypes, self.signature.argnames, values):
            native_args.append(tag.marshal(value, name, frame, strict=self.strict))
        logger.debug(f"Marshalled {len(native_args)} argument(s) for {self.signature.name}")
        return native_args

    @contextmanager
    def call_frame(self, *args: Any, **kwargs: Any) -> Iterator[List[Any]]:
        """Marshal arguments and keep them alive for the duration of the block."""
        frame = CallFrame()
        native_args = self.marshal(args, kwargs, frame)
        try:
            yield native_args
            frame.write_back()
        finally:
            frame.release()

    def unmarshal(self, raw: Any) -> Any:
        """Convert the raw ctypes return value according to the return tag."""
        return self.signature.restype.unmarshal(raw)
