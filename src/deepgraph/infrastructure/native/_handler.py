"""
Per-op-type kernel contract and built-in handler registry for the native backend.

A `Handler` owns everything the native backend needs to know about one op
type: how to initialize a node's state, how to run it forward, and how to
propagate a gradient back through it.

Built-in handlers are registered into `Handler.BUILTINS` by decorator at
import time:

    @Handler.register_builtin()
    class AddHandler(Handler):
        ...

`NativeBackend.with_builtin_handlers()` instantiates every registered class.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Dict, List, Sequence, Tuple, Type, TypeVar

from ...domain._graph import Op, OpTy
from ...domain._immediate import ImOp

H = TypeVar("H", bound=Type["Handler"])


class Handler(ABC):
    """
    Kernel set for one op type.

    Subclasses set `op` to the `OpTy` they serve. Receiving an op or immediate
    op of another type is a programmer error and must raise `AssertionError`
    (see `expect`).
    """

    op: ClassVar[OpTy]

    BUILTINS: ClassVar[Dict[OpTy, Type["Handler"]]] = {}

    @classmethod
    def register_builtin(cls, *, overwrite: bool = False) -> Callable[[H], H]:
        """
        Decorator registering a handler class as a built-in.

        Parameters
        ----------
        overwrite:
            If False (default), raises if a handler for the same op type is
            already registered.
        """

        def decorator(handler_cls: H) -> H:
            ty = handler_cls.op
            if not overwrite and ty in Handler.BUILTINS:
                raise ValueError(f"Built-in handler already registered: {ty!r}")
            Handler.BUILTINS[ty] = handler_cls
            return handler_cls

        return decorator

    @classmethod
    def builtins(cls) -> Tuple[Type["Handler"], ...]:
        """Return the registered built-in handler classes, ordered by op type."""
        return tuple(
            Handler.BUILTINS[ty] for ty in OpTy if ty in Handler.BUILTINS
        )

    def expect(self, imop: Any) -> Tuple[Any, ...]:
        """
        Return the operands of `imop`, asserting it is of this handler's type.
        """
        ty = getattr(imop, "ty", None)
        if ty is not self.op:
            raise AssertionError(f"got {ty!r} when {self.op!r} was expected")
        return imop.operands

    def expect_slot(self, output_delta: Tuple[int, Any], outputs: int = 1) -> Any:
        """
        Return the delta of `output_delta`, asserting its slot exists.
        """
        slot, delta = output_delta
        if not 0 <= slot < outputs:
            raise AssertionError(
                f"{self.op!r} produces {outputs} output(s), got a delta for slot {slot}"
            )
        return delta

    @abstractmethod
    def generate_state(self, op: Op, rng: Any) -> List[Any]:
        """
        Generate the state slots of a node running `op`.

        Parameters
        ----------
        op : Op
            The graph op, carrying its static parameters.
        rng : numpy.random.Generator
            Shared random source.
        """
        ...

    @abstractmethod
    def forward(self, imop: ImOp, state: Sequence[Any]) -> List[Any]:
        """Return one output tensor per output slot."""
        ...

    @abstractmethod
    def backward(
        self, imop: ImOp, state: Sequence[Any], output_delta: Tuple[int, Any]
    ) -> Tuple[ImOp, List[Any]]:
        """
        Return the operand gradients, re-packed as the same immediate variant,
        and one gradient per state slot.
        """
        ...
