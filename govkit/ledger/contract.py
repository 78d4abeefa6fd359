"""
Ledger Contracts

Base class for contracts hosted by the development ledger. External
functions are declared with their ABI signature; calldata is built and
parsed with eth-abi so the same bytes can travel over JSON-RPC.

    class Box(Contract):
        @external("store(uint256)")
        def store(self, value):
            ...
"""

import copy
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple, Union

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector

from ..constants import ZERO_ADDRESS
from ..exceptions import ContractRevert, UnknownSelector, ValidationError


class ValueNotAccepted(ContractRevert, ValidationError):
    """Native value sent to a function that is not payable."""


@dataclass(frozen=True)
class ExternalFunction:
    """ABI description of one externally callable function."""
    name: str                   # Python attribute name
    signature: str              # canonical ABI signature, e.g. "store(uint256)"
    inputs: Tuple[str, ...]
    outputs: Tuple[str, ...]
    view: bool = False
    payable: bool = False

    @property
    def abi_name(self) -> str:
        return self.signature.split("(", 1)[0]

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_input(self, args: Tuple[Any, ...]) -> bytes:
        if len(args) != len(self.inputs):
            raise ValueError(
                f"{self.signature} takes {len(self.inputs)} arguments, got {len(args)}"
            )
        return self.selector + (encode(list(self.inputs), list(args)) if self.inputs else b"")

    def decode_input(self, data: bytes) -> Tuple[Any, ...]:
        if not self.inputs:
            return ()
        return tuple(decode(list(self.inputs), data))

    def encode_output(self, result: Any) -> bytes:
        if not self.outputs:
            return b""
        if len(self.outputs) == 1:
            return encode(list(self.outputs), [result])
        return encode(list(self.outputs), list(result))

    def decode_output(self, data: bytes) -> Any:
        if not self.outputs:
            return None
        values = decode(list(self.outputs), data)
        return values[0] if len(values) == 1 else tuple(values)


def _parse_inputs(signature: str) -> Tuple[str, ...]:
    inner = signature[signature.index("(") + 1:signature.rindex(")")]
    return tuple(t.strip() for t in inner.split(",") if t.strip())


def external(
    signature: str,
    returns: Tuple[str, ...] = (),
    view: bool = False,
    payable: bool = False,
) -> Callable:
    """Mark a contract method as callable through calldata."""

    def decorator(func: Callable) -> Callable:
        func.__external__ = ExternalFunction(
            name=func.__name__,
            signature=signature,
            inputs=_parse_inputs(signature),
            outputs=tuple(returns),
            view=view,
            payable=payable,
        )
        return func

    return decorator


class Contract:
    """
    A contract deployed on a :class:`~govkit.ledger.chain.Ledger`.

    Subclasses keep their state in plain instance attributes; the ledger
    snapshots them before each transaction and restores them on revert.
    Only the ledger reference and address are excluded from snapshots.
    """

    # Accept native value sent with empty calldata
    accepts_value: bool = False

    _selectors: Dict[bytes, ExternalFunction] = {}
    _names: Dict[str, ExternalFunction] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        selectors: Dict[bytes, ExternalFunction] = {}
        names: Dict[str, ExternalFunction] = {}
        for klass in reversed(cls.__mro__):
            for attr in vars(klass).values():
                fn = getattr(attr, "__external__", None)
                if fn is None:
                    continue
                selectors[fn.selector] = fn
                names[fn.abi_name] = fn
                names[fn.name] = fn
        cls._selectors = selectors
        cls._names = names

    def __init__(self):
        self.address: Optional[str] = None
        self.ledger = None

    # ── ABI helpers ───────────────────────────────────────────────────

    @classmethod
    def function(cls, name: Union[str, bytes]) -> ExternalFunction:
        """Resolve an external function by ABI name, Python name or selector."""
        fn = cls._selectors.get(name) if isinstance(name, bytes) else cls._names.get(name)
        if fn is None:
            raise KeyError(f"{cls.__name__} has no external function {name!r}")
        return fn

    @classmethod
    def encode_call(cls, name: str, *args: Any) -> bytes:
        return cls.function(name).encode_input(args)

    @classmethod
    def decode_result(cls, name: str, data: bytes) -> Any:
        return cls.function(name).decode_output(data)

    @classmethod
    def external_functions(cls) -> Tuple[ExternalFunction, ...]:
        return tuple(cls._selectors.values())

    # ── Execution context ─────────────────────────────────────────────

    @property
    def msg_sender(self) -> str:
        frame = self.ledger.current_frame
        return frame.sender if frame else ZERO_ADDRESS

    @property
    def msg_value(self) -> int:
        frame = self.ledger.current_frame
        return frame.value if frame else 0

    @property
    def block_number(self) -> int:
        return self.ledger.block_number

    @property
    def block_timestamp(self) -> int:
        return self.ledger.timestamp

    def emit(self, event: str, **fields: Any) -> None:
        self.ledger.record_log(self.address, event, fields)

    def call_contract(self, target: str, value: int, data: bytes) -> bytes:
        """Call another account with this contract as msg.sender."""
        return self.ledger.call_contract(self.address, target, value, data)

    def constructor(self) -> None:
        """Runs inside the deployment transaction; override as needed."""

    def dispatch(self, data: bytes) -> bytes:
        if not data:
            if self.msg_value and not self.accepts_value:
                raise ValueNotAccepted(f"{type(self).__name__} does not accept value")
            return b""
        fn = self._selectors.get(bytes(data[:4]))
        if fn is None:
            raise UnknownSelector(
                f"{type(self).__name__}: unknown selector 0x{bytes(data[:4]).hex()}"
            )
        if self.msg_value and not fn.payable:
            raise ValueNotAccepted(f"{fn.signature} is not payable")
        args = fn.decode_input(bytes(data[4:]))
        result = getattr(self, fn.name)(*args)
        return fn.encode_output(result)

    # ── Snapshots ─────────────────────────────────────────────────────

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(
            {k: v for k, v in vars(self).items() if k not in ("ledger", "address")}
        )

    def restore(self, state: Dict[str, Any]) -> None:
        for key in [k for k in vars(self) if k not in ("ledger", "address")]:
            delattr(self, key)
        for key, value in state.items():
            setattr(self, key, value)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} at {self.address}>"
