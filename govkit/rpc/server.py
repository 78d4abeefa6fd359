"""
govkit JSON-RPC Dispatcher

Turns JSON-RPC 2.0 request bodies into calls on registered module methods.
The dispatcher knows nothing about HTTP; the FastAPI app in ``app.py`` hands
it raw bodies and returns whatever string it produces.

Error mapping:
  - ContractRevert      → EXECUTION_ERROR, data = {"name", "message"}
  - ValidationError,
    bad argument types  → INVALID_PARAMS
  - other GovKitException → SERVER_ERROR
  - anything else       → INTERNAL_ERROR (logged with traceback)
"""

import asyncio
import json
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Union

from ..exceptions import ContractRevert, GovKitException, ValidationError
from ..logger import get_logger

logger = get_logger(__name__)

RPCMethod = Callable[..., Any]
RequestId = Union[str, int, None]


class RPCErrorCode(IntEnum):
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    SERVER_ERROR = -32000
    RESOURCE_NOT_FOUND = -32001
    TRANSACTION_REJECTED = -32003
    METHOD_NOT_SUPPORTED = -32004
    EXECUTION_ERROR = -32015


class RPCError(Exception):
    """Error object returned to the caller in place of a result."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        error = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error

    @classmethod
    def from_revert(cls, exc: ContractRevert) -> "RPCError":
        """Carry the revert class name so the client can raise it again."""
        return cls(
            RPCErrorCode.EXECUTION_ERROR,
            f"execution reverted: {exc}",
            data={"name": type(exc).__name__, "message": str(exc)},
        )


def _envelope(request_id: RequestId, result: Any = None, error: Optional[RPCError] = None) -> Dict:
    message = {"jsonrpc": "2.0", "id": request_id}
    if error is not None:
        message["error"] = error.to_dict()
    else:
        message["result"] = result
    return message


def rpc_method(func: RPCMethod) -> RPCMethod:
    """Expose a coroutine method of an RPCModule as ``<namespace>_<name>``."""
    func.__rpc_method__ = True
    return func


class RPCModule:
    """
    A namespace of RPC methods (eth, net, evm, govkit).

    ``context`` is the node's shared state (ledger and deployment).
    """

    namespace: str = ""

    def __init__(self, context: Any = None):
        self.context = context

    def get_methods(self) -> Dict[str, RPCMethod]:
        methods = {}
        for name in dir(self):
            if name.startswith("_"):
                continue
            attr = getattr(self, name)
            if getattr(attr, "__rpc_method__", False):
                methods[f"{self.namespace}_{name}" if self.namespace else name] = attr
        return methods


class RPCServer:

    def __init__(self):
        self._methods: Dict[str, RPCMethod] = {}

    def register_module(self, module: RPCModule) -> None:
        methods = module.get_methods()
        self._methods.update(methods)
        logger.debug(f"RPC module {module.namespace}: {len(methods)} methods")

    def get_methods(self) -> List[str]:
        return list(self._methods)

    async def handle_request(self, body: Union[str, bytes, dict, list]) -> Optional[str]:
        """
        Dispatch one request or a batch.

        Returns the JSON response text, or None when every request in the
        body was a notification.
        """
        try:
            payload = json.loads(body) if isinstance(body, (str, bytes)) else body
        except json.JSONDecodeError as e:
            return json.dumps(_envelope(None, error=RPCError(RPCErrorCode.PARSE_ERROR, f"Parse error: {e}")))

        if isinstance(payload, list):
            if not payload:
                return json.dumps(_envelope(None, error=RPCError(RPCErrorCode.INVALID_REQUEST, "Empty batch")))
            replies = [r for r in await asyncio.gather(*map(self._dispatch, payload)) if r is not None]
            return json.dumps(replies) if replies else None

        reply = await self._dispatch(payload)
        return None if reply is None else json.dumps(reply)

    async def _dispatch(self, message: Any) -> Optional[Dict]:
        if not isinstance(message, dict):
            return _envelope(None, error=RPCError(RPCErrorCode.INVALID_REQUEST, "Request must be an object"))

        request_id = message.get("id")
        method = message.get("method")
        try:
            if message.get("jsonrpc", "2.0") != "2.0":
                raise RPCError(RPCErrorCode.INVALID_REQUEST, "Invalid JSON-RPC version")
            if not method:
                raise RPCError(RPCErrorCode.INVALID_REQUEST, "Missing method")
            handler = self._methods.get(method)
            if handler is None:
                raise RPCError(RPCErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}")
            result = await self._call(handler, message.get("params"))
        except RPCError as e:
            error = e
        except ContractRevert as e:
            logger.debug(f"{method} reverted: {type(e).__name__}: {e}")
            error = RPCError.from_revert(e)
        except (ValidationError, TypeError, ValueError) as e:
            error = RPCError(RPCErrorCode.INVALID_PARAMS, str(e))
        except GovKitException as e:
            error = RPCError(RPCErrorCode.SERVER_ERROR, str(e))
        except Exception as e:
            logger.exception(f"Unhandled error in {method}")
            error = RPCError(RPCErrorCode.INTERNAL_ERROR, str(e))
        else:
            return None if request_id is None else _envelope(request_id, result=result)

        return None if request_id is None else _envelope(request_id, error=error)

    @staticmethod
    async def _call(handler: RPCMethod, params: Union[List, Dict, None]) -> Any:
        if params is None:
            return await handler()
        if isinstance(params, list):
            return await handler(*params)
        if isinstance(params, dict):
            return await handler(**params)
        raise RPCError(RPCErrorCode.INVALID_PARAMS, "params must be an array or object")
