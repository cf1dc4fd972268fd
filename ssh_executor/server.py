from typing import Any, Callable, Dict, Optional

from ssh_executor.config import PROTOCOL_VERSION, SERVER_NAME, SERVER_VERSION, ServerConfig
from ssh_executor.ssh import (
    ConnectError, ConnectSettings, NotConnected, RunError, SessionManager
)
from ssh_executor.utils import log_error

METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class ProtocolError(Exception):
    """Raised by a handler to answer with a JSON-RPC error object."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def format_tool_result(text: str, is_error: bool = False) -> Dict[str, Any]:
    if not is_error:
        return {"content": [{"type": "text", "text": text}]}
    return {"content": [{"type": "text", "text": text}], "isError": True}

def make_response(req_id: int, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "result": result}

def make_error(req_id: int, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "error": {"code": code, "message": message}}

def parse_request(payload: Any) -> Optional[Dict[str, Any]]:
    """Return the envelope if ``payload`` has the request shape, else None."""
    if not isinstance(payload, dict):
        return None
    if not isinstance(payload.get("method"), str):
        return None
    if "jsonrpc" in payload and not isinstance(payload["jsonrpc"], str):
        return None
    req_id = payload.get("id")
    if req_id is not None and (isinstance(req_id, bool) or not isinstance(req_id, int)):
        return None
    return payload

def tools_list() -> Dict[str, Any]:
    tools = [
        {
            "name": "connect_ssh",
            "description": "Connect to SSH server",
            "inputSchema": {"type": "object", "properties": {}},
        },
        {
            "name": "execute_command",
            "description": "Execute command on remote server",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "command": {"type": "string", "description": "Shell command to run on the remote host."},
                },
                "required": ["command"],
            },
        },
        {
            "name": "disconnect_ssh",
            "description": "Disconnect from SSH server",
            "inputSchema": {"type": "object", "properties": {}},
        },
    ]
    return {"tools": tools}

def initialize_result() -> Dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}},
        "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
    }

def connect_dispatch(args: Dict[str, Any], manager: SessionManager, cfg: ServerConfig) -> Dict[str, Any]:
    try:
        manager.connect(ConnectSettings.from_config(cfg))
    except ConnectError as exc:
        log_error(f"connect failed: {exc}")
        return format_tool_result(f"Connection failed: {exc}", is_error=True)
    return format_tool_result("Connected to SSH server")

def execute_dispatch(args: Dict[str, Any], manager: SessionManager, cfg: ServerConfig) -> Dict[str, Any]:
    command = args.get("command")
    if not isinstance(command, str):
        return format_tool_result("command parameter required", is_error=True)
    try:
        stdout, _ = manager.run(command)
    except NotConnected as exc:
        return format_tool_result(f"Command failed: {exc}\nOutput: \nError: ", is_error=True)
    except RunError as exc:
        return format_tool_result(
            f"Command failed: {exc.detail}\nOutput: {exc.stdout}\nError: {exc.stderr}", is_error=True
        )
    return format_tool_result(f"Output:\n{stdout}")

def disconnect_dispatch(args: Dict[str, Any], manager: SessionManager, cfg: ServerConfig) -> Dict[str, Any]:
    manager.close()
    return format_tool_result("Disconnected from SSH server")

ToolHandler = Callable[[Dict[str, Any], SessionManager, ServerConfig], Dict[str, Any]]

TOOL_HANDLERS: Dict[str, ToolHandler] = {
    "connect_ssh": connect_dispatch,
    "execute_command": execute_dispatch,
    "disconnect_ssh": disconnect_dispatch,
}

def tools_call(params: Any, manager: SessionManager, cfg: ServerConfig) -> Dict[str, Any]:
    if not isinstance(params, dict) or not isinstance(params.get("name"), str):
        raise ProtocolError(INVALID_PARAMS, "Invalid params")
    args = params.get("arguments")
    if args is None:
        args = {}
    elif not isinstance(args, dict):
        raise ProtocolError(INVALID_PARAMS, "Invalid params")

    handler = TOOL_HANDLERS.get(params["name"])
    if handler is None:
        raise ProtocolError(METHOD_NOT_FOUND, "Method not found")
    return handler(args, manager, cfg)

MethodHandler = Callable[[Any, SessionManager, ServerConfig], Dict[str, Any]]

METHOD_HANDLERS: Dict[str, MethodHandler] = {
    "initialize": lambda params, manager, cfg: initialize_result(),
    "tools/list": lambda params, manager, cfg: tools_list(),
    "tools/call": tools_call,
}

def handle_request(request: Any, manager: SessionManager, cfg: ServerConfig) -> Optional[Dict[str, Any]]:
    """Answer one decoded JSON line. Returns None when nothing must be written."""
    envelope = parse_request(request)
    if envelope is None:
        log_error("skipping line: not a request envelope")
        return None
    req_id = envelope.get("id")
    if req_id is None:
        return None

    method = envelope["method"]
    handler = METHOD_HANDLERS.get(method)
    if handler is None:
        return make_error(req_id, METHOD_NOT_FOUND, "Method not found")
    try:
        return make_response(req_id, handler(envelope.get("params"), manager, cfg))
    except ProtocolError as exc:
        return make_error(req_id, exc.code, exc.message)
    except Exception as exc:
        log_error(f"request {req_id} ({method}) failed: {exc}")
        return make_error(req_id, INTERNAL_ERROR, f"Internal error: {exc}")
