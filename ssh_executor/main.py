import sys
import io
import json
import argparse
from typing import Any, Dict, Iterable, TextIO

from ssh_executor.config import config, MAX_COMMAND_TIMEOUT
from ssh_executor.server import handle_request
from ssh_executor.ssh import SessionManager
from ssh_executor.utils import log_error, clamp_float, parse_port


def _write_response(stream: TextIO, response: Dict[str, Any]) -> None:
    """Write one JSON-RPC response line and flush it immediately."""
    try:
        stream.write(json.dumps(response, ensure_ascii=False, separators=(",", ":")) + "\n")
        stream.flush()
    except UnicodeEncodeError as exc:
        log_error(f"response write error: {exc}")
        # Fallback: escape all non-ASCII to guarantee safe output
        stream.write(json.dumps(response, ensure_ascii=True, separators=(",", ":")) + "\n")
        stream.flush()


def serve(lines: Iterable[str], out: TextIO, manager: SessionManager, cfg=config) -> None:
    """Answer requests until ``lines`` is exhausted, then drop the session."""
    try:
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                request = json.loads(line)
            except json.JSONDecodeError as exc:
                log_error(f"invalid json: {exc}")
                continue
            response = handle_request(request, manager, cfg)
            if response is not None:
                _write_response(out, response)
    finally:
        manager.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SSH executor MCP server (connect, execute, disconnect over JSON-RPC on stdio)"
    )
    parser.add_argument("--host", help="SSH host (overrides SSH_HOST env)")
    parser.add_argument("--user", help="SSH username (overrides SSH_USER env)")
    parser.add_argument("--password", help="SSH password (overrides SSH_PASSWORD env)")
    parser.add_argument("--key", help="Path to SSH private key (overrides SSH_PRIVATE_KEY_PATH env)")
    parser.add_argument("--passphrase", help="Passphrase for SSH private key (overrides SSH_KEY_PASSPHRASE env)")
    parser.add_argument("--port", type=int, help="SSH port (overrides SSH_PORT env)")
    parser.add_argument(
        "--command-timeout", type=float,
        help="Seconds before a remote command is abandoned, 0 disables (overrides SSH_COMMAND_TIMEOUT env)",
    )
    parser.add_argument("--verify-host", action="store_true", help="Reject unknown SSH host keys")
    parser.add_argument("--no-verify-host", action="store_true", help="Accept unknown SSH host keys (default)")
    return parser


def apply_args(cfg, args: argparse.Namespace) -> None:
    if args.host: cfg.SSH_HOST = args.host
    if args.user: cfg.SSH_USER = args.user
    if args.password: cfg.SSH_PASSWORD = args.password
    if args.key: cfg.SSH_PRIVATE_KEY_PATH = args.key
    if args.passphrase: cfg.SSH_KEY_PASSPHRASE = args.passphrase
    if args.port is not None: cfg.SSH_PORT = parse_port(args.port, cfg.SSH_PORT)
    if args.command_timeout is not None:
        cfg.SSH_COMMAND_TIMEOUT = clamp_float(args.command_timeout, 0.0, 0.0, MAX_COMMAND_TIMEOUT)

    if args.no_verify_host:
        cfg.SSH_VERIFY_HOST_KEY = False
    elif args.verify_host:
        cfg.SSH_VERIFY_HOST_KEY = True


def main(argv=None) -> None:
    config.load_from_env()
    apply_args(config, build_parser().parse_args(argv))

    if not config.SSH_HOST or not config.SSH_USER:
        log_error("SSH_HOST and SSH_USER are not both set; connect_ssh will fail until they are")
    elif not config.SSH_PASSWORD and not config.SSH_PRIVATE_KEY_PATH:
        log_error("neither SSH_PASSWORD nor SSH_PRIVATE_KEY_PATH is set")

    # Force UTF-8 I/O regardless of the platform default encoding
    stdin = io.TextIOWrapper(sys.stdin.buffer, encoding="utf-8", errors="replace")
    stdout = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", line_buffering=True)

    manager = SessionManager(command_timeout=config.SSH_COMMAND_TIMEOUT)
    log_error(
        f"SSH executor started for {config.SSH_HOST}:{config.SSH_PORT} "
        f"verify_host={config.SSH_VERIFY_HOST_KEY} command_timeout={config.SSH_COMMAND_TIMEOUT:g}"
    )
    serve(stdin, stdout, manager, config)
    log_error("shutting down...")


if __name__ == "__main__":
    main()
