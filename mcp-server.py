#!/usr/bin/env python3
"""
SSH executor MCP server.

Exposes connect_ssh / execute_command / disconnect_ssh as MCP tools over
line-delimited JSON-RPC on stdin/stdout. Connection settings come from
SSH_HOST, SSH_USER, SSH_PASSWORD, SSH_PRIVATE_KEY_PATH and SSH_PORT.
"""

from ssh_executor.main import main

if __name__ == "__main__":
    main()
