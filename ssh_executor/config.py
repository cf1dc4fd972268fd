import os
from typing import Optional

from ssh_executor.utils import to_bool, clamp_float, parse_port

# ========= Static config =========
CONNECT_TIMEOUT = 10
DEFAULT_PORT = 22
DEFAULT_COMMAND_TIMEOUT = 0.0  # 0 means disabled
MAX_COMMAND_TIMEOUT = 3600.0

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "ssh-executor"
SERVER_VERSION = "1.0.0"

# ========= Runtime Configuration =========
class ServerConfig:
    def __init__(self):
        self.SSH_HOST: Optional[str] = None
        self.SSH_USER: Optional[str] = None
        self.SSH_PASSWORD: Optional[str] = None
        self.SSH_PORT: int = DEFAULT_PORT
        self.SSH_PRIVATE_KEY_PATH: Optional[str] = None
        self.SSH_KEY_PASSPHRASE: Optional[str] = None
        self.SSH_VERIFY_HOST_KEY: bool = False
        self.SSH_COMMAND_TIMEOUT: float = DEFAULT_COMMAND_TIMEOUT

    def load_from_env(self, environ=None):
        env = os.environ if environ is None else environ
        self.SSH_HOST = env.get("SSH_HOST") or self.SSH_HOST
        self.SSH_USER = env.get("SSH_USER") or self.SSH_USER
        self.SSH_PASSWORD = env.get("SSH_PASSWORD") or self.SSH_PASSWORD
        self.SSH_PRIVATE_KEY_PATH = env.get("SSH_PRIVATE_KEY_PATH") or self.SSH_PRIVATE_KEY_PATH
        self.SSH_KEY_PASSPHRASE = env.get("SSH_KEY_PASSPHRASE") or self.SSH_KEY_PASSPHRASE

        port = env.get("SSH_PORT")
        if port:
            self.SSH_PORT = parse_port(port, self.SSH_PORT)

        timeout = env.get("SSH_COMMAND_TIMEOUT")
        if timeout:
            self.SSH_COMMAND_TIMEOUT = clamp_float(
                timeout, self.SSH_COMMAND_TIMEOUT, 0.0, MAX_COMMAND_TIMEOUT
            )

        self.SSH_VERIFY_HOST_KEY = to_bool(env.get("SSH_VERIFY_HOST_KEY"), self.SSH_VERIFY_HOST_KEY)
        return self

# Global instance
config = ServerConfig()
