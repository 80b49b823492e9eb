import os
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    bind_host: str = os.getenv("BIND_HOST", "127.0.0.1")
    bind_port: int = int(os.getenv("BIND_PORT", "5000"))
    auth_token: str | None = os.getenv("AUTH_TOKEN")

    ddcutil_command: str = os.getenv("DDCUTIL_COMMAND", "ddcutil")
    default_brightness: int = int(os.getenv("DEFAULT_BRIGHTNESS", "50"))
    detect_wait_s: float = float(os.getenv("DETECT_WAIT_S", "15"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


CONFIG = AppConfig()
