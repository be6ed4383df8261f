from dataclasses import dataclass
from enum import Enum
from typing import Optional
import structlog

log = structlog.get_logger(__name__)

class LogLevel(Enum):
    # log levels accepted from config files and the environment.
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @classmethod
    def from_string(cls, s: Optional[str]) -> Optional["LogLevel"]:
        if not s:
            return None
        try:
            return cls(s.lower())
        except ValueError:
            log.warning("invalid_log_level_string", input_string=s)
            return None

DEFAULT_LOG_LEVEL = LogLevel.WARNING

@dataclass
class RenderSettings:
    # holds the settings for rendering release notes.
    # allow_unsafe_code runs predicates, eval expressions and custom helpers as
    # unrestricted Python. Only enable it for trusted templates.
    allow_unsafe_code: bool = False
    empty_set_text: str = ""
    log_level: str = DEFAULT_LOG_LEVEL.value
    json_logs: bool = False
