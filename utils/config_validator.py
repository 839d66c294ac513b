from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar
import logging

# --- CONFIGURATION MODELS ---

DEFAULT_CRASH_KEYWORDS = [
    "Application crashed",
    "Unhandled exception",
    "Access violation",
    "Fatal error",
]


class LogSourceConfig(BaseModel):
    TYPE: Literal["local", "remote"] = "local"
    LOCAL_PATH: Optional[str] = None
    LOG_FILE_NAME: str = "console.log"
    REMOTE_PATH: Optional[str] = None

    @model_validator(mode="after")
    def check_paths(self):
        if self.TYPE == "local" and not self.LOCAL_PATH:
            raise ValueError("LOCAL_PATH is required when TYPE is 'local'")
        if self.TYPE == "remote" and not self.REMOTE_PATH:
            raise ValueError("REMOTE_PATH is required when TYPE is 'remote'")
        return self


class CrashMonitorConfig(BaseModel):
    ENABLED: bool = False
    PROCESS_NAME: str = "ArmaReforgerServer.exe"
    SERVER_EXE_PATH: Optional[str] = None
    SERVER_ARGS: List[str] = []
    SERVER_WORKING_DIR: str = "."
    CRASH_KEYWORDS: List[str] = DEFAULT_CRASH_KEYWORDS
    ENABLE_AUTO_RESTART: bool = False
    MAX_RESTART_ATTEMPTS: int = Field(default=3, ge=0)
    RESTART_COOLDOWN_MINUTES: float = Field(default=5, ge=0)
    RESTART_DELAY_SECONDS: float = Field(default=10, ge=0)
    STATS_LOG_INTERVAL_SEC: float = Field(default=60, ge=0)
    SERVER_DATA_LOG_FOLDER: str = "server_data_logs"
    SERVER_DATA_LOG_INTERVAL_HOURS: float = Field(default=24, gt=0)

    @field_validator("CRASH_KEYWORDS")
    @classmethod
    def check_keywords(cls, v):
        keywords = [k for k in v if k and k.strip()]
        if not keywords:
            raise ValueError("CRASH_KEYWORDS must contain at least one keyword")
        return keywords

    @model_validator(mode="after")
    def check_exe_path(self):
        if self.ENABLED and self.ENABLE_AUTO_RESTART and not self.SERVER_EXE_PATH:
            raise ValueError("SERVER_EXE_PATH is required when ENABLE_AUTO_RESTART is True")
        return self


class MonitorConfiguration(BaseModel):
    LANGUAGE: str = "en"
    STATUS_BOT_TOKEN: str
    UPDATE_INTERVAL_SECONDS: float = Field(default=30, gt=0)
    SAVE_INTERVAL_SECONDS: float = Field(default=30, gt=0)
    STATUS_REFRESH_SECONDS: Optional[float] = Field(default=None, gt=0)
    SHUTDOWN_FLUSH_TIMEOUT_SECONDS: float = Field(default=5, gt=0)
    DATA_DIR: str = "data"
    VICTORY_DUPLICATE_CHECK_MINUTES: float = Field(default=3, gt=0)
    LOG_WINDOW_LINES: int = Field(default=100, gt=0)
    LOG_SOURCE: LogSourceConfig
    CRASH_MONITOR: Optional[CrashMonitorConfig] = None


ModelT = TypeVar("ModelT", bound=BaseModel)


# --- VALIDATION LOGIC ---


def _config_dict(config_module) -> Dict[str, Any]:
    # Extract dictionary from module, filtering out built-ins
    return {
        k: getattr(config_module, k)
        for k in dir(config_module)
        if not k.startswith("__")
    }


def _log_validation_error(title: str, e: ValidationError):
    logging.critical(f"❌ {title}:")
    for error in e.errors():
        loc = " -> ".join(str(l) for l in error["loc"])
        msg = error["msg"]
        logging.critical(f"   - Field '{loc}': {msg}")


def validate_config(config_module) -> bool:
    """
    Validates the configuration module against the defined Pydantic models.
    Returns True if valid, False otherwise.
    """
    try:
        MonitorConfiguration(**_config_dict(config_module))
        logging.info("✅ Configuration validated successfully.")
        return True

    except ValidationError as e:
        _log_validation_error("Configuration Validation Failed", e)
        return False
    except Exception as e:
        logging.critical(f"❌ Unexpected error during config validation: {e}")
        return False


def load_section(model: Type[ModelT], data: Optional[Dict[str, Any]], name: str) -> Optional[ModelT]:
    """
    Validates one subsystem's settings. A failure is fatal only to that
    subsystem: it is logged and None is returned.
    """
    try:
        return model(**(data or {}))
    except ValidationError as e:
        _log_validation_error(f"{name} configuration is invalid, subsystem disabled", e)
        return None


def load_monitor_settings(config_module) -> Optional[MonitorConfiguration]:
    """
    Validates the core settings. An invalid CRASH_MONITOR section is dropped
    (crash supervision disabled) instead of failing the whole monitor.
    """
    config_dict = _config_dict(config_module)
    crash_raw = config_dict.pop("CRASH_MONITOR", None)

    settings = load_section(MonitorConfiguration, config_dict, "Monitor")
    if settings is None:
        return None

    if crash_raw is not None:
        if isinstance(crash_raw, CrashMonitorConfig):
            settings.CRASH_MONITOR = crash_raw
        else:
            settings.CRASH_MONITOR = load_section(CrashMonitorConfig, crash_raw, "Crash monitor")
    return settings
