from dataclasses import dataclass
import os

DEFAULT_STEAMCMD_DIR = "steamcmd"
DEFAULT_CONCURRENCY = 3
DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_DELAY = 10.0
DEFAULT_VALIDATION_PASSES = 3
DEFAULT_VALIDATION_DELAY = 2.0
DEFAULT_STEAMCMD_TIMEOUT = 0
DEFAULT_HTTP_TIMEOUT = 30
DEFAULT_HTTP_RETRIES = 2
DEFAULT_HTTP_BACKOFF = 2.0
DEFAULT_LOG_LEVEL = "INFO"


def parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def parse_float(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Config:
    steamcmd_dir: str
    steam_root: str
    concurrency: int
    max_retries: int
    retry_delay: float
    validation_passes: int
    validation_delay: float
    steamcmd_timeout: float | None
    http_timeout: int
    http_retries: int
    http_backoff: float
    log_level: str
    log_file: str
    skip_steamcmd_init: bool


def load_config() -> Config:
    steamcmd_dir = os.environ.get("WSDL_STEAMCMD_DIR") or DEFAULT_STEAMCMD_DIR
    steam_root = os.environ.get("WSDL_STEAM_ROOT") or steamcmd_dir

    concurrency = max(1, parse_int(os.environ.get("WSDL_CONCURRENCY"), DEFAULT_CONCURRENCY))
    max_retries = max(1, parse_int(os.environ.get("WSDL_MAX_RETRIES"), DEFAULT_MAX_RETRIES))
    retry_delay = max(
        0.0, parse_float(os.environ.get("WSDL_RETRY_DELAY"), DEFAULT_RETRY_DELAY)
    )
    validation_passes = max(
        1,
        parse_int(os.environ.get("WSDL_VALIDATION_PASSES"), DEFAULT_VALIDATION_PASSES),
    )
    validation_delay = max(
        0.0,
        parse_float(os.environ.get("WSDL_VALIDATION_DELAY"), DEFAULT_VALIDATION_DELAY),
    )
    # 0 means wait for steamcmd as long as it takes
    steamcmd_timeout = parse_float(
        os.environ.get("WSDL_STEAMCMD_TIMEOUT"), DEFAULT_STEAMCMD_TIMEOUT
    )

    http_timeout = max(
        1, parse_int(os.environ.get("WSDL_HTTP_TIMEOUT"), DEFAULT_HTTP_TIMEOUT)
    )
    http_retries = max(
        0, parse_int(os.environ.get("WSDL_HTTP_RETRIES"), DEFAULT_HTTP_RETRIES)
    )
    http_backoff = max(
        0.0, parse_float(os.environ.get("WSDL_HTTP_BACKOFF"), DEFAULT_HTTP_BACKOFF)
    )

    log_level = os.environ.get("WSDL_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    log_file = os.environ.get("WSDL_LOG_FILE", "")
    skip_steamcmd_init = parse_bool(os.environ.get("WSDL_SKIP_STEAMCMD_INIT"), False)

    return Config(
        steamcmd_dir=steamcmd_dir,
        steam_root=steam_root,
        concurrency=concurrency,
        max_retries=max_retries,
        retry_delay=retry_delay,
        validation_passes=validation_passes,
        validation_delay=validation_delay,
        steamcmd_timeout=steamcmd_timeout if steamcmd_timeout > 0 else None,
        http_timeout=http_timeout,
        http_retries=http_retries,
        http_backoff=http_backoff,
        log_level=log_level,
        log_file=log_file,
        skip_steamcmd_init=skip_steamcmd_init,
    )
