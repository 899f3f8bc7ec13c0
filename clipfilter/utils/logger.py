"""
Centralized Logging and Security Filtering
==========================================

Logging setup for clipfilter. All diagnostic output goes through the standard
``logging`` package; this module makes sure API keys and image payloads never
reach the log file or the console.

Key Features:
-------------
- Sensitive Data Masking: API keys, Bearer tokens and secret-store tokens are
  redacted by regex and by recursive dictionary filtering.
- Blob Suppression: base64 image data (bare or as a data URL) is replaced by
  a length marker so a single image result cannot flood the log.
- API Instrumentation: helpers for logging outgoing requests and responses
  with status and timing.

Dependencies:
-------------
- logging: Standard library for output routing.
- re: Used for pattern-based masking of sensitive strings.

Author: clipfilter Project
"""

import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from clipfilter.core import config

# Sensitive field patterns to mask
SENSITIVE_FIELDS = {
    'password', 'secret', 'token', 'api_key', 'apikey',
    'auth', 'authorization', 'credentials',
}

# Body excerpts longer than this are truncated in DEBUG output
MAX_LOGGED_BODY = 1000

_DATA_URL = re.compile(r'data:image/[A-Za-z0-9.+-]+;base64,[A-Za-z0-9+/=_-]+')
_BASE64_BLOB = re.compile(r'[A-Za-z0-9+/]{256,}={0,2}')

# Regex patterns for sensitive data in strings
SENSITIVE_PATTERNS = [
    (_DATA_URL, lambda m: f"<data-url {len(m.group(0))} chars>"),
    (_BASE64_BLOB, lambda m: f"<base64 {len(m.group(0))} chars>"),
    (re.compile(r'(sk-[A-Za-z0-9_\-]{16,})'), '***'),  # OpenAI / OpenRouter style keys
    (re.compile(r'(Bearer\s+[A-Za-z0-9\-._~+/]+=*)'), 'Bearer ***'),
    (re.compile(re.escape(config.SECRET_TOKEN_PREFIX) + r'[A-Za-z0-9_\-=]+'),
     config.SECRET_TOKEN_PREFIX + '***'),
]


def _mask_string(text: str) -> str:
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SensitiveDataFilter(logging.Filter):
    """
    Filtering hook to intercept and redact sensitive information.

    Attached to both the file and the console handler. Each record's message
    and arguments are scanned for credentials and image blobs, which are
    replaced before the record is emitted.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = _mask_string(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = mask_sensitive_data(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    mask_sensitive_data(arg) if isinstance(arg, (dict, str)) else arg
                    for arg in record.args
                )

        return True


def mask_sensitive_data(data: Any, mask_value: str = "***") -> Any:
    """
    Recursively redact sensitive fields from complex data structures.

    Keys that look like credential labels ('apiKey', 'Authorization', ...)
    are masked, keeping the last four characters of key-like values.
    Strings are scrubbed with SENSITIVE_PATTERNS.

    Args:
        data: The input data structure (dict, list, str, etc.) to be scrubbed.
        mask_value: The string used to replace sensitive content.

    Returns:
        A copy of the input data with sensitive values masked.
    """
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
                if ('key' in key_lower or 'token' in key_lower) and isinstance(value, str) and len(value) > 8:
                    masked[key] = f"{mask_value}{value[-4:]}"
                else:
                    masked[key] = mask_value
            else:
                masked[key] = mask_sensitive_data(value, mask_value)
        return masked

    elif isinstance(data, (list, tuple)):
        masked_list = [mask_sensitive_data(item, mask_value) for item in data]
        return type(data)(masked_list)

    elif isinstance(data, str):
        return _mask_string(data)

    else:
        return data


def excerpt(text: str, limit: int = MAX_LOGGED_BODY) -> str:
    """Masked, truncated view of a request or response body."""
    masked = _mask_string(text or "")
    if len(masked) > limit:
        return masked[:limit] + f"... (truncated, {len(masked)} chars)"
    return masked


def setup_logging(
    log_level: int = logging.DEBUG,
    console_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    log_format: Optional[str] = None
) -> Path:
    """
    Initialize application-wide logging.

    - Root Logger: Set to DEBUG to capture all events.
    - File Handler: DEBUG log in ``<config dir>/logs/clipfilter.log``,
      overwritten on each run.
    - Console Handler: INFO and above to stderr, so stdout stays free for
      filter results.

    Args:
        log_level: Granularity for the persistent log file.
        console_level: Granularity for the terminal output.
        log_dir: Directory for the log file (defaults to the config dir's logs/).
        log_format: Optional custom formatting string.

    Returns:
        Path: The path to the log file.
    """
    log_dir = Path(log_dir) if log_dir is not None else config.CONFIG_DIR / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / config.LOG_FILE_NAME

    if log_format is None:
        log_format = (
            '%(asctime)s - %(name)s - %(levelname)s - '
            '[%(filename)s:%(lineno)d] - %(message)s'
        )
    formatter = logging.Formatter(log_format, datefmt='%Y-%m-%d %H:%M:%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture everything, handlers will filter
    root_logger.handlers.clear()  # Avoid duplicate output on re-initialization

    file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    console_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(console_handler)

    logging.debug("=" * 80)
    logging.debug(f"{config.APP_NAME} started - Log file: {log_file}")
    logging.debug("=" * 80)

    return log_file


def shutdown_logging():
    """
    Flush and close all root handlers.
    Should be called before application exit.
    """
    logging.debug("Shutting down logging system...")
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        handler.flush()
        handler.close()
        root_logger.removeHandler(handler)


def log_config(config_name: str, config_data: Dict[str, Any], logger: Optional[logging.Logger] = None):
    """
    Log configuration settings with automatic sensitive data masking.

    Args:
        config_name: Name of the configuration being logged
        config_data: Dictionary of configuration settings
        logger: Optional logger instance (uses this module's logger if not provided)
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    masked_config = mask_sensitive_data(config_data)

    logger.info(f"Configuration: {config_name}")
    logger.debug(f"{config_name} details: {json.dumps(masked_config, indent=2, default=str)}")


def log_api_request(
    logger: logging.Logger,
    method: str,
    endpoint: str,
    headers: Optional[Dict] = None,
    body: Optional[bytes] = None,
    multipart: bool = False
):
    """
    Log an outgoing API request with masked sensitive data.

    Args:
        logger: Logger instance to use
        method: HTTP method (GET, POST)
        endpoint: Request URL
        headers: Request headers
        body: Encoded request body
        multipart: Body is multipart/form-data (only its size is logged)
    """
    logger.info(f"API Request: {method} {endpoint}")

    if headers:
        logger.debug(f"Request headers: {mask_sensitive_data(dict(headers))}")

    if body:
        if multipart:
            logger.debug(f"Request body: <multipart {len(body)} bytes>")
        else:
            logger.debug(f"Request body: {excerpt(body.decode('utf-8', errors='replace'))}")


def log_api_response(
    logger: logging.Logger,
    status_code: Optional[int],
    response_text: Optional[str] = None,
    elapsed_time: Optional[float] = None
):
    """
    Log an API response with timing information.

    Args:
        logger: Logger instance to use
        status_code: HTTP status code (None when no response arrived)
        response_text: Response body text
        elapsed_time: Request duration in seconds
    """
    timing_info = f" ({elapsed_time:.3f}s)" if elapsed_time else ""
    logger.info(f"API Response: {status_code}{timing_info}")

    if response_text:
        logger.debug(f"Response body: {excerpt(response_text)}")
