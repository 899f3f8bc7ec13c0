"""
Application Configuration and Constants
=======================================

This module contains all global configuration values, constants, and defaults
used throughout the clipfilter engine. It serves as a single source of truth
for:

- File locations (per-user config directory, bundled API definitions)
- Placeholder tokens recognised inside request templates
- Endpoint and request defaults
- The instructional system prompt sent with every filter run
- Model preference patterns used by first-run setup
- The order in which image results are searched for in a response

Note:
    All constants use UPPER_SNAKE_CASE naming convention. Modify these values to
    change application-wide behavior without touching business logic.

Author: clipfilter Project
"""

from pathlib import Path

# ============================================================================
# APPLICATION SETTINGS
# ============================================================================

APP_NAME = "clipfilter"

# ============================================================================
# FILE LOCATIONS
# ============================================================================
# User state lives in a hidden directory in the home folder; definitions and
# defaults ship inside the package.

PACKAGE_DIR = Path(__file__).resolve().parent.parent
CONFIG_DIR = Path.home() / ".clipfilter"
CONFIG_FILE_NAME = "config.json"
SECRET_KEY_FILE_NAME = "secret.key"
LOG_FILE_NAME = "clipfilter.log"

APIDEF_DIR = PACKAGE_DIR / "apidef"
DEFAULT_CONFIG_PATH = PACKAGE_DIR / "resources" / "defconf.json"
LANG_FILE_PATH = PACKAGE_DIR / "resources" / "lang.ini"

# ============================================================================
# PROVIDER DEFINITION FILES
# ============================================================================
# Top-level keys in an apidef/<provider>.json document that are not templates.

MODELS_KEY = "models"
DEFAULT_ENDPOINT_KEY = "default-endpoint"

# ============================================================================
# PLACEHOLDER TOKENS
# ============================================================================
# Tokens that may appear in endpoint, header and payload templates.

TOKEN_MODEL = "<<model>>"
TOKEN_SYSTEM_PROMPT = "<<system_prompt>>"
TOKEN_PROMPT = "<<prompt>>"
TOKEN_INPUT_TEXT = "<<input_text>>"  # Alias of <<prompt>>
TOKEN_API_KEY = "<<api_key>>"
TOKEN_IMAGE_URL = "<<image_url>>"    # data:image/png;base64,...
TOKEN_IMAGE = "<<image>>"            # bare base64

# ============================================================================
# REQUEST DEFAULTS
# ============================================================================

DEFAULT_ENDPOINT_PATH = "/v1/chat/completions"
DEFAULT_TEMPLATE_ENDPOINT = "/"
DEFAULT_MODELS_METHOD = "GET"
DEFAULT_MODELS_RESULT_PATH = "data"

MULTIPART_CONTENT_TYPE = "multipart/form-data"
MULTIPART_BOUNDARY_PREFIX = "----clipfilterboundary"
MULTIPART_IMAGE_FILENAME = "image.png"
MULTIPART_IMAGE_MIME = "image/png"

PNG_DATA_URL_PREFIX = "data:image/png;base64,"

# The engine itself enforces no timeout; this only bounds the default
# requests-based transport. Image generation can take well over a minute.
NETWORK_TIMEOUT_SECONDS = 180

USER_AGENT = "clipfilter/1.0"

# ============================================================================
# SYSTEM PROMPT
# ============================================================================

SYSTEM_PROMPT_TEMPLATE = (
    "Follow the instructions strictly and convert the input {input} to the "
    "output {output}. No additional text or comments are allowed."
)

# User prompt is the filter prompt, a blank line, then the clipboard text.
PROMPT_SEPARATOR = "\n\n"

# ============================================================================
# MODEL DISCOVERY PREFERENCES
# ============================================================================
# Tried in order; the first pattern matching any listed model wins. Cheaper
# and faster tiers come first.

LLM_MODEL_PATTERNS = [
    "gpt-.*-nano",
    "gemini-.*-flash-lite",
    "gpt-.*-mini",
    "gemini-.*-flash",
    "gpt-.*",
    "claude-.*-haiku",
    "gemini-.*-pro",
    "claude-.*-sonnet",
]

IMAGE_MODEL_PATTERNS = [
    "gpt.*image.*mini",
    "gemini.*image",
    "gpt.*image",
]

# Display names of the four models created by first-run setup, keyed by
# (input, output) kind.
SETUP_MODEL_NAMES = {
    ("text", "text"): "Text/Text",
    ("text", "image"): "Text/Image",
    ("image", "text"): "Image/Text",
    ("image", "image"): "Image/Image",
}

# ============================================================================
# RESPONSE EXTRACTION POLICY
# ============================================================================
# Heuristic strategies for image results, tried in order after the template's
# structured result path. Names map to functions in core.extraction.

IMAGE_EXTRACTION_ORDER = (
    "b64_json",
    "content",
    "chat_image_url",
)

# ============================================================================
# SECRETS
# ============================================================================

SECRET_TOKEN_PREFIX = "fernet:"

# ============================================================================
# DEFAULT USER CONFIGURATION
# ============================================================================
# Used when neither config.json nor the bundled defconf.json can be read.

DEFAULT_LANGUAGE = "en"
DEFAULT_HOTKEY_MODIFIERS = 0x0008 | 0x0001  # MOD_WIN | MOD_ALT
DEFAULT_HOTKEY_KEY = ord("V")
DEFAULT_MODEL = {
    "name": "Translate",
    "serverUrl": "https://api.openai.com/v1",
    "modelName": "gpt-5.1",
    "providerId": "OpenAI",
    "apiKey": "",
}
DEFAULT_FILTER = {
    "title": "Translate",
    "input": "text",
    "output": "text",
    "modelIndex": 0,
    "prompt": "Translate into English.",
}
