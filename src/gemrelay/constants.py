"""Version, user-agent and user-facing message constants."""

import os
from importlib.metadata import PackageNotFoundError, version

try:
    VERSION = version("gemrelay")
except PackageNotFoundError:
    VERSION = "0.0.0"

# Log filtering downstream keys off the "gemrelay/" prefix
USER_AGENT = f"gemrelay/{VERSION} ({os.environ.get('USER_TYPE')})"

API_ERROR_MESSAGE_PREFIX = "API Error"
INVALID_API_KEY_ERROR_MESSAGE = "Invalid API key · Please check your GOOGLE_API_KEY"
NO_CONTENT_MESSAGE = "(no content)"

# Model name stamped on assistant messages that never came from the provider
SYNTHETIC_MODEL = "<synthetic>"

API_KEY_ENV_VAR = "GOOGLE_API_KEY"
