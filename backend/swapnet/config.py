import os

# Models
DEFAULT_IMAGE_MODEL = os.getenv("SWAPNET_IMAGE_MODEL", "gemini-3-pro-image-preview")
DEFAULT_TEXT_MODEL = os.getenv("SWAPNET_TEXT_MODEL", "gemini-3-pro-preview")

# Generation defaults used by the studio tabs
DEFAULT_ASPECT_RATIO = os.getenv("SWAPNET_ASPECT_RATIO", "9:16")
DEFAULT_RESOLUTION = os.getenv("SWAPNET_RESOLUTION", "4K")
SUPPORTED_RESOLUTIONS = ("1K", "2K", "4K")

# Retry / transport
MAX_ATTEMPTS = int(os.getenv("SWAPNET_MAX_ATTEMPTS", 3))
RETRY_BASE_DELAY_S = float(os.getenv("SWAPNET_RETRY_BASE_DELAY_S", 2.0))
HTTP_TIMEOUT_S = float(os.getenv("SWAPNET_HTTP_TIMEOUT_S", 300.0))  # image generation is slow

# Persistence
DATA_DIR = os.getenv("SWAPNET_DATA_DIR", "data")
MANUAL_API_KEY_STORAGE_KEY = "manual_api_key"
SAVED_MODELS_STORAGE_KEY = "swapnet_saved_models"

# Host-provided default credential, first non-empty wins
CREDENTIAL_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY")
