"""Configuration defaults for the CampusElectronics marketplace core."""

ENRICHMENT_MODEL = "gemini-3-flash-preview"
ENRICHMENT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
ENRICHMENT_TIMEOUT = 30.0
ENRICHMENT_MAX_ATTEMPTS = 1
API_KEY_ENV_VARS = ("GEMINI_API_KEY", "API_KEY")
MAX_IMAGE_BYTES = 10 * 1024 * 1024
JPEG_QUALITY = 85
CAMERA_FACING_MODE = "environment"
HEADLESS = True
THEME_FILE = "theme.json"
THEME_KEY = "theme"
LOG_DIR = "log"
