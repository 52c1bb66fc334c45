DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_CALLBACK_PATH = "/"
DEFAULT_LOGIN_TIMEOUT = 120.0  # seconds the caller waits for the provider redirect

TARGET_ORIGIN_ANY = "*"  # postMessage wildcard; pin to the opener origin in production
CORS_ALLOW_ORIGIN_ANY = "*"
AUTH_MESSAGE_TYPE = "auth"

PARAM_CODE = "code"
PARAM_ERROR = "error"
PARAM_ERROR_DESCRIPTION = "error_description"

SERVE_POLL_INTERVAL = 0.25  # serve_forever() shutdown poll
CORS_MAX_AGE = 600

NO_CODE_TEXT = "No auth code received"
