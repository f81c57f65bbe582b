from google.oauth2 import credentials as user_credentials
from google.oauth2 import service_account

from ..core.config import Settings, settings
from .errors import InvoicerError

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.readonly",
]
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


def get_google_credentials(cfg: Settings = settings):
    """
    Build Google API credentials from settings.

    Precedence: service account key file, inline service account
    (GOOGLE_CLIENT_EMAIL + GOOGLE_PRIVATE_KEY), then an OAuth refresh token
    for a user who granted access to their own Drive and Sheets.
    """
    if cfg.google_service_account_file:
        return service_account.Credentials.from_service_account_file(
            cfg.google_service_account_file, scopes=SCOPES
        )

    if cfg.google_client_email and cfg.google_private_key:
        # .env files usually carry the PEM with escaped newlines
        private_key = cfg.google_private_key.replace("\\n", "\n")
        info = {
            "type": "service_account",
            "client_email": cfg.google_client_email,
            "private_key": private_key,
            "token_uri": GOOGLE_TOKEN_URL,
        }
        return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)

    if cfg.google_refresh_token and cfg.google_client_id and cfg.google_client_secret:
        return user_credentials.Credentials(
            token=None,
            refresh_token=cfg.google_refresh_token,
            token_uri=GOOGLE_TOKEN_URL,
            client_id=cfg.google_client_id,
            client_secret=cfg.google_client_secret,
            scopes=SCOPES,
        )

    raise InvoicerError(
        "Google credentials missing: set GOOGLE_SERVICE_ACCOUNT_FILE, "
        "GOOGLE_CLIENT_EMAIL + GOOGLE_PRIVATE_KEY, or GOOGLE_REFRESH_TOKEN with client id/secret"
    )
