import hmac
import logging
from typing import Optional

from fastapi import Depends, Request

from . import aws_utils
from .config import Settings
from .dependencies import get_settings
from .exceptions import UnauthorizedError

logger = logging.getLogger(__name__)


def expected_api_key(settings: Settings) -> Optional[str]:
    if settings.api_key:
        return settings.api_key
    if settings.api_key_secret_arn:
        return aws_utils.get_api_key(settings.api_key_secret_arn)
    return None


def check_authorization(authorization: Optional[str], settings: Settings):
    if not settings.auth_enabled:
        return

    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("missing bearer token")

    incoming_token = authorization.replace("Bearer ", "", 1).strip()
    expected_token = expected_api_key(settings)

    if not expected_token or not hmac.compare_digest(incoming_token, expected_token):
        logger.warning("Rejected request with invalid API key")
        raise UnauthorizedError("invalid API key")


def is_authorized(request: Request, settings: Settings = Depends(get_settings)):
    check_authorization(request.headers.get("authorization"), settings)
