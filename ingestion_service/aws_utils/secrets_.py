import time
import logging

import boto3

logger = logging.getLogger(__name__)

# rotated keys are picked up within this window
CACHE_SECONDS = 300

_cache = {}
_client = None


def _secretsmanager():
    global _client
    if _client is None:
        _client = boto3.client("secretsmanager")
    return _client


def get_api_key(secret_arn: str) -> str:
    cached = _cache.get(secret_arn)
    if cached and time.monotonic() - cached[1] < CACHE_SECONDS:
        return cached[0]

    resp = _secretsmanager().get_secret_value(SecretId=secret_arn)
    value = resp["SecretString"]
    _cache[secret_arn] = (value, time.monotonic())
    logger.info("Refreshed ingestion API key from Secrets Manager")
    return value


def clear_cache():
    _cache.clear()
