import base64
import json
import time
import logging

from . import aws_utils
from .auth import check_authorization
from .dependencies import get_settings, get_store
from .exceptions import IngestionError, UnauthorizedError
from .processor import BatchProcessor, parse_request

aws_utils.configure_logging()

logger = logging.getLogger(__name__)


def _response(status_code, body):
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def _raw_body(event) -> bytes:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body)
    return body.encode("utf-8")


def lambda_handler(event, context):
    start = time.time()
    headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
    http = (event.get("requestContext") or {}).get("http") or {}

    try:
        settings = get_settings()
        check_authorization(headers.get("authorization"), settings)

        events = parse_request(_raw_body(event))
        processor = BatchProcessor(get_store(), ip_hash_salt=settings.ip_hash_salt)
        result = processor.process(
            events,
            client_ip=http.get("sourceIp"),
            user_agent=headers.get("user-agent") or http.get("userAgent"),
        )

    except IngestionError as e:
        aws_utils.emit_metrics(
            request_latency=time.time() - start,
            auth_failed=isinstance(e, UnauthorizedError),
            request_rejected=e.code,
            service="ingestion_lambda",
        )
        logger.warning(f"Request rejected: {e.code}: {e.message}")
        return _response(e.status_code, e.to_body())

    aws_utils.emit_metrics(
        events_received=result.received,
        events_inserted=result.inserted,
        events_duplicate=result.duplicates,
        events_dropped=result.dropped,
        request_latency=time.time() - start,
        store_write_latency=result.store_write_latency,
        service="ingestion_lambda",
    )
    return _response(200, result.to_body())
