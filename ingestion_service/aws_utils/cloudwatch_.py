import time
import json
import logging

_metrics_logger = logging.getLogger("ingestion-metrics")
_metrics_logger.setLevel(logging.INFO)
_metrics_logger.propagate = False
if not _metrics_logger.handlers:
    _metrics_logger.addHandler(logging.StreamHandler())

NAMESPACE = "TelemetryIngestion"


def emit_metrics(
    events_received: int = None,
    events_inserted: int = None,
    events_duplicate: int = None,
    events_dropped: int = None,
    request_latency: float = None,
    store_write_latency: float = None,
    auth_failed: bool = False,
    request_rejected: str = None,
    service: str = "ingestion_service",
):
    """
    Emit CloudWatch Embedded Metric Format (EMF) logs for the ingestion service.

    These logs automatically become CloudWatch metrics when shipped from
    Lambda or from a container with the CloudWatch agent.

    Parameters
    ----------
    events_received : int
        Envelopes present in the request payload.
    events_inserted : int
        Envelopes newly written to the event store.
    events_duplicate : int
        Envelopes whose event_id was already stored.
    events_dropped : int
        Envelopes that failed validation.
    request_latency : float
        Full request duration (seconds).
    store_write_latency : float
        Time spent in event store inserts (seconds).
    auth_failed : bool
        Whether auth failed for this request.
    request_rejected : str
        Error code when the whole request was rejected before processing.
    service : str
        Metric dimension name.

    Returns
    -------
    dict
        The EMF document that was logged.
    """

    now = int(time.time() * 1000)
    metric_config = {
        "events_received": {"value": events_received, "Unit": "Count"},
        "events_inserted": {"value": events_inserted, "Unit": "Count"},
        "events_duplicate": {"value": events_duplicate, "Unit": "Count"},
        "events_dropped": {"value": events_dropped, "Unit": "Count"},
        "request_latency_seconds": {"value": request_latency, "Unit": "Seconds"},
        "store_write_latency_seconds": {
            "value": store_write_latency,
            "Unit": "Seconds",
        },
        "auth_failures": {"value": 1 if auth_failed else 0, "Unit": "Count"},
        "requests_rejected": {
            "value": 1 if request_rejected else None,
            "Unit": "Count",
        },
    }
    active_metrics = {
        name: config
        for name, config in metric_config.items()
        if config["value"] is not None
    }

    metric = {
        "_aws": {
            "Timestamp": now,
            "CloudWatchMetrics": [
                {
                    "Namespace": NAMESPACE,
                    "Dimensions": [["Service"]],
                    "Metrics": [
                        {"Name": name, "Unit": config["Unit"]}
                        for name, config in active_metrics.items()
                    ],
                }
            ],
        },
        "Service": service,
        **{name: config["value"] for name, config in active_metrics.items()},
    }
    if request_rejected:
        metric["rejection_code"] = request_rejected

    _metrics_logger.info(json.dumps(metric))
    return metric
