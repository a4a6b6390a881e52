import hashlib
import hmac
from datetime import datetime
from typing import Optional

from telemetry_schema import Envelope, Platform, format_ts

BOT_MARKERS = ("bot", "crawler", "spider", "curl/", "wget/", "headless")


def hash_client_ip(client_ip: Optional[str], salt: str) -> Optional[str]:
    if not client_ip:
        return None
    return hmac.new(salt.encode("utf-8"), client_ip.encode("utf-8"), hashlib.sha256).hexdigest()


def summarize_client(user_agent: Optional[str], platform: str) -> str:
    """Reduce a User-Agent to a coarse, non-identifying client category."""
    ua = (user_agent or "").lower()

    if any(marker in ua for marker in BOT_MARKERS):
        return "bot"
    if "mozilla/" in ua:
        return "browser"
    if platform == Platform.IOS.value:
        return "ios-app"
    if platform == Platform.ANDROID.value:
        return "android-app"
    if platform == Platform.WEB.value:
        return "browser"
    return "other"


def enrich_envelope(
    envelope: Envelope,
    received_at: datetime,
    client_ip: Optional[str],
    user_agent: Optional[str],
    ip_hash_salt: str,
) -> Envelope:
    return envelope.model_copy(
        update={
            "server_ts": format_ts(received_at),
            "client_ip_hash": hash_client_ip(client_ip, ip_hash_salt),
            "client_type": summarize_client(user_agent, envelope.platform),
        }
    )
