import hashlib
import hmac
import json
from typing import Any, Dict, Optional


def canonical_payload(payload: Dict[str, Any]) -> str:
    body = {key: value for key, value in (payload or {}).items() if key != "signature"}
    return json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)


def webhook_envelope(event_type: str, external_id: str, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """The signed part of a webhook delivery: what happened, to which payment, and the provider body."""
    return {
        "event_type": event_type,
        "external_id": external_id,
        "payload": payload or {},
    }


def sign_payload(payload: Dict[str, Any], secret: str) -> str:
    return hmac.new(
        secret.encode(),
        canonical_payload(payload).encode(),
        hashlib.sha256
    ).hexdigest()


def verify_signature(payload: Dict[str, Any], signature: Optional[str], secret: str) -> bool:
    # No secret configured means sandbox mode
    if not secret:
        return True
    if not signature:
        return False
    return hmac.compare_digest(signature, sign_payload(payload, secret))
