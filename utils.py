# utils.py

import base64
import binascii
import hmac
import hashlib
import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

_DIGESTS = {
    "sha256": hashlib.sha256,
    "sha1": hashlib.sha1,
}


class SignatureCheck(str, Enum):
    VALID = "valid"
    INVALID = "invalid"


def _decode_signature(signature: str):
    """
    Split a signature header into (digest name, raw digest bytes).
    Returns (None, None) when the header cannot be decoded.
    """
    sha_name = "sha256"
    value = signature.strip()
    if "=" in value and value.split("=", 1)[0].lower() in _DIGESTS:
        sha_name, value = value.split("=", 1)
        sha_name = sha_name.lower()

    expected_len = _DIGESTS[sha_name]().digest_size
    if len(value) == expected_len * 2:
        try:
            return sha_name, bytes.fromhex(value)
        except ValueError:
            pass
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return None, None
    if len(raw) != expected_len:
        return None, None
    return sha_name, raw


def verify_signature(request_body: bytes, secret: str, signature: Optional[str]) -> SignatureCheck:
    """
    Check an HMAC signature header against the request body.

    Accepts `sha256=<hex>`, `sha1=<hex>`, a bare hex sha256 digest or a base64 sha256 digest.
    Malformed or missing headers are INVALID; this never raises.
    """
    if not secret:
        logger.warning("No webhook secret configured; refusing to validate signature.")
        return SignatureCheck.INVALID

    if not signature:
        logger.warning("No signature provided.")
        return SignatureCheck.INVALID

    sha_name, provided = _decode_signature(signature)
    if provided is None:
        logger.warning("Invalid signature format.")
        return SignatureCheck.INVALID

    mac = hmac.new(secret.encode(), msg=request_body, digestmod=_DIGESTS[sha_name])
    # Constant-time comparison; never replace with ==.
    if hmac.compare_digest(mac.digest(), provided):
        logger.debug("Webhook signature verified successfully.")
        return SignatureCheck.VALID
    logger.warning("Webhook signature verification failed.")
    return SignatureCheck.INVALID
