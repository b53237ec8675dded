import hashlib
import hmac
import json


def canonical_json_bytes(payload) -> bytes:
    return json.dumps(
        payload,
        separators=(",", ":"),
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")


def hmac_sha512_hex(secret: str, body_bytes: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body_bytes, hashlib.sha512).hexdigest()


def paystack_signature_header(secret: str, body_bytes: bytes) -> dict[str, str]:
    return {"x-paystack-signature": hmac_sha512_hex(secret, body_bytes)}
