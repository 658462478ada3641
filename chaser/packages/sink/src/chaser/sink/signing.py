"""HMAC 签名 -- 出站 payload 签名与入站回调校验

签名头格式: X-Chaser-Signature: sha256=<hex(hmac_sha256(secret, body))>
"""

import hashlib
import hmac

SIGNATURE_HEADER = "X-Chaser-Signature"
_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    """计算签名头的值"""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, header_value: str | None) -> bool:
    """常量时间比较签名"""
    if not header_value or not header_value.startswith(_PREFIX):
        return False
    return hmac.compare_digest(compute_signature(secret, body), header_value)


def verify_bearer(secret: str, authorization: str | None) -> bool:
    """校验 Authorization: Bearer <secret>"""
    if not authorization:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return hmac.compare_digest(token.strip(), secret)
