"""Checksums for the salt-keyed gateway protocol.

X-VERIFY = sha256(base64_payload + endpoint_path + salt_key) + "###" + salt_index
"""

from __future__ import annotations

import hashlib
import hmac

HEADER_DELIMITER = "###"


def sha256_hex(data: str | bytes) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def sign(base64_payload: str, endpoint_path: str, secret: str) -> str:
    return sha256_hex(base64_payload + endpoint_path + secret)


def build_header(signature_hex: str, key_index: str | int) -> str:
    return f"{signature_hex}{HEADER_DELIMITER}{key_index}"


def x_verify(base64_payload: str, endpoint_path: str, secret: str, key_index: str | int) -> str:
    return build_header(sign(base64_payload, endpoint_path, secret), key_index)


def verify_header(
    header: str,
    base64_payload: str,
    endpoint_path: str,
    secret: str,
    key_index: str | int,
) -> bool:
    expected = x_verify(base64_payload, endpoint_path, secret, key_index)
    return hmac.compare_digest(header.strip().encode("utf-8"), expected.encode("utf-8"))
