"""
Origin and credential predicates.

Both checks are pure: they read an ``AccessContext`` and either return or
raise. The origin check always runs before the credential check.
"""

import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from shared.errors import Forbidden, Unauthorized

LOOPBACK_ADDRESSES = frozenset({"127.0.0.1", "::1"})
API_KEY_HEADER = "x-api-key"


@dataclass(frozen=True)
class AccessContext:
    """Per-request access metadata."""

    remote_address: Optional[str]
    remote_port: Optional[int]
    presented_credential: Optional[str]

    @classmethod
    def from_request(cls, request: Request) -> "AccessContext":
        client = request.client
        return cls(
            remote_address=client.host if client else None,
            remote_port=client.port if client else None,
            presented_credential=request.headers.get(API_KEY_HEADER),
        )


def is_trusted_origin(remote_address: Optional[str], remote_port: Optional[int], trusted_port: int) -> bool:
    """True for loopback callers or callers connecting from the trusted port."""
    if remote_address in LOOPBACK_ADDRESSES:
        return True
    return remote_port is not None and remote_port == trusted_port


def check_origin(context: AccessContext, trusted_port: int) -> None:
    if not is_trusted_origin(context.remote_address, context.remote_port, trusted_port):
        raise Forbidden(
            f"Acceso solo permitido desde 127.0.0.1 o puerto {trusted_port}",
            details={"remote_address": context.remote_address, "remote_port": context.remote_port},
        )


def check_credential(context: AccessContext, expected_key: str) -> None:
    presented = context.presented_credential
    if not presented:
        raise Unauthorized("Falta la clave x-api-key en los headers")
    if not hmac.compare_digest(presented.encode("utf-8"), expected_key.encode("utf-8")):
        raise Forbidden("Clave x-api-key incorrecta")
