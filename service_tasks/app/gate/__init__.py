"""
Access gate for the tasks service: network-origin and API-key checks.
"""

from .access import AccessContext, check_credential, check_origin, is_trusted_origin

__all__ = [
    "AccessContext",
    "check_credential",
    "check_origin",
    "is_trusted_origin",
]
