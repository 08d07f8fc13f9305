"""Core token, expiration and principal models."""

from analytics_gatekeeper.core.expiration import ExpirationParseError
from analytics_gatekeeper.core.principal import Capability, IssuedCredential, Principal

__all__ = [
    "Capability",
    "Principal",
    "IssuedCredential",
    "ExpirationParseError",
]
