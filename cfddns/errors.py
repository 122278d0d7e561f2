"""
Exception hierarchy for cfddns.

    DdnsError
    ├─ ResolutionError   - public IP lookup failed
    ├─ ProviderError     - DNS provider write failed
    │  └─ CloudflareAPIError (cfddns.cloudflare_client)
    ├─ StateError        - state store read/write failed
    ├─ ValidationError   - malformed identity or record config
    │  └─ ConfigError    - settings or record file could not be loaded
    └─ NotFoundError     - force update matched no running loop
"""

from __future__ import annotations


class DdnsError(Exception):
    pass


class ResolutionError(DdnsError):
    pass


class ProviderError(DdnsError):
    pass


class StateError(DdnsError):
    pass


class ValidationError(DdnsError):
    pass


class ConfigError(ValidationError):
    pass


class NotFoundError(DdnsError):
    pass
