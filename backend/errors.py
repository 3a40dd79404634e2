# Version History
# v1.0 - Error taxonomy for the push dispatch engine.

from __future__ import annotations


class PushError(Exception):
    pass


class MalformedInput(PushError, ValueError):
    pass


class MalformedKeyMaterial(PushError):
    pass


class SigningError(PushError):
    pass


class TransportFailure(PushError):
    pass


class RepositoryUnavailable(PushError):
    pass
