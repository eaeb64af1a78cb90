"""
Palaver Integrations Layer.

HTTP clients of the external services a bot platform depends on:

    integrations/
    ├── base.py           # ServiceClient, RetryPolicy, ServiceError hierarchy
    ├── nlp/              # NLP service (applications, intents, parsing)
    ├── compiler/         # Script answer compiler
    └── rest/             # Bot REST connector (admin "talk")
"""

from palaver.integrations.base import (
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    RetryPolicy,
    ServiceClient,
    ServiceConfig,
    ServiceError,
    TransientServiceError,
    ValidationError,
)

__all__ = [
    "AuthenticationError",
    "NotFoundError",
    "RateLimitError",
    "RetryPolicy",
    "ServiceClient",
    "ServiceConfig",
    "ServiceError",
    "TransientServiceError",
    "ValidationError",
]
