"""
Shared module for common utilities across the REST API, the realtime gateway
and the sync client.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging and security audit trail

- shared.security: Authentication
  - auth.py: JWT signing/verification and the token verifier

- shared.infrastructure: Request plumbing
  - correlation.py: X-Request-ID middleware and logging filter

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging

IMPORT EXAMPLES:
    from shared.security.auth import JWTTokenVerifier, get_bearer_token
    from shared.config.settings import settings
    from shared.utils.exceptions import NotFoundError, DuplicateEntityError
"""
