"""
Shared module for code used by both the REST API and the WS gateway.

- shared.config: settings (pydantic-settings), structured logging, constants
- shared.infrastructure: SQLAlchemy sessions, correlation ids, Redis events
- shared.security: staff JWT verification, role/outlet checks, rate limiting
- shared.utils: HTTP exceptions with auto-logging, API schemas

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.constants import OrderStatus, PaymentStatus
    from shared.infrastructure.db import get_db, safe_commit
    from shared.security.auth import current_user_context, require_roles
    from shared.utils.exceptions import NotFoundError, ConflictError
"""
