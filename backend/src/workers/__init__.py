"""Background workers for duplicate order detection.

All background tasks MUST:
1. Accept shop_domain as explicit parameter
2. Validate shop_domain before processing
3. Run inside one database unit of work (get_db_session)
4. Filter all queries by shop_domain
"""

from .base import (
    build_lock,
    build_service,
    validate_shop_domain,
)

__all__ = [
    "build_lock",
    "build_service",
    "validate_shop_domain",
]
