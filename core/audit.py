import logging
from typing import Any

from django.contrib.auth.models import AbstractBaseUser

from core.models import ActivityLog, Bakery

logger = logging.getLogger(__name__)


def log_event(
    user: AbstractBaseUser | None,
    action: str,
    entity_type: str,
    entity_id: str | int,
    *,
    bakery: Bakery | None = None,
    entity_name: str = "",
    description: str = "",
    metadata: dict[str, Any] | None = None,
) -> ActivityLog:
    entry = ActivityLog.objects.create(
        user=user if getattr(user, "is_authenticated", False) else None,
        bakery=bakery,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        entity_name=(entity_name or "")[:255],
        description=description or "",
        metadata=metadata or {},
    )
    logger.info(
        "%s %s %s (bakery %s)",
        action,
        entity_type,
        entity_id,
        bakery.id if bakery is not None else "-",
    )
    return entry
