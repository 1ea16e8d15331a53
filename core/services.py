from __future__ import annotations

import logging

from django.contrib.auth.models import AbstractBaseUser
from django.db import DatabaseError, transaction
from django.db.models import ProtectedError

from core import errors
from core.access import can_edit_bakery, can_manage_bakeries, is_platform_admin
from core.audit import log_event
from core.models import ActivityLog, Bakery
from core.serializers import validate_create_bakery, validate_update_bakery
from core.tenancy import parse_id, resolve_bakery

logger = logging.getLogger(__name__)


def visible_bakeries(user: AbstractBaseUser):
    if is_platform_admin(user):
        return Bakery.objects.all()
    try:
        bakery = resolve_bakery(user)
    except errors.NotFoundError:
        return Bakery.objects.none()
    return Bakery.objects.filter(pk=bakery.pk)


def get_bakery(user: AbstractBaseUser, bakery_id) -> Bakery:
    pk = parse_id(bakery_id)
    bakery = visible_bakeries(user).filter(pk=pk).first() if pk else None
    if bakery is None:
        raise errors.NotFoundError("Bakery")
    return bakery


def create_bakery(user: AbstractBaseUser, data: dict) -> Bakery:
    if not can_manage_bakeries(user):
        raise PermissionError("Only platform administrators can create bakeries.")
    cleaned = validate_create_bakery(data)
    try:
        with transaction.atomic():
            bakery = Bakery.objects.create(**cleaned)
            log_event(
                user,
                ActivityLog.ACTION_CREATE,
                "bakery",
                bakery.id,
                bakery=bakery,
                entity_name=bakery.name,
                description=f'Created bakery "{bakery.name}"',
            )
    except DatabaseError as exc:
        logger.exception("Failed to create bakery")
        raise errors.PersistenceError() from exc
    return bakery


def update_bakery(user: AbstractBaseUser, bakery_id, data: dict) -> Bakery:
    cleaned = validate_update_bakery({**(data or {}), "id": bakery_id})
    bakery = get_bakery(user, cleaned.pop("id"))
    if not (can_manage_bakeries(user) or can_edit_bakery(user)):
        raise PermissionError("You cannot edit this bakery.")
    for key, value in cleaned.items():
        setattr(bakery, key, value)
    try:
        with transaction.atomic():
            bakery.save()
            log_event(
                user,
                ActivityLog.ACTION_UPDATE,
                "bakery",
                bakery.id,
                bakery=bakery,
                entity_name=bakery.name,
                description=f'Updated bakery "{bakery.name}"',
                metadata={"updated_fields": sorted(cleaned)},
            )
    except DatabaseError as exc:
        logger.exception("Failed to update bakery %s", bakery.id)
        raise errors.PersistenceError() from exc
    return bakery


def delete_bakery(user: AbstractBaseUser, bakery_id) -> None:
    """Platform admins only; refused while members or ledger history remain."""
    if not can_manage_bakeries(user):
        raise PermissionError("Only platform administrators can delete bakeries.")
    bakery = get_bakery(user, bakery_id)
    members = bakery.members.count()
    if members:
        raise errors.StateConflictError(
            f"Cannot delete bakery with {members} active user(s). Reassign or remove them first."
        )
    if bakery.inventory_transactions.exists():
        raise errors.StateConflictError("Cannot delete a bakery with inventory history.")
    try:
        with transaction.atomic():
            name, pk = bakery.name, bakery.pk
            bakery.delete()
            log_event(
                user,
                ActivityLog.ACTION_DELETE,
                "bakery",
                pk,
                entity_name=name,
                description=f'Deleted bakery "{name}"',
            )
    except ProtectedError:
        raise errors.StateConflictError("Bakery still has records that cannot be deleted.")
    except DatabaseError as exc:
        logger.exception("Failed to delete bakery %s", bakery_id)
        raise errors.PersistenceError() from exc
