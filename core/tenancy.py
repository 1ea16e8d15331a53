from __future__ import annotations

from dataclasses import dataclass

from django.contrib.auth.models import AbstractBaseUser
from django.db.models import Model, QuerySet

from core import errors
from core.access import is_platform_admin
from core.models import Bakery

BAKERY_HEADER = "HTTP_X_BAKERY_ID"
BAKERY_SESSION_KEY = "selected_bakery_id"


@dataclass(frozen=True)
class TenantContext:
    """Acting bakery and user for one operation."""

    bakery: Bakery
    user: AbstractBaseUser | None = None

    @property
    def bakery_id(self) -> int:
        return self.bakery.pk


def parse_id(raw) -> int | None:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def resolve_bakery(user: AbstractBaseUser, requested_id=None) -> Bakery:
    """Return the bakery ``user`` acts on.

    Members always act on their profile bakery. Platform admins have no home
    bakery and must name one explicitly.
    """
    if not user or not user.is_authenticated:
        raise errors.NotFoundError("Bakery")

    if is_platform_admin(user):
        bakery_id = parse_id(requested_id)
        if bakery_id is None:
            profile = getattr(user, "userprofile", None)
            bakery_id = getattr(profile, "bakery_id", None)
        bakery = Bakery.objects.filter(pk=bakery_id, is_active=True).first() if bakery_id else None
        if bakery is None:
            raise errors.NotFoundError("Bakery")
        return bakery

    profile = getattr(user, "userprofile", None)
    bakery = getattr(profile, "bakery", None) if profile else None
    if bakery is None or not bakery.is_active:
        raise errors.NotFoundError("Bakery")
    return bakery


def context_for_request(request) -> TenantContext:
    requested = request.META.get(BAKERY_HEADER) or request.session.get(BAKERY_SESSION_KEY)
    return TenantContext(bakery=resolve_bakery(request.user, requested), user=request.user)


def scoped(queryset: QuerySet, ctx: TenantContext, field: str = "bakery") -> QuerySet:
    return queryset.filter(**{field: ctx.bakery})


def get_scoped(model: type[Model] | QuerySet, ctx: TenantContext, pk, *, entity: str | None = None, field: str = "bakery"):
    """Fetch ``pk`` inside the acting bakery or raise ``NotFoundError``."""
    queryset = model if isinstance(model, QuerySet) else model._default_manager.all()
    label = entity or queryset.model._meta.verbose_name.capitalize()
    obj_id = parse_id(pk)
    if obj_id is None:
        raise errors.NotFoundError(label)
    obj = queryset.filter(pk=obj_id, **{field: ctx.bakery}).first()
    if obj is None:
        raise errors.NotFoundError(label)
    return obj


def ensure_same_bakery(ctx: TenantContext, bakery_id) -> None:
    if parse_id(bakery_id) != ctx.bakery_id:
        raise errors.NotFoundError("Bakery")
