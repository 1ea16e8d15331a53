from django.contrib.auth.models import AbstractBaseUser

ROLE_OWNER = "OWNER"
ROLE_MANAGER = "MANAGER"
ROLE_BAKER = "BAKER"
ROLE_VIEWER = "VIEWER"

ROLE_ORDER = [
    ROLE_OWNER,
    ROLE_MANAGER,
    ROLE_BAKER,
    ROLE_VIEWER,
]


def _group_names(user: AbstractBaseUser) -> set[str]:
    if not user or not user.is_authenticated:
        return set()
    return set(user.groups.values_list("name", flat=True))


def has_any_role(user: AbstractBaseUser, *roles: str) -> bool:
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    return bool(_group_names(user).intersection(set(roles)))


def is_platform_admin(user: AbstractBaseUser) -> bool:
    return bool(user and user.is_authenticated and user.is_superuser)


def primary_role(user: AbstractBaseUser) -> str:
    groups = _group_names(user)
    for role in ROLE_ORDER:
        if role in groups:
            return role
    return ""


def can_manage_bakeries(user: AbstractBaseUser) -> bool:
    return is_platform_admin(user)


def can_edit_bakery(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_OWNER)


def can_view_catalog(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_OWNER, ROLE_MANAGER, ROLE_BAKER, ROLE_VIEWER)


def can_manage_catalog(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_OWNER, ROLE_MANAGER)


def can_view_recipes(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_OWNER, ROLE_MANAGER, ROLE_BAKER, ROLE_VIEWER)


def can_manage_recipes(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_OWNER, ROLE_MANAGER)


def can_view_inventory(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_OWNER, ROLE_MANAGER, ROLE_BAKER, ROLE_VIEWER)


def can_manage_inventory(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_OWNER, ROLE_MANAGER)


def can_view_sheets(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_OWNER, ROLE_MANAGER, ROLE_BAKER, ROLE_VIEWER)


def can_manage_sheets(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_OWNER, ROLE_MANAGER, ROLE_BAKER)


def can_complete_sheets(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_OWNER, ROLE_MANAGER, ROLE_BAKER)


def can_view_activity(user: AbstractBaseUser) -> bool:
    return has_any_role(user, ROLE_OWNER, ROLE_MANAGER)
