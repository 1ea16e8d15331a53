from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from rest_framework.authtoken.models import Token

from core.access import primary_role


class Command(BaseCommand):
    help = "Issues (or rotates) the API token of a user."

    def add_arguments(self, parser):
        parser.add_argument("--username", required=True)
        parser.add_argument("--rotate", action="store_true", help="Revoke the current token and issue a new one.")

    def handle(self, *args, **options):
        username = (options.get("username") or "").strip()
        if not username:
            raise CommandError("--username is required.")

        user = get_user_model().objects.filter(username=username).first()
        if user is None:
            raise CommandError(f"User not found: {username}")

        profile = getattr(user, "userprofile", None)
        bakery_id = getattr(profile, "bakery_id", None)
        if bakery_id is None and not user.is_superuser:
            raise CommandError(f"{username} is not a member of any bakery.")

        if options.get("rotate"):
            Token.objects.filter(user=user).delete()
            token = Token.objects.create(user=user)
            action = "rotated"
        else:
            token, created = Token.objects.get_or_create(user=user)
            action = "created" if created else "existing"

        self.stdout.write(
            self.style.SUCCESS(
                f"TOKEN_READY username={user.username} bakery={bakery_id or '-'} "
                f"role={primary_role(user) or '-'} action={action} token={token.key}"
            )
        )
