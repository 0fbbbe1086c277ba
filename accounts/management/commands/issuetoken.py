"""Print a bearer token for an existing user."""
from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from accounts.authentication import generate_access_token
from accounts.models import User


class Command(BaseCommand):
    help = "Issue an access token for the given username."

    def add_arguments(self, parser) -> None:
        parser.add_argument("username")

    def handle(self, *args, **options) -> None:
        user = User.objects.filter(username=options["username"], is_active=True).first()
        if user is None:
            raise CommandError(f"No active user named '{options['username']}'")
        self.stdout.write(generate_access_token(user))
