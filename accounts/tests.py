"""Tests for identity records and bearer-token authentication."""
from __future__ import annotations

from io import StringIO

from django.core.management import CommandError, call_command
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from .authentication import decode_access_token, generate_access_token
from .models import User


class UserApiTests(TestCase):
    def setUp(self) -> None:
        self.admin = User.objects.create(username="admin", email="admin@example.com", role=User.ADMIN)
        self.client = APIClient()
        self.client.force_authenticate(user=self.admin)

    def test_create_user(self) -> None:
        payload = {
            "username": "casey",
            "email": "casey@example.com",
            "display_name": "Casey Agent",
            "role": "member",
        }
        response = self.client.post(reverse("user-list"), payload, format="json")
        self.assertEqual(response.status_code, 201)

        response = self.client.get(reverse("user-list"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 2)


class BearerTokenAuthenticationTests(TestCase):
    def setUp(self) -> None:
        self.user = User.objects.create(username="casey", email="casey@example.com")
        self.client = APIClient()
        self.url = reverse("user-list")

    def _get_with(self, header: str):
        self.client.credentials(HTTP_AUTHORIZATION=header)
        return self.client.get(self.url)

    def test_valid_token(self) -> None:
        token = generate_access_token(self.user)
        self.assertEqual(decode_access_token(token)["sub"], str(self.user.pk))
        self.assertEqual(self._get_with(f"Bearer {token}").status_code, 200)

    def test_missing_token(self) -> None:
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 401)
        self.assertIn("Bearer", response["WWW-Authenticate"])

    def test_expired_token(self) -> None:
        with self.settings(JWT_ACCESS_EXPIRES=-60):
            token = generate_access_token(self.user)
        response = self._get_with(f"Bearer {token}")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data["error"], "Token expired")

    def test_malformed_token(self) -> None:
        response = self._get_with("Bearer not-a-jwt")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data["error"], "Invalid token format")

        response = self._get_with("Bearer too many parts")
        self.assertEqual(response.status_code, 401)

    def test_token_signed_with_other_secret(self) -> None:
        with self.settings(JWT_SECRET_KEY="another-signing-secret-of-sufficient-length"):
            token = generate_access_token(self.user)
        self.assertEqual(self._get_with(f"Bearer {token}").status_code, 401)

    def test_inactive_user(self) -> None:
        token = generate_access_token(self.user)
        self.user.is_active = False
        self.user.save(update_fields=["is_active"])
        response = self._get_with(f"Bearer {token}")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data["error"], "User not found")

    def test_health_needs_no_token(self) -> None:
        response = self.client.get(reverse("tracker-health"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "ok")


class IssueTokenCommandTests(TestCase):
    def test_prints_token(self) -> None:
        user = User.objects.create(username="casey", email="casey@example.com")
        out = StringIO()
        call_command("issuetoken", "casey", stdout=out)
        self.assertEqual(decode_access_token(out.getvalue().strip())["sub"], str(user.pk))

    def test_unknown_user(self) -> None:
        with self.assertRaises(CommandError):
            call_command("issuetoken", "nobody", stdout=StringIO())
