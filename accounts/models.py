"""Database models for identity records."""
from __future__ import annotations

from django.db import models


class User(models.Model):
    """A lightweight identity record referenced by projects and issues."""

    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

    ROLE_CHOICES = [
        (ADMIN, "Administrator"),
        (MEMBER, "Member"),
        (VIEWER, "Viewer"),
    ]

    username = models.CharField(max_length=150, unique=True)
    email = models.EmailField(unique=True)
    display_name = models.CharField(max_length=255, blank=True)
    role = models.CharField(max_length=32, choices=ROLE_CHOICES, default=MEMBER)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["username", "email"]

    def __str__(self) -> str:
        return f"{self.display_name or self.username} <{self.email}>"

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_admin(self) -> bool:
        return self.role == self.ADMIN
