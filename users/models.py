"""User models for authentication and account management.

One `User` model covers both guests and registered accounts. Guests are
created lazily for anonymous shoppers and are identified by an opaque
`guest_token` carried in a cookie; they have no email and an unusable
password. A guest is promoted in place (same primary key) or merged into an
existing registered account.
"""

from common.choices import AccountKind
from django.contrib.auth.models import AbstractUser
from django.core.validators import RegexValidator
from django.db import models


class User(AbstractUser):
    """Custom user with a guest/registered `kind` tag.

    Fields:
    - email: unique among registered accounts; NULL for guests.
    - kind: guest or registered.
    - guest_token: opaque cookie credential for guest accounts.
    - merge_source: the guest account most recently converted into or merged
      into this one.
    """

    KIND_GUEST = AccountKind.GUEST
    KIND_REGISTERED = AccountKind.REGISTERED

    email = models.EmailField(unique=True, null=True, blank=True)
    kind = models.CharField(max_length=16, choices=AccountKind.choices, default=KIND_REGISTERED, db_index=True)
    guest_token = models.CharField(max_length=64, unique=True, null=True, blank=True)
    merge_source = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="merged_into",
    )
    phone = models.CharField(
        max_length=16,
        blank=True,
        validators=[RegexValidator(r"^\+?[1-9]\d{1,14}$", message="Use E.164 format (e.g., +201001234567)")],
        help_text="Primary contact number for the account in E.164 format",
    )

    class Meta:
        constraints = [
            models.CheckConstraint(
                name="guest_has_no_email",
                condition=~models.Q(kind=AccountKind.GUEST) | models.Q(email__isnull=True),
            ),
        ]
        indexes = [
            models.Index(fields=["kind", "last_login"], name="user_kind_last_login_idx"),
        ]

    @property
    def is_guest(self) -> bool:
        return self.kind == self.KIND_GUEST

    def save(self, *args, **kwargs):
        """Normalize email and persist.

        Blank emails are stored as NULL so that uniqueness only applies to
        accounts that actually have one.
        """
        if self.email:
            self.email = self.email.strip().lower()
        else:
            self.email = None
        if self.phone:
            self.phone = self.phone.strip()
        super().save(*args, **kwargs)
