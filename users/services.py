"""Account services: guest creation, registration, sign-in and guest promotion."""

import logging
import secrets
import uuid

from common.errors import ConflictError, EmailAlreadyRegistered, InvalidCredentials, ValidationError
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction

from .models import User

logger = logging.getLogger("auth")


def new_guest_token() -> str:
    return secrets.token_urlsafe(32)


def create_guest() -> User:
    """Create a fresh guest account with a new opaque token."""

    user = User(
        username=f"guest_{uuid.uuid4().hex}",
        kind=User.KIND_GUEST,
        guest_token=new_guest_token(),
    )
    user.set_unusable_password()
    user.save()
    logger.info({"action": "guest_created", "user_id": user.id})
    return user


def find_guest(token: str | None) -> User | None:
    """Return the active guest account for ``token``, or None."""

    if not token:
        return None
    try:
        return User.objects.get(guest_token=token, kind=User.KIND_GUEST, is_active=True)
    except User.DoesNotExist:
        return None


def _check_password_strength(password: str, user: User) -> None:
    try:
        validate_password(password, user=user)
    except DjangoValidationError as exc:
        raise ValidationError(" ".join(exc.messages), code="weak_password")


@transaction.atomic
def register_account(*, email: str, password: str, first_name: str = "", last_name: str = "", phone: str = "") -> User:
    email = (email or "").strip().lower()
    if not email or not password:
        raise ValidationError("Email and password are required.")
    if User.objects.filter(email=email).exists():
        raise EmailAlreadyRegistered()
    user = User(
        username=email,
        email=email,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        kind=User.KIND_REGISTERED,
    )
    _check_password_strength(password, user)
    user.set_password(password)
    try:
        with transaction.atomic():
            user.save()
    except IntegrityError:
        raise EmailAlreadyRegistered()
    return user


def authenticate_account(*, email: str, password: str) -> User:
    """Return the registered account for the credentials.

    Raises InvalidCredentials without revealing whether the email or the
    password was wrong.
    """

    email = (email or "").strip().lower()
    try:
        user = User.objects.get(email=email, kind=User.KIND_REGISTERED)
    except User.DoesNotExist:
        # Burn comparable time so unknown emails are not distinguishable
        User().set_password(password or "")
        raise InvalidCredentials()
    if not user.is_active or not user.check_password(password or ""):
        raise InvalidCredentials()
    return user


@transaction.atomic
def convert_guest(*, guest: User, email: str, password: str, first_name: str = "", last_name: str = "") -> User:
    """Promote a guest to a registered account in place (same primary key)."""

    guest = User.objects.select_for_update().get(pk=guest.pk)
    if not guest.is_guest:
        raise ConflictError("Account is already registered.", code="already_registered")
    email = (email or "").strip().lower()
    if not email or not password:
        raise ValidationError("Email and password are required.")
    if User.objects.filter(email=email).exclude(pk=guest.pk).exists():
        raise EmailAlreadyRegistered()
    guest.email = email
    guest.username = email
    guest.first_name = first_name or guest.first_name
    guest.last_name = last_name or guest.last_name
    _check_password_strength(password, guest)
    guest.set_password(password)
    guest.kind = User.KIND_REGISTERED
    guest.merge_source = guest
    try:
        with transaction.atomic():
            guest.save()
    except IntegrityError:
        raise EmailAlreadyRegistered()
    logger.info({"action": "guest_converted", "user_id": guest.id})
    return guest


@transaction.atomic
def merge_guest_into(*, guest: User, user: User) -> User:
    """Fold a guest's cart into a registered account.

    The guest record is deleted when it owns no orders; otherwise it is kept
    (its orders stay reachable by tracking token) and linked as the
    account's merge source.
    """

    from cart.services import merge_carts

    if guest.pk == user.pk or not guest.is_guest:
        return user
    merge_carts(source_user=guest, dest_user=user)
    if guest.orders.exists():
        User.objects.filter(pk=guest.pk).update(guest_token=None, is_active=False)
        user.merge_source = guest
        user.save(update_fields=["merge_source"])
        kept = True
    else:
        guest.delete()
        kept = False
    logger.info({"action": "guest_merged", "user_id": user.id, "guest_kept": kept})
    return user
