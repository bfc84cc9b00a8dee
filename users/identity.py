"""Request identity resolution.

Every storefront request is attributed to an account: the authenticated
registered user when credentials are present, otherwise the guest named by
the guest cookie (or ``X-Guest-Token`` header), otherwise a freshly created
guest. Absence of identity never fails a request.
"""

from dataclasses import dataclass

from django.conf import settings

from .models import User
from .services import create_guest, find_guest

GUEST_HEADER = "X-Guest-Token"


@dataclass(frozen=True)
class Identity:
    user: User
    is_guest: bool
    # Set when a new guest token was minted during this request
    issued_token: str | None = None


def guest_token_from_request(request) -> str | None:
    cookie_name = settings.GUEST_COOKIE_NAME
    return request.COOKIES.get(cookie_name) or request.headers.get(GUEST_HEADER) or None


def resolve_identity(request, *, create: bool = True) -> Identity | None:
    """Map a request onto ``Identity(user, is_guest, issued_token)``.

    With ``create=False`` returns None instead of minting a new guest.
    """

    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated:
        return Identity(user=user, is_guest=user.is_guest)

    guest = find_guest(guest_token_from_request(request))
    if guest is not None:
        return Identity(user=guest, is_guest=True)
    if not create:
        return None
    guest = create_guest()
    return Identity(user=guest, is_guest=True, issued_token=guest.guest_token)


def set_guest_cookie(response, token: str) -> None:
    response.set_cookie(
        settings.GUEST_COOKIE_NAME,
        token,
        max_age=settings.GUEST_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.GUEST_COOKIE_SECURE,
        samesite="Lax",
    )


def clear_guest_cookie(response) -> None:
    response.delete_cookie(settings.GUEST_COOKIE_NAME, samesite="Lax")


class IdentityMixin:
    """APIView mixin exposing ``self.identity`` and persisting new guest cookies."""

    _identity = None

    def get_identity(self) -> Identity:
        if self._identity is None:
            self._identity = resolve_identity(self.request)
        return self._identity

    @property
    def identity(self) -> Identity:
        return self.get_identity()

    def finalize_response(self, request, response, *args, **kwargs):
        response = super().finalize_response(request, response, *args, **kwargs)
        if self._identity is not None and self._identity.issued_token:
            set_guest_cookie(response, self._identity.issued_token)
        return response
