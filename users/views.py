"""Users app API views.

Endpoints include:
- me: the current account's profile (guests included).
- register: creates a registered account and returns a JWT pair.
- signin: email/password sign-in; folds a presented guest cart into the account.
- refresh / signout: JWT refresh and refresh-token blacklisting.
- convert-guest: promotes the current guest account in place.
"""

from common.errors import InvalidCredentials, ValidationError
from drf_spectacular.utils import OpenApiExample, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken, TokenError
from rest_framework_simplejwt.views import TokenRefreshView

from .identity import IdentityMixin, clear_guest_cookie, resolve_identity
from .logging import log_auth_event
from .serializers import (
    ConvertGuestSerializer,
    RegistrationSerializer,
    SignInSerializer,
    SignOutSerializer,
    UserMeSerializer,
    token_pair_for,
)
from .services import authenticate_account, convert_guest, merge_guest_into, register_account


class CurrentUserView(IdentityMixin, APIView):
    """Return the current account; anonymous callers get a guest account."""

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "profile"

    @extend_schema(
        tags=["User Endpoints"],
        summary="Get current account",
        responses={200: UserMeSerializer},
        examples=[
            OpenApiExample(
                "Guest",
                value={"id": 7, "email": None, "kind": "guest", "is_guest": True, "is_staff": False},
                response_only=True,
            )
        ],
    )
    def get(self, request):
        user = self.identity.user
        log_auth_event("profile", request, user=user)
        return Response(UserMeSerializer(user).data)


class RegisterView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "register"

    @extend_schema(
        tags=["User Endpoints"],
        summary="Register an account",
        request=RegistrationSerializer,
        responses={201: OpenApiResponse(description="Account created with token pair"), 409: None},
    )
    def post(self, request):
        serializer = RegistrationSerializer(data=request.data)
        if not serializer.is_valid():
            log_auth_event("register", request, status="invalid")
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        user = register_account(**serializer.validated_data)
        log_auth_event("register", request, user=user)
        data = {"user": UserMeSerializer(user).data, **token_pair_for(user)}
        return Response(data, status=status.HTTP_201_CREATED)


class SignInView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "signin"

    @extend_schema(
        tags=["User Endpoints"],
        summary="Sign in",
        description=(
            "Exchanges email and password for a JWT pair. A guest cart presented via the guest "
            "cookie or `X-Guest-Token` header is merged into the account and the guest cookie is cleared."
        ),
        request=SignInSerializer,
        examples=[OpenApiExample("Invalid", value={"detail": "Invalid credentials.", "code": "invalid_credentials"})],
    )
    def post(self, request):
        serializer = SignInSerializer(data=request.data)
        if not serializer.is_valid():
            raise InvalidCredentials()
        try:
            user = authenticate_account(**serializer.validated_data)
        except InvalidCredentials:
            log_auth_event("signin", request, status="failed")
            raise
        guest = resolve_identity(request, create=False)
        merged = False
        if guest is not None and guest.is_guest and guest.user.pk != user.pk:
            merge_guest_into(guest=guest.user, user=user)
            merged = True
        log_auth_event("signin", request, user=user, extra={"guest_merged": merged})
        response = Response({"user": UserMeSerializer(user).data, **token_pair_for(user)})
        clear_guest_cookie(response)
        return response


class RefreshView(TokenRefreshView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "token_refresh"

    @extend_schema(tags=["User Endpoints"])
    def post(self, request, *args, **kwargs):
        resp = super().post(request, *args, **kwargs)
        status_label = "success" if resp.status_code == 200 else "failed"
        log_auth_event("token_refresh", request, status=status_label)
        return resp


class SignOutView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "signout"
    permission_classes = [AllowAny]

    @extend_schema(tags=["User Endpoints"], request=SignOutSerializer)
    def post(self, request):
        refresh = request.data.get("refresh")
        if not refresh:
            return Response({"detail": "Refresh token is required."}, status=status.HTTP_400_BAD_REQUEST)
        try:
            RefreshToken(refresh).blacklist()
        except TokenError:
            log_auth_event("signout", request, status="invalid_token")
            return Response({"detail": "Invalid token."}, status=status.HTTP_400_BAD_REQUEST)
        log_auth_event("signout", request, status="success")
        return Response({"detail": "Signed out."}, status=status.HTTP_205_RESET_CONTENT)


class ConvertGuestView(APIView):
    """Promote the calling guest to a registered account, keeping its id, cart and orders."""

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "register"

    @extend_schema(tags=["User Endpoints"], summary="Convert guest to account", request=ConvertGuestSerializer)
    def post(self, request):
        identity = resolve_identity(request, create=False)
        if identity is None or not identity.is_guest:
            raise ValidationError("No guest session found.", code="no_guest_session")
        serializer = ConvertGuestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = convert_guest(guest=identity.user, **serializer.validated_data)
        log_auth_event("convert_guest", request, user=user)
        response = Response({"user": UserMeSerializer(user).data, **token_pair_for(user)})
        clear_guest_cookie(response)
        return response
