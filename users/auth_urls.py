"""Authentication routes grouped under /api/v1/auth.

Registration, sign-in (JWT obtain plus guest cart merge), refresh, sign-out
(blacklist) and guest conversion.
"""

from django.urls import path

from .views import ConvertGuestView, RefreshView, RegisterView, SignInView, SignOutView

urlpatterns = [
    path("register/", RegisterView.as_view(), name="register"),
    path("signin/", SignInView.as_view(), name="signin"),
    path("refresh/", RefreshView.as_view(), name="token_refresh"),
    path("signout/", SignOutView.as_view(), name="signout"),
    path("convert-guest/", ConvertGuestView.as_view(), name="convert_guest"),
]
