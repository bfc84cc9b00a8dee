import sentry_sdk
from decouple import Csv, config
from sentry_sdk.integrations.django import DjangoIntegration

from .base import REST_FRAMEWORK as BASE_REST_FRAMEWORK
from .base import *  # noqa

DEBUG = False

SECRET_KEY = config("SECRET_KEY")
ALLOWED_HOSTS = config("ALLOWED_HOSTS", cast=Csv())

# The storefront calls the API cross-origin with the guest cookie attached
CORS_ALLOW_ALL_ORIGINS = False
CORS_ALLOWED_ORIGINS = config("CORS_ALLOWED_ORIGINS", default="", cast=Csv())
CORS_ALLOW_CREDENTIALS = True
CSRF_TRUSTED_ORIGINS = config("CSRF_TRUSTED_ORIGINS", default="", cast=Csv())
SESSION_COOKIE_SAMESITE = config("SESSION_COOKIE_SAMESITE", default="Lax")
CSRF_COOKIE_SAMESITE = config("CSRF_COOKIE_SAMESITE", default="Lax")
GUEST_COOKIE_SECURE = True

# TLS terminates at the load balancer
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SECURE_SSL_REDIRECT = config("SECURE_SSL_REDIRECT", default=True, cast=bool)
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_HSTS_SECONDS = config("SECURE_HSTS_SECONDS", default=31536000, cast=int)
SECURE_HSTS_INCLUDE_SUBDOMAINS = True

EMAIL_BACKEND = config("EMAIL_BACKEND", default="django.core.mail.backends.smtp.EmailBackend")

# Throttle counters must be shared between workers
_REDIS_URL = config("REDIS_URL", default="")
if _REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": _REDIS_URL,
        }
    }

# Payment provider credentials have no defaults here
PAYMOB_API_KEY = config("PAYMOB_API_KEY")
PAYMOB_HMAC_SECRET = config("PAYMOB_HMAC_SECRET")
PAYMOB_INTEGRATION_ID = config("PAYMOB_INTEGRATION_ID")
PAYMOB_IFRAME_ID = config("PAYMOB_IFRAME_ID")

# Logging: JSON lines. Cart and promo INFO traffic may be sampled; money
# movement and security events never are.
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {"()": "config.logging.JsonFormatter"},
    },
    "filters": {
        "storefront_sample": {
            "()": "config.logging.SamplingFilter",
            "rate": config("STOREFRONT_LOG_SAMPLE_RATE", default=1.0, cast=float),
            "levels": ["INFO"],
            "allow_events": ["cart.merged", "promo_redeemed"],
        },
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "json"},
        "sampled_console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["storefront_sample"],
        },
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "auth": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "bazaar": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "bazaar.cart": {"handlers": ["sampled_console"], "level": "INFO", "propagate": False},
        "bazaar.promos": {"handlers": ["sampled_console"], "level": "INFO", "propagate": False},
        "django.request": {"handlers": ["console"], "level": "ERROR", "propagate": False},
    },
}

SENTRY_DSN = config("SENTRY_DSN", default="")
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=config("SENTRY_ENV", default="production"),
        integrations=[DjangoIntegration()],
        traces_sample_rate=config("SENTRY_TRACES_SAMPLE_RATE", default=0.0, cast=float),
        # Shipping addresses and emails stay out of error reports
        send_default_pii=False,
    )

REST_FRAMEWORK = {**BASE_REST_FRAMEWORK}
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {
    **BASE_REST_FRAMEWORK.get("DEFAULT_THROTTLE_RATES", {}),
    "cart": "120/min",
    "cart_write": "60/min",
    "promo": "20/min",
    "checkout": "10/min",
    "orders": "60/min",
    "orders_write": "30/min",
}
