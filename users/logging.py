import logging

logger = logging.getLogger("auth")

FAILED_STATUSES = {"failed", "invalid", "invalid_token"}


def client_ip(request) -> str | None:
    # First hop of X-Forwarded-For when running behind the load balancer
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


def log_auth_event(action: str, request, user=None, status: str = "success", extra: dict | None = None):
    """Emit ``auth.<action>`` with the account id and kind, client ip and outcome.

    Failures are logged at WARNING so they survive INFO sampling.
    """
    fields = {"event": f"auth.{action}", "ip": client_ip(request), "status": status}
    if user is not None:
        fields["user_id"] = getattr(user, "id", None)
        fields["account_kind"] = getattr(user, "kind", None)
    if extra:
        fields.update(extra)
    level = logging.WARNING if status in FAILED_STATUSES else logging.INFO
    logger.log(level, fields["event"], extra=fields)
