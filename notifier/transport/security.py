# notifier/transport/security.py
"""
Token checks for the HTTP API.

- Webhook token: order-lifecycle webhooks, sent as ``X-Webhook-Token`` header
  or ``token`` body field.
- Admin token: history, stats, metrics and reminder triggers, sent as
  ``Authorization: Bearer <token>``.

All comparisons are constant-time.
"""
import hmac

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from notifier.config import settings
from notifier.infra.logging_config import get_logger

logger = get_logger(__name__)

# Minimum token length for security (32 bytes = 256 bits)
MIN_TOKEN_LENGTH = 32
WEAK_TOKEN_PATTERNS = [
    "password", "secret", "token", "admin", "test", "demo",
    "123456", "000000", "111111", "aaaaaa",
]

bearer_scheme = HTTPBearer(
    scheme_name="Admin Token",
    description="Enter your admin token (without 'Bearer ' prefix)",
    auto_error=False,
)


def validate_token_strength(token: str, token_name: str = "token") -> list[str]:
    """Warnings for a weak token (empty list if the token looks strong)."""
    warnings = []

    if len(token) < MIN_TOKEN_LENGTH:
        warnings.append(
            f"{token_name} is too short ({len(token)} chars). "
            f"Minimum recommended: {MIN_TOKEN_LENGTH} chars"
        )

    token_lower = token.lower()
    for pattern in WEAK_TOKEN_PATTERNS:
        if pattern in token_lower:
            warnings.append(
                f"{token_name} contains weak pattern '{pattern}'. "
                "Use a cryptographically random token"
            )
            break

    return warnings


def check_configured_tokens() -> None:
    """Log warnings for weak tokens. Call from app startup."""
    for name, token in (("WEBHOOK_TOKEN", settings.webhook_token), ("ADMIN_TOKEN", settings.admin_token)):
        if token:
            for warning in validate_token_strength(token, name):
                logger.warning(f"SECURITY: {warning}")


def token_matches(provided: str | None, expected: str | None) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def verify_webhook_token(request: Request, body_token: str | None) -> None:
    """
    Raises:
        HTTPException(401): token configured and neither header nor body matches
    """
    expected = settings.webhook_token
    if not expected:
        # Unauthenticated webhooks are only tolerated outside production
        if settings.is_production:
            logger.critical("WEBHOOK_TOKEN not configured but webhook endpoint accessed")
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service unavailable")
        return

    header_token = request.headers.get("X-Webhook-Token")
    if token_matches(header_token, expected) or token_matches(body_token, expected):
        return

    logger.warning(f"Invalid webhook token for {request.url.path}")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook token")


async def require_admin_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
):
    """
    Usage:
        @app.get("/notifications/history", dependencies=[Depends(require_admin_auth)])
    """
    if not settings.admin_token:
        logger.critical("ADMIN_TOKEN not configured but admin endpoint accessed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unavailable"
        )

    if credentials is None or not token_matches(credentials.credentials, settings.admin_token):
        logger.warning(f"Admin auth failed for {request.method} {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )


def sanitize_error_message(error: Exception, is_production: bool) -> str:
    """Generic messages in production, details in dev."""
    if not is_production:
        return str(error)

    generic_messages = {
        "ValueError": "Invalid input",
        "KeyError": "Invalid request",
        "HistoryPersistenceError": "Service temporarily unavailable",
        "ConnectionError": "Service temporarily unavailable",
        "TimeoutError": "Request timeout",
    }
    return generic_messages.get(type(error).__name__, "An error occurred")
