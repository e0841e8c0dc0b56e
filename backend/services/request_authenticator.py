"""
Request Authenticator

HMAC-SHA256 request signing for heartbeat writes.

A client signs the canonical message

    method=POST;path=/heartbeat;ts=1733144872;nonce=89af77e23a;body_sha256=<hash>

with the shared API secret and sends:
- Authorization: Bearer <base64url signature>
- Signature-Timestamp: <unix seconds>
- Signature-Nonce: <random string>

The body is represented by the base64url SHA-256 of the raw bytes, so the
signature does not depend on how the JSON is re-serialized. Base64url is the
unpadded URL-safe alphabet on both sides.

Every rejection surfaces to the caller as the same "Authentication failed";
the reason only reaches the logs. A missing or short secret fails closed as a
configuration error.
"""

import base64
import hashlib
import hmac
import re
import secrets
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional, Tuple

from utils.logging import get_logger

logger = get_logger("auth")

MIN_API_SECRET_LENGTH = 32
MAX_TIMESTAMP_AGE = 60  # seconds
MAX_FUTURE_SKEW = 10  # seconds

AUTHORIZATION_HEADER = "authorization"
TIMESTAMP_HEADER = "signature-timestamp"
NONCE_HEADER = "signature-nonce"

AUTH_FAILED_MESSAGE = "Authentication failed"

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE | re.DOTALL)
_TIMESTAMP_RE = re.compile(r"^\s*[+-]?\d+")


class AuthConfigurationError(Exception):
    """The server-side secret is missing or too weak."""


class AuthenticationError(Exception):
    """A request failed authentication. `reason` is for logs only."""

    def __init__(self, reason: str):
        super().__init__(AUTH_FAILED_MESSAGE)
        self.reason = reason


def _b64url(digest: bytes) -> str:
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def body_digest(body: bytes) -> str:
    """base64url SHA-256 of the raw request body."""
    return _b64url(hashlib.sha256(body).digest())


def build_canonical_message(method: str, path: str, timestamp: str, nonce: str, body: bytes = b"") -> str:
    return (
        f"method={method.upper()};path={path};ts={timestamp};"
        f"nonce={nonce};body_sha256={body_digest(body)}"
    )


def compute_signature(message: str, secret: str) -> str:
    """HMAC-SHA256 of the canonical message, base64url encoded."""
    return _b64url(hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest())


def signatures_match(signature: str, expected: str) -> bool:
    """Constant-time comparison; a length mismatch rejects without comparing bytes."""
    if not signature or not expected:
        return False

    received = signature.encode("utf-8")
    wanted = expected.encode("utf-8")
    if len(received) != len(wanted):
        return False

    return hmac.compare_digest(received, wanted)


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    match = _BEARER_RE.match(header)
    return match.group(1) if match else None


def parse_signature_timestamp(value: str) -> Optional[int]:
    """Leading integer of the header value, None when there is none."""
    match = _TIMESTAMP_RE.match(value)
    return int(match.group(0)) if match else None


def strip_prefix(path: str, prefix: str) -> str:
    """Remove the mount prefix so signatures do not depend on where the API is mounted."""
    prefix = prefix.rstrip("/")
    if prefix and (path == prefix or path.startswith(prefix + "/") or path.startswith(prefix + "?")):
        path = path[len(prefix):]
    if not path or path.startswith("?"):
        path = "/" + path
    return path


def sign_request(
    method: str,
    path: str,
    body: bytes,
    secret: str,
    timestamp: Optional[int] = None,
    nonce: Optional[str] = None,
) -> Dict[str, str]:
    """Build the authentication headers for a request.

    Args:
        method: HTTP method
        path: Request path without the API prefix, query string included
        body: Exact bytes that will be sent as the body
        secret: Shared API secret
        timestamp: Unix seconds (defaults to now)
        nonce: Random string (defaults to 16 random bytes, hex)

    Returns:
        Headers to merge into the outgoing request
    """
    ts = str(int(time.time()) if timestamp is None else timestamp)
    nonce = nonce or secrets.token_hex(16)
    signature = compute_signature(build_canonical_message(method, path, ts, nonce, body), secret)
    return {
        "Authorization": f"Bearer {signature}",
        "Signature-Timestamp": ts,
        "Signature-Nonce": nonce,
    }


def nonce_ttl(max_age: int = MAX_TIMESTAMP_AGE, max_future_skew: int = MAX_FUTURE_SKEW) -> int:
    """Seconds an accepted pair must be remembered to outlive its freshness window.

    Freshness is judged on whole seconds, so a pair accepted late in a second
    stays fresh until one second past max_age + max_future_skew.
    """
    return max_age + max_future_skew + 1


class NonceCache:
    """Bounded memory of recently accepted (timestamp, nonce) pairs.

    Entries expire after `ttl` seconds; when full, the oldest entry is dropped.
    Process-local only: replays across restarts or instances are bounded by the
    freshness window alone.
    """

    def __init__(self, ttl: int = nonce_ttl(), max_size: int = 10_000):
        self.ttl = ttl
        self.max_size = max_size
        self._entries: "OrderedDict[Tuple[str, str], float]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_expired(self, now: float) -> None:
        while self._entries:
            key, expires_at = next(iter(self._entries.items()))
            if expires_at > now:
                break
            del self._entries[key]

    def remember(self, timestamp: str, nonce: str, now: float) -> bool:
        """Store the pair; False when it was already seen and has not expired."""
        self._evict_expired(now)
        key = (timestamp, nonce)
        if key in self._entries:
            return False

        if len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = now + self.ttl
        return True


@dataclass(frozen=True)
class RequestContext:
    """What the authenticator needs from an inbound request."""
    method: str
    path: str
    authorization: Optional[str] = None
    timestamp: Optional[str] = None
    nonce: Optional[str] = None
    body: bytes = b""
    duplicate_headers: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_headers(cls, method: str, path: str, headers: Mapping[str, str], body: bytes = b"") -> "RequestContext":
        """Build a context from a header mapping.

        Starlette `Headers` expose every value of a repeated header through
        getlist(); a repeated authentication header is ambiguous and recorded
        as a duplicate.
        """
        values: Dict[str, Optional[str]] = {}
        duplicates = []
        for name in (AUTHORIZATION_HEADER, TIMESTAMP_HEADER, NONCE_HEADER):
            if hasattr(headers, "getlist"):
                found = headers.getlist(name)
            else:
                found = [value for key, value in headers.items() if key.lower() == name]
            if len(found) > 1:
                duplicates.append(name)
            values[name] = found[0] if len(found) == 1 else None

        return cls(
            method=method,
            path=path,
            authorization=values[AUTHORIZATION_HEADER],
            timestamp=values[TIMESTAMP_HEADER],
            nonce=values[NONCE_HEADER],
            body=body or b"",
            duplicate_headers=tuple(duplicates),
        )


class RequestAuthenticator:
    """Verifies signed requests against the shared API secret."""

    def __init__(
        self,
        secret: Optional[str],
        api_prefix: str = "/api",
        max_age: int = MAX_TIMESTAMP_AGE,
        max_future_skew: int = MAX_FUTURE_SKEW,
        nonce_cache: Optional[NonceCache] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._secret = secret.strip() if secret else None
        self.api_prefix = api_prefix
        self.max_age = max_age
        self.max_future_skew = max_future_skew
        self.nonce_cache = nonce_cache if nonce_cache is not None else NonceCache(ttl=nonce_ttl(max_age, max_future_skew))
        self._clock = clock

    def _validated_secret(self) -> str:
        if not self._secret:
            logger.error("API secret not configured")
            raise AuthConfigurationError("API secret not configured")

        if len(self._secret) < MIN_API_SECRET_LENGTH:
            logger.error(
                "API secret too short",
                extra={"data": {"length": len(self._secret), "required": MIN_API_SECRET_LENGTH}}
            )
            raise AuthConfigurationError(f"API secret must be at least {MIN_API_SECRET_LENGTH} characters")

        return self._secret

    def _reject(self, reason: str, **details) -> AuthenticationError:
        logger.warning(f"Authentication rejected: {reason}", extra={"data": {"reason": reason, **details}})
        return AuthenticationError(reason)

    def canonical_path(self, path: str) -> str:
        return strip_prefix(path, self.api_prefix)

    def authenticate(self, context: RequestContext) -> None:
        """Accept the request or raise.

        Raises:
            AuthConfigurationError: The secret is missing or shorter than 32 characters
            AuthenticationError: Any check on the request failed
        """
        secret = self._validated_secret()

        if context.duplicate_headers:
            raise self._reject("duplicate_header", headers=list(context.duplicate_headers))

        signature = extract_bearer_token(context.authorization)
        if not context.authorization or not context.timestamp or not context.nonce:
            raise self._reject(
                "missing_header",
                has_authorization=bool(context.authorization),
                has_timestamp=bool(context.timestamp),
                has_nonce=bool(context.nonce),
            )
        if not signature:
            raise self._reject("malformed_bearer")

        timestamp = parse_signature_timestamp(context.timestamp)
        if timestamp is None:
            raise self._reject("invalid_timestamp")

        now = int(self._clock())
        if abs(now - timestamp) > self.max_age:
            raise self._reject("stale_timestamp", age=abs(now - timestamp), max_age=self.max_age)
        if timestamp > now + self.max_future_skew:
            raise self._reject("future_timestamp", skew=timestamp - now, max_skew=self.max_future_skew)

        if not context.nonce.strip():
            raise self._reject("empty_nonce")

        canonical_path = self.canonical_path(context.path)
        message = build_canonical_message(context.method, canonical_path, context.timestamp, context.nonce, context.body)
        expected = compute_signature(message, secret)

        if not signatures_match(signature, expected):
            raise self._reject("signature_mismatch", method=context.method, path=canonical_path)

        if not self.nonce_cache.remember(context.timestamp, context.nonce, self._clock()):
            raise self._reject("replayed_nonce")

        logger.debug("Authentication successful", extra={"data": {"path": canonical_path}})
