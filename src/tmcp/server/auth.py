"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Authentication and authorization for MCP requests.

Providers resolve a ``Principal`` from transport credentials and decide
whether it may call a given MCP method. Role ``mcp:all`` grants every
method; ``mcp:<method>`` (for example ``mcp:tools/call``) grants one.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Protocol

logger = logging.getLogger("tmcp.auth")

ALL_ROLE = "mcp:all"
DEFAULT_KEY_ROLES: tuple[str, ...] = (ALL_ROLE,)

# Methods any client may call before or without authorization.
PUBLIC_METHODS = frozenset({"initialize", "ping"})


@dataclass(frozen=True, slots=True)
class AuthContext:
    """Credentials and peer information for one inbound request or session."""

    headers: Mapping[str, str] = field(default_factory=dict)
    peer_id: str | None = None
    transport: str = "http"
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated principal resolved from an auth context."""

    subject: str
    principal_type: str = "client"
    roles: tuple[str, ...] = ()
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AuthorizationDecision:
    """Authorization result for a requested MCP method."""

    allowed: bool
    reason: str | None = None


class AuthProvider(Protocol):
    """Provider contract for MCP authentication and authorization."""

    provider_id: str

    async def authenticate(self, context: AuthContext) -> Principal:
        """Authenticate a principal from request context."""
        ...

    async def authorize(
        self,
        principal: Principal,
        *,
        action: str,
        resource: str,
    ) -> AuthorizationDecision:
        """Authorize one MCP method for a principal."""
        ...


class AuthError(PermissionError):
    """Raised when authentication fails."""


class AuthorizationError(PermissionError):
    """Raised when authorization fails."""


class AuthConfigError(ValueError):
    """Raised for invalid auth provider setup."""


def required_role(action: str) -> str:
    return f"mcp:{action}"


def _role_decision(principal: Principal, action: str) -> AuthorizationDecision:
    role = required_role(action)
    if ALL_ROLE in principal.roles or role in principal.roles:
        return AuthorizationDecision(allowed=True)
    return AuthorizationDecision(
        allowed=False,
        reason=f"Missing required role '{role}'",
    )


def _get_header(headers: Mapping[str, str], target: str) -> str | None:
    target = target.lower()
    for key, value in headers.items():
        if key.lower() == target:
            return value
    return None


def _bearer_token(headers: Mapping[str, str]) -> str | None:
    auth = _get_header(headers, "authorization")
    if not auth:
        return None
    prefix = "Bearer "
    if not auth.startswith(prefix):
        return None
    return auth[len(prefix) :].strip() or None


def _as_roles(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    """Normalize a roles value (list, single string or missing) into a tuple."""
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    return default


_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


def hash_key(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class DisabledAuthProvider:
    """Development-only provider that allows every request."""

    provider_id = "disabled"

    async def authenticate(self, context: AuthContext) -> Principal:
        _ = context
        return Principal(subject="anonymous", principal_type="anonymous", roles=(ALL_ROLE,))

    async def authorize(
        self,
        principal: Principal,
        *,
        action: str,
        resource: str,
    ) -> AuthorizationDecision:
        _ = principal
        _ = action
        _ = resource
        return AuthorizationDecision(allowed=True)


@dataclass(frozen=True, slots=True)
class _KeyEntry:
    subject: str
    roles: tuple[str, ...]


class InMemoryAuthProvider:
    """
    API key authentication held in process memory.

    Keys are stored as SHA-256 digests. Clients send the key in the
    ``x-api-key`` header (configurable) or as ``Authorization: Bearer <key>``.
    Keys without explicit roles receive ``default_roles``.
    """

    provider_id = "memory"

    def __init__(
        self,
        *,
        key_to_subject: Mapping[str, str] | None = None,
        key_to_roles: Mapping[str, Iterable[str]] | None = None,
        header_name: str = "x-api-key",
        default_roles: tuple[str, ...] = DEFAULT_KEY_ROLES,
    ) -> None:
        self._header_name = header_name.lower()
        self._default_roles = tuple(default_roles)
        self._lock = threading.Lock()
        self._entries: dict[str, _KeyEntry] = {}

        role_map = key_to_roles or {}
        for key, subject in (key_to_subject or {}).items():
            roles = role_map.get(key)
            self.add_key(key, subject, roles=tuple(roles) if roles is not None else None)

    def add_key(self, key: str, subject: str, *, roles: tuple[str, ...] | None = None) -> None:
        if not key:
            raise AuthConfigError("API key must be non-empty")
        entry = _KeyEntry(subject=subject, roles=roles if roles is not None else self._default_roles)
        with self._lock:
            self._entries[hash_key(key)] = entry

    def revoke_key(self, key: str) -> None:
        with self._lock:
            self._entries.pop(hash_key(key), None)

    def _replace_entries(self, entries: dict[str, _KeyEntry]) -> None:
        with self._lock:
            self._entries = entries

    def _lookup(self, digest: str) -> _KeyEntry | None:
        with self._lock:
            return self._entries.get(digest)

    def _extract_key(self, headers: Mapping[str, str]) -> str | None:
        return _get_header(headers, self._header_name) or _bearer_token(headers)

    async def authenticate(self, context: AuthContext) -> Principal:
        key = self._extract_key(context.headers)
        if not key:
            raise AuthError("Missing API key")

        entry = self._lookup(hash_key(key))
        if entry is None:
            raise AuthError("Invalid API key")
        return Principal(subject=entry.subject, principal_type="client", roles=entry.roles)

    async def authorize(
        self,
        principal: Principal,
        *,
        action: str,
        resource: str,
    ) -> AuthorizationDecision:
        _ = resource
        return _role_decision(principal, action)


class FileAuthProvider(InMemoryAuthProvider):
    """
    API key authentication backed by a JSON key file.

    File format::

        {
          "keys": [
            {"key": "plain-text-key", "subject": "svc-a", "roles": ["mcp:all"]},
            {"key_sha256": "<hex digest>", "subject": "svc-b", "roles": ["mcp:tools/list"]}
          ]
        }

    The file is re-read when its modification time changes.
    """

    provider_id = "file"

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        header_name: str = "x-api-key",
        default_roles: tuple[str, ...] = DEFAULT_KEY_ROLES,
        reload_on_change: bool = True,
    ) -> None:
        super().__init__(header_name=header_name, default_roles=default_roles)
        self._path = Path(path)
        self._reload_on_change = reload_on_change
        self._mtime: float | None = None
        self.reload()

    @property
    def path(self) -> Path:
        return self._path

    def reload(self) -> int:
        """Re-read the key file; returns the number of keys loaded."""
        try:
            mtime = self._path.stat().st_mtime
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise AuthConfigError(f"Auth key file not found: {self._path}") from e
        except json.JSONDecodeError as e:
            raise AuthConfigError(f"Auth key file is not valid JSON: {self._path}: {e}") from e

        rows = raw.get("keys") if isinstance(raw, dict) else None
        if not isinstance(rows, list):
            raise AuthConfigError(f"Auth key file must contain a 'keys' list: {self._path}")

        entries: dict[str, _KeyEntry] = {}
        for i, row in enumerate(rows):
            if not isinstance(row, dict):
                raise AuthConfigError(f"keys[{i}] must be an object")
            subject = row.get("subject")
            if not isinstance(subject, str) or not subject.strip():
                raise AuthConfigError(f"keys[{i}] is missing 'subject'")
            if "key_sha256" in row:
                digest = str(row["key_sha256"] or "").strip().lower()
                if not _DIGEST_RE.match(digest):
                    raise AuthConfigError(f"keys[{i}].key_sha256 must be a 64-character hex SHA-256 digest")
            elif isinstance(row.get("key"), str) and row["key"]:
                digest = hash_key(row["key"])
            else:
                raise AuthConfigError(f"keys[{i}] needs 'key' or 'key_sha256'")
            entries[digest] = _KeyEntry(
                subject=subject,
                roles=_as_roles(row.get("roles"), self._default_roles),
            )

        self._replace_entries(entries)
        self._mtime = mtime
        logger.info("Loaded %d API key(s) from %s", len(entries), self._path)
        return len(entries)

    def _maybe_reload(self) -> None:
        if not self._reload_on_change:
            return
        try:
            mtime = self._path.stat().st_mtime
        except FileNotFoundError:
            logger.warning("Auth key file %s disappeared; keeping last loaded keys", self._path)
            return
        if mtime != self._mtime:
            self.reload()

    async def authenticate(self, context: AuthContext) -> Principal:
        self._maybe_reload()
        return await super().authenticate(context)


class JWTAuthProvider:
    """
    Bearer-token authentication with JSON Web Tokens (PyJWT).

    The token's ``sub`` claim becomes the principal subject and its
    ``roles`` claim (a list or a single string) the granted roles, so role
    checks work exactly as for API keys.
    """

    provider_id = "jwt"

    def __init__(
        self,
        *,
        secret: str,
        algorithms: tuple[str, ...] = ("HS256",),
        audience: str | None = None,
        issuer: str | None = None,
        role_claim: str = "roles",
        subject_claim: str = "sub",
    ) -> None:
        if not secret:
            raise AuthConfigError("JWT auth requires a non-empty secret")
        self._secret = secret
        self._decode_options: dict[str, Any] = {
            "algorithms": list(algorithms),
            "audience": audience,
            "issuer": issuer,
        }
        self._role_claim = role_claim
        self._subject_claim = subject_claim

    def _decode(self, token: str) -> dict[str, Any]:
        try:
            import jwt
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise AuthError("JWT auth requires PyJWT: pip install 'template-mcp-server[jwt]'") from exc
        try:
            return jwt.decode(token, self._secret, **self._decode_options)
        except jwt.PyJWTError as exc:
            raise AuthError(f"Invalid bearer token: {exc}") from exc

    async def authenticate(self, context: AuthContext) -> Principal:
        token = _bearer_token(context.headers)
        if token is None:
            raise AuthError("Missing bearer token")

        claims = self._decode(token)
        subject = claims.get(self._subject_claim)
        if not isinstance(subject, str) or not subject.strip():
            raise AuthError(f"Token has no '{self._subject_claim}' claim")
        return Principal(
            subject=subject,
            roles=_as_roles(claims.get(self._role_claim), ()),
            claims=dict(claims),
        )

    async def authorize(
        self,
        principal: Principal,
        *,
        action: str,
        resource: str,
    ) -> AuthorizationDecision:
        _ = resource
        return _role_decision(principal, action)


# ---------------------------------------------------------------------------
# Provider registry
# ---------------------------------------------------------------------------

AuthProviderFactory = Callable[..., AuthProvider]

_PROVIDERS: dict[str, AuthProviderFactory] = {}
_PROVIDERS_LOCK = threading.Lock()


def register_auth_provider(provider_id: str, factory: AuthProviderFactory) -> None:
    """Register one auth provider factory by its stable id."""
    key = str(provider_id).strip().lower()
    if not key:
        raise AuthConfigError("Auth provider id must be non-empty")
    with _PROVIDERS_LOCK:
        _PROVIDERS[key] = factory


def list_auth_providers() -> list[str]:
    """Return sorted list of registered auth provider ids."""
    with _PROVIDERS_LOCK:
        return sorted(_PROVIDERS.keys())


def _file_factory(*, path: str | os.PathLike[str] | None = None, **options: Any) -> FileAuthProvider:
    if path is None:
        raise AuthConfigError("File auth requires a key file path")
    return FileAuthProvider(path, **options)


register_auth_provider("disabled", lambda **_: DisabledAuthProvider())
register_auth_provider("memory", InMemoryAuthProvider)
register_auth_provider("file", _file_factory)
register_auth_provider("jwt", JWTAuthProvider)


def create_auth_provider(
    mode: str | AuthProvider | None = None,
    **options: Any,
) -> AuthProvider:
    """
    Resolve a provider from a mode id, or pass through a provider instance.

    Args:
        mode: ``disabled`` (default), ``memory``, ``file``, ``jwt`` or a provider.
        **options: Provider-specific constructor options.
    """
    if mode is None:
        mode = "disabled"
    if not isinstance(mode, str):
        return mode
    key = mode.strip().lower()
    with _PROVIDERS_LOCK:
        factory = _PROVIDERS.get(key)
    if factory is None:
        raise AuthConfigError(
            f"Unknown auth mode '{mode}'. Available: {', '.join(list_auth_providers())}"
        )
    return factory(**options)


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


class AuthGate:
    """
    Applies one provider in front of the dispatcher.

    Transports call ``authenticate`` once per HTTP request or per stream
    session; the dispatcher calls ``authorize`` for each method.
    """

    def __init__(self, provider: AuthProvider, *, production_mode: bool = False) -> None:
        if production_mode and getattr(provider, "provider_id", "") == "disabled":
            raise AuthConfigError(
                "Refusing to start MCP server in production mode with auth disabled"
            )
        self.provider = provider
        self.production_mode = production_mode

    @property
    def provider_id(self) -> str:
        return getattr(self.provider, "provider_id", "unknown")

    @property
    def enabled(self) -> bool:
        return self.provider_id != "disabled"

    async def authenticate(self, context: AuthContext) -> Principal:
        try:
            return await self.provider.authenticate(context)
        except AuthError as exc:
            logger.info("Authentication failed (%s): %s", context.transport, exc)
            raise

    @staticmethod
    def requires_authorization(method: str) -> bool:
        return method not in PUBLIC_METHODS and not method.startswith("notifications/")

    async def authorize(self, principal: Principal | None, *, method: str, resource: str) -> None:
        if not self.requires_authorization(method):
            return
        if principal is None:
            if not self.enabled:
                return
            raise AuthError("Request is not authenticated")
        decision = await self.provider.authorize(principal, action=method, resource=resource)
        if not decision.allowed:
            raise AuthorizationError(decision.reason or "Forbidden")
