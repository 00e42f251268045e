"""Authentication strategies.

A strategy knows how to obtain credentials for one provider family and how
to attach them to an outgoing request. Token lifecycle (caching, expiry,
refresh-or-relogin, the single retry on 401) lives in ``AuthManager``.

Strategies:
- OAuth2PasswordRefresh: password grant + refresh_token grant (Parasut)
- JwtObtainRefresh: obtain/refresh JWT pair (Entegra)
- BasicStatic: Basic auth or static API key headers (Sentos, BizimHesap)
- SessionToken: login call returning an opaque session token (Dopigo, StockMount,
  Hepsijet, Navlungo)
- SoapHeader: username/password HTTP headers on every SOAP call (KolaySoft)
"""

import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from core.mapping.accessor import PayloadAccessor, Path
from drivers.auth.tokens import TokenRecord
from drivers.credentials import ProviderCredential
from drivers.errors import AuthenticationError, DriverError, classify_response
from drivers.transport import TransportRequest, TransportResponse

logger = logging.getLogger(__name__)


class AuthKind(str, Enum):
    """Authentication families."""
    OAUTH2_PASSWORD = "oauth2_password"
    JWT = "jwt"
    BASIC_STATIC = "basic_static"
    SESSION_TOKEN = "session_token"
    SOAP_HEADER = "soap_header"


Sender = Callable[[TransportRequest], Awaitable[TransportResponse]]


@dataclass
class AuthContext:
    """What a strategy needs to talk to the auth endpoint."""
    provider: str
    tenant_id: str
    credential: ProviderCredential
    send: Sender
    now: Callable[[], datetime]
    buffer_seconds: float = 60
    timeout: Optional[float] = None

    def issue(self, access_token: str, lifetime_seconds: float, **kwargs) -> TokenRecord:
        return TokenRecord.issue(
            provider=self.provider,
            tenant_id=self.tenant_id,
            access_token=access_token,
            lifetime_seconds=lifetime_seconds,
            buffer_seconds=self.buffer_seconds,
            now=self.now(),
            **kwargs,
        )


def _login_failure(response: TransportResponse, what: str) -> DriverError:
    """Auth endpoints answer bad credentials with 400 as often as 401."""
    if response.status in (400, 401, 403):
        return AuthenticationError(
            f"{what} rejected (HTTP {response.status})",
            response.status,
            response.text,
        )
    return classify_response(response.status, response.text)


class AuthStrategy(ABC):
    """Base class for provider authentication."""

    kind: AuthKind
    issues_tokens: bool = True
    supports_refresh: bool = False
    retry_on_unauthorized: bool = True

    async def login(self, ctx: AuthContext) -> Optional[TokenRecord]:
        """Obtain a fresh token. Stateless strategies return None."""
        return None

    async def refresh(self, ctx: AuthContext, record: TokenRecord) -> TokenRecord:
        """Exchange a refresh token. Only called when ``supports_refresh``."""
        raise NotImplementedError(f"{type(self).__name__} cannot refresh tokens")

    @abstractmethod
    def apply(self, request: TransportRequest, credential: ProviderCredential, token: Optional[TokenRecord]) -> None:
        """Attach credentials to an outgoing business request."""
        pass


class OAuth2PasswordRefresh(AuthStrategy):
    """OAuth2 resource-owner password grant with refresh tokens."""

    kind = AuthKind.OAUTH2_PASSWORD
    supports_refresh = True

    def __init__(
        self,
        token_url: str,
        redirect_uri: Optional[str] = "urn:ietf:wg:oauth:2.0:oob",
        default_lifetime: int = 7200,
        scope: Optional[str] = None,
    ):
        self.token_url = token_url
        self.redirect_uri = redirect_uri
        self.default_lifetime = default_lifetime
        self.scope = scope

    def _form(self, credential: ProviderCredential, **fields) -> Dict[str, Any]:
        form = {
            "client_id": credential.client_id,
            "client_secret": credential.client_secret,
        }
        if self.redirect_uri:
            form["redirect_uri"] = self.redirect_uri
        if self.scope:
            form["scope"] = self.scope
        form.update(fields)
        return form

    async def _exchange(self, ctx: AuthContext, form: Dict[str, Any], what: str, previous: Optional[TokenRecord] = None) -> TokenRecord:
        response = await ctx.send(TransportRequest("POST", self.token_url, form=form, timeout=ctx.timeout))
        if not response.ok:
            raise _login_failure(response, what)
        data = PayloadAccessor(response.json())
        access_token = data.text("access_token")
        if not access_token:
            raise AuthenticationError(f"{what} returned no access_token", response.status, response.text)
        return ctx.issue(
            access_token,
            data.integer("expires_in", default=self.default_lifetime) or self.default_lifetime,
            refresh_token=data.text("refresh_token") or (previous.refresh_token if previous else None),
            token_type="Bearer",
        )

    async def login(self, ctx: AuthContext) -> TokenRecord:
        credential = ctx.credential
        form = self._form(
            credential,
            grant_type="password",
            username=credential.username,
            password=credential.password,
        )
        return await self._exchange(ctx, form, "OAuth2 password login")

    async def refresh(self, ctx: AuthContext, record: TokenRecord) -> TokenRecord:
        form = self._form(ctx.credential, grant_type="refresh_token", refresh_token=record.refresh_token)
        return await self._exchange(ctx, form, "OAuth2 token refresh", previous=record)

    def apply(self, request, credential, token):
        request.headers["Authorization"] = token.authorization_header


class JwtObtainRefresh(AuthStrategy):
    """JWT obtain/refresh pair (``{access, refresh}``)."""

    kind = AuthKind.JWT
    supports_refresh = True

    def __init__(
        self,
        obtain_url: str,
        refresh_url: str,
        header_prefix: str = "JWT",
        access_lifetime: int = 604800,
        refresh_lifetime: int = 2592000,
        login_field: str = "email",
    ):
        self.obtain_url = obtain_url
        self.refresh_url = refresh_url
        self.header_prefix = header_prefix
        self.access_lifetime = access_lifetime
        self.refresh_lifetime = refresh_lifetime
        self.login_field = login_field

    def _record(self, ctx: AuthContext, response: TransportResponse, what: str, previous: Optional[TokenRecord] = None) -> TokenRecord:
        if not response.ok:
            raise _login_failure(response, what)
        data = PayloadAccessor(response.json())
        access = data.text(["access", "access_token", "token"])
        if not access:
            raise AuthenticationError(f"{what} returned no access token", response.status, response.text)
        refresh = data.text(["refresh", "refresh_token"]) or (previous.refresh_token if previous else None)
        return ctx.issue(
            access,
            self.access_lifetime,
            refresh_token=refresh,
            refresh_lifetime_seconds=self.refresh_lifetime,
            token_type=self.header_prefix,
        )

    async def login(self, ctx: AuthContext) -> TokenRecord:
        body = {self.login_field: ctx.credential.username, "password": ctx.credential.password}
        response = await ctx.send(TransportRequest("POST", self.obtain_url, json=body, timeout=ctx.timeout))
        return self._record(ctx, response, "JWT login")

    async def refresh(self, ctx: AuthContext, record: TokenRecord) -> TokenRecord:
        response = await ctx.send(
            TransportRequest("POST", self.refresh_url, json={"refresh": record.refresh_token}, timeout=ctx.timeout)
        )
        return self._record(ctx, response, "JWT refresh", previous=record)

    def apply(self, request, credential, token):
        request.headers["Authorization"] = f"{self.header_prefix} {token.access_token}"


class BasicStatic(AuthStrategy):
    """Credentials re-sent on every call; nothing to cache.

    Either HTTP Basic built from two credential fields, or a fixed set of
    headers whose values come from credential fields (``{"Key": "api_key"}``).
    A 401 is terminal: there is nothing to renew.
    """

    kind = AuthKind.BASIC_STATIC
    issues_tokens = False
    retry_on_unauthorized = False

    def __init__(
        self,
        user_fields: Sequence[str] = ("username", "api_key"),
        password_fields: Sequence[str] = ("password", "api_secret"),
        static_headers: Optional[Dict[str, str]] = None,
        header_defaults: Optional[Dict[str, str]] = None,
    ):
        self.user_fields = tuple(user_fields)
        self.password_fields = tuple(password_fields)
        self.static_headers = static_headers
        self.header_defaults = header_defaults or {}

    @staticmethod
    def _first(credential: ProviderCredential, names: Sequence[str]) -> Optional[str]:
        for name in names:
            value = credential.value(name)
            if value:
                return value
        return None

    def apply(self, request, credential, token):
        if self.static_headers is not None:
            for header, field_name in self.static_headers.items():
                value = credential.value(field_name) or self.header_defaults.get(header)
                if value:
                    request.headers[header] = value
            return
        user = self._first(credential, self.user_fields) or ""
        password = self._first(credential, self.password_fields) or ""
        encoded = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
        request.headers["Authorization"] = f"Basic {encoded}"


class SessionToken(AuthStrategy):
    """Login call that returns an opaque token valid for a fixed period.

    The token is attached as a header (``Authorization: Token <t>``) or as a
    body field (``{"ApiCode": "<t>"}``). A 401 clears the cache and forces
    one re-login.

    Some logins are a bare GET authenticated by another strategy
    (``login_method="GET"``, ``login_auth=BasicStatic()``), and some report
    the token lifetime in the reply (``lifetime_path="expires_in"``).
    """

    kind = AuthKind.SESSION_TOKEN

    def __init__(
        self,
        login_url: str,
        login_payload: Optional[Callable[[ProviderCredential], Dict[str, Any]]],
        token_path: Sequence[str] = ("token",),
        lifetime_seconds: int = 3600,
        body_format: str = "json",
        placement: str = "header",
        header_name: str = "Authorization",
        header_prefix: Optional[str] = "Token",
        body_field: str = "ApiCode",
        success_path: Optional[str] = None,
        message_paths: Sequence[str] = ("ErrorMessage", "Message", "detail", "non_field_errors.0"),
        login_method: str = "POST",
        login_auth: Optional[AuthStrategy] = None,
        lifetime_path: Optional[Path] = None,
    ):
        if body_format not in ("json", "multipart", "form"):
            raise ValueError(f"Unsupported login body format: {body_format}")
        if placement not in ("header", "body"):
            raise ValueError(f"Unsupported token placement: {placement}")
        self.login_url = login_url
        self.login_payload = login_payload
        self.token_path = tuple(token_path)
        self.lifetime_seconds = lifetime_seconds
        self.body_format = body_format
        self.placement = placement
        self.header_name = header_name
        self.header_prefix = header_prefix
        self.body_field = body_field
        self.success_path = success_path
        self.message_paths = tuple(message_paths)
        self.login_method = login_method
        self.login_auth = login_auth
        self.lifetime_path = lifetime_path

    async def login(self, ctx: AuthContext) -> TokenRecord:
        request = TransportRequest(self.login_method, self.login_url, timeout=ctx.timeout)
        if self.login_payload is not None:
            setattr(request, self.body_format, self.login_payload(ctx.credential))
        if self.login_auth is not None:
            self.login_auth.apply(request, ctx.credential, None)
        response = await ctx.send(request)
        if not response.ok:
            raise _login_failure(response, "Session login")

        data = PayloadAccessor(response.json())
        if self.success_path and not data.boolean(self.success_path):
            message = data.text(list(self.message_paths), default="login refused")
            raise AuthenticationError(f"Session login rejected: {message}", response.status, response.text)
        token = data.text(list(self.token_path))
        if not token:
            raise AuthenticationError("Session login returned no token", response.status, response.text)
        lifetime = self.lifetime_seconds
        if self.lifetime_path:
            lifetime = data.integer(self.lifetime_path, default=self.lifetime_seconds) or self.lifetime_seconds
        return ctx.issue(token, lifetime, token_type=self.header_prefix or "")

    def apply(self, request, credential, token):
        if self.placement == "header":
            value = f"{self.header_prefix} {token.access_token}" if self.header_prefix else token.access_token
            request.headers[self.header_name] = value
            return
        if request.json is not None and isinstance(request.json, dict):
            request.json = {self.body_field: token.access_token, **request.json}
        elif request.form is not None:
            request.form = {self.body_field: token.access_token, **request.form}
        else:
            request.json = {self.body_field: token.access_token}


class SoapHeader(AuthStrategy):
    """Username/password HTTP headers on every SOAP call."""

    kind = AuthKind.SOAP_HEADER
    issues_tokens = False
    retry_on_unauthorized = False

    def __init__(self, username_header: str = "Username", password_header: str = "Password"):
        self.username_header = username_header
        self.password_header = password_header

    def apply(self, request, credential, token):
        request.headers[self.username_header] = credential.username or ""
        request.headers[self.password_header] = credential.password or ""
