"""Signup / login / logout flows composed from the auth components."""

from __future__ import annotations

from dataclasses import dataclass

from config.settings import Settings
from src.auth.api_keys import ApiKeyManager
from src.auth.credentials import CredentialStore
from src.auth.sessions import SessionRegistry
from src.auth.tokens import IssuedToken, TokenIssuer
from src.auth.verifier import TokenVerifier
from src.core.exceptions import InvalidTokenError, TokenExpiredError
from src.core.interfaces import UserStore
from src.core.logging import get_logger
from src.core.types import Plan, Principal, Session, User

log = get_logger(__name__)


@dataclass(frozen=True)
class ClientInfo:
    """Where a login came from, recorded on the session."""

    ip_address: str = ""
    user_agent: str = ""
    device: dict[str, str] | None = None


@dataclass(frozen=True)
class AuthResult:
    user: User
    session: Session
    issued: IssuedToken
    remember_me: bool = False


class AuthService:
    """One session-tracked flow for both signup and login.

    Every successful authentication opens a registry session before a token
    is minted, so every token this service hands out can be revoked.
    """

    def __init__(
        self,
        store: UserStore,
        credentials: CredentialStore,
        sessions: SessionRegistry,
        issuer: TokenIssuer,
        verifier: TokenVerifier,
        api_keys: ApiKeyManager | None = None,
    ) -> None:
        self.store = store
        self.credentials = credentials
        self.sessions = sessions
        self.issuer = issuer
        self.verifier = verifier
        self.api_keys = api_keys or ApiKeyManager(store)

    @classmethod
    def build(cls, store: UserStore, settings: Settings) -> AuthService:
        secret = settings.jwt_secret.get_secret_value()
        sessions = SessionRegistry(store, max_sessions_per_user=settings.max_sessions_per_user)
        return cls(
            store=store,
            credentials=CredentialStore(
                store,
                bcrypt_rounds=settings.bcrypt_rounds,
                max_login_attempts=settings.max_login_attempts,
                lockout_minutes=settings.lockout_minutes,
            ),
            sessions=sessions,
            issuer=TokenIssuer(secret, settings.jwt_issuer, settings.jwt_audience),
            verifier=TokenVerifier(
                store,
                sessions,
                secret,
                settings.jwt_issuer,
                settings.jwt_audience,
            ),
            api_keys=ApiKeyManager(store, max_keys_per_user=settings.max_api_keys_per_user),
        )

    async def signup(
        self,
        *,
        email: str,
        password: str,
        plan: Plan | str = Plan.BASIC,
        full_name: str = "",
        client: ClientInfo | None = None,
    ) -> AuthResult:
        user = await self.credentials.create_user(email, password, plan, full_name)
        return await self._open_session(user, remember_me=False, client=client)

    async def login(
        self,
        *,
        email: str,
        password: str,
        remember_me: bool = False,
        client: ClientInfo | None = None,
    ) -> AuthResult:
        user = await self.credentials.verify_credentials(email, password)
        result = await self._open_session(user, remember_me=remember_me, client=client)
        log.info(
            "login_success",
            user_id=user.user_id,
            session_id=result.session.session_id,
            remember_me=remember_me,
        )
        return result

    async def logout(self, token: str | None) -> None:
        """Revoke the session a token names. Bad or missing tokens are ignored:
        the caller clears the cookie either way."""
        if not token:
            return
        try:
            claims = self.verifier.decode(token)
        except (InvalidTokenError, TokenExpiredError):
            log.info("logout_with_unusable_token")
            return
        if claims.session_id is not None:
            await self.sessions.revoke(claims.user_id, claims.session_id)

    async def logout_everywhere(self, principal: Principal) -> int:
        return await self.sessions.revoke_all(principal.user_id)

    async def deactivate(self, user_id: str) -> bool:
        """Disable an account and end all of its sessions."""
        changed = await self.credentials.deactivate(user_id)
        if changed:
            await self.sessions.revoke_all(user_id)
        return changed

    async def _open_session(
        self, user: User, *, remember_me: bool, client: ClientInfo | None,
    ) -> AuthResult:
        client = client or ClientInfo()
        session = await self.sessions.create_session(
            user.user_id,
            remember_me=remember_me,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            device=client.device,
        )
        issued = self.issuer.issue(user, session.session_id, remember_me=remember_me)
        return AuthResult(user=user, session=session, issued=issued, remember_me=remember_me)
