"""Login handshake and session lifecycle.

The SessionManager turns a username and master password into a Session:

1. Ask the server for the account's iteration count
2. Derive the vault key and login hash locally
3. Submit the login hash; on success decrypt the returned private key

The password never leaves this module and is not kept after login.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import ClientSettings
from .exceptions import AuthenticationError, ChallengeRequiredError, ProtocolError
from .parsing.responses import (
    LoginFailure,
    parse_iterations,
    parse_login_response,
    parse_ok_attributes,
)
from .security import decrypt_private_key, derive_keys
from .session import Session, SessionState
from .transport import (
    ITERATIONS_PATH,
    LOGIN_CHECK_PATH,
    LOGIN_PATH,
    LOGOUT_PATH,
    USE_SETTINGS,
    Transport,
    build_request,
)

logger = logging.getLogger(__name__)

# Server causes meaning the credentials themselves were rejected
CREDENTIAL_CAUSES = frozenset(
    {
        "unknownemail",
        "unknownpassword",
        "user_not_exists",
        "password_invalid",
        "multifactorresponsefailed",
    }
)

# Server causes meaning an interactive second factor is needed
CHALLENGE_CAUSES = frozenset(
    {
        "otprequired",
        "outofbandrequired",
        "yubikeyrestricted",
    }
)


@dataclass(frozen=True, slots=True)
class LoginOptions:
    """Optional login parameters.

    Attributes:
        otp: One-time password answering a second-factor challenge
        trust_id: Stable device identifier sent as ``uuid``
        trust_label: Human-readable device label for trusted-device login
        timeout: Per-request timeout in seconds overriding the settings;
            None disables the timeout
    """

    otp: str | None = None
    trust_id: str | None = None
    trust_label: str | None = None
    timeout: float | None | object = USE_SETTINGS


def _is_challenge(cause: str) -> bool:
    return cause in CHALLENGE_CAUSES or cause.endswith("authrequired")


def _is_rejection(cause: str) -> bool:
    return cause in CREDENTIAL_CAUSES or _is_challenge(cause)


class SessionManager:
    """Drives login, logout and session checks over a Transport.

    The manager tracks the lifecycle of the most recent session it
    produced through its ``state`` property.

    Example:
        manager = SessionManager(HttpxTransport())
        session = manager.login("user@example.com", "secret")
        saved = session.serialize()
        ...
        session = manager.from_session(saved)
    """

    def __init__(
        self,
        transport: Transport,
        settings: ClientSettings | None = None,
    ) -> None:
        """Initialize manager.

        Args:
            transport: Transport used for every request
            settings: Client settings (defaults to ClientSettings())
        """
        self._transport = transport
        self._settings = settings or ClientSettings()
        self._state = SessionState.UNAUTHENTICATED

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def settings(self) -> ClientSettings:
        """Settings used for requests."""
        return self._settings

    def fetch_iterations(
        self, username: str, timeout: float | None | object = USE_SETTINGS
    ) -> int:
        """Ask the server for the iteration count of an account.

        Raises:
            ProtocolError: On a non-200 answer or a non-integer body
        """
        request = build_request(
            self._settings,
            "POST",
            ITERATIONS_PATH,
            data={"email": username},
            timeout=timeout,
        )
        response = self._transport.send(request)
        if response.status_code != 200:
            raise ProtocolError(
                f"Iteration count request failed with status {response.status_code}"
            )
        return parse_iterations(response.content)

    def login(
        self,
        username: str,
        password: str,
        options: LoginOptions | None = None,
    ) -> Session:
        """Authenticate and build a Session.

        Args:
            username: Account e-mail
            password: Master password
            options: Second-factor answer, trusted-device data, timeout

        Returns:
            Authenticated Session

        Raises:
            AuthenticationError: If the credentials are rejected
            ChallengeRequiredError: If a second factor must be supplied
            ProtocolError: If the server response is unexpected
            CryptoError: If the returned private key cannot be decrypted
            TransportError: If a request cannot be delivered
        """
        options = options or LoginOptions()
        self._state = SessionState.AUTHENTICATING
        try:
            session = self._login(username, password, options)
        except BaseException:
            self._state = SessionState.UNAUTHENTICATED
            raise
        self._state = SessionState.AUTHENTICATED
        return session

    def _login(self, username: str, password: str, options: LoginOptions) -> Session:
        timeout = options.timeout
        iterations = self.fetch_iterations(username, timeout)
        logger.debug("Server requires %d iterations", iterations)

        # The server may report a different count once; retry with it
        for attempt in range(2):
            keys = derive_keys(username, password, iterations)
            response = self._transport.send(
                build_request(
                    self._settings,
                    "POST",
                    LOGIN_PATH,
                    data=self._login_form(username, keys.login_hash, iterations, options),
                    timeout=timeout,
                )
            )
            result = parse_login_response(response.content)

            if not isinstance(result, LoginFailure):
                break

            if result.iterations is not None and not _is_rejection(result.cause):
                if attempt == 1 or result.iterations == iterations:
                    raise ProtocolError("Iteration count negotiation failed")
                logger.debug(
                    "Server expects %d iterations instead of %d, retrying",
                    result.iterations,
                    iterations,
                )
                iterations = result.iterations
                continue

            self._raise_failure(result)

        session = Session(
            username=username,
            uid=result.uid,
            session_id=result.session_id,
            token=result.token,
            vault_key=keys.vault_key,
            iterations=iterations,
            server=self._settings.base_url,
        )
        if result.private_key_enc:
            session.private_key = decrypt_private_key(
                result.private_key_enc, keys.vault_key
            )
        logger.debug("Logged in as uid %s", session.uid)
        return session

    def _login_form(
        self,
        username: str,
        login_hash: str,
        iterations: int,
        options: LoginOptions,
    ) -> dict[str, str]:
        form = {
            "method": self._settings.client_method,
            "xml": "2",
            "username": username,
            "hash": login_hash,
            "iterations": str(iterations),
            "includeprivatekeyenc": "1",
            "outofbandsupported": "1",
        }
        if options.otp:
            form["otp"] = options.otp
        if options.trust_id:
            form["uuid"] = options.trust_id
        if options.trust_label:
            form["trustlabel"] = options.trust_label
        return form

    @staticmethod
    def _raise_failure(failure: LoginFailure) -> None:
        cause = failure.cause
        if cause in CREDENTIAL_CAUSES:
            raise AuthenticationError(failure.message or "Authentication failed")
        if _is_challenge(cause):
            raise ChallengeRequiredError(cause, failure.message)
        raise ProtocolError(failure.message or f"Login failed: {cause or 'unknown'}")

    def from_session(self, serialized: str) -> Session:
        """Restore a session without contacting the server.

        Raises:
            SessionError: If the serialized form is invalid
        """
        session = Session.deserialize(serialized)
        self._state = SessionState.AUTHENTICATED
        return session

    def logout(
        self, session: Session, timeout: float | None | object = USE_SETTINGS
    ) -> None:
        """Invalidate the session on the server.

        Calling logout on an already logged-out manager does nothing. A
        non-200 answer is logged and otherwise ignored.

        Raises:
            TransportError: If the request cannot be delivered
        """
        if self._state == SessionState.LOGGED_OUT:
            return

        response = self._transport.send(
            build_request(
                self._settings,
                "POST",
                LOGOUT_PATH,
                session=session,
                data={
                    "method": self._settings.client_method,
                    "noredirect": "1",
                    "token": session.token,
                },
                timeout=timeout,
            )
        )
        if response.status_code != 200:
            logger.warning("Logout returned status %d", response.status_code)
        self._state = SessionState.LOGGED_OUT

    def check(
        self, session: Session, timeout: float | None | object = USE_SETTINGS
    ) -> bool:
        """Return whether the server still accepts the session.

        A rejected session moves the manager to the EXPIRED state.
        """
        response = self._transport.send(
            build_request(
                self._settings,
                "POST",
                LOGIN_CHECK_PATH,
                session=session,
                data={"method": self._settings.client_method},
                timeout=timeout,
            )
        )
        if response.status_code == 200 and parse_ok_attributes(response.content) is not None:
            return True

        logger.debug("Session check rejected with status %d", response.status_code)
        self._state = SessionState.EXPIRED
        return False
