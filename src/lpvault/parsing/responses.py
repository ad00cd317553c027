"""Parsing of the service's XML-ish text responses.

Login, session-check and mutation endpoints answer with small XML
documents whose payload lives in element attributes, e.g.::

    <response><ok uid="1" sessionid="abc" token="t" .../></response>
    <response><error cause="unknownpassword" message="Invalid password"/></response>
    <xmlresponse><result aid="42" msg="accountadded"/></xmlresponse>

All XML is parsed with defusedxml.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from xml.etree.ElementTree import Element

from defusedxml import ElementTree as DefusedET

from lpvault.exceptions import ProtocolError


@dataclass(frozen=True, slots=True)
class LoginResult:
    """Attributes of a successful login.

    Attributes:
        session_id: Server session identifier (``PHPSESSID`` cookie value)
        token: CSRF token
        uid: Server-side user ID
        private_key_enc: Encrypted private key, hex (may be empty)
        attributes: All attributes of the ``ok`` element
    """

    session_id: str
    token: str
    uid: str = ""
    private_key_enc: str = ""
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class LoginFailure:
    """Attributes of a rejected login.

    Attributes:
        cause: Machine-readable cause code (may be empty)
        message: Human-readable message
        iterations: Iteration count the server expects, when it reports one
    """

    cause: str
    message: str
    iterations: int | None = None


@dataclass(frozen=True, slots=True)
class MutationResult:
    """Attributes of a ``result`` element from the mutation endpoint.

    Attributes:
        msg: Status marker, e.g. "accountadded"
        aid: Account ID the server acted on
        action: Action attribute, if present
    """

    msg: str
    aid: str = ""
    action: str = ""


def _text(body: bytes | str) -> str:
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return body


def _parse_xml(body: bytes | str) -> Element:
    text = _text(body).strip()
    if not text:
        raise ProtocolError("Empty response from server")
    try:
        return DefusedET.fromstring(text)
    except (DefusedET.ParseError, ValueError) as e:
        raise ProtocolError(f"Unparseable server response: {text[:200]}") from e


def _find(root: Element, tag: str) -> Element | None:
    """Return root itself if it has the tag, else the first descendant."""
    if root.tag == tag:
        return root
    return root.find(f".//{tag}")


def parse_iterations(body: bytes | str) -> int:
    """Parse the iteration-count endpoint response.

    Raises:
        ProtocolError: If the body is not a positive integer
    """
    text = _text(body).strip()
    try:
        iterations = int(text)
    except ValueError:
        raise ProtocolError(f"Invalid iteration count from server: {text[:100]!r}") from None
    if iterations < 1:
        raise ProtocolError(f"Invalid iteration count from server: {iterations}")
    return iterations


def parse_login_response(body: bytes | str) -> LoginResult | LoginFailure:
    """Parse a login response.

    Returns:
        LoginResult on success, LoginFailure when the server reports an error

    Raises:
        ProtocolError: If the body is neither
    """
    root = _parse_xml(body)

    ok = _find(root, "ok")
    if ok is not None:
        attrs = dict(ok.attrib)
        session_id = attrs.get("sessionid", "")
        token = attrs.get("token", "")
        if not session_id or not token:
            raise ProtocolError("Login response lacks session id or token")
        return LoginResult(
            session_id=session_id,
            token=token,
            uid=attrs.get("uid", ""),
            private_key_enc=attrs.get("privatekeyenc", ""),
            attributes=attrs,
        )

    error = _find(root, "error")
    if error is not None:
        iterations = error.get("iterations")
        return LoginFailure(
            cause=error.get("cause", ""),
            message=error.get("message", ""),
            iterations=int(iterations) if iterations and iterations.isdigit() else None,
        )

    raise ProtocolError(f"Unexpected login response: {_text(body)[:200]}")


def parse_ok_attributes(body: bytes | str) -> dict[str, str] | None:
    """Return the attributes of an ``ok`` element, or None if there is none.

    Unparseable bodies also yield None; used for the session check endpoint.
    """
    try:
        root = _parse_xml(body)
    except ProtocolError:
        return None
    ok = _find(root, "ok")
    return dict(ok.attrib) if ok is not None else None


def parse_mutation_response(body: bytes | str) -> MutationResult:
    """Parse an add/update/delete response.

    Raises:
        ProtocolError: If the body is unparseable, carries an ``error``
            element, or has no ``result`` element
    """
    root = _parse_xml(body)

    error = _find(root, "error")
    if error is not None:
        detail = error.get("message") or error.get("msg") or _text(body).strip()
        raise ProtocolError(detail)

    result = _find(root, "result")
    if result is None:
        raise ProtocolError(f"Unexpected mutation response: {_text(body)[:200]}")

    return MutationResult(
        msg=result.get("msg", ""),
        aid=result.get("aid", ""),
        action=result.get("action", ""),
    )
