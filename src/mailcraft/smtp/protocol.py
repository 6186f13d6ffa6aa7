"""
SMTP client protocol session.

SMTPProtocol drives one TCP connection through the SMTP command
sequence. It refuses commands issued out of order before anything is
written to the socket, applies the per-command timeouts recommended by
RFC 2821 section 4.5.3.2, authenticates with PLAIN, LOGIN or CRAM-MD5,
and dot-stuffs message data.

A session is not safe for concurrent use; callers must serialize access.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import socket
import ssl
from collections import deque
from enum import Enum
from typing import Any, Iterable, Optional, Union

from ..common.config import SMTPSettings
from ..common.exceptions import (
    ProtocolError,
    SMTPAuthError,
    SMTPConnectionError,
    StateError,
)
from .tls import create_smtp_client_context

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Position of a session in the SMTP command sequence."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    GREETED = "greeted"
    AUTHENTICATED = "authenticated"
    MAIL_SET = "mail_set"
    RCPT_SET = "rcpt_set"
    DATA_SENT = "data_sent"


class SMTPProtocol:
    """
    A synchronous SMTP client session.

    Example:
        smtp = SMTPProtocol(SMTPSettings(host="mail.example.com", ssl="tls"))
        smtp.connect()
        smtp.helo()
        smtp.mail("sender@example.com")
        smtp.rcpt("recipient@example.com")
        smtp.data(message.to_string())
        smtp.disconnect()
    """

    EOL = "\r\n"

    # Timeouts in seconds
    TIMEOUT_CONNECTION = 30
    TIMEOUT_DEFAULT = 300
    TIMEOUT_STARTTLS = 180
    TIMEOUT_DATA_OPEN = 120
    TIMEOUT_DATA_CLOSE = 600

    def __init__(self, settings: Optional[SMTPSettings] = None,
                 ssl_context: Optional[ssl.SSLContext] = None,
                 **options: Any) -> None:
        """
        Initialize the session.

        Args:
            settings: Connection settings. Built from ``options`` when
                omitted.
            ssl_context: SSL context for implicit TLS and STARTTLS; one is
                created from the settings when needed.
            **options: Setting values used when ``settings`` is omitted.

        Raises:
            InvalidConfigError: If the options are invalid.
        """
        self.settings = settings or SMTPSettings.from_options(options)
        self.host = self.settings.host
        self.port = self.settings.port
        self._ssl_context = ssl_context

        self._socket: Optional[socket.socket] = None
        self._reader = None

        self._session = False
        self._auth = False
        self._mail = False
        self._rcpt = False
        self._data = False
        self._mask_requests = False

        self._log: deque[str] = deque(maxlen=self.settings.max_log)
        self.request: Optional[str] = None
        self.response: Optional[str] = None

    # Session state

    @property
    def state(self) -> SessionState:
        """Current position in the command sequence."""
        if self._socket is None:
            return SessionState.DISCONNECTED
        if not self._session:
            return SessionState.CONNECTED
        if self._data:
            return SessionState.DATA_SENT
        if self._rcpt:
            return SessionState.RCPT_SET
        if self._mail:
            return SessionState.MAIL_SET
        if self._auth:
            return SessionState.AUTHENTICATED
        return SessionState.GREETED

    def has_session(self) -> bool:
        """True once the greeting has been exchanged."""
        return self._session

    @property
    def is_connected(self) -> bool:
        return self._socket is not None

    # Transaction log

    @property
    def maximum_log(self) -> int:
        return self._log.maxlen or 0

    @maximum_log.setter
    def maximum_log(self, size: int) -> None:
        self._log = deque(self._log, maxlen=max(1, int(size)))

    def get_log(self) -> str:
        """Return the logged protocol lines, oldest first."""
        return "".join(self._log)

    def reset_log(self) -> None:
        self._log.clear()

    def _add_log(self, line: str) -> None:
        self._log.append(line)

    # Transport

    def _context(self) -> ssl.SSLContext:
        if self._ssl_context is None:
            self._ssl_context = create_smtp_client_context(self.settings)
        return self._ssl_context

    def _set_socket(self, sock: socket.socket) -> None:
        if self._reader is not None:
            self._reader.close()
        self._socket = sock
        self._reader = sock.makefile("rb")

    def connect(self) -> None:
        """
        Open the connection, using implicit TLS when ``ssl`` is ``ssl``.

        Raises:
            StateError: If the session is already connected.
            SMTPConnectionError: If the connection cannot be established.
        """
        if self._socket is not None:
            raise StateError("Already connected")

        timeout = self.settings.timeout or self.TIMEOUT_CONNECTION
        try:
            sock = socket.create_connection((self.host, self.port),
                                            timeout=timeout)
        except OSError as e:
            raise SMTPConnectionError(
                f"Could not open socket to {self.host}:{self.port}: {e}",
                details={"host": self.host, "port": self.port},
            ) from e

        if self.settings.ssl == "ssl":
            try:
                sock = self._context().wrap_socket(sock,
                                                   server_hostname=self.host)
            except (OSError, ValueError) as e:
                sock.close()
                raise SMTPConnectionError(
                    f"TLS handshake with {self.host}:{self.port} failed: {e}"
                ) from e

        self._set_socket(sock)
        logger.info("Connected to SMTP server %s:%d", self.host, self.port)

    def close(self) -> None:
        """
        Drop the connection without saying goodbye.

        Any command issued afterwards fails with a protocol error.
        """
        reader, sock = self._reader, self._socket
        self._reader = None
        self._socket = None
        self._session = self._auth = False
        self._mail = self._rcpt = self._data = False

        if reader is not None:
            reader.close()
        if sock is not None:
            try:
                sock.close()
            except OSError as e:
                logger.debug("Error closing socket: %s", e)
            logger.info("Closed connection to %s:%d", self.host, self.port)

    def disconnect(self) -> None:
        """End the session with QUIT and close the connection."""
        try:
            if self._socket is not None:
                self.quit()
        finally:
            self.close()

    def _send(self, request: str) -> None:
        if self._socket is None:
            raise ProtocolError("No connection has been established")

        self.request = request
        line = request + self.EOL
        try:
            self._socket.sendall(line.encode("utf-8"))
        except OSError as e:
            raise ProtocolError(
                f"Could not send request to {self.host}: {e}") from e

        self._add_log(line)
        if self._mask_requests:
            logger.debug(">> ****")
        else:
            logger.debug(">> %s", request)

    def _receive(self, timeout: Optional[float] = None) -> str:
        if self._socket is None:
            raise ProtocolError("No connection has been established")

        try:
            self._socket.settimeout(timeout)
            line = self._reader.readline()
        except TimeoutError as e:
            raise ProtocolError(
                f"Timed out waiting for {self.host} after {timeout}s") from e
        except OSError as e:
            raise ProtocolError(
                f"Could not read from {self.host}: {e}") from e

        if not line:
            raise ProtocolError(f"Connection to {self.host} closed by server")

        response = line.decode("utf-8", "replace")
        self._add_log(response)
        logger.debug("<< %s", response.rstrip())
        return response

    def _expect(self, codes: Union[int, Iterable[int]],
                timeout: Optional[float] = None) -> str:
        """
        Read a complete, possibly multi-line, reply.

        Args:
            codes: Accepted status code or codes.
            timeout: Read timeout in seconds.

        Returns:
            The text of the last reply line.

        Raises:
            ProtocolError: If the status code is not accepted, the read
                times out, or the connection fails.
        """
        accepted = {codes} if isinstance(codes, int) else set(codes)
        timeout = self.TIMEOUT_DEFAULT if timeout is None else timeout

        error = ""
        error_code = None
        lines = []
        while True:
            response = self._receive(timeout).rstrip("\r\n")
            lines.append(response)
            code, more, msg = response[:3], response[3:4], response[4:]

            if error:
                error += " " + msg
            elif not code.isdigit() or int(code) not in accepted:
                error = msg or response
                error_code = int(code) if code.isdigit() else None

            if more != "-":
                break

        self.response = "\n".join(lines)
        if error:
            raise ProtocolError(error, code=error_code, response=self.response)
        return msg

    # Commands

    def helo(self) -> None:
        """
        Exchange greetings and set up the session.

        Waits for the server greeting, sends EHLO (falling back to HELO),
        upgrades the connection with STARTTLS when ``ssl`` is ``tls``, and
        authenticates when credentials are configured.

        Raises:
            StateError: If a session was already started.
            ProtocolError: If the server rejects the greeting.
        """
        if self._session:
            raise StateError("Cannot issue HELO to existing session")

        self._expect(220, self.TIMEOUT_DEFAULT)
        self._ehlo()

        if self.settings.ssl == "tls":
            self._send("STARTTLS")
            self._expect(220, self.TIMEOUT_STARTTLS)
            try:
                sock = self._context().wrap_socket(self._socket,
                                                   server_hostname=self.host)
            except (OSError, ValueError) as e:
                raise SMTPConnectionError("Unable to connect via TLS") from e
            self._set_socket(sock)
            logger.debug("Upgraded connection to %s with STARTTLS", self.host)
            self._ehlo()

        self._session = True
        self.auth()

    def _ehlo(self) -> None:
        helo = self.settings.helo
        try:
            self._send(f"EHLO {helo}")
            self._expect(250, self.TIMEOUT_DEFAULT)
        except ProtocolError:
            logger.debug("EHLO rejected by %s, falling back to HELO", self.host)
            self._send(f"HELO {helo}")
            self._expect(250, self.TIMEOUT_DEFAULT)

    def auth(self) -> None:
        """
        Authenticate with the configured mechanism, if any.

        Raises:
            StateError: If the session is already authenticated.
            SMTPAuthError: If the server rejects the credentials.
        """
        if self._auth:
            raise StateError("Already authenticated for this session")

        mechanisms = {
            "PLAIN": self._auth_plain,
            "LOGIN": self._auth_login,
            "CRAM-MD5": self._auth_cram_md5,
        }
        handler = mechanisms.get(self.settings.auth_type or "")
        if handler is None:
            return

        try:
            handler()
        except SMTPAuthError:
            raise
        except ProtocolError as e:
            raise SMTPAuthError(
                f"{self.settings.auth_type} authentication failed: {e.message}",
                code=e.code, response=e.response,
            ) from e
        finally:
            self._mask_requests = False

        self._auth = True
        logger.info("Authenticated to %s as %s", self.host,
                    self.settings.username)

    @staticmethod
    def _b64(value: Union[str, bytes]) -> str:
        if isinstance(value, str):
            value = value.encode("utf-8")
        return base64.b64encode(value).decode("ascii")

    def _auth_plain(self) -> None:
        self._send("AUTH PLAIN")
        self._expect(334)
        self._mask_requests = True
        self._send(self._b64(
            f"\0{self.settings.username}\0{self.settings.password}"))
        self._expect(235)

    def _auth_login(self) -> None:
        self._send("AUTH LOGIN")
        self._expect(334)
        self._mask_requests = True
        self._send(self._b64(self.settings.username))
        self._expect(334)
        self._send(self._b64(self.settings.password))
        self._expect(235)

    def _auth_cram_md5(self) -> None:
        self._send("AUTH CRAM-MD5")
        try:
            challenge = base64.b64decode(self._expect(334), validate=True)
        except binascii.Error as e:
            raise SMTPAuthError(
                f"Invalid CRAM-MD5 challenge: {e}", response=self.response,
            ) from e
        digest = hmac_md5(self.settings.password, challenge)
        self._mask_requests = True
        self._send(self._b64(f"{self.settings.username} {digest}"))
        self._expect(235)

    def mail(self, sender: str) -> None:
        """
        Start a mail transaction.

        Raises:
            StateError: If no session was started.
        """
        if not self._session:
            raise StateError("A valid session has not been started")

        self._send(f"MAIL FROM:<{sender}>")
        self._expect(250, self.TIMEOUT_DEFAULT)

        # RFC 2821 4.1.1.2 clears recipients and data
        self._mail = True
        self._rcpt = False
        self._data = False

    def rcpt(self, recipient: str) -> None:
        """
        Add a recipient to the transaction.

        Raises:
            StateError: If no sender was given.
        """
        if not self._mail:
            raise StateError("No sender reverse path has been supplied")

        self._send(f"RCPT TO:<{recipient}>")
        self._expect([250, 251], self.TIMEOUT_DEFAULT)
        self._rcpt = True

    def data(self, data: str) -> str:
        """
        Transfer the message.

        Lines are sent with CRLF endings; lines starting with a dot get an
        extra dot.

        Args:
            data: The complete message, headers included.

        Returns:
            The server's acceptance text.

        Raises:
            StateError: If no recipient was accepted.
        """
        if not self._rcpt:
            raise StateError("No recipient forward path has been supplied")

        self._send("DATA")
        self._expect(354, self.TIMEOUT_DATA_OPEN)

        lines = data.split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        for line in lines:
            line = line.rstrip("\r")
            if line.startswith("."):
                line = "." + line
            self._send(line)

        self._send(".")
        reply = self._expect(250, self.TIMEOUT_DATA_CLOSE)
        self._mail = False
        self._rcpt = False
        self._data = True
        return reply

    def rset(self) -> None:
        """Abort the current transaction, keeping the session."""
        self._send("RSET")
        # Some servers answer RSET with 220
        self._expect([250, 220])
        self._mail = False
        self._rcpt = False
        self._data = False

    def quit(self) -> None:
        """End the session if one was started and close the connection."""
        if not self._session:
            return
        self._auth = False
        try:
            self._send("QUIT")
            self._expect(221, self.TIMEOUT_DEFAULT)
        finally:
            self.close()


def hmac_md5(key: Union[str, bytes], data: Union[str, bytes]) -> str:
    """Return the lowercase hex HMAC-MD5 digest used by CRAM-MD5."""
    if isinstance(key, str):
        key = key.encode("utf-8")
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hmac.new(key, data, hashlib.md5).hexdigest()
