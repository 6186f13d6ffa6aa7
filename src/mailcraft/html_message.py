"""
HTML e-mail messages.

HTMLMessage sends an HTML body together with a plain text alternative,
and manages the MIME structure needed for attachments and for images
embedded in the HTML:

    multipart/mixed             (once something is attached)
      multipart/alternative
        text/plain
        multipart/related       (once something is embedded)
          text/html
          embedded assets
      attachments
"""

import logging
import re
from html import unescape
from pathlib import Path
from typing import IO, Optional, Union

from .common.exceptions import MailError
from .message import Message
from .mime.attachment import Attachment
from .mime.encoder import (
    DISPOSITION_INLINE,
    MULTIPART_ALTERNATIVE,
    MULTIPART_MIXED,
    MULTIPART_RELATED,
    TYPE_HTML,
    TYPE_TEXT,
)
from .mime.multipart import MultipartMessage
from .mime.part import Part, create_text_part

logger = logging.getLogger(__name__)

_BREAK = re.compile(r"<br[^>]*>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")


def html_to_text(html: str) -> str:
    """Produce a rudimentary plain text rendering of HTML."""
    text = _BREAK.sub("\n", html)
    text = text.replace("</p>", "\n")
    return unescape(_TAG.sub("", text))


class HTMLMessage(Message):
    """
    A message with an HTML body and a plain text alternative.

    When no plain text is set it is derived from the HTML.

    Example:
        message = HTMLMessage()
        message.set_from("sender@example.com")
        message.add_to("recipient@example.com")
        logo = message.embed("logo.png")
        message.set_html(f'<p>Hello</p><img src="{logo}">')
        message.attach("report.pdf")
    """

    def __init__(self) -> None:
        super().__init__()
        self._plain_part = create_text_part("", TYPE_TEXT)
        self._html_part = create_text_part("", TYPE_HTML)
        self._alternative = MultipartMessage(
            [self._plain_part, self._html_part], type=MULTIPART_ALTERNATIVE)
        self._related: Optional[MultipartMessage] = None
        self._wrapper: Optional[MultipartMessage] = None
        self.set_body(self._alternative)

    @property
    def html_part(self) -> Part:
        return self._html_part

    @property
    def plain_part(self) -> Part:
        return self._plain_part

    def set_html(self, html: str) -> "HTMLMessage":
        self._html_part.set_content(html)
        return self

    def set_plain(self, text: str) -> "HTMLMessage":
        self._plain_part.set_content(text)
        return self

    def attach(self, filename: Union[str, Path],
               stream: Optional[IO[bytes]] = None,
               mime_type: Optional[str] = None) -> Attachment:
        """
        Attach a file to the message.

        The first attachment wraps the text alternatives in a
        multipart/mixed container.

        Args:
            filename: File name, or a readable path when no stream is given.
            stream: Binary stream with the content.
            mime_type: MIME type; guessed from the file name if omitted.

        Returns:
            The created attachment.
        """
        attachment = Attachment(filename, stream, mime_type)
        if self._wrapper is None:
            self._wrapper = MultipartMessage([self._alternative],
                                             type=MULTIPART_MIXED)
            self.set_body(self._wrapper)

        self._wrapper.add_part(attachment)
        logger.debug("Attached %s to message", attachment.filename)
        return attachment

    def embed(self, filename: Union[str, Path],
              stream: Optional[IO[bytes]] = None,
              mime_type: Optional[str] = None) -> str:
        """
        Embed an asset referenced from the HTML.

        Args:
            filename: File name, or a readable path when no stream is given.
            stream: Binary stream with the content.
            mime_type: MIME type; guessed from the file name if omitted.

        Returns:
            A ``cid:`` URI to use in the HTML.
        """
        if self._related is None:
            self._alternative.remove_part(self._html_part)
            self._related = MultipartMessage([self._html_part],
                                             type=MULTIPART_RELATED)
            self._alternative.add_part(self._related)

        attachment = Attachment(filename, stream, mime_type)
        attachment.disposition = DISPOSITION_INLINE
        content_id = attachment.generate_id()
        self._related.add_part(attachment)
        logger.debug("Embedded %s as cid:%s", attachment.filename, content_id)
        return f"cid:{content_id}"

    def body_text(self) -> str:
        """
        Render the body, deriving the plain text from the HTML if needed.

        Raises:
            MailError: If both the plain text and the HTML are empty.
        """
        if not self._plain_part.raw_content():
            html = self._html_part.raw_content()
            if not html:
                raise MailError("Not forming empty e-mail message")
            self._plain_part.set_content(html_to_text(html))

        return super().body_text()
