"""
File attachments.

An Attachment is a base64 encoded part built from a file name. The file
is only opened while its content is being rendered, so attaching many or
large files costs no memory until the message is sent.
"""

import logging
import mimetypes
import os
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Optional, Union

from ..common.exceptions import MailError
from .encoder import DISPOSITION_ATTACHMENT, ENCODING_BASE64, TYPE_OCTETSTREAM
from .part import Part

logger = logging.getLogger(__name__)


class Attachment(Part):
    """
    A file attached to a message.

    Example:
        attachment = Attachment("/path/to/report.pdf")
        attachment = Attachment("data.csv", stream=io.BytesIO(data))
    """

    def __init__(self, filename: Union[str, Path],
                 stream: Optional[IO[bytes]] = None,
                 mime_type: Optional[str] = None) -> None:
        """
        Initialize the attachment.

        Args:
            filename: Name of the file. Without a stream this must be a
                readable path.
            stream: Binary stream with the content; used instead of the file.
            mime_type: MIME type; guessed from the file name if omitted.

        Raises:
            MailError: If no stream is given and the file is not readable.
        """
        path = Path(filename)
        self.path: Optional[Path] = None
        if stream is None:
            if not path.is_file() or not os.access(path, os.R_OK):
                raise MailError(f"Cannot read file {filename}",
                                {"filename": str(filename)})
            self.path = path

        if not mime_type:
            mime_type, _ = mimetypes.guess_type(path.name)

        super().__init__(
            stream if stream is not None else b"",
            type=mime_type or TYPE_OCTETSTREAM,
            encoding=ENCODING_BASE64,
            disposition=DISPOSITION_ATTACHMENT,
            filename=path.name,
        )
        if self.path is not None:
            self.is_stream = True

        logger.debug("Created attachment %s (%s)", self.filename, self.type)

    @contextmanager
    def open_stream(self) -> Iterator[IO[bytes]]:
        if self.path is None:
            with super().open_stream() as stream:
                yield stream
            return

        try:
            handle = open(self.path, "rb")
        except OSError as e:
            raise MailError(f"Cannot read file {self.path}",
                            {"filename": str(self.path)}) from e
        with handle:
            yield handle

    def generate_id(self) -> str:
        """
        Assign a unique Content-ID.

        Returns:
            The new Content-ID, usable in ``cid:`` URIs.
        """
        self.id = uuid.uuid4().hex
        return self.id
