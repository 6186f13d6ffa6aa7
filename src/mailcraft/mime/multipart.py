"""
Multipart MIME containers.

A MultipartMessage is an ordered list of parts sharing one boundary.
Because it renders its own Content-Type header it can itself be nested
inside another multipart container, which is how alternative, related
and mixed bodies are combined.
"""

import logging
from typing import Iterable, Optional

from ..common.exceptions import MailError, ValidationError
from .encoder import LINEEND, MULTIPART_MIXED, Boundary
from .part import MimePart, render_headers

logger = logging.getLogger(__name__)

PREAMBLE = ("This is a message in Mime Format.  If you see this, "
            "your mail reader does not support this format.")


class MultipartMessage:
    """
    An ordered collection of MIME parts.

    With a single part the container is transparent: it renders that
    part's content without boundaries.
    """

    def __init__(self, parts: Optional[Iterable[MimePart]] = None,
                 type: str = MULTIPART_MIXED,
                 boundary: Optional[Boundary] = None) -> None:
        """
        Initialize the container.

        Args:
            parts: Initial parts.
            type: A ``multipart/*`` MIME type.
            boundary: Boundary to use; a unique one is generated if omitted.
        """
        self._parts: list[MimePart] = []
        self.type = MULTIPART_MIXED
        self.set_type(type)
        self.boundary = boundary or Boundary()
        for part in parts or []:
            self.add_part(part)

    @property
    def parts(self) -> list[MimePart]:
        """The parts, in order."""
        return list(self._parts)

    def set_type(self, type: str) -> "MultipartMessage":
        """
        Set the multipart subtype.

        Raises:
            ValidationError: If the type is not a multipart type.
        """
        if not type.startswith("multipart/"):
            raise ValidationError("type", type,
                                  "Multipart type must start with 'multipart/'")
        self.type = type
        return self

    def add_part(self, part: MimePart) -> "MultipartMessage":
        """
        Append a part.

        Raises:
            MailError: If this exact part was already added.
        """
        if any(existing is part for existing in self._parts):
            raise MailError("Provided part is already added")
        self._parts.append(part)
        return self

    def remove_part(self, part: MimePart) -> bool:
        """Remove a part, returning whether it was present."""
        for i, existing in enumerate(self._parts):
            if existing is part:
                del self._parts[i]
                return True
        return False

    def set_parts(self, parts: Iterable[MimePart]) -> "MultipartMessage":
        """Replace all parts."""
        self._parts = []
        for part in parts:
            self.add_part(part)
        return self

    def is_multipart(self) -> bool:
        """True when there is more than one part."""
        return len(self._parts) > 1

    def generate(self, eol: str = LINEEND) -> str:
        """
        Render the body.

        Args:
            eol: Line separator.

        Returns:
            An empty string without parts, the part's own content for a
            single part, otherwise the preamble followed by every part
            behind a boundary line and the closing delimiter.
        """
        if not self._parts:
            return ""
        if len(self._parts) == 1:
            return self._parts[0].content(eol)

        body = [PREAMBLE, eol]
        boundary_line = self.boundary.line(eol)
        for part in self._parts:
            body.append(boundary_line)
            body.append(part.headers(eol))
            body.append(eol)
            body.append(part.content(eol))
        body.append(f"{eol}--{self.boundary}--")
        logger.debug("Generated %s body with %d parts", self.type,
                     len(self._parts))
        return "".join(body)

    def content(self, eol: str = LINEEND) -> str:
        return self.generate(eol)

    def header_lines(self, eol: str = LINEEND) -> list[tuple[str, str]]:
        """
        Headers announcing this container when it is nested.

        A single-part container borrows the headers of its part, matching
        the unwrapped content it renders.
        """
        if len(self._parts) == 1:
            return self._parts[0].header_lines(eol)
        return [("Content-Type",
                 f"{self.type};{eol} boundary=\"{self.boundary}\"")]

    def headers(self, eol: str = LINEEND) -> str:
        return render_headers(self.header_lines(eol), eol)
