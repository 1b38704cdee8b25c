"""MIME-type lookup with filename and extension overrides."""

from __future__ import annotations

import mimetypes
import posixpath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_MIME_TYPE = "application/octet-stream"


class MimeLookup:
    """Resolve a filename to a MIME type.

    Order: exact basename in *filenames*, then extension (with *define*
    forced over the system table), then ``application/octet-stream``.
    Works on plain and virtual (``name:/path``) filenames alike.
    """

    def __init__(
        self,
        define: Mapping[str, list[str]] | None = None,
        filenames: Mapping[str, str] | None = None,
    ) -> None:
        self._types = mimetypes.MimeTypes()
        self._filenames = dict(filenames or {})
        for mime_type, extensions in (define or {}).items():
            for ext in extensions:
                self._types.add_type(mime_type, ext if ext.startswith(".") else "." + ext)

    def __call__(self, filename: str) -> str:
        return self.lookup(filename)

    def lookup(self, filename: str) -> str:
        basename = posixpath.basename(filename.partition(":/")[2] or filename)
        override = self._filenames.get(basename)
        if override:
            return override
        mime_type, _ = self._types.guess_type(basename, strict=False)
        return mime_type or DEFAULT_MIME_TYPE
