"""Data under examination, with lazy access to the end of its file."""

from __future__ import annotations

import os
import stat


class Buffer:
    """The leading bytes of a file, able to fetch its trailing bytes too.

    size is the size of the file at path; when left out it is taken from
    the file itself if that is a regular file.
    """

    def __init__(self, data: bytes, path: str | os.PathLike[str] | None = None,
                 size: int | None = None) -> None:
        self.data = bytes(data)
        self.path = None if path is None else os.fspath(path)
        if size is None and self.path is not None:
            try:
                st = os.stat(self.path)
            except OSError:
                st = None
            if st is not None and stat.S_ISREG(st.st_mode):
                size = st.st_size
        self.size = size
        self.ebuf: bytes | None = None
        self.eoff = 0
        self._failed = False

    def fill(self) -> bytes:
        """Read as many bytes from the end of the file as data holds.

        The result is kept in ``ebuf``, its file offset in ``eoff``.
        Raises OSError when the end cannot be read; the failure is
        remembered.
        """
        if self.ebuf is not None:
            return self.ebuf
        if self._failed:
            raise OSError("end of file is not available")
        if self.path is None or self.size is None:
            self._failed = True
            raise OSError("not a regular file")
        elen = min(self.size, len(self.data))
        eoff = self.size - elen
        try:
            with open(self.path, "rb") as f:
                f.seek(eoff)
                self.ebuf = f.read(elen)
        except OSError:
            self._failed = True
            raise
        self.eoff = eoff
        return self.ebuf