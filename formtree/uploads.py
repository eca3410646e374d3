from __future__ import annotations

import logging
import os
import shutil
import sys
import tempfile
from enum import IntEnum
from typing import TYPE_CHECKING

from .exceptions import UploadError
from .tree import MAX_LEVEL, FileTree

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator, Sequence
    from types import TracebackType
    from typing import Any, Protocol, TypedDict

    from python_multipart.multipart import File

    class SupportsFileObject(Protocol):
        @property
        def file_object(self) -> Any: ...

    class UploadConfig(TypedDict, total=False):
        MAX_LEVEL: int
        UPLOAD_DIR: str | bytes | None
        UPLOAD_PREFIX: str


class UploadErrorCode(IntEnum):
    """Error codes reported for each upload.  The values are the ones PHP
    uses for its ``UPLOAD_ERR_*`` constants.
    """

    OK = 0
    #: The content of the part could not be opened.
    NO_FILE = 4
    #: No temporary file could be created.
    NO_TMP_DIR = 6
    #: Copying the part to its temporary file failed.
    CANT_WRITE = 7
    #: Reserved for validation of uploaded files; never set by the copy.
    EXTENSION = 8


class Upload:
    """
    Describes one uploaded file.  Until :meth:`open` is called the content
    only lives in the decoded multipart part; afterwards it is copied to a
    temporary file that this object owns until it is removed.

    :param name: the file name sent by the client

    :param mime: the content type declared for the part

    :param part: the decoded part, anything with a readable ``file_object``
                 (usually a :class:`python_multipart.multipart.File`)

    :param config: a dictionary with the ``UPLOAD_DIR`` and ``UPLOAD_PREFIX``
                   keys, used when creating the temporary file
    """

    def __init__(
        self, name: str, mime: str = "", part: SupportsFileObject | None = None, config: UploadConfig = {}
    ) -> None:
        self.logger = logging.getLogger(__name__)
        self._part = part
        self._config = config

        self.name = name
        self.mime = mime
        self.size = 0
        self.error = UploadErrorCode.OK
        self.temp_path = ""

    @classmethod
    def from_part(cls, part: File, mime: bytes | None, config: UploadConfig = {}) -> Upload:
        """Creates an upload for a file part decoded by the multipart parser."""
        file_name = part.file_name or b""
        return cls(
            file_name.decode("utf-8", "replace"),
            (mime or b"").decode("latin-1"),
            part=part,
            config=config,
        )

    def open(self) -> None:
        """
        Materializes the upload: creates a uniquely named temporary file and
        copies the content of the part into it.

        On failure :attr:`error` is set to the matching
        :class:`UploadErrorCode` and :class:`formtree.exceptions.UploadError`
        is raised.  A partially written file keeps its :attr:`temp_path`, so
        that :meth:`remove` still cleans it up.
        """
        try:
            source = self._part.file_object  # type: ignore[union-attr]
            source.seek(0)
        except (AttributeError, OSError, ValueError) as err:
            self.error = UploadErrorCode.NO_FILE
            self.logger.exception("Cannot open content of upload %r", self.name)
            raise UploadError("Cannot open content of upload %r" % self.name, self.error) from err

        file_dir = self._config.get("UPLOAD_DIR")
        if isinstance(file_dir, bytes):
            file_dir = file_dir.decode(sys.getfilesystemencoding())
        prefix = self._config.get("UPLOAD_PREFIX", "upload")

        self.logger.info("Creating a temporary file with options: %r", {"prefix": prefix, "dir": file_dir})
        try:
            tmp_file = tempfile.NamedTemporaryFile(prefix=prefix, dir=file_dir, delete=False)
        except OSError as err:
            self.error = UploadErrorCode.NO_TMP_DIR
            self.logger.exception("Error creating named temporary file")
            raise UploadError("Error creating named temporary file", self.error) from err

        with tmp_file:
            self.temp_path = tmp_file.name
            try:
                shutil.copyfileobj(source, tmp_file)
                tmp_file.flush()
            except OSError as err:
                self.error = UploadErrorCode.CANT_WRITE
                self.logger.exception("Error writing temporary file: %r", self.temp_path)
                raise UploadError("Error writing temporary file: %r" % self.temp_path, self.error) from err
            self.size = tmp_file.tell()

        self.error = UploadErrorCode.OK

    def remove(self) -> None:
        """Deletes the temporary file, if there is one.  Calling this again,
        or after the file was already removed, does nothing.
        """
        if not self.temp_path:
            return

        try:
            os.remove(self.temp_path)
        except FileNotFoundError:
            return
        except OSError:
            self.logger.warning("Error removing temporary file: %r", self.temp_path, exc_info=True)
            return
        self.logger.info("Removed temporary file: %r", self.temp_path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "mime": self.mime,
            "size": self.size,
            "error": int(self.error),
            "tmpName": self.temp_path,
        }

    def __repr__(self) -> str:
        return "{}(name={!r}, mime={!r}, size={!r}, error={!r})".format(
            self.__class__.__name__, self.name, self.mime, self.size, self.error
        )


class Uploads:
    """
    The files of one multipart request: the :class:`formtree.tree.FileTree`
    and a flat list of every :class:`Upload` reachable from it.  Only
    tracked uploads are ever materialized, so releasing the flat list
    removes every temporary file this request created.

    Use it as a context manager, or call :meth:`release` on every exit path::

        with Uploads(config) as uploads:
            uploads.push("avatar", [Upload.from_part(part, mime)])
            uploads.open()
            ...

    :param config: a dictionary with the ``MAX_LEVEL``, ``UPLOAD_DIR`` and
                   ``UPLOAD_PREFIX`` keys
    """

    def __init__(self, config: UploadConfig = {}) -> None:
        self.logger = logging.getLogger(__name__)
        self.config = config
        self.tree = FileTree(config.get("MAX_LEVEL", MAX_LEVEL))
        self._files: list[Upload] = []
        self._stale = False

    @property
    def files(self) -> list[Upload]:
        """Every upload reachable from :attr:`tree`, depth first."""
        if self._stale:
            self._files = list(self.tree.leaves())
            self._stale = False
        return self._files

    def push(self, name: str, uploads: Sequence[Upload]) -> bool:
        """Mounts the uploads sent under the raw field name ``name``.

        :raises formtree.exceptions.ConflictError: on a structural conflict
        """
        mounted = self.tree.push(name, uploads)
        # Mounting may discard uploads (first file wins on a bare key, or
        # a later field replaces a leaf).  The flat list is rebuilt from the
        # tree on the next access.
        self._stale = self._stale or mounted
        return mounted

    def open(self) -> None:
        """Materializes every tracked upload.  A failed upload keeps its
        error code and does not stop the others.
        """
        for upload in self.files:
            try:
                upload.open()
            except UploadError as err:
                self.logger.warning("Upload %r failed with error %d", upload.name, err.code)

    def release(self) -> None:
        """Removes every temporary file.  Safe to call more than once."""
        for upload in self.files:
            upload.remove()

    def encode(self) -> bytes:
        return self.tree.encode()

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self) -> Iterator[Upload]:
        return iter(self.files)

    def __enter__(self) -> Uploads:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(files={self.files!r})"
