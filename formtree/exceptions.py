from __future__ import annotations


class FormTreeError(ValueError):
    """Base error class for the form tree builder.

    Errors of this class are request-level failures: the caller should
    answer with :attr:`status_code` and the message of the exception.
    """

    #: Status code the calling layer is expected to answer with.
    status_code = 400


class ConflictError(FormTreeError):
    """Raised when a key is used both as a scalar and as a container within
    the fields of a single request, for example ``a=1`` followed by
    ``a[b]=2``.  The whole tree build is aborted.
    """

    def __init__(self, msg: str, key: str | None = None) -> None:
        super().__init__(msg)

        #: The path segment at which the conflict was found.
        self.key = key


class DecodeError(FormTreeError):
    """This exception is raised when the request body could not be decoded
    the way its content type demands - a missing or malformed multipart
    boundary, a truncated body, an invalid percent escape or an invalid
    base64 payload.
    """
    pass


class UploadError(FormTreeError, OSError):
    """Exception class for problems while materializing an uploaded file.

    It is recorded on the upload and never aborts the request.
    """

    def __init__(self, msg: str, code: int) -> None:
        super().__init__(msg)

        #: One of the :class:`formtree.uploads.UploadErrorCode` values.
        self.code = code
