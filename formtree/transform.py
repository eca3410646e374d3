from __future__ import annotations

import base64
import binascii
import logging
import re
from email.utils import decode_rfc2231
from enum import IntEnum
from typing import TYPE_CHECKING, cast
from urllib.parse import unquote_to_bytes

from python_multipart.decoders import Base64Decoder, QuotedPrintableDecoder
from python_multipart.exceptions import FormParserError
from python_multipart.multipart import Field, File, MultipartParser, QuerystringParser, parse_options_header

from .exceptions import DecodeError
from .tree import MAX_LEVEL, DataTree
from .uploads import Upload, Uploads

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Mapping
    from types import TracebackType
    from typing import Any, TypedDict

    from .uploads import UploadConfig

    class TransformerConfig(TypedDict):
        MAX_LEVEL: int
        MAX_BODY_SIZE: float
        MAX_MEMORY_FILE_SIZE: int
        UPLOAD_DIR: str | bytes | None
        UPLOAD_PREFIX: str

    FilePart = tuple[str, File, "bytes | None"]


# A "%" that does not start a two digit hex escape.
INVALID_ESCAPE_RE = re.compile(rb"%(?![0-9A-Fa-f]{2})")

# The RFC 2231 form of the file name parameter, e.g. filename*=UTF-8''a.txt
EXTENDED_FILENAME_RE = re.compile(rb"""(?:^|;)\s*filename\*\s*=\s*("?)([^";]*)\1""", re.IGNORECASE)


def extended_filename(disposition: bytes | None) -> bytes | None:
    """Returns the decoded ``filename*`` parameter of a Content-Disposition
    header as UTF-8, or None if there is none.
    """
    if not disposition:
        return None
    m = EXTENDED_FILENAME_RE.search(disposition)
    if m is None:
        return None

    charset, _, value = decode_rfc2231(m.group(2).decode("latin-1"))
    try:
        file_name = unquote_to_bytes(value).decode(charset or "us-ascii")
    except (LookupError, UnicodeDecodeError):
        return None
    return file_name.encode("utf-8")


class ContentCategory(IntEnum):
    """How a request body is processed."""

    #: No body is processed at all (HEAD and OPTIONS requests).
    NONE = 0
    #: The body is passed through untouched.
    STREAM = 1
    #: The body is an ``application/x-www-form-urlencoded`` form.
    URLENCODED = 2
    #: The body is a ``multipart/form-data`` form.
    MULTIPART = 3


def classify(method: str, content_type: str | None) -> ContentCategory:
    """
    Picks the processing path for a request.  HEAD and OPTIONS requests are
    never decoded, whatever their content type; forms are recognized by a
    case-insensitive substring match on the content type, and anything else
    (JSON, XML, binary...) is streamed as-is.

    :param method: the HTTP method of the request

    :param content_type: the raw ``Content-Type`` header, parameters included
    """
    if method.upper() in ("HEAD", "OPTIONS"):
        return ContentCategory.NONE

    ct = (content_type or "").lower()
    if "application/x-www-form-urlencoded" in ct:
        return ContentCategory.URLENCODED
    elif "multipart/form-data" in ct:
        return ContentCategory.MULTIPART
    return ContentCategory.STREAM


def get_header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup."""
    value = headers.get(name)
    if value is not None:
        return value

    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def unquote_field(data: bytes) -> str:
    if INVALID_ESCAPE_RE.search(data):
        raise DecodeError("Invalid URL escape in %r" % data[:64])
    return unquote_to_bytes(data.replace(b"+", b" ")).decode("utf-8", "replace")


class ParsedBody:
    """
    The result of :meth:`BodyTransformer.transform`.

    :attr:`body` is what should be forwarded as the request body: the JSON
    encoded data tree for forms, the raw body for streams and None when no
    body is forwarded.  :attr:`uploads` is the JSON encoded file tree, only
    set when the request carried file parts, and :attr:`files` the
    :class:`formtree.uploads.Uploads` handle owning their temporary files.

    The temporary files live until :meth:`release` is called, which must
    happen once the response was produced, on every exit path.  Using the
    object as a context manager does that.
    """

    def __init__(
        self,
        body: bytes | None,
        uploads: bytes | None = None,
        parsed: bool = False,
        files: Uploads | None = None,
    ) -> None:
        self.body = body
        self.uploads = uploads
        self.parsed = parsed
        self.files = files

    def release(self) -> None:
        if self.files is not None:
            self.files.release()

    def __enter__(self) -> ParsedBody:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        return "{}(parsed={!r}, body={!r}, uploads={!r})".format(
            self.__class__.__name__, self.parsed, self.body if self.body is None else self.body[:64], self.uploads
        )


class BodyTransformer:
    """
    Turns a raw request body into the structures a PHP runtime builds from
    it.  Form bodies are decoded into a :class:`formtree.tree.DataTree`, and
    the files of multipart bodies into a :class:`formtree.uploads.Uploads`
    collection whose content is copied to temporary files.

    The following configuration keys are recognized:

    .. list-table::
       :widths: 15 5 5 30
       :header-rows: 1

       * - Name
         - Type
         - Default
         - Description
       * - MAX_LEVEL
         - `int`
         - 127
         - Fields whose key path has more segments are dropped silently.
       * - MAX_BODY_SIZE
         - `float`
         - +inf
         - Bytes of the body handed to the decoders, the rest is dropped.
       * - MAX_MEMORY_FILE_SIZE
         - `int`
         - 32 MiB
         - Size of a file part kept in memory by the decoder before it is
           spilled to disk.
       * - UPLOAD_DIR
         - `str`
         - None
         - Directory for the temporary files of uploads.  The system
           default is used when None.
       * - UPLOAD_PREFIX
         - `str`
         - "upload"
         - Prefix of the temporary file names.

    :param config: configuration values overriding :attr:`DEFAULT_CONFIG`
    """

    DEFAULT_CONFIG: TransformerConfig = {
        "MAX_LEVEL": MAX_LEVEL,
        "MAX_BODY_SIZE": float("inf"),
        "MAX_MEMORY_FILE_SIZE": 32 * 1024 * 1024,
        "UPLOAD_DIR": None,
        "UPLOAD_PREFIX": "upload",
    }

    def __init__(self, config: dict[Any, Any] = {}) -> None:
        self.logger = logging.getLogger(__name__)

        self.config: TransformerConfig = self.DEFAULT_CONFIG.copy()
        self.config.update(config)  # type: ignore[typeddict-item]

    def transform(
        self, method: str, headers: Mapping[str, str], body: bytes | str, is_base64_encoded: bool = False
    ) -> ParsedBody:
        """
        Classifies the request and processes its body accordingly.

        :param method: the HTTP method

        :param headers: the request headers; names are matched without
                        regard to case

        :param body: the raw body

        :param is_base64_encoded: True if ``body`` is base64 encoded, as
                                  gateways do for binary payloads

        :raises formtree.exceptions.DecodeError: if the body cannot be decoded

        :raises formtree.exceptions.ConflictError: if the form keys conflict
        """
        if isinstance(body, str):
            body = body.encode("utf-8")

        if is_base64_encoded:
            try:
                body = base64.b64decode(body, validate=True)
            except binascii.Error as err:
                self.logger.warning("Invalid base64 request body")
                raise DecodeError("Invalid base64 request body: %s" % err) from err

        content_type = get_header(headers, "content-type")
        category = classify(method, content_type)
        self.logger.debug("Processing %s request as %s", method, category.name)

        if category == ContentCategory.NONE:
            return ParsedBody(None)
        elif category == ContentCategory.URLENCODED:
            return ParsedBody(self.parse_urlencoded(body), parsed=True)
        elif category == ContentCategory.MULTIPART:
            return self.parse_multipart(body, cast(str, content_type))
        return ParsedBody(body)

    def parse_urlencoded(self, body: bytes) -> bytes:
        """Decodes an URL-encoded form and returns its encoded data tree."""
        data = DataTree(self.config["MAX_LEVEL"])
        for name, values in self.decode_urlencoded(body).items():
            data.push(name, values)
        return data.encode()

    def decode_urlencoded(self, body: bytes) -> dict[str, list[str]]:
        """
        Splits an URL-encoded body into its fields, grouping the values of
        repeated names in the order they were first seen.  A name without a
        value (``foo&bar``) gets an empty string.  Only ``&`` separates
        fields: a body containing ``;`` is rejected.
        """
        if b";" in body:
            self.logger.warning("Semicolon in URL-encoded body")
            raise DecodeError("Invalid semicolon separator in URL-encoded body")

        fields: dict[str, list[str]] = {}
        name_buffer: list[bytes] = []
        value_buffer: list[bytes] = []

        def on_field_name(data: bytes, start: int, end: int) -> None:
            name_buffer.append(data[start:end])

        def on_field_data(data: bytes, start: int, end: int) -> None:
            value_buffer.append(data[start:end])

        def on_field_end() -> None:
            name = unquote_field(b"".join(name_buffer))
            value = unquote_field(b"".join(value_buffer))
            del name_buffer[:]
            del value_buffer[:]
            fields.setdefault(name, []).append(value)

        parser = QuerystringParser(
            callbacks={
                "on_field_name": on_field_name,
                "on_field_data": on_field_data,
                "on_field_end": on_field_end,
            },
            max_size=self.config["MAX_BODY_SIZE"],
        )

        try:
            parser.write(body)
            parser.finalize()
        except FormParserError as err:
            self.logger.warning("Error decoding URL-encoded body: %s", err)
            raise DecodeError("Error decoding URL-encoded body: %s" % err) from err

        # The parser does not end a trailing field that has no "=".
        if name_buffer:
            on_field_end()

        return fields

    def parse_multipart(self, body: bytes, content_type: str) -> ParsedBody:
        """
        Decodes a multipart form.  Regular fields go to the data tree, file
        parts to the file tree of the returned :class:`ParsedBody`, and every
        tracked file is copied to a temporary file.

        If anything fails after the temporary files were created they are
        removed before the exception propagates.
        """
        _, params = parse_options_header(content_type)
        boundary = params.get(b"boundary")
        if not boundary:
            self.logger.warning("No boundary given")
            raise DecodeError("No boundary given")

        fields, parts = self.decode_multipart(body, boundary)
        files = Uploads(cast("UploadConfig", self.config))
        try:
            data = DataTree(self.config["MAX_LEVEL"])
            for name, values in fields.items():
                data.push(name, values)

            grouped: dict[str, list[Upload]] = {}
            for name, part, mime in parts:
                upload = Upload.from_part(part, mime, config=cast("UploadConfig", self.config))
                grouped.setdefault(name, []).append(upload)
            for name, uploads in grouped.items():
                files.push(name, uploads)

            files.open()
            return ParsedBody(data.encode(), files.encode() if parts else None, parsed=True, files=files)
        except BaseException:
            files.release()
            raise
        finally:
            for _, part, _ in parts:
                part.close()

    def decode_multipart(self, body: bytes, boundary: bytes) -> tuple[dict[str, list[str]], list[FilePart]]:
        """
        Splits a multipart body into regular fields, grouped by name like
        :meth:`decode_urlencoded`, and file parts as ``(name, file, mime)``
        tuples in body order.  The file parts are spooled by
        :class:`python_multipart.multipart.File` and must be closed by the
        caller.

        Parts without a name are skipped, and parts with an empty file name
        are regular fields.
        """
        fields: dict[str, list[str]] = {}
        parts: list[FilePart] = []
        file_config = {
            "MAX_MEMORY_FILE_SIZE": self.config["MAX_MEMORY_FILE_SIZE"],
            "UPLOAD_DIR": self.config["UPLOAD_DIR"],
        }

        header_name: list[bytes] = []
        header_value: list[bytes] = []
        headers: dict[bytes, bytes] = {}

        current: Field | File | None = None
        writer: Any = None
        ended = False

        def on_part_begin() -> None:
            nonlocal headers
            headers = {}

        def on_header_field(data: bytes, start: int, end: int) -> None:
            header_name.append(data[start:end])

        def on_header_value(data: bytes, start: int, end: int) -> None:
            header_value.append(data[start:end])

        def on_header_end() -> None:
            headers[b"".join(header_name).lower()] = b"".join(header_value)
            del header_name[:]
            del header_value[:]

        def on_headers_finished() -> None:
            nonlocal current, writer
            _, options = parse_options_header(headers.get(b"content-disposition"))

            field_name = options.get(b"name")
            file_name = options.get(b"filename")
            if file_name is None:
                file_name = extended_filename(headers.get(b"content-disposition"))

            if file_name:
                current = File(file_name, field_name, config=cast("Any", file_config))
            else:
                current = Field(field_name)

            transfer_encoding = headers.get(b"content-transfer-encoding", b"7bit").lower()
            if transfer_encoding == b"base64":
                writer = Base64Decoder(current)
            elif transfer_encoding == b"quoted-printable":
                writer = QuotedPrintableDecoder(current)
            else:
                if transfer_encoding not in (b"binary", b"8bit", b"7bit"):
                    self.logger.warning("Unknown Content-Transfer-Encoding: %r", transfer_encoding)
                writer = current

        def on_part_data(data: bytes, start: int, end: int) -> None:
            writer.write(data[start:end])

        def on_part_end() -> None:
            nonlocal current, writer
            assert current is not None
            writer.finalize()

            part, writer, current = current, None, None
            if not part.field_name:
                self.logger.debug("Skipping part without a name")
                part.close()
                return

            name = part.field_name.decode("utf-8", "replace")
            if isinstance(part, File):
                parts.append((name, part, headers.get(b"content-type")))
            else:
                value = part.value or b""
                fields.setdefault(name, []).append(value.decode("utf-8", "replace"))

        def on_end() -> None:
            nonlocal ended
            ended = True

        parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": on_part_begin,
                "on_part_data": on_part_data,
                "on_part_end": on_part_end,
                "on_header_field": on_header_field,
                "on_header_value": on_header_value,
                "on_header_end": on_header_end,
                "on_headers_finished": on_headers_finished,
                "on_end": on_end,
            },
            max_size=self.config["MAX_BODY_SIZE"],
        )

        try:
            try:
                parser.write(body)
                parser.finalize()
            except FormParserError as err:
                self.logger.warning("Error decoding multipart body: %s", err)
                raise DecodeError("Error decoding multipart body: %s" % err) from err

            if not ended:
                self.logger.warning("Multipart body ended before its closing boundary")
                raise DecodeError("Multipart body ended before its closing boundary")
        except BaseException:
            if isinstance(current, File):
                current.close()
            for _, part, _ in parts:
                part.close()
            raise

        return fields, parts


def transform_body(
    method: str,
    headers: Mapping[str, str],
    body: bytes | str,
    is_base64_encoded: bool = False,
    config: dict[Any, Any] = {},
) -> ParsedBody:
    """
    This function is useful if you just want to process one request body with
    the default behaviour.  It creates a :class:`BodyTransformer` and calls
    :meth:`BodyTransformer.transform` with the given arguments::

        with transform_body("POST", headers, body) as parsed:
            forward(parsed.body, parsed.uploads)

    :param method: the HTTP method

    :param headers: the request headers

    :param body: the raw body

    :param is_base64_encoded: True if ``body`` is base64 encoded

    :param config: configuration for the :class:`BodyTransformer`
    """
    return BodyTransformer(config).transform(method, headers, body, is_base64_encoded=is_base64_encoded)
