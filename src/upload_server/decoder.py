"""
Request decoder.

Classifies an incoming request as a file upload (multipart/form-data) or a
text submission (text/plain, or a urlencoded form with a single ``text``
field) and extracts one ``UploadRequest`` from it. The body is read through
a size-counting stream so an oversized request is rejected before it is
fully buffered.
"""

from typing import AsyncIterator, Optional, Tuple
from urllib.parse import parse_qsl

from fastapi import Request
from starlette.datastructures import UploadFile
from starlette.formparsers import MultiPartException, MultiPartParser
from starlette.requests import ClientDisconnect

from .errors import (
    MalformedBodyError,
    MissingPayloadError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
)
from .models import UploadKind, UploadRequest


MULTIPART = "multipart/form-data"
FORM_URLENCODED = "application/x-www-form-urlencoded"
TEXT_PLAIN = "text/plain"

FILE_FIELD = "file"
TEXT_FIELD = "text"


def media_type(content_type: Optional[str]) -> Optional[str]:
    """Bare, lower-cased media type of a Content-Type header value."""
    if not content_type:
        return None
    value = content_type.split(";", 1)[0].strip().lower()
    return value or None


def classify(content_type: Optional[str]) -> UploadKind:
    """
    Map a Content-Type header to the kind of upload it carries.

    Raises:
        UnsupportedMediaTypeError: For anything but multipart, urlencoded
            form or plain text
    """
    kind = media_type(content_type)
    if kind == MULTIPART:
        return UploadKind.FILE
    if kind in (None, TEXT_PLAIN, FORM_URLENCODED):
        return UploadKind.TEXT
    raise UnsupportedMediaTypeError(
        f"Unsupported content type \"{content_type}\"; "
        f"send {MULTIPART} for files or {TEXT_PLAIN} / {FORM_URLENCODED} for text"
    )


class RequestDecoder:
    """Turns an HTTP request into a single UploadRequest."""

    def __init__(self, max_body_size: int, max_parts: int = 100):
        self.max_body_size = max_body_size
        self.max_parts = max_parts

    async def decode(
        self,
        request: Request,
        expect: Optional[UploadKind] = None,
    ) -> UploadRequest:
        """
        Decode the request body.

        Args:
            request: Incoming request
            expect: Accept only this kind of upload (None accepts both)

        Returns:
            UploadRequest: The extracted payload

        Raises:
            PayloadTooLargeError: Body exceeds max_body_size
            UnsupportedMediaTypeError: Unknown content type, or not the
                expected kind
            MalformedBodyError: Body cannot be parsed
            MissingPayloadError: No file part / no text field
        """
        content_type = request.headers.get("content-type")
        kind = classify(content_type)
        if expect is not None and kind is not expect:
            raise UnsupportedMediaTypeError(
                f"Expected a {expect.value} upload, got content type \"{content_type}\""
            )

        self._check_declared_length(request)

        provenance = {
            "remote_addr": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
        }

        if kind is UploadKind.FILE:
            original_name, part_type, content = await self._read_file_part(request)
            return UploadRequest(
                kind=UploadKind.FILE,
                content=content,
                original_name=original_name,
                content_type=part_type,
                **provenance,
            )

        body = await self._read_body(request)
        if media_type(content_type) == FORM_URLENCODED:
            body = self._text_from_form(body)
        return UploadRequest(
            kind=UploadKind.TEXT,
            content=body,
            content_type=media_type(content_type) or TEXT_PLAIN,
            **provenance,
        )

    def _check_declared_length(self, request: Request) -> None:
        declared = request.headers.get("content-length")
        if declared is None:
            return
        try:
            length = int(declared)
        except ValueError:
            raise MalformedBodyError(f"Invalid Content-Length \"{declared}\"")
        if length < 0:
            raise MalformedBodyError(f"Invalid Content-Length \"{declared}\"")
        if length > self.max_body_size:
            raise PayloadTooLargeError(
                f"Body of {length} bytes exceeds the limit of {self.max_body_size} bytes"
            )

    async def _stream(self, request: Request) -> AsyncIterator[bytes]:
        received = 0
        try:
            async for chunk in request.stream():
                received += len(chunk)
                if received > self.max_body_size:
                    raise PayloadTooLargeError(
                        f"Body exceeds the limit of {self.max_body_size} bytes"
                    )
                yield chunk
        except ClientDisconnect:
            raise MalformedBodyError("Client disconnected before the body was complete")

    async def _read_body(self, request: Request) -> bytes:
        body = bytearray()
        async for chunk in self._stream(request):
            body.extend(chunk)
        return bytes(body)

    async def _read_file_part(
        self,
        request: Request,
    ) -> Tuple[Optional[str], Optional[str], bytes]:
        parser = MultiPartParser(
            request.headers,
            self._stream(request),
            max_files=self.max_parts,
            max_fields=self.max_parts,
        )
        try:
            form = await parser.parse()
        except (MultiPartException, KeyError, ValueError) as error:
            raise MalformedBodyError(f"Malformed multipart body: {error}")

        try:
            upload = self._pick_file_part(form.multi_items())
            if upload is None:
                raise MissingPayloadError(
                    f"No file provided; send the file in a \"{FILE_FIELD}\" form field"
                )
            content = await upload.read()
            return upload.filename or None, upload.content_type, content
        finally:
            await form.close()

    @staticmethod
    def _pick_file_part(items) -> Optional[UploadFile]:
        # Prefer the "file" field; otherwise the first part carrying a filename.
        first = None
        for name, value in items:
            if not isinstance(value, UploadFile):
                continue
            if name == FILE_FIELD:
                return value
            if first is None:
                first = value
        return first

    @staticmethod
    def _text_from_form(body: bytes) -> bytes:
        try:
            fields = parse_qsl(
                body.decode("utf-8"),
                keep_blank_values=True,
                strict_parsing=False,
                errors="strict",
            )
        except (UnicodeDecodeError, ValueError):
            raise MalformedBodyError("Form body is not valid UTF-8 urlencoded data")

        if not fields:
            raise MissingPayloadError(f"No \"{TEXT_FIELD}\" field provided")
        key, value = fields[0]
        if key != TEXT_FIELD:
            raise MissingPayloadError(
                f"Invalid parameter \"{key}\"; expected \"{TEXT_FIELD}\""
            )
        if len(fields) > 1:
            raise MalformedBodyError(f"Invalid extra parameter \"{fields[1][0]}\"")
        return value.encode("utf-8")
