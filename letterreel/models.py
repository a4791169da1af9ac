"""Request payloads and the domain letter they resolve to."""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationError
from .markup import extract_markup, normalize_text

_TEMPLATE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class HeaderSource:
    """Header graphic supplied by the caller."""

    data: bytes
    is_svg: bool


@dataclass
class LetterRequest:
    """Everything one pipeline run needs to render a letter."""

    title: str = ""
    content: str = ""
    author_name: str = ""
    template_id: Optional[str] = None
    header_image: Optional[HeaderSource] = None
    audio_bytes: bytes = b""

    def require_audio(self) -> None:
        """Reject a video request that carries no audio."""
        if not self.audio_bytes:
            raise ValidationError("audioBufferBase64 is required.")


def decode_base64_field(value: Optional[str], field_name: str) -> bytes:
    """Decode a base64 JSON field, tolerating a ``data:`` prefix and whitespace."""
    if not value:
        return b""
    if value.startswith("data:") and "," in value:
        value = value.split(",", 1)[1]
    try:
        return base64.b64decode(re.sub(r"\s+", "", value), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"{field_name} is not valid base64.") from exc


def looks_like_svg(data: bytes) -> bool:
    """Sniff SVG markup from the first kilobyte of a file."""
    head = data[:1024].lstrip().lower()
    return head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in data[:4096].lower())


class LetterPayload(BaseModel):
    """Structured letter fields."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = ""
    content: str = ""
    author_name: str = Field(default="", alias="authorName")
    template_id: Optional[str] = Field(default=None, alias="templateId")
    header_image_base64: Optional[str] = Field(default=None, alias="headerImageBase64")
    audio_buffer_base64: Optional[str] = Field(default=None, alias="audioBufferBase64")

    @field_validator("title", "content", "author_name", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("template_id", mode="before")
    @classmethod
    def _coerce_template_id(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise ValueError("templateId must be a string or integer")
        value = str(value).strip()
        if not _TEMPLATE_ID.fullmatch(value):
            raise ValueError("templateId may only contain letters, digits, '-' and '_'")
        return value

    def to_letter(self) -> LetterRequest:
        content = normalize_text(self.content)
        if not content:
            raise ValidationError("content is required.")

        header = None
        header_bytes = decode_base64_field(self.header_image_base64, "headerImageBase64")
        if header_bytes:
            header = HeaderSource(data=header_bytes, is_svg=looks_like_svg(header_bytes))

        return LetterRequest(
            title=normalize_text(self.title),
            content=content,
            author_name=self.author_name.strip(),
            template_id=self.template_id,
            header_image=header,
            audio_bytes=decode_base64_field(self.audio_buffer_base64, "audioBufferBase64"),
        )


class MarkupPayload(BaseModel):
    """Pre-rendered letter markup with an embedded header graphic."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    html_content: str = Field(alias="htmlContent")
    audio_buffer_base64: Optional[str] = Field(default=None, alias="audioBufferBase64")

    def to_letter(self) -> LetterRequest:
        if not self.html_content.strip():
            raise ValidationError("htmlContent is required.")

        extracted = extract_markup(self.html_content)
        if not extracted.text:
            raise ValidationError("htmlContent contains no text.")

        header = None
        if extracted.header_image is not None:
            image = extracted.header_image
            header = HeaderSource(
                data=image.data,
                is_svg=image.is_svg or looks_like_svg(image.data),
            )

        return LetterRequest(
            content=extracted.text,
            header_image=header,
            audio_bytes=decode_base64_field(self.audio_buffer_base64, "audioBufferBase64"),
        )


def parse_letter(body: Any) -> LetterRequest:
    """
    Turn a decoded JSON body into a LetterRequest.

    A body carrying ``htmlContent`` is treated as pre-rendered markup,
    anything else as structured letter fields.

    Raises:
        ValidationError: If the body is not an object or fails validation
    """
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")

    model: type[Union[LetterPayload, MarkupPayload]]
    model = MarkupPayload if "htmlContent" in body else LetterPayload
    try:
        payload = model.model_validate(body)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise ValidationError(f"Invalid field {location}: {first.get('msg')}") from exc
    return payload.to_letter()
