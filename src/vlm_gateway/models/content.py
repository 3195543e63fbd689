"""
Canonical content parts for multimodal messages.

All provider adapters transform to and from these shapes.
"""

import base64
import re
from typing import Optional, List, Union, Literal, Iterable, Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


_DATA_URL_PREFIX = re.compile(r"^data:[^;,]+;base64,")

ImageMediaType = Literal["image/jpeg", "image/png", "image/gif", "image/webp"]
AudioMediaType = Literal["audio/wav", "audio/mp3", "audio/mpeg", "audio/ogg"]
VideoMediaType = Literal["video/mp4", "video/webm"]


class _Part(BaseModel):
    model_config = ConfigDict(frozen=True)


class _Base64Part(_Part):
    """Part carrying a base64 payload in ``data``."""

    data: str

    @field_validator("data")
    @classmethod
    def _strip_data_url(cls, value: str) -> str:
        # Payloads are raw base64, never a data URL.
        return _DATA_URL_PREFIX.sub("", value, count=1)


class TextPart(_Part):
    type: Literal["text"] = "text"
    text: str


class ImageSource(_Part):
    """Where an image came from, kept for debugging only."""
    type: Literal["file", "url", "generated"]
    path: Optional[str] = None
    url: Optional[str] = None


class ImagePart(_Base64Part):
    type: Literal["image"] = "image"
    media_type: ImageMediaType
    source: Optional[ImageSource] = None


class PageRange(_Part):
    """1-indexed, inclusive page range."""
    start: int = Field(..., ge=1)
    end: int = Field(..., ge=1)

    @model_validator(mode="after")
    def _check_order(self) -> "PageRange":
        if self.end < self.start:
            raise ValueError(f"Page range end ({self.end}) precedes start ({self.start})")
        return self


class PDFPart(_Base64Part):
    type: Literal["pdf"] = "pdf"
    page_range: Optional[PageRange] = None
    filename: Optional[str] = None


class AudioPart(_Base64Part):
    type: Literal["audio"] = "audio"
    media_type: AudioMediaType


class VideoPart(_Base64Part):
    type: Literal["video"] = "video"
    media_type: VideoMediaType


ContentPart = Annotated[
    Union[TextPart, ImagePart, PDFPart, AudioPart, VideoPart],
    Field(discriminator="type"),
]


class PageCapture(BaseModel):
    """
    One page produced by an external PDF extractor.

    Either field may be missing: scanned pages have no text layer and
    text-only extraction produces no image.
    """
    page_number: int = Field(..., ge=1)
    text: Optional[str] = None
    image_bytes: Optional[bytes] = None


def content_parts_from_pages(
    pages: Iterable[PageCapture],
    include_text: bool = True,
    media_type: ImageMediaType = "image/png",
) -> List[Union[TextPart, ImagePart]]:
    """
    Convert extracted PDF pages into content parts.

    Each page contributes its rendered image (if any) followed by its
    text layer (if any and ``include_text`` is set), in page order.

    Args:
        pages: Captured pages
        include_text: Whether to add the extracted text of each page
        media_type: MIME type of the captured page images

    Returns:
        List of image and text parts
    """
    parts: List[Union[TextPart, ImagePart]] = []
    for page in sorted(pages, key=lambda p: p.page_number):
        if page.image_bytes:
            parts.append(ImagePart(
                data=base64.b64encode(page.image_bytes).decode("ascii"),
                media_type=media_type,
                source=ImageSource(type="generated"),
            ))
        if include_text and page.text and page.text.strip():
            parts.append(TextPart(text=f"Page {page.page_number}:\n{page.text}"))
    return parts
