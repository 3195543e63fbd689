"""
Model and provider capability records.
"""

from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict


# Content-part type -> capability flag gating it. Text is always allowed.
CONTENT_CAPABILITY: Dict[str, str] = {
    "image": "vision",
    "pdf": "pdf",
    "audio": "audio",
    "video": "video",
}


class ContentOrdering(BaseModel):
    model_config = ConfigDict(frozen=True)

    images_first: Optional[bool] = None
    separate_system: Optional[bool] = None


class CapabilityLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_image_size: Optional[int] = None  # bytes
    max_images_per_message: Optional[int] = None
    max_pdf_pages: Optional[int] = None
    supported_image_formats: Optional[List[str]] = None


class ModelCapabilities(BaseModel):
    """Feature ceiling of a single model identifier."""
    model_config = ConfigDict(frozen=True)

    vision: bool
    pdf: bool
    audio: bool
    video: bool
    tools: bool
    streaming: bool
    max_context_tokens: int
    max_output_tokens: int
    content_ordering: Optional[ContentOrdering] = None
    limits: Optional[CapabilityLimits] = None

    def supports_content(self, content_type: str) -> bool:
        """Whether a content-part type may be sent to this model."""
        flag = CONTENT_CAPABILITY.get(content_type)
        if flag is None:
            return content_type == "text"
        return getattr(self, flag)


class ProviderCapabilities(BaseModel):
    """Everything a provider adapter declares about itself."""
    id: str
    name: str
    models: Dict[str, ModelCapabilities]
    default_model: str
    base_url: str
