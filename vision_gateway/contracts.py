from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


@dataclass(frozen=True)
class UploadedFile:
    original_name: str
    storage_path: str
    declared_mime_type: Optional[str] = None


@dataclass(frozen=True)
class EncodedImage:
    base64_payload: str
    mime_type: str


# --- Vision API (images:annotate) ---


class LabelAnnotation(_CamelModel):
    """Provider fields we do not read (mid, topicality, ...) pass through as extras."""

    model_config = ConfigDict(extra="allow")

    description: str = ""
    score: float = 0.0


class FaceAnnotation(_CamelModel):
    """
    Likelihoods stay plain strings (UNKNOWN, VERY_UNLIKELY, ... VERY_LIKELY) so
    a value Vision adds later still parses. Absent fields stay None.
    """

    model_config = ConfigDict(extra="allow")

    joy_likelihood: Optional[str] = None
    sorrow_likelihood: Optional[str] = None
    anger_likelihood: Optional[str] = None
    surprise_likelihood: Optional[str] = None

    def provider_json(self) -> Dict[str, Any]:
        """The face exactly as Vision sent it."""
        return {**self.model_dump(by_alias=True, exclude_unset=True), **(self.model_extra or {})}


class AnnotationResult(_CamelModel):
    """One entry of `responses[]`."""

    model_config = ConfigDict(extra="allow")

    label_annotations: List[LabelAnnotation] = Field(default_factory=list)
    text_annotations: List[Dict[str, Any]] = Field(default_factory=list)
    face_annotations: List[FaceAnnotation] = Field(default_factory=list)
    safe_search_annotation: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[Dict[str, Any]] = None


class AnnotateResponse(_CamelModel):
    responses: List[AnnotationResult] = Field(default_factory=list)


# --- Gemini (generateContent) ---


class GeminiPart(_CamelModel):
    model_config = ConfigDict(extra="allow")

    text: Optional[str] = None


class GeminiContent(_CamelModel):
    parts: List[GeminiPart] = Field(default_factory=list)


class GeminiCandidate(_CamelModel):
    model_config = ConfigDict(extra="allow")

    content: Optional[GeminiContent] = None


class GenerateContentResponse(_CamelModel):
    model_config = ConfigDict(extra="allow")

    candidates: List[GeminiCandidate] = Field(default_factory=list)


# --- Derived views + aggregate ---


class Emotions(_CamelModel):
    joy: Optional[str] = None
    sorrow: Optional[str] = None
    anger: Optional[str] = None
    surprise: Optional[str] = None


class EmotionView(_CamelModel):
    face_index: int
    emotions: Emotions


class ProductLink(_CamelModel):
    object: str
    confidence: float
    product_link: str


class AggregateImageReport(_CamelModel):
    file_name: str
    labels: List[LabelAnnotation] = Field(default_factory=list)
    text_annotations: List[Dict[str, Any]] = Field(default_factory=list)
    face_annotations: List[Dict[str, Any]] = Field(default_factory=list)
    safe_search_annotation: Dict[str, Any] = Field(default_factory=dict)
    caption: str = ""
    emotions: List[EmotionView] = Field(default_factory=list)
    product_links: List[ProductLink] = Field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
