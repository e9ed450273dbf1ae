"""
Secondary views computed from annotation output.

Both are placeholders: emotions are the face likelihoods relabeled (no
inference), and product links point at a search template, not a catalog.
"""

from __future__ import annotations

from typing import List, Optional, Sequence
from urllib.parse import quote

from .config import PRODUCT_LINK_COUNT, PRODUCT_LINK_TEMPLATE
from .contracts import Emotions, EmotionView, FaceAnnotation, LabelAnnotation, ProductLink

# Characters encodeURIComponent leaves alone beyond quote()'s "_.-~".
_URI_COMPONENT_SAFE = "!*'()"


def derive_emotions(face_annotations: Optional[Sequence[FaceAnnotation]]) -> List[EmotionView]:
    if not face_annotations:
        return []
    return [
        EmotionView(
            face_index=idx,
            emotions=Emotions(
                joy=face.joy_likelihood,
                sorrow=face.sorrow_likelihood,
                anger=face.anger_likelihood,
                surprise=face.surprise_likelihood,
            ),
        )
        for idx, face in enumerate(face_annotations)
    ]


def product_search_url(description: str) -> str:
    return PRODUCT_LINK_TEMPLATE.format(query=quote(description, safe=_URI_COMPONENT_SAFE))


def derive_product_links(labels: Optional[Sequence[LabelAnnotation]]) -> List[ProductLink]:
    """Top labels in service order; no re-ranking."""
    if not labels:
        return []
    return [
        ProductLink(
            object=label.description,
            confidence=label.score,
            product_link=product_search_url(label.description),
        )
        for label in list(labels)[:PRODUCT_LINK_COUNT]
    ]
