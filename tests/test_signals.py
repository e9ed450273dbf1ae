from __future__ import annotations

from vision_gateway.contracts import FaceAnnotation, LabelAnnotation
from vision_gateway.signals import derive_emotions, derive_product_links


def test_derive_emotions_empty_or_missing():
    assert derive_emotions([]) == []
    assert derive_emotions(None) == []


def test_derive_emotions_relabels_likelihoods_in_order():
    faces = [
        FaceAnnotation.model_validate(
            {
                "joyLikelihood": "VERY_LIKELY",
                "sorrowLikelihood": "VERY_UNLIKELY",
                "angerLikelihood": "UNLIKELY",
                "surpriseLikelihood": "POSSIBLE",
                "detectionConfidence": 0.98,
            }
        ),
        FaceAnnotation.model_validate({"sorrowLikelihood": "LIKELY"}),
    ]

    views = derive_emotions(faces)

    assert [v.face_index for v in views] == [0, 1]
    assert views[0].model_dump(by_alias=True) == {
        "faceIndex": 0,
        "emotions": {"joy": "VERY_LIKELY", "sorrow": "VERY_UNLIKELY", "anger": "UNLIKELY", "surprise": "POSSIBLE"},
    }
    assert views[1].emotions.sorrow == "LIKELY"
    assert views[1].emotions.joy is None


def test_derive_product_links_empty_or_missing():
    assert derive_product_links([]) == []
    assert derive_product_links(None) == []


def test_derive_product_links_takes_first_three_in_given_order():
    # Scores deliberately not sorted: position decides, not score.
    labels = [
        LabelAnnotation(description="Dog", score=0.7),
        LabelAnnotation(description="Golden retriever", score=0.95),
        LabelAnnotation(description="Fur & paws", score=0.6),
        LabelAnnotation(description="Grass", score=0.99),
        LabelAnnotation(description="Sky", score=0.5),
    ]

    links = derive_product_links(labels)

    assert len(links) == 3
    assert [link.object for link in links] == ["Dog", "Golden retriever", "Fur & paws"]
    assert [link.confidence for link in links] == [0.7, 0.95, 0.6]
    assert links[1].product_link == "https://example.com/products/search?q=Golden%20retriever"
    assert links[2].product_link == "https://example.com/products/search?q=Fur%20%26%20paws"
    assert links[0].model_dump(by_alias=True) == {
        "object": "Dog",
        "confidence": 0.7,
        "productLink": "https://example.com/products/search?q=Dog",
    }


def test_product_link_keeps_uri_component_safe_chars():
    (link,) = derive_product_links([LabelAnnotation(description="it's (fun)!", score=1.0)])
    assert link.product_link.endswith("?q=it's%20(fun)!")


def test_unseen_likelihood_value_still_parses():
    face = FaceAnnotation.model_validate({"joyLikelihood": "SOMEWHAT_LIKELY"})

    (view,) = derive_emotions([face])

    assert view.emotions.joy == "SOMEWHAT_LIKELY"
    assert face.provider_json() == {"joyLikelihood": "SOMEWHAT_LIKELY"}
