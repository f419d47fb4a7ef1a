"""Service layer – map raw scores onto labelled, sorted predictions."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from src.tmserve.errors import EmptyScoreVector, InferenceError
from src.tmserve.schemas.predict import Prediction


def label_for(index: int, labels: Sequence[str]) -> str:
    """Label at *index*, or a synthesized ``class{index+1}`` name."""
    if index < len(labels):
        return labels[index]
    return f"class{index + 1}"


def rank(scores: Sequence[float] | np.ndarray, labels: Sequence[str]) -> list[Prediction]:
    """Pair every score with its label and sort by probability, highest first.

    Equal probabilities keep their original index order.
    """
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if scores.size == 0:
        raise EmptyScoreVector("Model returned an empty score vector")
    if not np.all(np.isfinite(scores)):
        raise InferenceError("Model returned non-finite scores (NaN or inf)")

    predictions = [
        Prediction(class_name=label_for(index, labels), probability=float(score))
        for index, score in enumerate(scores)
    ]
    # sorted() is stable, so ties stay in index order
    return sorted(predictions, key=lambda p: p.probability, reverse=True)


def top_prediction(predictions: Sequence[Prediction]) -> Prediction:
    if not predictions:
        raise EmptyScoreVector("No predictions to choose from")
    return predictions[0]
