# src/llmsentinel/utils/vector.py
"""Vector math for embedding comparison."""

import math
from collections.abc import Sequence

from ..exceptions import InvalidInputError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Compute the cosine similarity between two equal-length vectors.

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        Similarity in [-1, 1]. Returns 0.0 when either vector has zero
        magnitude.

    Raises:
        InvalidInputError: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise InvalidInputError(
            f"Vectors must have the same length to compare (got {len(a)} and {len(b)})."
        )

    # fsum keeps the sums exact enough for several hundred dimensions
    dot_product = math.fsum(x * y for x, y in zip(a, b))
    magnitude_a = math.sqrt(math.fsum(x * x for x in a))
    magnitude_b = math.sqrt(math.fsum(y * y for y in b))

    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    similarity = dot_product / (magnitude_a * magnitude_b)
    return max(-1.0, min(1.0, similarity))
