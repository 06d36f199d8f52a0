# src/llmsentinel/embedding/google.py
"""
Google AI (Gemini / Vertex) embedding model implementation.

Uses the google-genai SDK. One instance wraps one model name; the
EmbeddingsClient holds one instance per configured model variant, all sharing
a single ``genai.Client``.
"""

import asyncio
import logging

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from ..exceptions import EmbeddingError
from .base import BaseEmbeddingModel

logger = logging.getLogger(__name__)

DEFAULT_GOOGLE_EMBEDDING_MODEL = "text-embedding-004"
VALID_TASK_TYPES = [
    "RETRIEVAL_QUERY", "RETRIEVAL_DOCUMENT", "SEMANTIC_SIMILARITY",
    "CLASSIFICATION", "CLUSTERING", "QUESTION_ANSWERING", "FACT_VERIFICATION",
]


class GoogleAIEmbedding(BaseEmbeddingModel):
    """
    Generates text embeddings through the google-genai async client.

    Args:
        client: Shared ``genai.Client``.
        model_name: Embedding model name, with or without the ``models/`` prefix.
        task_type: Embedding task type string.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        client: genai.Client,
        model_name: str = DEFAULT_GOOGLE_EMBEDDING_MODEL,
        task_type: str = "RETRIEVAL_DOCUMENT",
        timeout: float = 30.0,
    ):
        self._client = client
        self._model_name = model_name.replace("models/", "")
        if task_type.upper() not in VALID_TASK_TYPES:
            logger.warning(f"Provided task_type '{task_type}' is not in the known valid list {VALID_TASK_TYPES}. "
                           f"Using it anyway, but it might cause API errors if invalid.")
        self._task_type = task_type.upper()
        self._timeout = timeout

    @property
    def model_name(self) -> str:
        return self._model_name

    async def generate_embedding(self, text: str) -> list[float]:
        if not text:
            raise EmbeddingError(model_name=self._model_name, message="Input text cannot be empty.")

        logger.debug(f"Generating Google AI embedding (length: {len(text)}, model: {self._model_name}, task: {self._task_type})...")
        try:
            result = await asyncio.wait_for(
                self._client.aio.models.embed_content(
                    model=self._model_name,
                    contents=text,
                    config=genai_types.EmbedContentConfig(task_type=self._task_type),
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise EmbeddingError(model_name=self._model_name, message=f"Timed out after {self._timeout}s") from e
        except genai_errors.APIError as e:
            raise EmbeddingError(model_name=self._model_name, message=f"Google AI API error {e.code}: {e.message}") from e
        except Exception as e:
            raise EmbeddingError(model_name=self._model_name, message=f"Unexpected error: {e}") from e

        embeddings = result.embeddings or []
        values = embeddings[0].values if embeddings else None
        if not values:
            raise EmbeddingError(model_name=self._model_name, message="API returned no embedding data.")

        logger.debug(f"Google AI embedding generated with {self._model_name}: {len(values)} dimensions.")
        return list(values)
