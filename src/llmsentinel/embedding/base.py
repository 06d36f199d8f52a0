# src/llmsentinel/embedding/base.py
"""
Abstract Base Class for Text Embedding Models.

Every embedding backend the drift engine can use (a hosted model variant, the
offline hashing embedder, a test double) implements this interface. The
EmbeddingsClient chains several of them as capability-equivalent strategies.
"""

import abc


class BaseEmbeddingModel(abc.ABC):
    """
    Abstract Base Class for text embedding model integrations.

    Ensures all embedding models provide a consistent way to generate
    vector representations (embeddings) for text strings.
    """

    @property
    @abc.abstractmethod
    def model_name(self) -> str:
        """Identifier of the underlying model, used in logs and metrics."""

    async def initialize(self) -> None:
        """
        Perform any necessary asynchronous initialization.

        The default implementation does nothing.
        """

    @abc.abstractmethod
    async def generate_embedding(self, text: str) -> list[float]:
        """
        Generate a vector embedding for a single text string.

        Args:
            text: The input text string to embed.

        Returns:
            A list of floats representing the vector embedding.

        Raises:
            EmbeddingError: If the embedding generation fails.
        """

    async def close(self) -> None:
        """Release any client resources. The default implementation does nothing."""
