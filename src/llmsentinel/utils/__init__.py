# src/llmsentinel/utils/__init__.py
"""Small pure helpers shared by the analysis engines."""

from .vector import cosine_similarity

__all__ = ["cosine_similarity"]
