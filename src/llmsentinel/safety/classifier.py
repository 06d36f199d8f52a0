# src/llmsentinel/safety/classifier.py
"""
Safety classifier chain.

Model variants are tried in order. A model that fails (``ClassifierError``)
hands over to the next one. A model that answers with an unusable verdict
(``ClassifierOutputError``) ends the chain, and so does exhausting it; in
both cases the heuristic classifier decides.
"""

import logging
from typing import Optional, Sequence

from ..exceptions import ClassifierError, ClassifierOutputError
from .base import Classification, SafetyModel
from .heuristics import HeuristicSafetyModel

logger = logging.getLogger(__name__)


class SafetyClassifier:
    """
    Ordered chain of safety models with a heuristic fallback.

    Args:
        models: Models tried in order. May be empty (heuristics only).
        fallback: Final classifier. Defaults to HeuristicSafetyModel().
    """

    def __init__(self, models: Sequence[SafetyModel], fallback: Optional[HeuristicSafetyModel] = None):
        self._models = list(models)
        self._fallback = fallback or HeuristicSafetyModel()

    @property
    def model_names(self) -> list[str]:
        return [m.model_name for m in self._models]

    async def classify(self, prompt: str, response: str) -> Classification:
        for model in self._models:
            try:
                classification = await model.classify(prompt, response)
                logger.debug(f"Classified with {model.model_name}: {classification.label.value} ({classification.score:.2f})")
                return classification
            except ClassifierOutputError as e:
                logger.warning(f"{e}; using heuristic classification.")
                break
            except ClassifierError as e:
                logger.info(f"{e}; trying next model variant.")
                continue
        else:
            if self._models:
                logger.warning(f"All safety models failed ({self.model_names}); using heuristic classification.")

        return await self._fallback.classify(prompt, response)

    async def close(self) -> None:
        for model in self._models:
            try:
                await model.close()
            except Exception as e:
                logger.warning(f"Error closing safety model '{model.model_name}': {e}")
