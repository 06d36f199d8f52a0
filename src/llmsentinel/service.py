# src/llmsentinel/service.py
"""
Service wiring: builds the full analyzer from a SentinelConfig and manages
its lifecycle (store initialization, baseline restore, background flusher,
consumer start/stop, final baseline flush).

Usage:
    config = load_config("sentinel.toml")
    async with SentinelService(config) as service:
        await service.consumer.publish(payload)
        await service.consumer.join()
"""

import asyncio
import logging
from typing import Optional

from google import genai

from .baseline import BaselineStore, DebouncedFlushPolicy
from .config import SentinelConfig
from .consumer import AnalysisPipeline, QueueConsumer
from .embedding import EmbeddingCache, EmbeddingsClient, HashingEmbedding
from .embedding.google import GoogleAIEmbedding
from .engines import AnomalyDetector, CostOptimizer, DriftEngine, PatternDetector, SafetyEngine
from .observability import (
    AlertLog,
    BaseTelemetrySink,
    MetricsRegistry,
    NullTelemetrySink,
    ProcessMetricsCollector,
    RegistryTelemetrySink,
    TelemetryEmitter,
)
from .safety import SafetyClassifier
from .safety.google import GeminiSafetyModel
from .storage import BaseTelemetryStore, create_store

logger = logging.getLogger(__name__)


def create_genai_client(config: SentinelConfig) -> Optional[genai.Client]:
    """Shared google-genai client, or None when no credentials are configured."""
    api_key = config.embedding.api_key or config.safety.api_key
    try:
        return genai.Client(api_key=api_key) if api_key else genai.Client()
    except Exception as e:
        logger.warning(f"Google AI client unavailable ({e}); model-backed analysis is disabled.")
        return None


def build_embeddings_client(config: SentinelConfig, client: Optional[genai.Client], offline: bool = False) -> EmbeddingsClient:
    cfg = config.embedding
    cache = EmbeddingCache(max_size=cfg.cache_size, ttl_seconds=cfg.cache_ttl_seconds) if cfg.cache_size else None
    if offline:
        models = [HashingEmbedding(dimension=cfg.dimension)]
    elif client is None:
        models = []
    else:
        models = [
            GoogleAIEmbedding(client=client, model_name=name, task_type=cfg.task_type)
            for name in cfg.model_variants()
        ]
    return EmbeddingsClient(models=models, cache=cache, dimension=cfg.dimension)


def build_safety_classifier(config: SentinelConfig, client: Optional[genai.Client], offline: bool = False) -> SafetyClassifier:
    if offline or client is None:
        return SafetyClassifier(models=[])
    return SafetyClassifier(models=[
        GeminiSafetyModel(client=client, model_name=name, timeout=config.safety.timeout_seconds)
        for name in config.safety.models
    ])


def build_sink(config: SentinelConfig) -> BaseTelemetrySink:
    if not config.telemetry.enabled:
        return NullTelemetrySink()
    alert_log = AlertLog(config.telemetry.alert_log_path) if config.telemetry.alert_log_path else None
    return RegistryTelemetrySink(registry=MetricsRegistry(), alert_log=alert_log)


class SentinelService:
    """
    The assembled analyzer.

    Args:
        config: Analyzer configuration.
        offline: Use the hashing embedder and heuristic classifier instead of
            google-genai models.
        store, sink, embeddings, classifier: Optional pre-built collaborators
            (tests inject fakes here).
    """

    def __init__(
        self,
        config: SentinelConfig,
        offline: bool = False,
        store: Optional[BaseTelemetryStore] = None,
        sink: Optional[BaseTelemetrySink] = None,
        embeddings: Optional[EmbeddingsClient] = None,
        classifier: Optional[SafetyClassifier] = None,
    ):
        self.config = config
        self.offline = offline

        genai_client = None
        if not offline and (embeddings is None or classifier is None):
            genai_client = create_genai_client(config)

        self.store = store or create_store(config.storage)
        self.sink = sink or build_sink(config)
        self.embeddings = embeddings or build_embeddings_client(config, genai_client, offline)
        self.classifier = classifier or build_safety_classifier(config, genai_client, offline)

        self.baselines = BaselineStore(
            store=self.store,
            flush_policy=DebouncedFlushPolicy(
                quiet_period=config.baseline.quiet_period_seconds,
                force_every=config.baseline.force_flush_every,
            ),
            min_samples=config.baseline.min_samples,
            learning_rate=config.baseline.learning_rate,
        )
        self.anomaly_detector = AnomalyDetector(
            window_size=config.anomaly.window_size,
            min_samples=config.anomaly.min_samples,
            z_threshold=config.anomaly.z_threshold,
        )
        self.cost_optimizer = CostOptimizer(
            history_size=config.cost.history_size,
            min_monthly_savings=config.cost.min_monthly_savings,
            cache_hit_rate_provider=self.embeddings.get_cache_hit_rate,
        )
        self.pattern_detector = PatternDetector(
            max_history_size=config.patterns.max_history_size,
            max_history_age_seconds=config.patterns.max_history_age_seconds,
            use_event_time=config.patterns.use_event_time,
        )
        self.emitter = TelemetryEmitter(
            sink=self.sink,
            environment=config.environment,
            service_name=config.service_name,
            drift_alert_threshold=config.telemetry.drift_alert_threshold,
            process_collector=ProcessMetricsCollector() if config.telemetry.enabled else None,
        )
        self.pipeline = AnalysisPipeline(
            drift_engine=DriftEngine(self.embeddings, self.baselines),
            safety_engine=SafetyEngine(self.classifier, high_risk_threshold=config.safety.high_risk_threshold),
            anomaly_detector=self.anomaly_detector,
            cost_optimizer=self.cost_optimizer,
            pattern_detector=self.pattern_detector,
            store=self.store,
            emitter=self.emitter,
            embeddings=self.embeddings,
            metrics_sample_every=config.telemetry.metrics_sample_every,
        )
        self.consumer = QueueConsumer(
            pipeline=self.pipeline,
            queue=asyncio.Queue(maxsize=config.consumer.queue_size),
            max_concurrency=config.consumer.max_concurrency,
            max_redeliveries=config.consumer.max_redeliveries,
        )
        self._flusher: Optional[asyncio.Task] = None

    async def start(self) -> None:
        await self.store.initialize(self.config.storage.model_dump(mode="json"))
        await self.baselines.load_all()
        await self.embeddings.initialize()
        self._flusher = asyncio.create_task(
            self.baselines.run_flusher(self.config.baseline.flush_check_interval_seconds),
            name="llmsentinel-baseline-flusher",
        )
        self.consumer.start()
        logger.info(f"Sentinel analyzer started (env={self.config.environment}, offline={self.offline}).")

    async def stop(self, drain_timeout: Optional[float] = 10.0) -> None:
        await self.consumer.stop(drain_timeout=drain_timeout)
        if self._flusher is not None:
            self._flusher.cancel()
            try:
                await self._flusher
            except asyncio.CancelledError:
                pass
            self._flusher = None
        await self.baselines.flush_all()
        await self.embeddings.close()
        await self.classifier.close()
        await self.sink.close()
        await self.store.close()
        logger.info("Sentinel analyzer stopped.")

    async def __aenter__(self) -> "SentinelService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
