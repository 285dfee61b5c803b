from __future__ import annotations

import logging
from pathlib import Path

from fivewhy.core.config.loader import LLMSettings, Settings
from fivewhy.core.errors import ConfigError
from fivewhy.core.memory.engine import MemoryEngine
from fivewhy.core.memory.kv import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore
from fivewhy.core.models.backends import GenerationBackend, LocalBackend, OllamaBackend, OpenAICompatBackend
from fivewhy.core.models.embeddings import Embedder, LengthEmbedder, SentenceTransformerEmbedder
from fivewhy.core.models.engine import EngineConfig, GenerationEngine, default_model_map
from fivewhy.core.models.manager import GenerationManager
from fivewhy.core.models.prompts import PromptBuilder
from fivewhy.core.observability.sink import ErrorSink
from fivewhy.core.orchestration.orchestrator import FiveWhyOrchestrator
from fivewhy.core.orchestration.service import FeatureFlags, ReasoningService
from fivewhy.core.runs.store import JsonlRepository
from fivewhy.core.scheduler.scheduler import MaintenanceScheduler
from fivewhy.core.vector.local import LocalVectorStore

logger = logging.getLogger("fivewhy.bootstrap")


def build_backend(llm: LLMSettings) -> GenerationBackend:
    provider = llm.provider.casefold()
    if provider == "openai":
        if not llm.api_key:
            raise ConfigError("missing openai api key")
        return OpenAICompatBackend(
            api_key=llm.api_key,
            base_url=llm.base_url or "https://api.openai.com/v1",
            name=llm.backend_name,
            timeout_s=llm.timeout_s,
        )
    if provider == "ollama":
        return OllamaBackend(
            model=llm.model,
            base_url=llm.base_url or "http://127.0.0.1:11434",
            name=llm.backend_name,
            timeout_s=llm.timeout_s,
        )
    if provider == "local":
        return LocalBackend(name=llm.backend_name)
    raise ConfigError(f"unsupported llm provider: {llm.provider}")


def build_engine(llm: LLMSettings) -> GenerationEngine:
    models = default_model_map()
    if llm.model:
        # A single configured model serves every mode not overridden per mode.
        models = {mode: llm.model for mode in models}
    models.update(llm.models)
    engine = GenerationEngine(EngineConfig(backend_name=llm.backend_name, models=models))
    engine.register_backend(build_backend(llm))
    return engine


def build_embedder(settings: Settings) -> Embedder:
    if settings.memory.embedding_model:
        return SentenceTransformerEmbedder(settings.memory.embedding_model)
    return LengthEmbedder(settings.memory.embedding_dimension)


def build_kv(settings: Settings) -> KeyValueStore:
    if settings.memory.redis_url:
        return RedisKeyValueStore.from_url(settings.memory.redis_url)
    logger.info("kv_in_memory", extra={"extra_fields": {"reason": "no redis url configured"}})
    return InMemoryKeyValueStore()


def build_service(settings: Settings, sink: ErrorSink | None = None) -> ReasoningService:
    sink = sink or ErrorSink()
    state_dir = settings.state_path
    vector_path = Path(settings.memory.vector_store_path).expanduser() if settings.memory.vector_store_path else state_dir / "vectors.jsonl"

    vector_store = LocalVectorStore(vector_path)
    vector_store.init()
    embedder = build_embedder(settings)
    kv = build_kv(settings)
    prompts = PromptBuilder()

    generator = GenerationManager(
        build_engine(settings.llm),
        kv=kv,
        vector_store=vector_store,
        embedder=embedder,
        sink=sink,
        remember_responses=settings.llm.remember_responses,
    )
    memory = MemoryEngine(kv, vector_store, embedder, generator=generator, prompts=prompts, sink=sink)
    orchestrator = FiveWhyOrchestrator(generator, vector_store, embedder, prompts=prompts, sink=sink)
    return ReasoningService(
        generator=generator,
        orchestrator=orchestrator,
        memory=memory,
        repository=JsonlRepository(state_dir),
        scheduler=MaintenanceScheduler(sink=sink),
        features=FeatureFlags(**settings.features.model_dump()),
        prompts=prompts,
        sink=sink,
    )
