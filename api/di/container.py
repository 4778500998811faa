"""Dependency injection container for the expertise API."""
import structlog
from dependency_injector import containers, providers

from core.settings import SETTINGS
from infra.resources import DatabaseResource


logger = structlog.get_logger("expertise")


class InfrastructureContainer(containers.DeclarativeContainer):
    """Infrastructure layer dependencies."""

    config = providers.Configuration()
    settings = providers.Object(SETTINGS)
    logger = providers.Object(logger)

    # Database
    database = providers.Resource(
        DatabaseResource,
        database_url=str(SETTINGS.DATABASE.DATABASE_URL),
        pool_size=SETTINGS.DATABASE.POSTGRES_POOL_SIZE,
        max_overflow=SETTINGS.DATABASE.POSTGRES_MAX_OVERFLOW,
    )


class ServiceContainer(containers.DeclarativeContainer):
    """Application services - depends on infrastructure."""

    infrastructure = providers.DependenciesContainer()

    embedding_generator = providers.Singleton(
        "api.features.embeddings.generator.BatchEmbeddingGenerator",
        settings=SETTINGS.EMBEDDING,
    )

    vector_store_writer = providers.Singleton(
        "api.features.embeddings.vector_store.VectorStoreWriter",
        default_strategy=SETTINGS.EMBEDDING.DEFAULT_STRATEGY,
    )

    embedding_service = providers.Factory(
        "api.features.embeddings.service.EmbeddingService",
        generator=embedding_generator,
        writer=vector_store_writer,
        similarity_settings=SETTINGS.SIMILARITY,
    )

    similarity_engine = providers.Singleton(
        "api.features.similarity.service.SimilaritySearchEngine",
        settings=SETTINGS.SIMILARITY,
    )

    similarity_service = providers.Factory(
        "api.features.similarity.service.SimilarityService",
        engine=similarity_engine,
    )


class ControllerContainer(containers.DeclarativeContainer):
    """Controller-specific dependencies."""

    services = providers.DependenciesContainer()

    embedding_controller = providers.Factory(
        "api.features.embeddings.controller.EmbeddingController",
        embedding_service=services.embedding_service,
    )

    similarity_controller = providers.Factory(
        "api.features.similarity.controller.SimilarityController",
        similarity_service=services.similarity_service,
        embedding_service=services.embedding_service,
    )


class ApplicationContainer(containers.DeclarativeContainer):
    """Main application container composing all sub-containers."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "api.main",
            "api.shared.db",
            "api.features.embeddings.router",
            "api.features.similarity.router",
        ]
    )

    infrastructure = providers.Container(InfrastructureContainer)
    services = providers.Container(ServiceContainer, infrastructure=infrastructure)
    controllers = providers.Container(ControllerContainer, services=services)
