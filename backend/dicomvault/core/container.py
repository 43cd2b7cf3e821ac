"""
Dependency Injection Container.

This module defines the DI container that manages all service dependencies.
It uses the dependency-injector library to provide:
- Singleton instances of services
- Automatic dependency resolution
- Easy testing with mock implementations
- Loose coupling between components

Usage in routes:
    from fastapi import Depends
    from dicomvault.core.container import get_image_service

    @router.get("/images")
    async def list_images(image_service = Depends(get_image_service)):
        return await image_service.list_images()
"""

from dependency_injector import containers, providers

from dicomvault.core.config import get_settings
from dicomvault.core.database import create_engine_for, create_session_factory
from dicomvault.core.logging import get_logger
from dicomvault.services.dicom_codec import PydicomCodec
from dicomvault.services.image_catalog import ImageCatalog
from dicomvault.services.image_service import ImageService
from dicomvault.services.metadata_repository import DicomDataRepository
from dicomvault.services.reconciliation_service import ReconciliationEngine
from dicomvault.services.storage_service import LocalStorageService

logger = get_logger(__name__)


class Container(containers.DeclarativeContainer):
    """
    Application DI Container.

    This container manages all service dependencies and their lifecycle.
    Services are created as singletons.

    Attributes:
        config: Configuration provider
        db_engine: Async SQLAlchemy engine
        session_factory: Async session factory
        repository: DICOM data repository (persistence gateway)
        storage: File storage service
        codec: DICOM binary codec
        catalog: Image catalog store
        reconciliation_engine: Fill-only merge engine
        image_service: Application service used by the routes
    """

    # Configuration
    config = providers.Singleton(get_settings)

    # Database
    db_engine = providers.Singleton(
        lambda settings: create_engine_for(
            settings.DATABASE_URL,
            echo=settings.DB_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW
        ),
        settings=config
    )

    session_factory = providers.Singleton(create_session_factory, engine=db_engine)

    repository = providers.Singleton(DicomDataRepository, session_factory=session_factory)

    # Storage and parsing
    storage = providers.Singleton(LocalStorageService, root_dir=config.provided.UPLOAD_DIR)

    codec = providers.Singleton(PydicomCodec)

    # Metadata core
    catalog = providers.Singleton(ImageCatalog)

    reconciliation_engine = providers.Singleton(ReconciliationEngine)

    image_service = providers.Singleton(
        ImageService,
        repository=repository,
        storage=storage,
        codec=codec,
        catalog=catalog,
        engine=reconciliation_engine,
        settings=config
    )


def init_container() -> Container:
    """
    Initialize the DI container.

    It should be called during application startup.

    Returns:
        Container: Configured DI container

    Example:
        container = init_container()
        app.container = container
    """
    container = Container()
    logger.info("DI Container initialized successfully")
    return container


def get_container() -> Container:
    """
    Get the application's DI container.

    The container is attached to the FastAPI app instance at import time
    of ``dicomvault.main``.

    Returns:
        Container: The application's DI container
    """
    from dicomvault.main import app
    return app.container


# Convenience function for FastAPI Depends()
def get_image_service() -> ImageService:
    """
    Dependency function for FastAPI routes to get ImageService.

    Usage:
        from fastapi import Depends
        from dicomvault.core.container import get_image_service

        @router.get("/{image_id}/metadata")
        async def get_metadata(
            image_id: int,
            image_service = Depends(get_image_service)
        ):
            return await image_service.get_metadata(image_id)
    """
    container = get_container()
    return container.image_service()
