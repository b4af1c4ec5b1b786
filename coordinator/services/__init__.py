"""Service layer for business logic."""

from coordinator.services.upload_service import UploadCoordinator

__all__ = [
    "UploadCoordinator",
]
