"""
Abstract base class for package result repositories.
Defines the contract for screened package storage operations.
"""
from abc import ABC, abstractmethod
from typing import List, Optional
from src.models.package_result import PackageResult


class DBRepository(ABC):
    """Abstract repository interface for package result operations."""

    @abstractmethod
    def save(self, package: PackageResult) -> None:
        """Save a single package result."""
        pass

    @abstractmethod
    def get_by_id(self, package_id: str) -> Optional[PackageResult]:
        """Retrieve one package result."""
        pass

    @abstractmethod
    def find_by_upload(self, upload_id: str) -> List[PackageResult]:
        """Find all package results created from one upload."""
        pass
