"""
API endpoint constants and configuration.

This module contains all parcel API endpoint paths and related constants.
Centralizing these values makes it easy to swap out endpoints or update API versions.
"""
from enum import Enum


class ContextType(str, Enum):
    """Collection a set of parcels belongs to."""
    FARM = "farm"
    IMPORT = "import"


# Parcel API Endpoints
class ParcelAPIEndpoints:
    """Parcel API endpoint paths."""

    # Base paths
    FARM_BASE = "/farm/{context_id}"
    IMPORT_BASE = "/imports/{context_id}"

    # Parcel endpoints (relative to a base path)
    PARCELS = "/parcels"
    PARCEL_BY_ID = "/parcels/{parcel_id}"

    # Context-free endpoints
    DELETE_PARCEL = "/parcels/{parcel_id}"
    VALIDATE_IMPORTED_PARCEL = "/imported-parcels/{parcel_id}/validate"
    APPROVE_IMPORT = "/imports/{context_id}/approve"

    @classmethod
    def base_path(cls, context_type: ContextType, context_id: str) -> str:
        """
        Get the base path for a farm or an import batch.

        Args:
            context_type: Farm or import context
            context_id: Farm or import identifier

        Returns:
            Formatted base path
        """
        template = cls.FARM_BASE if context_type == ContextType.FARM else cls.IMPORT_BASE
        return template.format(context_id=context_id)

    @classmethod
    def parcels(cls, base: str) -> str:
        return f"{base}{cls.PARCELS}"

    @classmethod
    def parcel(cls, base: str, parcel_id: str) -> str:
        return f"{base}{cls.PARCEL_BY_ID.format(parcel_id=parcel_id)}"

    @classmethod
    def delete_parcel(cls, parcel_id: str) -> str:
        return cls.DELETE_PARCEL.format(parcel_id=parcel_id)

    @classmethod
    def validate_imported_parcel(cls, parcel_id: str) -> str:
        return cls.VALIDATE_IMPORTED_PARCEL.format(parcel_id=parcel_id)

    @classmethod
    def approve_import(cls, context_id: str) -> str:
        return cls.APPROVE_IMPORT.format(context_id=context_id)


# API Configuration Constants
class APIConstants:
    """General API configuration constants."""

    # HTTP Headers
    CONTENT_TYPE_JSON = "application/json"

    # Validation statuses
    STATUS_APPROVED = "APPROVED"
