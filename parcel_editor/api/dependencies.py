"""
Dependency injection for FastAPI.
"""
from typing import Annotated, Callable, Dict, Optional, Tuple
import logging

from fastapi import Depends, Path

from parcel_editor.infrastructure.api_constants import ContextType
from parcel_editor.infrastructure.parcel_api_client import (
    ParcelAPIClient,
    get_api_client,
)
from parcel_editor.services.application.edit_session_controller import EditSessionController

logger = logging.getLogger(__name__)


class EditorRegistry:
    """
    In-process registry holding one EditSessionController per farm or
    import batch, so a map session keeps its state across requests.
    """

    def __init__(self, api_client_factory: Callable[[], ParcelAPIClient] = get_api_client):
        self._api_client_factory = api_client_factory
        self._editors: Dict[Tuple[ContextType, str], EditSessionController] = {}

    def get(self, context_type: ContextType, context_id: str) -> EditSessionController:
        """
        Get or create the editor of a context.

        Args:
            context_type: Farm or import context
            context_id: Farm or import identifier

        Returns:
            EditSessionController for the context
        """
        key = (context_type, str(context_id))
        editor = self._editors.get(key)
        if editor is None:
            editor = EditSessionController(
                api_client=self._api_client_factory(),
                context_type=context_type,
                context_id=str(context_id),
            )
            self._editors[key] = editor
            logger.info(f"Editor created for {context_type.value} {context_id}")
        return editor

    def discard(self, context_type: ContextType, context_id: str) -> bool:
        return self._editors.pop((context_type, str(context_id)), None) is not None

    def __len__(self) -> int:
        return len(self._editors)


# Singleton instance
_editor_registry: Optional[EditorRegistry] = None


def get_editor_registry() -> EditorRegistry:
    """
    Get or create the singleton editor registry.

    Returns:
        EditorRegistry instance
    """
    global _editor_registry
    if _editor_registry is None:
        _editor_registry = EditorRegistry()
    return _editor_registry


def get_editor(
    context_type: Annotated[ContextType, Path(description="Parcel collection type")],
    context_id: Annotated[str, Path(description="Farm or import identifier")],
    registry: Annotated[EditorRegistry, Depends(get_editor_registry)],
) -> EditSessionController:
    """
    Dependency factory for the editor of the requested context.

    Args:
        context_type: Farm or import context (path parameter)
        context_id: Farm or import identifier (path parameter)
        registry: Editor registry (injected)

    Returns:
        EditSessionController instance
    """
    return registry.get(context_type, context_id)


# Type aliases for cleaner route signatures
EditorDep = Annotated[EditSessionController, Depends(get_editor)]
EditorRegistryDep = Annotated[EditorRegistry, Depends(get_editor_registry)]
