"""Editor context for aidit.

Combines the artifact store, edit history and image preprocessing into a
single object owned by the application, replacing module-level singletons.

Example:
    >>> from aidit.editor import create_editor_context
    >>> from aidit.history import EditTool
    >>> context = create_editor_context()
    >>> context.initialize()
    >>> context.open_image("photo.jpg")
    >>> context.run_edit(backend, EditTool.AUTO_ENHANCE, "brighten the sky")
    >>> context.save_current("sky")
"""

from .lib import EditorContext, create_editor_context
from .protocol import EditBackend

__all__ = [
    "EditorContext",
    "EditBackend",
    "create_editor_context",
]
