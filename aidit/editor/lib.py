"""Editor context for aidit.

Wires the artifact store, the history manager and the image preprocessor
together. History never deletes files; the context releases discarded
states through the store.
"""

import logging
from pathlib import Path

from aidit.cache import ArtifactStore, CacheConfig
from aidit.config import (
    EnvVar,
    get_cache_dir,
    get_edits_dir,
    get_environment,
    get_work_dir,
)
from aidit.history import EditSession, EditTool, HistoryManager, ImageState
from aidit.image import ImagePreprocessor

from .protocol import EditBackend

logger = logging.getLogger(__name__)

ORIGINAL_OPERATION = "original"


def _tool_tag(tool: EditTool | str | None) -> str | None:
    return tool.value if isinstance(tool, EditTool) else tool


class EditorContext:
    """One editing workspace: store, history and preprocessor.

    Example:
        >>> context = create_editor_context()
        >>> context.initialize()
        >>> context.open_image("photo.jpg")
        >>> context.commit_edit("enhanced.jpg", EditTool.AUTO_ENHANCE)
        >>> context.undo()
        >>> context.session.current_ref == context.session.original_ref
        True

    Args:
        store: Artifact store receiving every produced image.
        history: Undo/redo state machine.
        preprocessor: Image transforms used on open and before model calls.
        preprocess_on_open: Default for open_image's preprocess flag.
    """

    def __init__(
        self,
        store: ArtifactStore,
        history: HistoryManager,
        preprocessor: ImagePreprocessor,
        preprocess_on_open: bool = True,
    ):
        self.store = store
        self.history = history
        self.preprocessor = preprocessor
        self.preprocess_on_open = preprocess_on_open

    @property
    def session(self) -> EditSession | None:
        """The active editing session, if any."""
        return self.history.current_session

    def initialize(self) -> None:
        """Initialize the store. Safe to call more than once."""
        self.store.initialize()

    # =========================================================================
    # Session Lifecycle
    # =========================================================================

    def open_image(
        self, path: Path | str, preprocess: bool | None = None
    ) -> EditSession:
        """Start a session on *path*, ending any active one.

        When preprocessing, the normalized image is cached and becomes the
        session's original; otherwise *path* is used as is.

        Raises:
            PreprocessError: If the image cannot be normalized.
            StorageError: If the normalized image cannot be cached.
        """
        self.initialize()
        if preprocess is None:
            preprocess = self.preprocess_on_open

        original = Path(path)
        if preprocess:
            info = self.preprocessor.preprocess(original)
            try:
                original = self.store.cache_image(info.path, ORIGINAL_OPERATION)
            finally:
                info.path.unlink(missing_ok=True)

        session = self.history.start_session(original)
        logger.info(f"Opened {path} as {session.id}")
        return session

    def close_session(self) -> EditSession | None:
        """End the active session; see HistoryManager.end_session."""
        return self.history.end_session()

    # =========================================================================
    # Editing
    # =========================================================================

    def commit_edit(
        self,
        result_path: Path | str,
        tool: EditTool | str | None = None,
        persist: bool = True,
    ) -> EditSession | None:
        """Push an edit result onto the active session.

        Args:
            result_path: Image produced by the edit.
            tool: Operation that produced it.
            persist: Copy the result into the cache first. If False the
                result is referenced where it is.

        Returns:
            The active session, or None if there is none.

        Raises:
            StorageError: If the result cannot be cached. History is left
                unchanged in that case.
        """
        session = self.session
        if session is None:
            logger.debug("commit_edit ignored: no active session")
            return None

        location = Path(result_path)
        if persist:
            location = self.store.cache_image(location, _tool_tag(tool))

        discarded = self.history.apply_edit(location, tool)
        self._release(discarded, session)
        return session

    def _release(self, states: list[ImageState], session: EditSession) -> None:
        """Delete store-managed files of discarded states still unreferenced."""
        live = {state.location for state in session.history}
        for state in states:
            if state.location in live:
                continue
            if self.store.find_key(state.location) is None:
                continue
            self.store.delete(state.location)
            logger.debug(f"Released discarded state {state.location}")

    def run_edit(
        self,
        backend: EditBackend,
        tool: EditTool | str,
        instruction: str,
    ) -> EditSession | None:
        """Send the current image to *backend* and commit its result.

        Raises:
            PreprocessError: If the current image cannot be prepared.
            StorageError: If the result cannot be cached.
        """
        session = self.session
        if session is None:
            logger.debug("run_edit ignored: no active session")
            return None

        prepared = self.preprocessor.prepare_for_model(session.current_ref)
        try:
            result = backend.edit(prepared.path, instruction)
            return self.commit_edit(result, tool)
        finally:
            prepared.path.unlink(missing_ok=True)

    def undo(self) -> None:
        self.history.undo()

    def redo(self) -> None:
        self.history.redo()

    def save_current(self, name: str | None = None) -> Path | None:
        """Copy the current image into the saved-edits directory.

        Returns:
            Path of the saved copy, or None if no session is active.
        """
        session = self.session
        if session is None:
            return None
        return self.store.save_edit(session.current_ref, name)


def create_editor_context(
    home: Path | str | None = None,
    config: CacheConfig | None = None,
) -> EditorContext:
    """Create an editor context from environment configuration.

    Args:
        home: Data root override; directories default to subfolders of it.
        config: Cache limits. If None, read from the environment.

    Returns:
        An uninitialized EditorContext.
    """
    store = ArtifactStore(
        get_cache_dir(home=home),
        get_edits_dir(home=home),
        config or CacheConfig.from_environment(),
    )
    return EditorContext(
        store=store,
        history=HistoryManager(),
        preprocessor=ImagePreprocessor(get_work_dir(home=home)),
        preprocess_on_open=get_environment(EnvVar.AIDIT_PREPROCESS_ON_OPEN),
    )


__all__ = ["EditorContext", "create_editor_context"]
