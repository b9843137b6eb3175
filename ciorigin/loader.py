"""End-to-end provenance resolution, inline or on a background worker.

Example:
    >>> from ciorigin.environment import EnvironmentSnapshot
    >>> resolve_provenance(EnvironmentSnapshot({})).is_ci
    False
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Optional, Union

from . import git
from .environment import EnvironmentSnapshot
from .merge import merge
from .models import BuildProvenance
from .providers import detect
from .settings import Settings

logger = logging.getLogger(__name__)


def introspection_start(
    env: EnvironmentSnapshot,
    workspace: Optional[str],
    start_path: Optional[Union[str, Path]] = None,
) -> Optional[str]:
    """Pick where repository discovery starts: explicit path, ``SRCROOT``, provider workspace."""
    if start_path is not None:
        return str(start_path)
    settings = Settings.from_env(env)
    if settings.source_root is not None:
        return settings.source_root
    return env.expand_tilde(workspace)


def resolve_provenance(
    env: Optional[EnvironmentSnapshot] = None,
    *,
    start_path: Optional[Union[str, Path]] = None,
) -> BuildProvenance:
    """Detect the CI provider, read the repository and merge everything.

    ``env`` defaults to a snapshot of the live process environment.
    """
    env = env if env is not None else EnvironmentSnapshot.capture()
    detection = detect(env)
    logger.debug("Detected CI provider: %s", detection.provider or "<none>")

    repository = None
    start = introspection_start(env, detection.fields.workspace, start_path)
    if start is not None:
        repository = git.resolve(start)
    return merge(detection, repository, env)


class ProvenanceLoader:
    """Resolve provenance once on a single worker thread and join on demand.

    Example:
        >>> loader = ProvenanceLoader(EnvironmentSnapshot({})).start()
        >>> loader.result().is_ci
        False
    """

    def __init__(
        self,
        env: Optional[EnvironmentSnapshot] = None,
        *,
        start_path: Optional[Union[str, Path]] = None,
    ):
        self.env = env if env is not None else EnvironmentSnapshot.capture()
        self.start_path = start_path
        self._executor: Optional[ThreadPoolExecutor] = None
        self._future: Optional[Future] = None

    def start(self) -> "ProvenanceLoader":
        if self._future is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ciorigin")
            self._future = self._executor.submit(
                resolve_provenance, self.env, start_path=self.start_path
            )
        return self

    @property
    def started(self) -> bool:
        return self._future is not None

    def done(self) -> bool:
        return self._future is not None and self._future.done()

    def result(self, timeout: Optional[float] = None) -> BuildProvenance:
        """Wait for the background resolution, starting it first if needed."""
        self.start()
        assert self._future is not None
        try:
            return self._future.result(timeout=timeout)
        finally:
            if self._future.done() and self._executor is not None:
                self._executor.shutdown(wait=False)
                self._executor = None
