"""Artifact sink enforcing the global artifact limit."""

import logging
from threading import Lock
from typing import Callable, Optional

from doonop.models import Artifact

logger = logging.getLogger(__name__)


class ArtifactSink:
    """
    Receives extracted artifacts and forwards them downstream.

    The limit check, the increment and the emission happen under one lock,
    so concurrent submissions can never push the count past the limit.
    """

    def __init__(
        self,
        emit: Callable[[Artifact], None],
        limit: Optional[int] = None,
    ):
        """
        Initialize the sink.

        Args:
            emit: Downstream consumer, e.g. ``JsonLinesWriter.write``
            limit: Maximum number of artifacts accepted (None = unlimited)
        """
        self._emit = emit
        self.limit = limit
        self._lock = Lock()
        self._collected = 0
        self._discarded = 0

    def accept(self, artifact: Artifact) -> bool:
        """Emit ``artifact`` unless the limit was already reached.

        Returns:
            False if the artifact was discarded
        """
        with self._lock:
            if self.limit is not None and self._collected >= self.limit:
                self._discarded += 1
                logger.debug(f"Limit reached, discarding artifact from {artifact.url}")
                return False
            self._collected += 1
            self._emit(artifact)
            if self.limit is not None and self._collected == self.limit:
                logger.info(f"Artifact limit of {self.limit} reached")
            return True

    @property
    def limit_reached(self) -> bool:
        with self._lock:
            return self.limit is not None and self._collected >= self.limit

    @property
    def collected(self) -> int:
        with self._lock:
            return self._collected

    @property
    def discarded(self) -> int:
        with self._lock:
            return self._discarded
