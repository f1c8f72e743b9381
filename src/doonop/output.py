"""JSON lines output."""

import json
import sys
from threading import Lock
from typing import Optional, TextIO

from doonop.models import Artifact


class JsonLinesWriter:
    """Writes one JSON object per artifact, in emission order."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream or sys.stdout
        self._lock = Lock()

    def write(self, artifact: Artifact) -> None:
        line = json.dumps(artifact.to_record(), ensure_ascii=False, default=str)
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()
