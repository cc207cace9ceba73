# /*
# Copyright 2026 The hcp-e2e Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""hcp_e2e - hosted cluster lifecycle test harness.

Exposes the package-wide ``console`` (user-facing progress) and ``logger``
(diagnostics). Scenarios run on worker threads; each one can divert its
console output into a private buffer so that parallel runs print as
separate blocks instead of interleaving.
"""

from __future__ import annotations

import io
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console

__version__ = "0.1.0"


class ThreadAwareConsole:
    """Console proxy that routes to a thread-local buffer while one is active."""

    def __init__(self, real_console: Console) -> None:
        object.__setattr__(self, "_real", real_console)
        object.__setattr__(self, "_local", threading.local())

    def __getattr__(self, name: str):
        target = getattr(self._local, "console", self._real)
        return getattr(target, name)

    @contextmanager
    def buffered(self, title: str | None = None) -> Iterator[io.StringIO]:
        """Capture the current thread's console output in memory.

        Args:
            title: Optional heading written at the top of the block.

        Yields:
            The buffer; plain text at the real console's width.
        """
        buf = io.StringIO()
        local = Console(file=buf, stderr=False, width=self._real.width, highlight=False)
        if title:
            local.rule(title, style="bold")
        self._local.console = local
        try:
            yield buf
        finally:
            del self._local.console


console = ThreadAwareConsole(Console(stderr=True))
logger = logging.getLogger("hcp_e2e")
