"""Output channels of a managed process."""

from __future__ import annotations

import enum


class Channel(enum.StrEnum):
    """Which pipe a chunk of output arrived on."""

    STDOUT = "stdout"
    STDERR = "stderr"
