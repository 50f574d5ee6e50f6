"""
Request-scoped context for operator functions.

Every operation receives an :class:`OperationContext` carrying the
:class:`~fanout.control.MissionControl` it acts on and who asked.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fanout.control import MissionControl


@dataclass
class OperationContext:
    """Context passed to every operation function.

    Attributes:
        control: The wired mission components.
        request_id: Unique ID for this invocation (auto-generated).
        caller: Origin of the request, ``"cli"`` or ``"sdk"``.
        metadata: Arbitrary key/value pairs forwarded to logging.
    """

    control: MissionControl
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    caller: str = "sdk"
    metadata: dict[str, Any] = field(default_factory=dict)
