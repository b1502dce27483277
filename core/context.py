"""
core/context.py -- Request-scoped context passed explicitly down the call chain.

The HTTP boundary creates one RequestContext per request (see the request-id
middleware in api/main.py) and hands it to service methods as an argument.
Services only read it -- today that means tagging log lines with the request
id so a single request can be followed across layers.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field


def new_request_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class RequestContext:
    request_id: str = field(default_factory=new_request_id)

    def __str__(self) -> str:
        return self.request_id


# Used by callers outside any request (CLI, tests) that still want log tags.
SYSTEM_CONTEXT = RequestContext(request_id="system")
