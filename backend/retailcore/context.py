from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OperationContext:
    """
    Who is acting and where.

    Passed explicitly into every coordinator; routes build it from the
    request (see decorators.require_context), the CLI and tests build it
    directly.
    """
    user_id: str
    branch_id: Optional[str] = None

    def with_branch(self, branch_id: Optional[str]) -> "OperationContext":
        return OperationContext(user_id=self.user_id, branch_id=branch_id)
