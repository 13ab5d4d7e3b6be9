"""
Two-phase optimistic mutations.

compute the next local value, attempt the remote write, then commit locally
only on success.  Failures are reported in the result, never raised.
"""

import logging
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Any

from schedule_engine.models import MutationResult
from schedule_engine.models import ScheduleEngineError
from schedule_engine.models import ValidationError

logger = logging.getLogger(__name__)


async def run_mutation(
    compute: Callable[[], Any],
    remote: Callable[[Any], Awaitable[Any]],
    commit: Callable[[Any], None],
    description: str = "mutation",
) -> MutationResult:
    try:
        next_value = compute()
    except ValidationError as e:
        return MutationResult.failure(str(e), field=e.field)

    try:
        await remote(next_value)
    except Exception as e:
        logger.error(f"Failed to {description}: {e}")
        message = str(e) if isinstance(e, ScheduleEngineError) else f"Failed to {description}"
        return MutationResult.failure(message)

    commit(next_value)
    return MutationResult.success(next_value)
