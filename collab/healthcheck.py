"""Connectivity check: one ping phase across the agent pool before a session starts."""

import dataclasses
import logging
import time

from collab.executor import PhaseExecutor
from collab.models import Agent, PhaseKind, PhaseSpec, TaskSpec, TaskStatus

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_PING_PHASE = "healthcheck"
_PING_MAX_TOKENS = 16
_TIMEOUT_SEC = 15.0


async def run_health_checks(
    agents: dict[str, Agent],
    executor: PhaseExecutor | None = None,
    timeout_sec: float | None = None,
) -> dict[str, tuple[bool, str]]:
    """Ping every agent concurrently as a single phase.

    Each ping runs under the agent's own call timeout with a tiny output
    allowance. Transient errors are not retried unless a shared executor
    is passed in.

    Returns:
        Dict mapping agent id -> (ok, error_message).
        error_message is "" when ok is True.
    """
    if not agents:
        return {}
    executor = executor or PhaseExecutor(max_in_flight=len(agents), max_retries=0)
    pingable = {
        agent_id: dataclasses.replace(agent, max_tokens=min(agent.max_tokens, _PING_MAX_TOKENS))
        for agent_id, agent in agents.items()
    }
    phase = PhaseSpec(
        kind=PhaseKind.DRAFT,
        name=_PING_PHASE,
        tasks=[TaskSpec(agent=agent_id, prompt=_PING_PROMPT) for agent_id in pingable],
        min_success=0,
        deadline=time.monotonic() + (timeout_sec if timeout_sec is not None else _TIMEOUT_SEC),
    )
    result = await executor.execute(phase, pingable)
    for task in result.tasks:
        if task.status != TaskStatus.DONE:
            logger.debug("Health check failed for %s: %s", task.agent, task.error)
    return {task.agent: (task.status == TaskStatus.DONE, task.error or "") for task in result.tasks}
