"""Phase execution: bounded-concurrency fan-out of agent calls with retries and deadlines."""

import asyncio
import logging
import random
import time
from collections.abc import Callable

from collab.models import (
    Agent,
    AgentTask,
    AggregateResult,
    CompletionParams,
    PhaseSpec,
    TaskSpec,
    TaskStatus,
)
from collab.providers.base import ProviderError

logger = logging.getLogger(__name__)

# Per-call timeout when neither the agent nor the phase deadline sets one
_DEFAULT_CALL_TIMEOUT_SEC = 13.0

# Floor for the last attempt squeezed in before the deadline
_MIN_ATTEMPT_SEC = 0.05


class PhaseExecutor:
    """Runs one phase at a time for any number of sessions.

    The admission semaphore bounds agent calls in flight across every session
    sharing this executor. It is held only while a call is outstanding, never
    across a backoff sleep.
    """

    def __init__(
        self,
        max_in_flight: int = 8,
        max_retries: int = 2,
        backoff_base_sec: float = 0.5,
        backoff_max_sec: float = 4.0,
        default_timeout_sec: float = _DEFAULT_CALL_TIMEOUT_SEC,
    ) -> None:
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")
        self._semaphore = asyncio.Semaphore(max_in_flight)
        self.max_in_flight = max_in_flight
        self.max_retries = max_retries
        self.backoff_base_sec = backoff_base_sec
        self.backoff_max_sec = backoff_max_sec
        self.default_timeout_sec = default_timeout_sec

    def _backoff(self, attempt: int) -> float:
        """Exponential delay with jitter for the given 1-indexed attempt."""
        delay = self.backoff_base_sec * (2 ** (attempt - 1))
        delay += random.uniform(0, self.backoff_base_sec)
        return min(delay, self.backoff_max_sec)

    def _attempt_timeout(self, agent: Agent, deadline: float | None) -> float:
        timeout = agent.timeout_sec or self.default_timeout_sec
        if deadline is not None:
            timeout = min(timeout, max(deadline - time.monotonic(), _MIN_ATTEMPT_SEC))
        return timeout

    async def _run_task(
        self,
        task: AgentTask,
        spec: TaskSpec,
        agent: Agent,
        phase: PhaseSpec,
        on_status: Callable[[AgentTask], None] | None,
    ) -> None:
        """Drive one AgentTask to done or failed, retrying transient errors.

        Never raises except for cancellation, which the caller records.
        """
        task.started_at = time.monotonic()
        task.status = TaskStatus.RUNNING
        _notify(on_status, task)

        while True:
            task.attempts += 1
            timeout = self._attempt_timeout(agent, phase.deadline)
            params = CompletionParams(
                system=spec.system,
                max_tokens=agent.max_tokens,
                timeout_sec=timeout,
                phase=phase.name,
            )
            try:
                async with self._semaphore:
                    completion = await asyncio.wait_for(
                        agent.client.complete(spec.prompt, params), timeout=timeout
                    )
            except TimeoutError:
                error = ProviderError(agent.provider_id, f"Request timed out after {timeout:.1f}s", transient=True)
            except ProviderError as exc:
                error = exc
            except Exception as exc:
                error = ProviderError(agent.provider_id, f"Unexpected error: {exc}")
            else:
                task.status = TaskStatus.DONE
                task.text = completion.text
                task.token_count = completion.token_count
                task.cost = completion.cost
                _notify(on_status, task)
                return

            if not error.transient or task.attempts > self.max_retries:
                task.status = TaskStatus.FAILED
                task.error = str(error)
                logger.warning(
                    "Agent %s failed in %s after %d attempt(s): %s",
                    agent.provider_id, phase.name, task.attempts, error,
                )
                _notify(on_status, task)
                return

            delay = self._backoff(task.attempts)
            logger.warning(
                "Agent %s transient error in %s (attempt %d), retrying in %.2fs: %s",
                agent.provider_id, phase.name, task.attempts, delay, error,
            )
            await asyncio.sleep(delay)

    async def execute(
        self,
        phase: PhaseSpec,
        agents: dict[str, Agent],
        on_status: Callable[[AgentTask], None] | None = None,
        abort: asyncio.Event | None = None,
    ) -> AggregateResult:
        """Run every task of the phase concurrently and collect the outcomes.

        Returns once all tasks are terminal or the phase deadline passes.
        Tasks still running at the deadline are cancelled and recorded
        timed_out; tasks cut short by abort are recorded cancelled.

        Args:
            phase: PhaseSpec with its task list and absolute monotonic deadline.
            agents: Agent lookup by id; every task's agent must be present.
            on_status: Optional callback invoked on each task status change.
            abort: Optional event; once set, in-flight tasks are cancelled.

        Returns:
            AggregateResult holding one AgentTask per TaskSpec, in task order.

        Raises:
            ValueError: If the phase has no tasks or names an unknown agent.
        """
        if not phase.tasks:
            raise ValueError(f"Phase {phase.name!r} has no active agents")
        missing = [t.agent for t in phase.tasks if t.agent not in agents]
        if missing:
            raise ValueError(f"Phase {phase.name!r} names unknown agents: {missing}")

        logger.info("Starting phase %s with %d agent(s)", phase.name, len(phase.tasks))

        tasks = [AgentTask(agent=s.agent, phase=phase.name, prompt=s.prompt) for s in phase.tasks]
        running = {
            asyncio.create_task(self._run_task(task, spec, agents[spec.agent], phase, on_status)): task
            for task, spec in zip(tasks, phase.tasks)
        }
        pending: set[asyncio.Task] = set(running)
        abort_waiter = asyncio.create_task(abort.wait()) if abort is not None else None
        aborted = False

        try:
            while pending:
                if abort is not None and abort.is_set():
                    aborted = True
                    break
                remaining = None
                if phase.deadline is not None:
                    remaining = phase.deadline - time.monotonic()
                    if remaining <= 0:
                        break
                waiters = pending | {abort_waiter} if abort_waiter is not None else pending
                done, _ = await asyncio.wait(waiters, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
                pending -= done
        finally:
            cut_status = TaskStatus.CANCELLED if aborted else TaskStatus.TIMED_OUT
            for handle in pending:
                handle.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            for handle in pending:
                task = running[handle]
                if task.status not in (TaskStatus.PENDING, TaskStatus.RUNNING):
                    continue
                task.status = cut_status
                task.error = "Cancelled by caller" if aborted else "Phase deadline reached"
                _notify(on_status, task)
            if abort_waiter is not None:
                abort_waiter.cancel()

        result = AggregateResult(phase=phase.name, kind=phase.kind, tasks=tasks)
        logger.info(
            "Phase %s complete: %d/%d agents succeeded",
            phase.name, len(result.succeeded), len(tasks),
        )
        return result


def _notify(on_status: Callable[[AgentTask], None] | None, task: AgentTask) -> None:
    if on_status is None:
        return
    try:
        on_status(task)
    except Exception as exc:
        logger.warning("Status callback failed for %s: %s", task.agent, exc)
