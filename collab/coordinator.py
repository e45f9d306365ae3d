"""Session coordination: drives one protocol through its phases under deadline, budget and quorum."""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable

from collab.cost import CostController, estimate_phase_cost
from collab.errors import AbortedByCaller, CostExceeded, InvalidRequest
from collab.executor import PhaseExecutor
from collab.models import (
    Agent,
    AgentTask,
    AgentTrace,
    AggregateResult,
    CollabRequest,
    CritiqueStyle,
    FinalResult,
    Mode,
    Outcome,
    PhaseOutput,
    ProgressEvent,
    Session,
    SessionStatus,
)
from collab.protocols.base import Protocol
from collab.protocols.brainstorm import BrainstormSwarm
from collab.protocols.braintrust import GuardedBraintrust
from collab.protocols.critique_chain import CritiqueChain
from collab.protocols.round_table import RoundTable
from collab.protocols.validated_consensus import ValidatedConsensus
from config.config_loader import EngineConfig, PromptsConfig

logger = logging.getLogger(__name__)

PROTOCOLS: dict[Mode, type[Protocol]] = {
    Mode.ROUND_TABLE: RoundTable,
    Mode.SEQUENTIAL_CRITIQUE_CHAIN: CritiqueChain,
    Mode.VALIDATED_CONSENSUS: ValidatedConsensus,
    Mode.CREATIVE_BRAINSTORM_SWARM: BrainstormSwarm,
    Mode.HYBRID_GUARDED_BRAINTRUST: GuardedBraintrust,
}

PHASE_CHANGE = "phase_change"
AGENT_STATUS = "agent_status"


class SessionCoordinator:
    """Runs one collaboration session.

    Many coordinators may share one PhaseExecutor; its admission semaphore is
    the only state shared between sessions.
    """

    def __init__(
        self,
        agents: dict[str, Agent],
        prompts: PromptsConfig,
        executor: PhaseExecutor | None = None,
        engine: EngineConfig | None = None,
        publish: Callable[[ProgressEvent], None] | None = None,
    ) -> None:
        self._agents = agents
        self._prompts = prompts
        self._engine = engine or EngineConfig()
        self._executor = executor or PhaseExecutor(
            max_in_flight=self._engine.max_in_flight,
            max_retries=self._engine.max_retries,
            backoff_base_sec=self._engine.backoff_base_sec,
            backoff_max_sec=self._engine.backoff_max_sec,
        )
        self._publish = publish
        self._abort = asyncio.Event()
        self.session: Session | None = None

    def abort(self) -> None:
        """Cancel the running session; run() raises AbortedByCaller."""
        self._abort.set()

    def _emit(self, event: ProgressEvent) -> None:
        if self._publish is None:
            return
        try:
            self._publish(event)
        except Exception as exc:
            logger.warning("Progress publish failed (%s): %s", event.type, exc)

    def _validate(self, request: CollabRequest) -> tuple[Mode, list[Agent], CritiqueStyle]:
        if not request.prompt or not request.prompt.strip():
            raise InvalidRequest("Prompt is empty")
        try:
            mode = Mode(request.mode)
        except ValueError:
            raise InvalidRequest(f"Unknown mode: {request.mode!r}") from None
        if not request.agents:
            raise InvalidRequest("Agent list is empty")
        if len(request.agents) > self._engine.max_agents:
            raise InvalidRequest(f"At most {self._engine.max_agents} agents allowed, got {len(request.agents)}")
        if len(set(request.agents)) != len(request.agents):
            raise InvalidRequest(f"Duplicate agents in {request.agents}")
        unknown = [a for a in request.agents if a not in self._agents]
        if unknown:
            raise InvalidRequest(f"Unknown agents: {', '.join(unknown)}")
        if request.lead_agent is not None and request.lead_agent not in request.agents:
            raise InvalidRequest(f"Lead agent {request.lead_agent!r} is not in {request.agents}")
        try:
            style = CritiqueStyle(request.critique_style)
        except ValueError:
            raise InvalidRequest(f"Unknown critique style: {request.critique_style!r}") from None
        if request.global_timeout_ms is not None and request.global_timeout_ms <= 0:
            raise InvalidRequest("Global timeout must be positive")
        if request.cost_cap_dollars is not None and request.cost_cap_dollars < 0:
            raise InvalidRequest("Cost cap must not be negative")
        return mode, [self._agents[a] for a in request.agents], style

    async def run(self, request: CollabRequest) -> FinalResult:
        """Run the request's protocol to a terminal state.

        Args:
            request: Prompt, mode, agent ids and optional cap/timeout overrides.

        Returns:
            FinalResult with status completed or partial. Agent failures,
            missed quorum and deadline expiry never raise.

        Raises:
            InvalidRequest: Unknown mode or agent, empty or oversized agent list.
            CostExceeded: The cost cap blocked work before any agent produced output.
            AbortedByCaller: abort() was called while the session was running.
        """
        mode, agents, style = self._validate(request)
        started = time.monotonic()
        timeout_sec = (
            request.global_timeout_ms / 1000
            if request.global_timeout_ms is not None
            else self._engine.global_timeout_sec
        )
        cap = request.cost_cap_dollars if request.cost_cap_dollars is not None else self._engine.cost_cap_dollars
        session = Session(
            id=uuid.uuid4().hex[:12],
            prompt=request.prompt,
            mode=mode,
            agents=[a.provider_id for a in agents],
            cost_cap=cap,
            deadline=started + timeout_sec,
        )
        self.session = session
        agent_map = {a.provider_id: a for a in agents}
        protocol = PROTOCOLS[mode](
            request.prompt, agents, self._prompts,
            style=style, flag_threshold=self._engine.flag_threshold, lead_agent=request.lead_agent,
        )
        ledger = CostController(cap)
        traces = {agent_id: AgentTrace(agent=agent_id) for agent_id in session.agents}
        phases: list[str] = []
        responders: set[str] = set()
        notes: list[str] = []
        stop_reason: str | None = None

        logger.info(
            "Session %s: %s with %s (timeout %.1fs, cap %s)",
            session.id, mode.value, ", ".join(session.agents), timeout_sec,
            "none" if cap is None else f"${cap:.2f}",
        )

        def on_status(task: AgentTask) -> None:
            self._emit(ProgressEvent(
                type=AGENT_STATUS,
                session_id=session.id,
                phase=task.phase,
                agent=task.agent,
                status=task.status.value,
                message=task.error,
            ))

        spec = protocol.next_phase(None)
        while spec is not None:
            if self._abort.is_set():
                self._aborted(session)
            if session.deadline - time.monotonic() <= 0:
                stop_reason = "deadline"
                notes.append(f"The {timeout_sec:g}s session deadline was reached before phase {spec.name}.")
                logger.warning("Session %s deadline reached before %s", session.id, spec.name)
                break
            if not ledger.reserve(estimate_phase_cost(spec, agent_map)):
                stop_reason = "cost"
                notes.append(f"The cost cap of ${cap:.2f} stopped the session before phase {spec.name}.")
                break

            spec.deadline = session.deadline
            session.phase_index = len(phases)
            self._emit(ProgressEvent(
                type=PHASE_CHANGE,
                session_id=session.id,
                phase=spec.name,
                status=spec.kind.value,
                message=", ".join(spec.agents),
            ))

            result = await self._executor.execute(spec, agent_map, on_status=on_status, abort=self._abort)
            ledger.reconcile(result.cost)
            phases.append(spec.name)
            _record(traces, result)
            if self._abort.is_set():
                self._aborted(session)

            responders.update(task.agent for task in result.succeeded)
            shortfall = len(result.succeeded) < spec.min_success
            finished, needed = spec.name, spec.min_success
            spec = protocol.next_phase(result)
            if shortfall:
                stop_reason = "shortfall"
                notes.append(
                    f"Phase {finished} had {len(result.succeeded)} successful agent(s), {needed} required."
                )
                logger.warning("Session %s stopping: phase %s below its minimum", session.id, finished)
                break

        if stop_reason == "cost" and not responders:
            result = self._build_result(
                session, SessionStatus.ABORTED, Outcome(content=""), traces, ledger, phases, started,
                " ".join(notes),
            )
            result.cost_exceeded = True
            self._finish(session, result)
            raise CostExceeded(notes[-1], result)

        outcome = protocol.finalize(forced=stop_reason is not None)
        # A panel smaller than the configured quorum needs every agent
        quorum = min(self._engine.quorum, len(agents))
        if len(responders) < quorum:
            notes.append(f"Only {len(responders)} of {len(agents)} agents responded (quorum {quorum}).")
        if outcome.note:
            notes.append(outcome.note)

        completed = stop_reason is None and len(responders) >= quorum and not outcome.degraded
        status = SessionStatus.COMPLETED if completed else SessionStatus.PARTIAL
        result = self._build_result(
            session, status, outcome, traces, ledger, phases, started,
            None if completed else " ".join(notes) or None,
        )
        result.cost_exceeded = stop_reason == "cost"
        self._finish(session, result)
        return result

    def _aborted(self, session: Session) -> None:
        session.status = SessionStatus.ABORTED
        logger.warning("Session %s aborted by caller", session.id)
        self._emit(ProgressEvent(type=PHASE_CHANGE, session_id=session.id, status=session.status.value))
        raise AbortedByCaller(session.id)

    def _build_result(
        self,
        session: Session,
        status: SessionStatus,
        outcome: Outcome,
        traces: dict[str, AgentTrace],
        ledger: CostController,
        phases: list[str],
        started: float,
        disclaimer: str | None,
    ) -> FinalResult:
        return FinalResult(
            session_id=session.id,
            mode=session.mode,
            status=status,
            content=outcome.content,
            rationale=outcome.rationale,
            per_agent_trace=[traces[agent_id] for agent_id in session.agents],
            cost_actual=ledger.realized,
            disclaimer=disclaimer,
            phases=list(phases),
            duration_sec=time.monotonic() - started,
        )

    def _finish(self, session: Session, result: FinalResult) -> None:
        session.status = result.status
        logger.info(
            "Session %s %s after %d phase(s), $%.4f, %.1fs",
            session.id, result.status.value, len(result.phases), result.cost_actual, result.duration_sec,
        )
        self._emit(ProgressEvent(
            type=PHASE_CHANGE,
            session_id=session.id,
            status=result.status.value,
            message=result.disclaimer,
        ))


def _record(traces: dict[str, AgentTrace], result: AggregateResult) -> None:
    for task in result.tasks:
        traces[task.agent].phase_outputs.append(PhaseOutput(
            phase=result.phase,
            status=task.status,
            text=task.text,
            token_count=task.token_count,
            cost=task.cost,
            error=task.error,
        ))
