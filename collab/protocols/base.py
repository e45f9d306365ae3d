"""Common interface for collaboration protocols.

A protocol is a state machine fed one AggregateResult at a time. It never
talks to agents itself; the coordinator dispatches the PhaseSpecs it emits.
"""

from abc import ABC, abstractmethod

from collab.aggregate import DEFAULT_CONTEXT_CHARS
from collab.models import (
    Agent,
    AggregateResult,
    CritiqueStyle,
    Mode,
    Outcome,
    PhaseKind,
    PhaseSpec,
    TaskSpec,
)
from config.config_loader import PromptsConfig


class Protocol(ABC):
    """One collaboration mode.

    next_phase() absorbs the previous phase's result and returns the next
    PhaseSpec, or None once the protocol is terminal. finalize() must produce
    an answer from whatever has been absorbed so far, including when the
    coordinator cuts the session short.
    """

    mode: Mode

    def __init__(
        self,
        prompt: str,
        agents: list[Agent],
        prompts: PromptsConfig,
        style: CritiqueStyle = CritiqueStyle.BALANCED,
        flag_threshold: float = 0.04,
        lead_agent: str | None = None,
    ) -> None:
        if not agents:
            raise ValueError("A protocol needs at least one agent")
        self.prompt = prompt
        self.agents = agents
        self.agent_ids = [a.provider_id for a in agents]
        self.style = style
        self.flag_threshold = flag_threshold
        self.lead_agent = lead_agent
        # Shared blocks must fit the smallest window on the panel
        self.context_chars = min(a.context_chars or DEFAULT_CONTEXT_CHARS for a in agents)
        self._prompts = prompts
        self._templates = prompts.modes.get(self.mode.value, {})

    @abstractmethod
    def next_phase(self, last: AggregateResult | None) -> PhaseSpec | None:
        """Absorb last (None on the first call) and return the next phase or None."""
        ...

    @abstractmethod
    def finalize(self, forced: bool = False) -> Outcome:
        """Build the final answer from the results absorbed so far."""
        ...

    def _system(self, agent_id: str) -> str:
        return self._prompts.system.format(
            agent=agent_id,
            count=len(self.agents),
            mode=self.mode.value.replace("_", " "),
            persona=self._prompts.personas.get(agent_id, ""),
        ).strip()

    def _render(self, template: str, **fields: str) -> str:
        return self._templates[template].format(prompt=self.prompt, **fields)

    def _task(self, agent_id: str, template: str, **fields: str) -> TaskSpec:
        return TaskSpec(agent=agent_id, prompt=self._render(template, **fields), system=self._system(agent_id))

    def _phase(
        self,
        kind: PhaseKind,
        name: str,
        agent_ids: list[str],
        template: str,
        min_success: int = 1,
        **fields: str,
    ) -> PhaseSpec:
        """Phase where every agent gets the same instruction."""
        return PhaseSpec(
            kind=kind,
            name=name,
            tasks=[self._task(agent_id, template, **fields) for agent_id in agent_ids],
            min_success=min_success,
        )

    def _by_token_limit(self, agent_ids: list[str]) -> list[str]:
        """Agents ordered by output allowance, largest first; ties keep request order."""
        limits = {a.provider_id: a.max_tokens for a in self.agents}
        return sorted(agent_ids, key=lambda agent_id: -limits.get(agent_id, 0))
