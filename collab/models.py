"""Pure dataclasses and enums for the collaboration engine. No logic, no deps."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collab.providers.base import AIProvider


class Mode(str, Enum):
    ROUND_TABLE = "round_table"
    SEQUENTIAL_CRITIQUE_CHAIN = "sequential_critique_chain"
    VALIDATED_CONSENSUS = "validated_consensus"
    CREATIVE_BRAINSTORM_SWARM = "creative_brainstorm_swarm"
    HYBRID_GUARDED_BRAINTRUST = "hybrid_guarded_braintrust"


class PhaseKind(str, Enum):
    DRAFT = "draft"
    CRITIQUE = "critique"
    VOTE = "vote"
    VERIFY = "verify"
    FUSE = "fuse"
    SYNTHESIZE = "synthesize"


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    ABORTED = "aborted"
    FAILED = "failed"


class CritiqueStyle(str, Enum):
    AGREE = "agree"
    BALANCED = "balanced"
    DISAGREE = "disagree"


@dataclass
class CompletionParams:
    system: str
    max_tokens: int
    timeout_sec: float
    phase: str = ""


@dataclass
class Completion:
    text: str
    token_count: int | None
    cost: float
    latency_sec: float = 0.0


@dataclass(frozen=True)
class Agent:
    provider_id: str       # "claude", "gemini", "openai", ...
    model_id: str
    client: AIProvider
    timeout_sec: float | None = None   # per-agent override of the per-call timeout
    max_tokens: int = 1024
    input_price_per_mtok: float = 0.0
    output_price_per_mtok: float = 0.0
    context_chars: int | None = None   # largest block of earlier output fed back into a prompt


@dataclass
class CollabRequest:
    prompt: str
    mode: str
    agents: list[str]
    cost_cap_dollars: float | None = None
    global_timeout_ms: int | None = None
    critique_style: CritiqueStyle = CritiqueStyle.BALANCED
    lead_agent: str | None = None


@dataclass
class Session:
    id: str
    prompt: str
    mode: Mode
    agents: list[str]
    cost_cap: float | None
    deadline: float            # time.monotonic() value
    phase_index: int = 0
    status: SessionStatus = SessionStatus.RUNNING


@dataclass
class TaskSpec:
    agent: str
    prompt: str
    system: str = ""


@dataclass
class PhaseSpec:
    kind: PhaseKind
    name: str
    tasks: list[TaskSpec]
    min_success: int = 1       # protocol-required minimum for this phase
    deadline: float | None = None   # filled by the coordinator from the remaining budget

    @property
    def agents(self) -> list[str]:
        return [t.agent for t in self.tasks]


@dataclass
class AgentTask:
    agent: str
    phase: str
    prompt: str
    status: TaskStatus = TaskStatus.PENDING
    started_at: float | None = None
    attempts: int = 0
    text: str | None = None
    token_count: int | None = None
    cost: float = 0.0
    error: str | None = None


@dataclass
class AggregateResult:
    phase: str
    kind: PhaseKind
    tasks: list[AgentTask] = field(default_factory=list)
    scalars: dict[str, Any] = field(default_factory=dict)
    decision: str | None = None

    @property
    def succeeded(self) -> list[AgentTask]:
        return [t for t in self.tasks if t.status == TaskStatus.DONE]

    @property
    def cost(self) -> float:
        return sum(t.cost for t in self.tasks)


@dataclass(frozen=True)
class Reduction:
    """Output of an aggregator: next-phase context plus a decision signal."""
    context: str
    decision: str | None = None
    scalars: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RankedIdea:
    title: str
    score: float               # 0-10 creativity score from the ranker
    summary: str = ""


@dataclass
class Outcome:
    """What a protocol hands back when it reaches a terminal state."""
    content: str
    rationale: str | None = None
    degraded: bool = False
    note: str | None = None


@dataclass
class PhaseOutput:
    phase: str
    status: TaskStatus
    text: str | None = None
    token_count: int | None = None
    cost: float = 0.0
    error: str | None = None


@dataclass
class AgentTrace:
    agent: str
    phase_outputs: list[PhaseOutput] = field(default_factory=list)


@dataclass
class FinalResult:
    session_id: str
    mode: Mode
    status: SessionStatus
    content: str
    rationale: str | None = None
    per_agent_trace: list[AgentTrace] = field(default_factory=list)
    cost_actual: float = 0.0
    disclaimer: str | None = None
    phases: list[str] = field(default_factory=list)
    cost_exceeded: bool = False
    duration_sec: float = 0.0


@dataclass
class ProgressEvent:
    type: str                  # "phase_change" | "agent_status"
    session_id: str
    phase: str | None = None
    agent: str | None = None
    status: str | None = None
    message: str | None = None
