"""Mesh Lifecycle — request/agent state machine for one multiplexed exchange.

Invariants:
    - Request: PENDING → AUTH_CHECKED → VALIDATED → STREAMING → CLOSED
    - CLOSED reachable from any phase (rejected request, disconnect, completion)
    - Agent: START_EMITTED → EXECUTING → RESULT_EMITTED, only while STREAMING
    - Illegal transitions raise LifecycleError — they indicate a programming error

Design Decisions:
    - Explicit transition table over ad-hoc flags, mirroring the phase rules
      kept in core/ for the rest of the domain
"""

from dataclasses import dataclass, field

from meshmind.core.domain_types import AgentPhase, RequestPhase
from meshmind.core.errors import LifecycleError


_REQUEST_TRANSITIONS: dict[RequestPhase, set[RequestPhase]] = {
    RequestPhase.PENDING: {RequestPhase.AUTH_CHECKED, RequestPhase.CLOSED},
    RequestPhase.AUTH_CHECKED: {RequestPhase.VALIDATED, RequestPhase.CLOSED},
    RequestPhase.VALIDATED: {RequestPhase.STREAMING, RequestPhase.CLOSED},
    RequestPhase.STREAMING: {RequestPhase.CLOSED},
    RequestPhase.CLOSED: set(),
}

_AGENT_TRANSITIONS: dict[AgentPhase | None, set[AgentPhase]] = {
    None: {AgentPhase.START_EMITTED},
    AgentPhase.START_EMITTED: {AgentPhase.EXECUTING},
    AgentPhase.EXECUTING: {AgentPhase.RESULT_EMITTED},
    AgentPhase.RESULT_EMITTED: set(),
}


@dataclass
class MeshRequestState:
    """Mutable lifecycle tracker owned by a single mesh request."""
    phase: RequestPhase = RequestPhase.PENDING
    agents: dict[int, AgentPhase] = field(default_factory=dict)

    def advance(self, target: RequestPhase) -> None:
        if target not in _REQUEST_TRANSITIONS[self.phase]:
            raise LifecycleError(
                f"Illegal request transition {self.phase.value} → {target.value}",
            )
        self.phase = target

    def close(self) -> None:
        """Idempotent terminal transition."""
        if self.phase != RequestPhase.CLOSED:
            self.advance(RequestPhase.CLOSED)

    def advance_agent(self, index: int, target: AgentPhase) -> None:
        if self.phase != RequestPhase.STREAMING:
            raise LifecycleError(
                f"Agent {index} cannot move to {target.value} "
                f"while request is {self.phase.value}",
            )
        current = self.agents.get(index)
        if target not in _AGENT_TRANSITIONS[current]:
            label = current.value if current else "none"
            raise LifecycleError(
                f"Illegal transition for agent {index}: {label} → {target.value}",
            )
        self.agents[index] = target

    @property
    def completed_agents(self) -> int:
        return sum(
            1 for phase in self.agents.values()
            if phase == AgentPhase.RESULT_EMITTED
        )
