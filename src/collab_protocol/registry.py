"""
Agent registry.

A static catalog of the specialist agents known to this process, built once
at start-up and never mutated afterwards.
"""

import json
from pathlib import Path
from typing import Any, Iterable, Optional

import pydantic

from collab_protocol.exceptions import AgentNotFoundError, ValidationError
from collab_protocol.models import Agent, CollaborationRole


# Platform agents served when no catalog file is configured
DEFAULT_AGENTS: list[dict[str, Any]] = [
    {
        "id": "document-processor",
        "name": "Document Processor",
        "capabilities": ["pdf_extraction", "data_parsing", "address_identification"],
        "status": "active",
        "collaboration_preferences": {"preferred_role": "data_provider"},
    },
    {
        "id": "construction-specialist",
        "name": "Construction Specialist",
        "capabilities": ["wind_calculations", "sow_generation", "compliance_checking"],
        "status": "active",
        "collaboration_preferences": {"preferred_role": "analyst"},
    },
    {
        "id": "quality-reviewer",
        "name": "Quality Reviewer",
        "capabilities": ["peer_validation", "accuracy_assessment", "recommendation_generation"],
        "status": "active",
        "collaboration_preferences": {"preferred_role": "validator"},
    },
    {
        "id": "aerial-cad",
        "name": "Aerial CAD Intelligence",
        "capabilities": ["satellite_analysis", "building_measurement", "cad_generation"],
        "status": "active",
        "collaboration_preferences": {"preferred_role": "data_enhancer"},
    },
]


# Ids that would be shadowed by the protocol://agents/registry listing
RESERVED_AGENT_IDS = frozenset({"registry"})


class AgentRegistry:
    """Read-only catalog of agents keyed by id."""

    def __init__(self, agents: Iterable[Agent]) -> None:
        """
        Build the catalog.

        Args:
            agents: Agents in catalog order.

        Raises:
            ValidationError: If two agents share an id, or an id is reserved.
        """
        self._agents: dict[str, Agent] = {}
        for agent in agents:
            if agent.id in self._agents:
                raise ValidationError(f"Duplicate agent id: {agent.id}", field="id", value=agent.id)
            if agent.id in RESERVED_AGENT_IDS:
                raise ValidationError(f"Reserved agent id: {agent.id}", field="id", value=agent.id)
            self._agents[agent.id] = agent

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def list_agents(self) -> list[Agent]:
        """Return all agents in catalog order."""
        return list(self._agents.values())

    def get_agent(self, agent_id: str) -> Agent:
        """
        Get an agent by id.

        Raises:
            AgentNotFoundError: If no such agent is registered.
        """
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def has_agent(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def find_by_capability(self, capability: str) -> list[Agent]:
        """Agents declaring the given capability tag."""
        return [a for a in self._agents.values() if capability in a.capabilities]

    def find_by_role(self, role: CollaborationRole) -> list[Agent]:
        """Agents whose preferred collaboration role matches."""
        return [
            a for a in self._agents.values() if a.collaboration_preferences.preferred_role == role
        ]

    def unknown_agents(self, agent_ids: Iterable[str]) -> list[str]:
        """Ids from ``agent_ids`` that are not registered, first occurrence only."""
        missing: list[str] = []
        for agent_id in agent_ids:
            if agent_id not in self._agents and agent_id not in missing:
                missing.append(agent_id)
        return missing

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Point-in-time view of the catalog as JSON-ready dictionaries."""
        return {agent_id: agent.model_dump(mode="json") for agent_id, agent in self._agents.items()}


def _parse_agents(entries: Iterable[dict[str, Any]]) -> list[Agent]:
    try:
        return [Agent.model_validate(entry) for entry in entries]
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid agent catalog entry: {e.errors()[0]['msg']}") from e


def create_default_registry() -> AgentRegistry:
    """Create the registry of built-in platform agents."""
    return AgentRegistry(_parse_agents(DEFAULT_AGENTS))


def load_registry(path: Path) -> AgentRegistry:
    """
    Load an agent catalog from a JSON file.

    The file holds either a list of agent objects or an object mapping agent
    id to agent object (the shape served by ``protocol://agents/registry``).

    Args:
        path: Path to the catalog file.

    Returns:
        AgentRegistry built from the file.

    Raises:
        ValidationError: If the file is not a valid catalog.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"Agent catalog is not valid JSON: {path}") from e

    if isinstance(data, dict):
        entries = list(data.values())
    elif isinstance(data, list):
        entries = data
    else:
        raise ValidationError(f"Agent catalog must be a list or object: {path}")

    return AgentRegistry(_parse_agents(entries))


def create_registry(registry_file: Optional[Path] = None) -> AgentRegistry:
    """Create a registry from ``registry_file`` if given, else the built-in catalog."""
    if registry_file is not None:
        return load_registry(registry_file)
    return create_default_registry()
