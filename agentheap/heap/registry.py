"""Specialist registry: ids, per-specialist tools, optional delegate targets."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

SPECIALIST_TOOL_CAP = 10
TOP_LEVEL_CAP = 7
DELEGATE_TARGETS_CAP = 7


@dataclass
class SpecialistEntry:
    id: str
    tool_names: list[str] = field(default_factory=list)
    delegate_targets: list[str] | None = None
    description: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "toolNames": self.tool_names,
            "delegateTargets": self.delegate_targets,
            "description": self.description,
        }


@dataclass
class SpecialistRegistry:
    top_level_ids: list[str] = field(default_factory=list)
    specialists: dict[str, SpecialistEntry] = field(default_factory=dict)

    def get(self, specialist_id: str) -> SpecialistEntry | None:
        return self.specialists.get(specialist_id)

    def __contains__(self, specialist_id: str) -> bool:
        return specialist_id in self.specialists

    @classmethod
    def from_dict(cls, data: dict) -> "SpecialistRegistry":
        specialists = {}
        for sid, entry in (data.get("specialists") or {}).items():
            entry = entry or {}
            specialists[sid] = SpecialistEntry(
                id=entry.get("id", sid),
                tool_names=list(entry.get("toolNames", entry.get("tool_names", []))),
                delegate_targets=entry.get("delegateTargets", entry.get("delegate_targets")),
                description=entry.get("description"),
            )
        top = data.get("topLevelIds", data.get("top_level_ids"))
        return cls(top_level_ids=list(top if top is not None else specialists), specialists=specialists)


def apply_registry_caps(registry: SpecialistRegistry) -> SpecialistRegistry:
    """Return a copy with top-level ids, tool lists and delegate targets trimmed to their caps."""
    specialists = {
        sid: replace(
            entry,
            tool_names=entry.tool_names[:SPECIALIST_TOOL_CAP],
            delegate_targets=entry.delegate_targets[:DELEGATE_TARGETS_CAP] if entry.delegate_targets else entry.delegate_targets,
        )
        for sid, entry in registry.specialists.items()
    }
    return SpecialistRegistry(top_level_ids=registry.top_level_ids[:TOP_LEVEL_CAP], specialists=specialists)
