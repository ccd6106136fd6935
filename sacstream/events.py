"""
SAC Stream Event Models

Typed records for the events the platform pushes to its clients. Each
model has a from_dict() that raises KeyError/TypeError/ValueError on a
record it cannot accept; JsonFrameDecoder turns those into "malformed,
skip it".

Shapes:
    skill sync     {"type": "skill_sync", "action": "progress", "skill_id": 7, ...}
    output watch   {"action": "upload", "path": "/out/a.csv", "name": "a.csv", "size": 12}
    event stream   {"type": "...", "action": "...", <any other fields>}
"""

from dataclasses import dataclass, field
from typing import Any


# Skill sync actions and steps as emitted by the sync hub
SKILL_SYNC_ACTIONS = ("progress", "complete", "error")
SKILL_SYNC_STEPS = (
    "writing_skill_md",
    "downloading_file",
    "restarting_process",
    "cleaning_stale",
    "done",
)

OUTPUT_ACTIONS = ("upload", "delete")


# ---------------------------------------------------------------------------
# SkillSyncEvent
# ---------------------------------------------------------------------------

@dataclass
class SkillSyncEvent:
    """Progress of a skill being pushed into an agent's pod.

    Attributes:
        type:         Always "skill_sync".
        action:       progress | complete | error
        skill_id:     Skill being synced.
        skill_name:   Display name of the skill.
        command_name: Slash-command name the skill installs.
        agent_id:     Agent receiving the skill.
        step:         Current sync step (see SKILL_SYNC_STEPS).
        message:      Human-readable status line.
        current:      Files done so far, when the step counts files.
        total:        Files in the step, when the step counts files.
    """
    type: str
    action: str
    skill_id: int
    skill_name: str
    command_name: str
    agent_id: int
    step: str
    message: str
    current: int | None = None
    total: int | None = None

    @property
    def is_terminal(self) -> bool:
        """True once this skill's sync has finished, successfully or not."""
        return self.action in ("complete", "error")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SkillSyncEvent":
        current = data.get("current")
        total = data.get("total")
        return cls(
            type=str(data["type"]),
            action=str(data["action"]),
            skill_id=int(data["skill_id"]),
            skill_name=str(data.get("skill_name", "")),
            command_name=str(data.get("command_name", "")),
            agent_id=int(data["agent_id"]),
            step=str(data.get("step", "")),
            message=str(data.get("message", "")),
            current=int(current) if current is not None else None,
            total=int(total) if total is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        out = {
            "type": self.type,
            "action": self.action,
            "skill_id": self.skill_id,
            "skill_name": self.skill_name,
            "command_name": self.command_name,
            "agent_id": self.agent_id,
            "step": self.step,
            "message": self.message,
        }
        if self.current is not None:
            out["current"] = self.current
        if self.total is not None:
            out["total"] = self.total
        return out


# ---------------------------------------------------------------------------
# OutputEvent
# ---------------------------------------------------------------------------

@dataclass
class OutputEvent:
    """A file appeared in or vanished from an agent's output workspace."""
    action: str
    path: str
    name: str
    size: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OutputEvent":
        action = str(data["action"])
        if action not in OUTPUT_ACTIONS:
            raise ValueError(f"unknown output action '{action}'")
        return cls(
            action=action,
            path=str(data["path"]),
            name=str(data.get("name", "")),
            size=int(data.get("size", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.action, "path": self.path,
                "name": self.name, "size": self.size}


# ---------------------------------------------------------------------------
# StreamEvent
# ---------------------------------------------------------------------------

@dataclass
class StreamEvent:
    """Generic {type, action, ...fields} record from a streaming HTTP feed."""
    type: str
    action: str = ""
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StreamEvent":
        rest = {k: v for k, v in data.items() if k not in ("type", "action")}
        return cls(type=str(data["type"]), action=str(data.get("action", "")), fields=rest)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "action": self.action, **self.fields}
