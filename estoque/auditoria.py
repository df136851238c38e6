from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True)
class CreateDetails:
    """A user account was created."""

    action: ClassVar[str] = "create"

    username: str
    role: str

    def to_dict(self) -> dict[str, Any]:
        return {"username": self.username, "role": self.role}


@dataclass(frozen=True)
class UpdateDetails:
    """A user account was activated or deactivated."""

    action: ClassVar[str] = "update"

    is_active: bool

    def to_dict(self) -> dict[str, Any]:
        return {"isActive": bool(self.is_active)}


@dataclass(frozen=True)
class DeleteDetails:
    """A user account was removed."""

    action: ClassVar[str] = "delete"

    username: str
    role: str

    def to_dict(self) -> dict[str, Any]:
        return {"username": self.username, "role": self.role}


LogDetails = CreateDetails | UpdateDetails | DeleteDetails


def details_to_dict(details: LogDetails) -> dict[str, Any]:
    return details.to_dict()


def details_from_dict(action: str, data: dict[str, Any] | None) -> LogDetails:
    """Rebuild the typed details stored for ``action``.

    Raises ``ValueError`` for unknown actions or payloads missing keys.
    """

    payload = data or {}
    try:
        if action == CreateDetails.action:
            return CreateDetails(username=str(payload["username"]), role=str(payload["role"]))
        if action == UpdateDetails.action:
            return UpdateDetails(is_active=bool(payload["isActive"]))
        if action == DeleteDetails.action:
            return DeleteDetails(username=str(payload["username"]), role=str(payload["role"]))
    except KeyError as e:
        raise ValueError(f"Detalhes de log incompletos para '{action}': falta {e.args[0]}") from e

    raise ValueError(f"Ação de log desconhecida: {action!r}")
