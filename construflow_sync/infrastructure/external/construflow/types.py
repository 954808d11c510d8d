"""
Tipos y utilidades puras para el pipeline Construflow -> warehouse.

Se mantienen libres de I/O para poder testearlos fácilmente. La API de
Construflow es laxa con el esquema, así que estos tipos son el único punto
donde se valida lo mínimo necesario para paginar y hacer joins por id.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

LookupRow = dict[str, Any]


def _nested(payload: Optional[dict[str, Any]], *path: str) -> Any:
    """Navega dicts anidados tolerando None en cualquier nivel."""
    current: Any = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


@dataclass(frozen=True)
class TokenPair:
    """Par de credenciales del GraphQL. expires_at es epoch en segundos."""

    access_token: str
    refresh_token: Optional[str]
    expires_at: float


@dataclass(frozen=True)
class GraphQLCredentials:
    username: str
    password: str
    api_key: str = ""


@dataclass(frozen=True)
class RestCredentials:
    api_key: str
    api_secret: str


@dataclass(frozen=True)
class Project:
    """Proyecto tal como lo lista el endpoint REST `projects`."""

    id: str
    name: Optional[str] = None

    @classmethod
    def from_row(cls, row: LookupRow) -> Optional["Project"]:
        project_id = row.get("id")
        if project_id is None or project_id == "":
            return None
        return cls(id=str(project_id), name=row.get("name"))


@dataclass(frozen=True)
class IssueDiscipline:
    """Relación issue <-> disciplina con su estado (viene embebida en la issue)."""

    issue_id: int
    project_id: str
    discipline_id: Optional[int]
    discipline_name: Optional[str]
    status: Optional[str]

    def to_row(self) -> dict[str, Any]:
        return {
            "issue_id": self.issue_id,
            "discipline_id": self.discipline_id,
            "discipline_name": self.discipline_name,
            "status": self.status,
            "project_id": self.project_id,
        }


@dataclass(frozen=True)
class Issue:
    """
    Issue de un proyecto.

    project_id lo agrega el engine: la API no lo embebe de forma consistente.
    """

    id: int
    project_id: str
    guid: Optional[str] = None
    code: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[Any] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deadline: Optional[str] = None
    created_by_user_id: Optional[Any] = None
    status_updated_by_user_id: Optional[Any] = None
    status_updated_at: Optional[str] = None
    creation_phase: Optional[Any] = None
    resolution_phase: Optional[Any] = None
    visibility: Optional[str] = None
    edited_at: Optional[str] = None
    disciplines: tuple[IssueDiscipline, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload: dict[str, Any], *, project_id: Any) -> "Issue":
        """
        Construye la Issue desde el nodo GraphQL.

        Raises:
            ValueError: si el payload no trae `id` o no hay project_id
        """
        issue_id = payload.get("id")
        if issue_id is None:
            raise ValueError("Issue sin 'id' en la respuesta GraphQL")
        if project_id is None or project_id == "":
            raise ValueError(f"Issue {issue_id} sin project_id")

        project_key = str(project_id)
        disciplines = tuple(
            IssueDiscipline(
                issue_id=issue_id,
                project_id=project_key,
                discipline_id=_nested(link, "discipline", "id"),
                discipline_name=_nested(link, "discipline", "name"),
                status=link.get("status"),
            )
            for link in payload.get("disciplines") or []
            if isinstance(link, dict)
        )

        return cls(
            id=issue_id,
            project_id=project_key,
            guid=payload.get("guid"),
            code=payload.get("code"),
            title=payload.get("title"),
            description=payload.get("description"),
            status=payload.get("status"),
            priority=payload.get("priority"),
            created_at=payload.get("createdAt"),
            updated_at=payload.get("updatedAt"),
            deadline=payload.get("deadline"),
            created_by_user_id=payload.get("createdByUserId"),
            status_updated_by_user_id=payload.get("statusUpdatedByUserId"),
            status_updated_at=payload.get("statusUpdatedAt"),
            creation_phase=payload.get("creationPhase"),
            resolution_phase=payload.get("resolutionPhase"),
            visibility=payload.get("visibility"),
            edited_at=payload.get("editedAt"),
            disciplines=disciplines,
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "guid": self.guid,
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "project_id": self.project_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "deadline": self.deadline,
            "created_by_user_id": self.created_by_user_id,
            "status_updated_by_user_id": self.status_updated_by_user_id,
            "status_updated_at": self.status_updated_at,
            "creation_phase": self.creation_phase,
            "resolution_phase": self.resolution_phase,
            "visibility": self.visibility,
            "edited_at": self.edited_at,
        }


@dataclass(frozen=True)
class IssueComment:
    id: Any
    issue_id: Any
    project_id: str
    message: Optional[str] = None
    visibility: Optional[str] = None
    created_at: Optional[str] = None
    created_by_user_id: Optional[Any] = None
    created_by_user_name: Optional[str] = None
    created_by_user_email: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any], *, issue_id: Any, project_id: Any) -> "IssueComment":
        return cls(
            id=payload.get("id"),
            issue_id=issue_id,
            project_id=str(project_id),
            message=payload.get("message"),
            visibility=payload.get("visibility"),
            created_at=payload.get("createdAt"),
            created_by_user_id=_nested(payload, "createdByUser", "id"),
            created_by_user_name=_nested(payload, "createdByUser", "name"),
            created_by_user_email=_nested(payload, "createdByUser", "email"),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "type": "comment",
            "id": self.id,
            "issue_id": self.issue_id,
            "project_id": self.project_id,
            "message": self.message,
            "visibility": self.visibility,
            "created_at": self.created_at,
            "created_by_user_id": self.created_by_user_id,
            "created_by_user_name": self.created_by_user_name,
            "created_by_user_email": self.created_by_user_email,
        }


@dataclass(frozen=True)
class IssueHistoryEvent:
    id: Any
    issue_id: Any
    project_id: str
    user_id: Optional[Any] = None
    user_name: Optional[str] = None
    entity_type: Optional[str] = None
    fields: Optional[str] = None  # JSON serializado
    data_time: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any], *, issue_id: Any, project_id: Any) -> "IssueHistoryEvent":
        raw_fields = payload.get("fields")
        return cls(
            id=payload.get("_id"),
            issue_id=issue_id,
            project_id=str(project_id),
            user_id=_nested(payload, "user", "id"),
            user_name=_nested(payload, "user", "name"),
            entity_type=payload.get("entityType"),
            fields=json.dumps(raw_fields) if raw_fields is not None else None,
            data_time=payload.get("dataTime"),
        )

    def to_row(self) -> dict[str, Any]:
        # "id" se guarda con el mismo nombre que en comentarios (_id en la API)
        return {
            "type": "history",
            "id": self.id,
            "issue_id": self.issue_id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "entity_type": self.entity_type,
            "fields": self.fields,
            "data_time": self.data_time,
        }


@dataclass(frozen=True)
class IssueActivity:
    """Comentarios + historial de una issue. Vacío si la consulta falló."""

    issue_id: Any
    project_id: str
    comments: tuple[IssueComment, ...] = ()
    history: tuple[IssueHistoryEvent, ...] = ()

    @classmethod
    def empty(cls, *, issue_id: Any, project_id: Any) -> "IssueActivity":
        return cls(issue_id=issue_id, project_id=str(project_id))

    @classmethod
    def from_payload(cls, payload: Optional[dict[str, Any]], *, issue_id: Any, project_id: Any) -> "IssueActivity":
        payload = payload or {}
        return cls(
            issue_id=issue_id,
            project_id=str(project_id),
            comments=tuple(
                IssueComment.from_payload(c, issue_id=issue_id, project_id=project_id)
                for c in payload.get("comments") or []
                if isinstance(c, dict)
            ),
            history=tuple(
                IssueHistoryEvent.from_payload(h, issue_id=issue_id, project_id=project_id)
                for h in payload.get("history") or []
                if isinstance(h, dict)
            ),
        )
