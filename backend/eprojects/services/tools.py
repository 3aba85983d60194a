from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Session

from eprojects.models.tool import Tool, ToolRating
from eprojects.services.entitlements import parse_cpf_list

VALID_CATEGORIES = {"mechanical", "electrical", "textile", "informatics", "chemical"}
VALID_LINK_TYPES = {"internal", "external", "custom"}
VALID_ACCESS_LEVELS = {"E-BASIC", "E-TOOL", "E-MASTER"}

_FIELDS = (
    "name",
    "description",
    "category",
    "access_level",
    "link_type",
    "link",
    "custom_html",
    "show_in_iframe",
    "restricted_cpfs",
)


def _normalize_restricted_cpfs(raw: str | None) -> str | None:
    cpfs = parse_cpf_list(raw)
    if not cpfs:
        return None
    return ",".join(sorted(cpfs))


def _check_payload(tool: Tool) -> None:
    if tool.category not in VALID_CATEGORIES:
        raise ValueError("Categoria inválida")
    if tool.access_level not in VALID_ACCESS_LEVELS:
        raise ValueError("Nível de acesso inválido")
    if tool.link_type not in VALID_LINK_TYPES:
        raise ValueError("Tipo de link inválido")
    if tool.link_type == "custom":
        if not (tool.custom_html or "").strip():
            raise ValueError("HTML personalizado é obrigatório para ferramentas do tipo custom")
        tool.link = None
    else:
        if not (tool.link or "").strip():
            raise ValueError("Link é obrigatório para ferramentas internas ou externas")
        tool.custom_html = None


def list_tools(db: Session, category: str | None = None) -> list[Tool]:
    stmt = sa.select(Tool).order_by(Tool.name, Tool.id)
    if category:
        stmt = stmt.where(Tool.category == category)
    return list(db.execute(stmt).scalars())


def create_tool(db: Session, *, actor_user_id: int, data: dict) -> Tool:
    tool = Tool(created_by=actor_user_id)
    for key in _FIELDS:
        if key in data:
            setattr(tool, key, data[key])
    tool.restricted_cpfs = _normalize_restricted_cpfs(tool.restricted_cpfs)
    if tool.access_level is None:
        tool.access_level = "E-BASIC"
    if tool.link_type is None:
        tool.link_type = "external"
    _check_payload(tool)
    db.add(tool)
    db.flush()
    return tool


def update_tool(db: Session, *, tool: Tool, data: dict) -> Tool:
    for key in _FIELDS:
        if key in data:
            setattr(tool, key, data[key])
    if "restricted_cpfs" in data:
        tool.restricted_cpfs = _normalize_restricted_cpfs(tool.restricted_cpfs)
    _check_payload(tool)
    db.flush()
    return tool


def delete_tool(db: Session, *, tool: Tool) -> None:
    db.execute(sa.delete(ToolRating).where(ToolRating.tool_id == tool.id))
    db.delete(tool)


def rate_tool(db: Session, *, tool: Tool, user_id: int, rating: int, comment: str | None = None) -> ToolRating:
    if rating < 1 or rating > 5:
        raise ValueError("Avaliação deve estar entre 1 e 5")
    row = get_user_rating(db, tool_id=tool.id, user_id=user_id)
    if row is None:
        row = ToolRating(tool_id=tool.id, user_id=user_id, rating=rating, comment=comment)
        db.add(row)
    else:
        row.rating = rating
        row.comment = comment
    db.flush()

    avg, total = db.execute(
        sa.select(sa.func.avg(ToolRating.rating), sa.func.count(ToolRating.id)).where(ToolRating.tool_id == tool.id)
    ).one()
    tool.average_rating = round(float(avg or 0), 2)
    tool.total_ratings = int(total or 0)
    db.flush()
    return row


def get_user_rating(db: Session, *, tool_id: int, user_id: int) -> ToolRating | None:
    return db.execute(
        sa.select(ToolRating).where(ToolRating.tool_id == tool_id, ToolRating.user_id == user_id)
    ).scalar_one_or_none()


def list_ratings(db: Session, *, tool_id: int) -> list[ToolRating]:
    return list(
        db.execute(
            sa.select(ToolRating).where(ToolRating.tool_id == tool_id).order_by(ToolRating.created_at.desc())
        ).scalars()
    )
