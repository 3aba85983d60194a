from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from eprojects.api.deps import get_current_user, get_optional_user, require_admin
from eprojects.db.session import get_db
from eprojects.models.tool import Tool
from eprojects.schemas.auth import SimpleOKOut
from eprojects.schemas.tools import ToolCreateIn, ToolOut, ToolRateIn, ToolRateOut, ToolRatingOut, ToolUpdateIn
from eprojects.services.entitlements import TOOL_HIDDEN, TOOL_LOCKED, is_admin, tool_view_state, visible_tools
from eprojects.services.tools import (
    create_tool,
    delete_tool,
    get_user_rating,
    list_ratings,
    list_tools,
    rate_tool,
    update_tool,
)

router = APIRouter()


def _tool_out(tool: Tool, *, locked: bool, admin_view: bool) -> ToolOut:
    # Locked tools are listed without anything that opens them.
    return ToolOut(
        id=tool.id,
        name=tool.name,
        description=tool.description,
        category=tool.category,
        access_level=tool.access_level,
        link_type=tool.link_type,
        link=None if locked else tool.link,
        custom_html=None if locked else tool.custom_html,
        show_in_iframe=tool.show_in_iframe,
        average_rating=float(tool.average_rating or 0),
        total_ratings=int(tool.total_ratings or 0),
        locked=locked,
        restricted_cpfs=tool.restricted_cpfs if admin_view else None,
        created_at=tool.created_at,
    )


def _visible_tool_or_404(db: Session, tool_id: int, viewer) -> tuple[Tool, bool]:
    tool = db.get(Tool, tool_id)
    if tool is None:
        raise HTTPException(404, "Ferramenta não encontrada")
    state = tool_view_state(viewer, tool)
    if state == TOOL_HIDDEN:
        raise HTTPException(404, "Ferramenta não encontrada")
    return tool, state == TOOL_LOCKED


@router.get("", response_model=list[ToolOut])
def get_tools(
    category: str | None = Query(default=None, max_length=30),
    db: Session = Depends(get_db),
    viewer=Depends(get_optional_user),
):
    admin_view = is_admin(viewer)
    return [
        _tool_out(tool, locked=locked, admin_view=admin_view)
        for tool, locked in visible_tools(viewer, list_tools(db, category))
    ]


@router.get("/{tool_id}", response_model=ToolOut)
def get_tool(tool_id: int, db: Session = Depends(get_db), viewer=Depends(get_optional_user)):
    tool, locked = _visible_tool_or_404(db, tool_id, viewer)
    return _tool_out(tool, locked=locked, admin_view=is_admin(viewer))


@router.post("", response_model=ToolOut, status_code=201)
def create_tool_admin(payload: ToolCreateIn, db: Session = Depends(get_db), current=Depends(require_admin)):
    try:
        tool = create_tool(db, actor_user_id=current.id, data=payload.model_dump())
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(tool)
    return _tool_out(tool, locked=False, admin_view=True)


@router.patch("/{tool_id}", response_model=ToolOut)
def update_tool_admin(
    tool_id: int,
    payload: ToolUpdateIn,
    db: Session = Depends(get_db),
    current=Depends(require_admin),
):
    tool = db.get(Tool, tool_id)
    if tool is None:
        raise HTTPException(404, "Ferramenta não encontrada")
    try:
        update_tool(db, tool=tool, data=payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(tool)
    return _tool_out(tool, locked=False, admin_view=True)


@router.delete("/{tool_id}", response_model=SimpleOKOut)
def delete_tool_admin(tool_id: int, db: Session = Depends(get_db), current=Depends(require_admin)):
    tool = db.get(Tool, tool_id)
    if tool is None:
        raise HTTPException(404, "Ferramenta não encontrada")
    delete_tool(db, tool=tool)
    db.commit()
    return SimpleOKOut(ok=True)


@router.post("/{tool_id}/rate", response_model=ToolRateOut)
def rate(tool_id: int, payload: ToolRateIn, db: Session = Depends(get_db), current=Depends(get_current_user)):
    tool, locked = _visible_tool_or_404(db, tool_id, current)
    if locked:
        raise HTTPException(403, "Você não tem acesso a esta ferramenta")
    try:
        row = rate_tool(db, tool=tool, user_id=current.id, rating=payload.rating, comment=payload.comment)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(row)
    db.refresh(tool)
    return ToolRateOut(
        rating=ToolRatingOut.model_validate(row),
        average_rating=float(tool.average_rating),
        total_ratings=int(tool.total_ratings),
    )


@router.get("/{tool_id}/ratings", response_model=list[ToolRatingOut])
def ratings(tool_id: int, db: Session = Depends(get_db), viewer=Depends(get_optional_user)):
    _visible_tool_or_404(db, tool_id, viewer)
    return [ToolRatingOut.model_validate(r) for r in list_ratings(db, tool_id=tool_id)]


@router.get("/{tool_id}/user-rating", response_model=ToolRatingOut | None)
def user_rating(tool_id: int, db: Session = Depends(get_db), current=Depends(get_current_user)):
    _visible_tool_or_404(db, tool_id, current)
    row = get_user_rating(db, tool_id=tool_id, user_id=current.id)
    return ToolRatingOut.model_validate(row) if row else None
