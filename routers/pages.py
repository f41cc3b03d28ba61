# routers/pages.py
from typing import Annotated, Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from config import TEMPLATES_DIR
from db import SessionDep
from models import ItemCondition
from schemas import Pagination
from .items import SortField, SortOrder, category_map, load_item_detail, search_catalog
from .users import load_profile

router = APIRouter(tags=["pages"], include_in_schema=False)
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

CONDITIONS = [condition.value for condition in ItemCondition]


def not_found(request: Request, what: str) -> HTMLResponse:
    return templates.TemplateResponse(
        request, "not_found.html", {"what": what}, status_code=404
    )


def _int_or_none(raw: Optional[str]) -> Optional[int]:
    try:
        value = int(raw) if raw else None
    except ValueError:
        return None
    return value if value is None or value >= 0 else None


def _condition_or_none(raw: Optional[str]) -> Optional[ItemCondition]:
    try:
        return ItemCondition(raw) if raw else None
    except ValueError:
        return None


@router.get("/browse", response_class=HTMLResponse)
def browse_page(
    request: Request,
    session: SessionDep,
    category: Optional[str] = None,
    type: Optional[str] = None,
    condition: Optional[str] = None,
    min_points: Annotated[Optional[str], Query(alias="minPoints")] = None,
    max_points: Annotated[Optional[str], Query(alias="maxPoints")] = None,
    search: Optional[str] = None,
    sort_by: Annotated[SortField, Query(alias="sortBy")] = "created_at",
    sort_order: Annotated[SortOrder, Query(alias="sortOrder")] = "desc",
    page: Annotated[int, Query(ge=1)] = 1,
):
    """
    Catalog page with the same filters as GET /api/items.
    Blank or malformed filter fields from the HTML form are ignored rather than rejected.
    """
    limit = 12
    filters = {
        "category": category or "",
        "type": type or "",
        "condition": _condition_or_none(condition),
        "minPoints": _int_or_none(min_points),
        "maxPoints": _int_or_none(max_points),
        "search": search or "",
        "sortBy": sort_by,
        "sortOrder": sort_order,
    }
    items, total = search_catalog(
        session,
        category=filters["category"],
        type=filters["type"],
        condition=filters["condition"],
        min_points=filters["minPoints"],
        max_points=filters["maxPoints"],
        search=filters["search"],
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    if filters["condition"] is not None:
        filters["condition"] = filters["condition"].value
    query = {key: value for key, value in filters.items() if value not in ("", None)}
    return templates.TemplateResponse(
        request,
        "browse.html",
        {
            "items": items,
            "pagination": Pagination.build(page, limit, total),
            "filters": {key: "" if value is None else value for key, value in filters.items()},
            "query": query,
            "categories": category_map(session),
            "conditions": CONDITIONS,
        },
    )


@router.get("/item/{item_id}", response_class=HTMLResponse)
def item_page(item_id: int, request: Request, session: SessionDep):
    # Rendered anonymously; app.js asks the API for canSwap once the token is known.
    item = load_item_detail(session, item_id, viewer=None)
    if item is None:
        return not_found(request, "Item")
    return templates.TemplateResponse(request, "item_detail.html", {"item": item})


@router.get("/user/{user_id}", response_class=HTMLResponse)
def profile_page(user_id: int, request: Request, session: SessionDep):
    profile = load_profile(session, user_id)
    if profile is None:
        return not_found(request, "User")
    return templates.TemplateResponse(request, "profile.html", profile)


def _shell(name: str):
    """Page whose data is loaded client-side with the stored bearer token."""

    def render(request: Request):
        return templates.TemplateResponse(
            request, f"{name}.html", {"conditions": CONDITIONS}
        )

    render.__name__ = f"{name}_page"
    return render


for _path, _name in (
    ("/login", "login"),
    ("/register", "register"),
    ("/dashboard", "dashboard"),
    ("/add-item", "add_item"),
    ("/swaps", "swaps"),
    ("/notifications", "notifications"),
    ("/admin", "admin"),
):
    router.add_api_route(_path, _shell(_name), methods=["GET"], response_class=HTMLResponse)
