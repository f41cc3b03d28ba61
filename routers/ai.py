import logging

from fastapi import APIRouter, HTTPException
from sqlmodel import select

from db import SessionDep
from llm import AssistDep, AssistError
from models import Item, Swap, SwapStatus
from schemas import (
    ImageAnalysisRequest,
    ItemFeatures,
    ModerationRequest,
    TextRequest,
)
from .auth import CurrentUserDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


def _failed(detail: str) -> HTTPException:
    logger.exception(detail)
    return HTTPException(status_code=500, detail=detail)


@router.post("/analyze-image")
def analyze_image(payload: ImageAnalysisRequest, user: CurrentUserDep, assist: AssistDep):
    if not payload.image_url:
        raise HTTPException(status_code=400, detail="Image URL is required")
    try:
        analysis = assist.analyze_image(payload.image_url)
    except AssistError:
        raise _failed("Failed to analyze image")
    return {"message": "Image analyzed successfully", "analysis": analysis}


@router.post("/generate-description")
def generate_description(features: ItemFeatures, user: CurrentUserDep, assist: AssistDep):
    try:
        description = assist.generate_description(features)
    except AssistError:
        raise _failed("Failed to generate description")
    return {"message": "Description generated successfully", "description": description}


@router.post("/extract-tags")
def extract_tags(payload: TextRequest, user: CurrentUserDep, assist: AssistDep):
    if not payload.text:
        raise HTTPException(status_code=400, detail="Text is required")
    try:
        tags = assist.extract_tags(payload.text)
    except AssistError:
        raise _failed("Failed to extract tags")
    return {"message": "Tags extracted successfully", "tags": tags}


@router.post("/suggest-points")
def suggest_points(features: ItemFeatures, user: CurrentUserDep, assist: AssistDep):
    """
    Never fails: an unusable reply falls back to the default value.
    """
    points = assist.suggest_points(features)
    return {"message": "Points suggestion generated successfully", "points": points}


@router.post("/moderate")
def moderate(payload: ModerationRequest, user: CurrentUserDep, assist: AssistDep):
    if not payload.title and not payload.description:
        raise HTTPException(status_code=400, detail="Title or description is required")
    try:
        result = assist.moderate(payload.title or "", payload.description or "")
    except AssistError:
        raise _failed("Failed to moderate content")
    return {
        "message": "Content moderated successfully",
        "moderation": result.model_dump(by_alias=True),
    }


@router.get("/recommendations")
def recommendations(session: SessionDep, user: CurrentUserDep, assist: AssistDep):
    """
    Build a preference profile from the user's listings and settled swaps and ask for suggestions.
    """
    listed = session.exec(
        select(Item.category, Item.type, Item.tags).where(
            Item.user_id == user.id,
            Item.is_approved == True,  # noqa: E712
        )
    ).all()
    swapped = session.exec(
        select(Item.category, Item.type, Item.tags)
        .join(Swap, Swap.item_id == Item.id)
        .where(
            Swap.requester_id == user.id,
            Swap.status.in_((SwapStatus.ACCEPTED, SwapStatus.COMPLETED)),
        )
    ).all()

    def describe(rows):
        return [
            {"category": category, "type": item_type, "tags": tags or []}
            for category, item_type, tags in rows
        ]

    preferences = {
        "items": describe(listed),
        "swaps": describe(swapped),
        "interests": describe(list(listed) + list(swapped)),
    }
    try:
        suggestions = assist.recommend(preferences)
    except AssistError:
        raise _failed("Failed to generate recommendations")
    return {
        "message": "Recommendations generated successfully",
        "recommendations": suggestions,
    }
