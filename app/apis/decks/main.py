from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.apis.deps import get_study_service
from app.core.config import settings
from app.modules.study.models import Deck, QuizAttempt
from app.modules.study.service import StudyService
from .schemas import SaveDeckRequest, SavedResponse, SaveQuizResultRequest


router = APIRouter()


@router.post(
    f"/{settings.app.version}/decks",
    response_model=SavedResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["decks"],
)
async def save_deck(
    req: SaveDeckRequest, service: StudyService = Depends(get_study_service)
) -> SavedResponse:
    deck_id = await service.save_deck(Deck(topic=req.topic, cards=req.cards))
    return SavedResponse(id=deck_id)


@router.get(f"/{settings.app.version}/decks", response_model=list[Deck], tags=["decks"])
async def deck_history(service: StudyService = Depends(get_study_service)) -> list[Deck]:
    return await service.get_deck_history()


@router.get(
    f"/{settings.app.version}/decks/{{deck_id}}", response_model=Deck, tags=["decks"]
)
async def get_deck(
    deck_id: str, service: StudyService = Depends(get_study_service)
) -> Deck:
    deck = await service.get_deck(deck_id)
    if deck is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deck not found")
    return deck


@router.post(
    f"/{settings.app.version}/quiz/results",
    response_model=SavedResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["quiz"],
)
async def save_quiz_result(
    req: SaveQuizResultRequest, service: StudyService = Depends(get_study_service)
) -> SavedResponse:
    attempt = QuizAttempt(
        topic=req.topic, score=req.score, total=req.total, results=req.results
    )
    return SavedResponse(id=await service.save_quiz_result(attempt))


@router.get(
    f"/{settings.app.version}/quiz/results",
    response_model=list[QuizAttempt],
    tags=["quiz"],
)
async def quiz_history(
    service: StudyService = Depends(get_study_service),
) -> list[QuizAttempt]:
    return await service.get_quiz_history()
