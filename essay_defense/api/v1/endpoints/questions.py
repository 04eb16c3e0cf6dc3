# essay_defense/api/v1/endpoints/questions.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from essay_defense.core.security import require_operator
from essay_defense.db.session import get_db
from essay_defense.schemas.question import (
    PromptTemplatePublic,
    PromptTemplateUpdate,
    QuestionCreate,
    QuestionPublic,
)
from essay_defense.services import question_service

router = APIRouter(
    prefix="/operator",
    tags=["question bank"],
    dependencies=[Depends(require_operator)],
)


@router.post("/questions", response_model=QuestionPublic, status_code=status.HTTP_201_CREATED)
def create_question(obj_in: QuestionCreate, db: Session = Depends(get_db)):
    return question_service.create_question(db, obj_in=obj_in)


@router.get("/questions", response_model=List[QuestionPublic])
def list_questions(
    db: Session = Depends(get_db),
    category: str | None = None,
    include_inactive: bool = False,
    skip: int = 0,
    limit: int = 100,
):
    return question_service.list_questions(
        db, category=category, include_inactive=include_inactive, skip=skip, limit=limit
    )


@router.delete("/questions/{question_id}", response_model=QuestionPublic)
def deactivate_question(question_id: int, db: Session = Depends(get_db)):
    """
    Retire a question. Already-drawn question sets are not affected.
    """
    q = question_service.get_question(db, question_id)
    if not q:
        raise HTTPException(status_code=404, detail="Question not found")
    return question_service.deactivate_question(db, db_obj=q)


@router.get("/templates/{name}", response_model=PromptTemplatePublic)
def get_template(name: str, db: Session = Depends(get_db)):
    t = question_service.get_template(db, name)
    if not t:
        raise HTTPException(status_code=404, detail="Template not found")
    return t


@router.put("/templates/{name}", response_model=PromptTemplatePublic)
def put_template(name: str, obj_in: PromptTemplateUpdate, db: Session = Depends(get_db)):
    return question_service.upsert_template(db, name=name, body=obj_in.body)
