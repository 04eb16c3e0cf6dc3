# essay_defense/services/question_service.py
from typing import List, Optional

from sqlalchemy.orm import Session

from essay_defense.models.prompt_template import PromptTemplate
from essay_defense.models.question import Question
from essay_defense.schemas.question import QuestionCreate


def create_question(db: Session, *, obj_in: QuestionCreate) -> Question:
    db_obj = Question(
        category=obj_in.category,
        question_text=obj_in.question_text,
        active=True,
    )
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj


def get_question(db: Session, question_id: int) -> Optional[Question]:
    return db.get(Question, question_id)


def list_questions(
    db: Session,
    *,
    category: str | None = None,
    include_inactive: bool = False,
    skip: int = 0,
    limit: int = 100,
) -> List[Question]:
    query = db.query(Question)
    if category:
        query = query.filter(Question.category == category)
    if not include_inactive:
        query = query.filter(Question.active.is_(True))
    return query.order_by(Question.id.asc()).offset(skip).limit(limit).all()


def deactivate_question(db: Session, *, db_obj: Question) -> Question:
    """
    Retire a question from future draws.

    Rows are kept: submissions store their drawn question text, not ids.
    """
    db_obj.active = False
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj


def get_template(db: Session, name: str) -> Optional[PromptTemplate]:
    return db.query(PromptTemplate).filter(PromptTemplate.name == name).first()


def upsert_template(db: Session, *, name: str, body: str) -> PromptTemplate:
    db_obj = get_template(db, name)
    if db_obj is None:
        db_obj = PromptTemplate(name=name, body=body)
    else:
        db_obj.body = body
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj
