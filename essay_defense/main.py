# essay_defense/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from essay_defense.api.v1.endpoints import health, operator, questions, submissions, webhooks
from essay_defense.core.config import settings
from essay_defense.core.logging_config import setup_logging
from essay_defense.db.init_db import init_db

setup_logging()

app = FastAPI(title=settings.PROJECT_NAME)

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    init_db()


API_PREFIX = "/api/v1"

app.include_router(submissions.router, prefix=API_PREFIX)
app.include_router(webhooks.router, prefix=API_PREFIX)
app.include_router(operator.router, prefix=API_PREFIX)
app.include_router(questions.router, prefix=API_PREFIX)
app.include_router(health.router, prefix=API_PREFIX)
