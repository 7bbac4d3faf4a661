from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quizshare import __version__
from quizshare.config import get_settings
from quizshare.database import init_db
from quizshare.exceptions import register_exception_handlers
from quizshare.logging_config import configure_logging
from quizshare.routers import quiz, leaderboard, sources

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    init_db()
    yield


app = FastAPI(
    title="QuizShare",
    description="AI-generated quizzes with shareable links and live leaderboards",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Routers
app.include_router(quiz.router)
app.include_router(leaderboard.router)
app.include_router(sources.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
