from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.api.v1.api import api_router
from app.database import engine, Base
from app.models import Survey, SurveyResponse, EmailLog, CourseStatistic

# Load environment variables from .env
from dotenv import load_dotenv
load_dotenv()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup."""
    Base.metadata.create_all(bind=engine)
    print("✅ Database tables created/verified")
    yield


app = FastAPI(
    title="Survey Results Service",
    description="Aggregates course survey responses and emails result reports",
    version="1.0.0",
    lifespan=lifespan
)

origins = [
    "https://sseducationfeedback.info",
    "http://localhost:3000",
    "http://localhost:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/")
def health_check():
    return {"status": "ok"}
