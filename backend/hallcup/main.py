from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hallcup.config import CORS_ORIGINS, configure_logging
from hallcup.database import init_db
from hallcup.routes import bracket, tournaments

APP_NAME = "Hallcup Scheduler API"

app = FastAPI(title=APP_NAME)

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_cors_origins.extend(CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])
app.include_router(bracket.router, prefix="/api", tags=["bracket"])


@app.on_event("startup")
def on_startup():
    configure_logging()
    init_db()


@app.get("/api/health")
def health_check():
    return {"app_name": APP_NAME, "status": "healthy"}
