import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mentorconnect import config
from mentorconnect.database import engine
from mentorconnect.models import Base
from mentorconnect.routers import (
    admin, auth, availability, bookings, follow, masterclass, mentorposts, payments, resources, sessions, users,
    wallets,
)

logger = logging.getLogger("mentorconnect")
logging.basicConfig(level=config.LOG_LEVEL, force=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("Database ready")
    yield


app = FastAPI(title="MentorConnect API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

for module in (auth, users, bookings, payments, wallets, availability, sessions, admin, follow,
               mentorposts, masterclass, resources):
    app.include_router(module.router)


@app.get("/health")
def health():
    return {"status": "ok"}
