import logging
import random
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy.orm import Session

from . import crud, schemas
from .competitions import CATALOG
from .db import Base, engine, get_db, settings
from .logging_config import setup_logging

logger = logging.getLogger(__name__)

STATUS_BY_REASON = {
    crud.NOT_FOUND: 404,
    crud.LOCKED: 409,
    crud.CONFLICT: 409,
    crud.STORE: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings)
    Base.metadata.create_all(bind=engine)
    logger.info("golftour started")
    yield


app = FastAPI(title="Golf Tour", lifespan=lifespan)


def _unwrap(result: dict) -> dict:
    if result.get("ok"):
        return result
    raise HTTPException(
        status_code=STATUS_BY_REASON.get(result.get("reason"), 500),
        detail=result.get("error") or "Unknown error",
    )


@app.get("/health")
def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Scores and handicaps
# ---------------------------------------------------------------------------

@app.post("/api/rounds/{round_id}/scores")
def save_scores(round_id: int, payload: schemas.ScoreEntry, db: Session = Depends(get_db)):
    return _unwrap(crud.save_hole_scores(db, round_id, payload.player_id, payload.holes))


@app.post("/api/tours/{tour_id}/handicaps/recalculate")
def recalculate_handicaps(tour_id: int, db: Session = Depends(get_db)):
    return _unwrap(crud.recalc_and_save_tour_handicaps(db, tour_id))


@app.get("/api/tours/{tour_id}/appleby")
def appleby(tour_id: int, db: Session = Depends(get_db)):
    return _unwrap(crud.compute_appleby(db, tour_id))


@app.post("/api/tours/{tour_id}/appleby/apply")
def apply_appleby(tour_id: int, db: Session = Depends(get_db)):
    return _unwrap(crud.apply_appleby_handicaps(db, tour_id))


@app.get("/api/rounds/{round_id}/handicaps")
def round_handicaps(round_id: int, db: Session = Depends(get_db)):
    if not crud.get_round(db, round_id):
        raise HTTPException(status_code=404, detail=f"Round {round_id} not found")
    return {"round_id": round_id, "players": crud.get_round_handicaps(db, round_id)}


# ---------------------------------------------------------------------------
# Playing groups
# ---------------------------------------------------------------------------

@app.post("/api/rounds/{round_id}/groups")
def generate_groups(round_id: int, payload: schemas.GroupRequest, db: Session = Depends(get_db)):
    rng = random.Random(payload.seed) if payload.seed is not None else None
    return _unwrap(crud.generate_round_groups(db, round_id, payload.policy, rng))


@app.get("/api/rounds/{round_id}/groups")
def list_groups(round_id: int, db: Session = Depends(get_db)):
    if not crud.get_round(db, round_id):
        raise HTTPException(status_code=404, detail=f"Round {round_id} not found")
    return {"round_id": round_id, "groups": crud.get_round_groups(db, round_id)}


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------

@app.get("/api/tours/{tour_id}/leaderboard")
def leaderboard(tour_id: int, db: Session = Depends(get_db)):
    return _unwrap(crud.compute_tour_leaderboard(db, tour_id))


@app.get("/api/tours/{tour_id}/competitions")
def list_competitions(tour_id: int, db: Session = Depends(get_db)):
    if not crud.get_tour(db, tour_id):
        raise HTTPException(status_code=404, detail=f"Tour {tour_id} not found")
    return {
        "tour_id": tour_id,
        "competitions": [{"id": c.id, "name": c.name, "kind": c.kind} for c in CATALOG],
    }


@app.get("/api/tours/{tour_id}/competitions/{competition_id}")
def competition(tour_id: int, competition_id: str, round_id: Optional[int] = None, db: Session = Depends(get_db)):
    return _unwrap(crud.compute_competition(db, tour_id, competition_id, round_id))


@app.get("/api/tours/{tour_id}/h2z")
def h2z(tour_id: int, db: Session = Depends(get_db)):
    return _unwrap(crud.compute_h2z(db, tour_id))


@app.get("/api/tours/{tour_id}/players/{player_id}/stats")
def player_stats(tour_id: int, player_id: int, db: Session = Depends(get_db)):
    return _unwrap(crud.compute_player_tour_stats(db, tour_id, player_id))


@app.get("/api/rounds/{round_id}/matches")
def round_matches(round_id: int, db: Session = Depends(get_db)):
    return _unwrap(crud.compute_round_matches(db, round_id))
