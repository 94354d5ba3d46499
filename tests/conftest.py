import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from golftour import crud, schemas
from golftour.db import Base, get_db
from golftour.main import app

from factories import PARS, SIS


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def tour(db):
    """
    A tour on one course with two rounds and four players, all playing both
    rounds off their starting handicaps.
    """
    t = crud.create_tour(db, schemas.TourCreate(name="Spring Tour"))
    course = crud.create_course(db, schemas.CourseCreate(name="Links", tour_id=t.id))
    crud.upsert_holes_for_course(
        db,
        course.id,
        [schemas.HoleCreate(number=i + 1, par=PARS[i], stroke_index=SIS[i]) for i in range(18)],
    )

    r1 = crud.create_round(db, schemas.RoundCreate(tour_id=t.id, course_id=course.id, round_no=1))
    r2 = crud.create_round(db, schemas.RoundCreate(tour_id=t.id, course_id=course.id, round_no=2))

    players = []
    for name, hcp in [("Alice", 10), ("Bob", 20), ("Carol", 16), ("Dave", 4)]:
        p = crud.create_player(db, schemas.PlayerCreate(name=name, gender="M", start_handicap=hcp))
        crud.add_player_to_tour(db, t.id, p.id)
        players.append(p)

    for r in (r1, r2):
        for p in players:
            crud.add_player_to_round(db, r.id, p.id)

    return {"tour": t, "course": course, "rounds": [r1, r2], "players": players}


@pytest.fixture
def field_of(db):
    """Factory: a one-round tour with ``n`` players playing (names P01, P02, ...)."""
    def make(n, genders=None):
        t = crud.create_tour(db, schemas.TourCreate(name=f"Field {n}"))
        course = crud.create_course(db, schemas.CourseCreate(name="Parkland", tour_id=t.id))
        crud.upsert_holes_for_course(
            db,
            course.id,
            [schemas.HoleCreate(number=i + 1, par=PARS[i], stroke_index=SIS[i]) for i in range(18)],
        )
        r = crud.create_round(db, schemas.RoundCreate(tour_id=t.id, course_id=course.id, round_no=1))

        ids = []
        for i in range(n):
            gender = genders[i] if genders else "M"
            p = crud.create_player(db, schemas.PlayerCreate(name=f"P{i + 1:02d}", gender=gender, start_handicap=12))
            crud.add_player_to_tour(db, t.id, p.id)
            crud.add_player_to_round(db, r.id, p.id)
            ids.append(p.id)
        return t, r, ids

    return make
