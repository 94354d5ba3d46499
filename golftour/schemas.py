from datetime import date
from typing import Dict, Literal, Optional, Union

from pydantic import BaseModel


class TourCreate(BaseModel):
    name: str
    rehandicapping_enabled: bool = True


class PlayerCreate(BaseModel):
    name: str
    gender: Optional[str] = "M"
    start_handicap: int = 0


class CourseCreate(BaseModel):
    name: str
    tour_id: Optional[int] = None


class HoleCreate(BaseModel):
    number: int
    par: Optional[int] = None
    stroke_index: Optional[int] = None


class RoundCreate(BaseModel):
    tour_id: int
    course_id: Optional[int] = None
    name: Optional[str] = None
    round_no: Optional[int] = None
    played_on: Optional[date] = None


class ScoreEntry(BaseModel):
    player_id: int
    # hole number -> "", "P", "5" or 5
    holes: Dict[int, Union[int, str, None]]


PairingPolicy = Literal["prefer_pairs", "fair_mix", "final_seeded", "mixed_fair", "mixed_seeded"]


class GroupRequest(BaseModel):
    policy: PairingPolicy = "fair_mix"
    seed: Optional[int] = None
