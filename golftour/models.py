from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base


class Tour(Base):
    __tablename__ = "tours"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    rehandicapping_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    rounds = relationship("Round", back_populates="tour")
    tour_players = relationship("TourPlayer", back_populates="tour", cascade="all, delete-orphan")
    grouping_settings = relationship(
        "TourGroupingSettings", back_populates="tour", uselist=False, cascade="all, delete-orphan"
    )


class Player(Base):
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    # M/F, selects the par table rows; legacy rows may hold "male", "W", ...
    gender = Column(String, nullable=True)
    start_handicap = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    tours = relationship("TourPlayer", back_populates="player")
    rounds = relationship("RoundPlayer", back_populates="player")


class TourPlayer(Base):
    __tablename__ = "tour_players"
    __table_args__ = (UniqueConstraint("tour_id", "player_id", name="uq_tour_player"),)

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    # per-tour override of Player.start_handicap
    starting_handicap = Column(Integer, nullable=True)

    tour = relationship("Tour", back_populates="tour_players")
    player = relationship("Player", back_populates="tours")


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id"), nullable=True)

    holes = relationship(
        "Hole",
        back_populates="course",
        cascade="all, delete-orphan"
    )

    rounds = relationship("Round", back_populates="course")


class Hole(Base):
    __tablename__ = "holes"
    __table_args__ = (UniqueConstraint("course_id", "tee", "number", name="uq_hole_course_tee"),)

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)

    tee = Column(String, nullable=False, default="M")   # M/F
    number = Column(Integer, nullable=False)            # 1..18
    par = Column(Integer, nullable=True)                # 3..6
    stroke_index = Column(Integer, nullable=True)       # 1..18, 1 = hardest

    course = relationship("Course", back_populates="holes")


class Round(Base):
    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id"), nullable=False)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=True)
    name = Column(String, nullable=True)
    round_no = Column(Integer, nullable=True)
    played_on = Column(Date, nullable=True)
    locked = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    tour = relationship("Tour", back_populates="rounds")
    course = relationship("Course", back_populates="rounds")

    round_players = relationship("RoundPlayer", back_populates="round", cascade="all, delete-orphan")
    groups = relationship("RoundGroup", back_populates="round", cascade="all, delete-orphan")


class RoundPlayer(Base):
    __tablename__ = "round_players"
    __table_args__ = (UniqueConstraint("round_id", "player_id", name="uq_round_player"),)

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)

    playing = Column(Boolean, nullable=False, default=False)
    playing_handicap = Column(Integer, nullable=True)
    tee = Column(String, nullable=True)  # per-round override

    round = relationship("Round", back_populates="round_players")
    player = relationship("Player", back_populates="rounds")


class HoleScore(Base):
    __tablename__ = "hole_scores"
    __table_args__ = (
        UniqueConstraint("round_id", "player_id", "hole_number", name="uq_hole_score"),
    )

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False, index=True)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    hole_number = Column(Integer, nullable=False)  # 1..18

    strokes = Column(Integer, nullable=True)                    # gross
    pickup = Column(Boolean, nullable=False, default=False)     # hole abandoned


class RoundGroup(Base):
    __tablename__ = "round_groups"

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False, index=True)
    group_no = Column(Integer, nullable=False)
    start_hole = Column(Integer, nullable=False, default=1)
    tee_time = Column(String, nullable=True)
    notes = Column(String, nullable=True)

    round = relationship("Round", back_populates="groups")
    members = relationship(
        "RoundGroupPlayer",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="RoundGroupPlayer.seat",
    )


class RoundGroupPlayer(Base):
    __tablename__ = "round_group_players"

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("round_groups.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    seat = Column(Integer, nullable=True)

    group = relationship("RoundGroup", back_populates="members")


class TourGroup(Base):
    """Explicit pair/team grouping for competitions."""
    __tablename__ = "tour_groups"

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id"), nullable=False, index=True)
    scope = Column(String, nullable=False, default="tour")  # tour/round
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=True)
    type = Column(String, nullable=False)                   # pair/team
    name = Column(String, nullable=False)
    team_index = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    members = relationship(
        "TourGroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
    )


class TourGroupMember(Base):
    __tablename__ = "tour_group_members"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("tour_groups.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    position = Column(Integer, nullable=True)

    group = relationship("TourGroup", back_populates="members")


class TourGroupingSettings(Base):
    __tablename__ = "tour_grouping_settings"

    tour_id = Column(Integer, ForeignKey("tours.id"), primary_key=True)
    default_pairing_mode = Column(String, nullable=False, default="SEQUENTIAL")
    default_team_mode = Column(String, nullable=False, default="ROUND_ROBIN")
    default_team_count = Column(Integer, nullable=True, default=2)
    default_team_best_m = Column(Integer, nullable=True, default=2)

    tour = relationship("Tour", back_populates="grouping_settings")


class MatchRoundSettings(Base):
    __tablename__ = "match_round_settings"

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id"), nullable=False)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False, unique=True)
    group_a_id = Column(Integer, ForeignKey("tour_groups.id"), nullable=False)
    group_b_id = Column(Integer, ForeignKey("tour_groups.id"), nullable=False)
    format = Column(String, nullable=False, default="INDIVIDUAL_MATCHPLAY")
    double_points = Column(Boolean, nullable=False, default=False)

    matches = relationship("Match", back_populates="settings", cascade="all, delete-orphan")


class Match(Base):
    __tablename__ = "match_round_matches"

    id = Column(Integer, primary_key=True, index=True)
    settings_id = Column(Integer, ForeignKey("match_round_settings.id"), nullable=False)
    match_no = Column(Integer, nullable=False)

    settings = relationship("MatchRoundSettings", back_populates="matches")
    players = relationship("MatchPlayer", back_populates="match", cascade="all, delete-orphan")


class MatchPlayer(Base):
    __tablename__ = "match_round_match_players"

    id = Column(Integer, primary_key=True, index=True)
    match_id = Column(Integer, ForeignKey("match_round_matches.id"), nullable=False)
    side = Column(String, nullable=False)   # A/B
    slot = Column(Integer, nullable=False)  # 1..2
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)

    match = relationship("Match", back_populates="players")


class TourH2ZLeg(Base):
    __tablename__ = "tour_h2z_legs"
    __table_args__ = (UniqueConstraint("tour_id", "leg_no", name="uq_tour_h2z_leg"),)

    id = Column(Integer, primary_key=True, index=True)
    tour_id = Column(Integer, ForeignKey("tours.id"), nullable=False, index=True)
    leg_no = Column(Integer, nullable=False)
    start_round_no = Column(Integer, nullable=False)
    end_round_no = Column(Integer, nullable=False)
