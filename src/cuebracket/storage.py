"""SQLite storage layer for cuebracket.

Keeps each tournament's snapshot as JSON plus an audit log of every call
mirrored to the local backend, which is what the CLI uses offline.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import NullPool

from cuebracket.backend import ApiResponse, TournamentBackend
from cuebracket.models import TournamentState
from cuebracket.snapshot import state_from_dict, state_to_dict

logger = logging.getLogger(__name__)

Base = declarative_base()


# ============================================================================
# ORM Models
# ============================================================================


class TournamentORM(Base):
    """Tournament table.

    The full tournament state lives in ``snapshot_json``.
    """

    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default="draft")  # draft, ongoing, completed
    is_current = Column(Boolean, nullable=False, default=False)  # Only one tournament can be current
    snapshot_json = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    operations = relationship("OperationORM", back_populates="tournament")

    @property
    def snapshot(self) -> Optional[dict]:
        """Get snapshot from JSON."""
        return json.loads(self.snapshot_json) if self.snapshot_json else None

    @snapshot.setter
    def snapshot(self, value: Optional[dict]):
        """Set snapshot as JSON."""
        self.snapshot_json = json.dumps(value) if value is not None else None


class OperationORM(Base):
    """Audit log of backend calls."""

    __tablename__ = "operations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=True)
    operation = Column(String(50), nullable=False)  # create_round, move_players, ...
    target_id = Column(String(100), nullable=True)  # Round or match id
    # Store the request payload as JSON
    payload_json = Column(Text, nullable=False, default="{}")
    created_at = Column(DateTime, default=datetime.utcnow)

    tournament = relationship("TournamentORM", back_populates="operations")

    @property
    def payload(self) -> dict:
        """Get payload from JSON."""
        return json.loads(self.payload_json)

    @payload.setter
    def payload(self, value: dict):
        """Set payload as JSON."""
        self.payload_json = json.dumps(value)


# ============================================================================
# Database Manager
# ============================================================================


class DatabaseManager:
    """Manages SQLite database connection and session."""

    def __init__(self, db_path: str = ".cuebracket/cuebracket.sqlite"):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Use NullPool for SQLite to avoid connection pool issues
        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            poolclass=NullPool,
            connect_args={"check_same_thread": False},
        )
        self.SessionLocal = sessionmaker(bind=self.engine)

    def create_tables(self):
        """Create all tables in the database."""
        Base.metadata.create_all(self.engine)

    def get_session(self):
        """Get a new database session."""
        return self.SessionLocal()


# ============================================================================
# Repositories
# ============================================================================


def _db_id(tournament_id: str) -> Optional[int]:
    try:
        return int(tournament_id)
    except (TypeError, ValueError):
        return None


class TournamentRepository:
    """Repository for Tournament operations."""

    def __init__(self, session):
        self.session = session

    def create(self, name: str) -> TournamentORM:
        """Create a new tournament and make it the current one."""
        tournament = TournamentORM(name=name, status="draft", is_current=False)
        self.session.add(tournament)
        self.session.commit()
        self.set_current(tournament.id)
        return tournament

    def get_all(self) -> list[TournamentORM]:
        """Get all tournaments (newest first)."""
        return self.session.query(TournamentORM).order_by(TournamentORM.created_at.desc()).all()

    def get_by_id(self, tournament_id: int) -> Optional[TournamentORM]:
        """Get tournament by ID."""
        return self.session.query(TournamentORM).filter(TournamentORM.id == tournament_id).first()

    def get_current(self) -> Optional[TournamentORM]:
        """Get the current tournament."""
        return self.session.query(TournamentORM).filter(TournamentORM.is_current == True).first()  # noqa: E712

    def set_current(self, tournament_id: int) -> bool:
        """Set a tournament as the current one (only one can be current)."""
        self.session.query(TournamentORM).update({"is_current": False})
        result = (
            self.session.query(TournamentORM)
            .filter(TournamentORM.id == tournament_id)
            .update({"is_current": True})
        )
        self.session.commit()
        return result > 0

    def save_snapshot(self, state: TournamentState) -> None:
        """Store a tournament snapshot on its row."""
        tournament = self.get_by_id(_db_id(state.tournament_id))
        if tournament is None:
            raise ValueError(f"Tournament {state.tournament_id} not found")
        tournament.snapshot = state_to_dict(state)
        tournament.status = state.status.value
        tournament.name = state.name or tournament.name
        self.session.commit()

    def load_snapshot(self, tournament_id: int) -> Optional[TournamentState]:
        """Load a stored snapshot, or None if there is none."""
        tournament = self.get_by_id(tournament_id)
        if tournament is None or tournament.snapshot is None:
            return None
        return state_from_dict(tournament.snapshot)


class OperationRepository:
    """Repository for the backend call log."""

    def __init__(self, session):
        self.session = session

    def record(
        self, tournament_id: Optional[int], operation: str, target_id: str = None, payload: dict = None
    ) -> OperationORM:
        op = OperationORM(tournament_id=tournament_id, operation=operation, target_id=target_id)
        op.payload = payload or {}
        self.session.add(op)
        self.session.commit()
        return op

    def get_by_tournament(self, tournament_id: int) -> list[OperationORM]:
        return (
            self.session.query(OperationORM)
            .filter(OperationORM.tournament_id == tournament_id)
            .order_by(OperationORM.id)
            .all()
        )


# ============================================================================
# Local backend
# ============================================================================


class LocalBackend(TournamentBackend):
    """Offline backend: logs each call and always confirms it.

    Rounds, matches and players get ``loc-`` backend ids.
    """

    def __init__(self, session):
        self.session = session
        self.tournaments = TournamentRepository(session)
        self.operations = OperationRepository(session)

    def _record(self, tournament_id: str, operation: str, target_id: str = None, payload: Any = None):
        logger.debug("local backend: %s %s", operation, target_id or "")
        return self.operations.record(_db_id(tournament_id), operation, target_id, payload)

    async def fetch_tournament(self, tournament_id: str) -> ApiResponse:
        tournament = self.tournaments.get_by_id(_db_id(tournament_id))
        if tournament is None:
            return ApiResponse(False, f"Tournament {tournament_id} not found")
        snapshot = tournament.snapshot or {}
        return ApiResponse(
            True, data={"status": tournament.status, "players": snapshot.get("players", [])}
        )

    async def create_tournament(self, name: str, players: list[dict]) -> ApiResponse:
        tournament = self.tournaments.create(name)
        self._record(str(tournament.id), "create_tournament", payload={"name": name, "players": players})
        player_ids = {p["id"]: f"loc-p-{p['id']}" for p in players}
        return ApiResponse(True, data={"id": str(tournament.id), "player_ids": player_ids})

    async def start_tournament(self, tournament_id: str, first_round: dict) -> ApiResponse:
        op = self._record(tournament_id, "start_tournament", payload={"firstRound": first_round})
        return ApiResponse(True, data={"round_id": f"loc-r-{op.id}"})

    async def create_round(self, tournament_id: str, payload: dict) -> ApiResponse:
        op = self._record(tournament_id, "create_round", payload=payload)
        return ApiResponse(True, data={"id": f"loc-r-{op.id}"})

    async def update_round(self, tournament_id: str, round_id: str, payload: dict) -> ApiResponse:
        op = self._record(tournament_id, "update_round", round_id, payload)
        match_ids = {
            m["matchId"]: f"loc-m-{op.id}-{i}" for i, m in enumerate(payload.get("matches", []), 1)
        }
        return ApiResponse(True, data={"match_ids": match_ids})

    async def move_players(self, tournament_id: str, moves: list[dict]) -> ApiResponse:
        self._record(tournament_id, "move_players", payload={"moves": moves})
        return ApiResponse(True, data={"moved": len(moves), "skipped": 0, "skipped_ids": []})

    async def remove_players(
        self, tournament_id: str, round_id: str, player_ids: list[str]
    ) -> ApiResponse:
        self._record(tournament_id, "remove_players", round_id, {"playerIds": player_ids})
        return ApiResponse(True, data={"removed": len(player_ids)})

    async def start_match(self, tournament_id: str, match_id: str) -> ApiResponse:
        self._record(tournament_id, "start_match", match_id)
        return ApiResponse(True)

    async def complete_match(
        self,
        tournament_id: str,
        match_id: str,
        winner_id: str,
        player1_score: Optional[int],
        player2_score: Optional[int],
    ) -> ApiResponse:
        self._record(
            tournament_id,
            "complete_match",
            match_id,
            {"winnerId": winner_id, "player1Score": player1_score, "player2Score": player2_score},
        )
        return ApiResponse(True)

    async def cancel_match(self, tournament_id: str, match_id: str) -> ApiResponse:
        self._record(tournament_id, "cancel_match", match_id)
        return ApiResponse(True)

    async def delete_round(self, tournament_id: str, round_id: str) -> ApiResponse:
        self._record(tournament_id, "delete_round", round_id)
        return ApiResponse(True)

    async def close_tournament(self, tournament_id: str) -> ApiResponse:
        self._record(tournament_id, "close_tournament")
        return ApiResponse(True)

    async def save_winner_titles(self, tournament_id: str, winners: list[dict]) -> ApiResponse:
        self._record(tournament_id, "save_winner_titles", payload={"winners": winners})
        return ApiResponse(True)
