"""Pydantic request/response models for gamification endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


# --- Stats ---


class StatsResponse(BaseModel):
    total_measurements: int = 0
    rural_measurements: int = 0
    unique_locations: int = 0
    total_distance: float = 0.0
    contribution_score: int = 0
    quality_score: float = 0.0
    accuracy_rate: float = 0.0
    verified_spots: int = 0
    helpful_actions: int = 0
    consecutive_days: int = 0
    points: int = 0
    level: int = 1


# --- Achievements ---


class AchievementResponse(BaseModel):
    id: int
    slug: str
    title: str
    description: str
    icon: str | None = None
    points: int
    rarity: str
    tier: str
    category: str
    is_secret: bool = False
    progress: int = 0
    completed: bool = False
    unlocked_at: datetime | None = None
    requirements: list[dict] = []


class AchievementsResponse(BaseModel):
    achievements: list[AchievementResponse]
    total: int
    completed: int


class UnlockedAchievementResponse(BaseModel):
    id: int
    slug: str
    title: str
    description: str
    icon: str | None = None
    points: int
    tier: str
    category: str
    unlocked_at: datetime


# --- Measurements ---


class MeasurementPointsResponse(BaseModel):
    total: int
    bonuses: dict[str, int]


class MeasurementResponse(BaseModel):
    stats: StatsResponse
    points: MeasurementPointsResponse
    total_points: int
    level: int
    achievements: list[UnlockedAchievementResponse]


class MeasurementBatchResponse(BaseModel):
    results: list[MeasurementResponse]
    count: int


# --- Streak ---


class StreakResponse(BaseModel):
    current: int
    longest: int
    last_checkin: datetime | None = None
    can_check_in_today: bool
    multiplier: float
    achievements: list[AchievementResponse] = []


class StreakUpdateResponse(BaseModel):
    current: int
    longest: int
    last_checkin: datetime | None = None
    points_earned: int
    multiplier: float
    achievements: list[UnlockedAchievementResponse] = []


class StreakResetResponse(BaseModel):
    current: int
    longest: int
    last_checkin: datetime | None = None
    achievements: list[AchievementResponse] = []


# --- Leaderboard ---


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: str
    name: str
    image: str | None = None
    score: int
    total_measurements: int = 0
    is_current_user: bool = False


class LeaderboardStats(BaseModel):
    total_users: int
    total_contributions: int


class RequesterPosition(BaseModel):
    rank: int
    points: int


class LeaderboardResponse(BaseModel):
    timeframe: str
    entries: list[LeaderboardEntryResponse]
    stats: LeaderboardStats
    page: int
    limit: int
    user: RequesterPosition | None = None


class LeaderboardPositionResponse(BaseModel):
    timeframe: str
    rank: int
    score: int
    total: int
    percentile: float


# --- Points / levels ---


class PointsHistoryEntry(BaseModel):
    amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None


class PointsHistoryResponse(BaseModel):
    entries: list[PointsHistoryEntry]
    total: int
    page: int
    per_page: int


class LevelResponse(BaseModel):
    level: int
    points: int
    points_into_level: int
    points_for_level: int
    next_level: int
    next_level_points: int
