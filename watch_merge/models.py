"""Data models for watch history, favorites and watchlist records."""

import math
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class MediaType(str, Enum):
    """Kind of title in the external catalog."""

    MOVIE = "movie"
    TV = "tv"


def parse_timestamp(value) -> datetime:
    """Parse an ISO-8601 timestamp into an aware datetime.

    A trailing "Z" is accepted and naive values are taken as UTC.
    Raises ValueError when the value is not a valid timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def try_parse_timestamp(value) -> Optional[datetime]:
    """Parse a timestamp, returning None instead of raising."""
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _require_media_id(value) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Missing or invalid media_id: {value!r}")
    return value


def _require_media_type(value) -> MediaType:
    if not isinstance(value, str):
        raise ValueError(f"Missing or invalid media_type: {value!r}")
    try:
        return MediaType(value)
    except ValueError:
        raise ValueError(f"Missing or invalid media_type: {value!r}")


def _optional_int(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise TypeError(f"Expected integer, got {value!r}")
    # JSON and YAML both allow Infinity/NaN
    if isinstance(value, float) and not (math.isfinite(value) and value.is_integer()):
        raise ValueError(f"Expected integer, got {value!r}")
    return int(value)


def _number(value) -> float:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Expected number, got {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"Expected a finite number, got {value!r}")
    return value


@dataclass
class EpisodeProgress:
    """Progress for a single episode inside a tv record."""

    season: int
    episode: int
    watch_position: float = 0
    duration: float = 0
    watched_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "season": self.season,
            "episode": self.episode,
            "watch_position": self.watch_position,
            "duration": self.duration,
            "watched_at": self.watched_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EpisodeProgress":
        if not isinstance(data, dict):
            raise TypeError(f"Episode entry must be a mapping, got {type(data).__name__}")
        return cls(
            season=_optional_int(data.get("season")) or 0,
            episode=_optional_int(data.get("episode")) or 0,
            watch_position=_number(data.get("watch_position")),
            duration=_number(data.get("duration")),
            watched_at=data.get("watched_at"),
        )


@dataclass
class WatchRecord:
    """One title in the watch history.

    For tv records the head fields (season, episode, watch_position,
    duration) describe the most recently watched episode, and
    episodes_watched keeps one entry per (season, episode) pair.
    """

    media_id: int
    media_type: MediaType
    created_at: str
    id: Optional[str] = None
    user_id: Optional[str] = None
    title: str = ""
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    overview: Optional[str] = None

    # tv head pointer
    season: Optional[int] = None
    episode: Optional[int] = None

    # Progress in seconds
    watch_position: float = 0
    duration: float = 0

    last_watched_at: Optional[str] = None
    episodes_watched: Optional[List[EpisodeProgress]] = None
    preferred_source: Optional[str] = None

    # Unknown keys carried through storage and backups
    extra: dict = field(default_factory=dict)

    @property
    def is_tv(self) -> bool:
        return self.media_type == MediaType.TV

    def to_dict(self) -> dict:
        """Convert to a plain dict for YAML/JSON serialization."""
        data = dict(self.extra)
        for f in fields(self):
            if f.name in ("extra", "episodes_watched", "media_type"):
                continue
            data[f.name] = getattr(self, f.name)
        data["media_type"] = self.media_type.value
        if self.episodes_watched is not None:
            data["episodes_watched"] = [ep.to_dict() for ep in self.episodes_watched]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "WatchRecord":
        """Build a record from a plain dict.

        Raises ValueError or TypeError on missing identity fields or an
        unparseable created_at.
        """
        if not isinstance(data, dict):
            raise TypeError(f"Record must be a mapping, got {type(data).__name__}")

        media_id = _require_media_id(data.get("media_id"))
        media_type = _require_media_type(data.get("media_type"))
        created_at = data.get("created_at")
        parse_timestamp(created_at)

        episodes = data.get("episodes_watched")
        if episodes is not None:
            if not isinstance(episodes, list):
                raise TypeError("episodes_watched must be a list")
            episodes = [EpisodeProgress.from_dict(ep) for ep in episodes]

        known = {f.name for f in fields(cls)}
        return cls(
            media_id=media_id,
            media_type=media_type,
            created_at=created_at,
            id=data.get("id"),
            user_id=data.get("user_id"),
            title=data.get("title") or data.get("name") or "",
            poster_path=data.get("poster_path"),
            backdrop_path=data.get("backdrop_path"),
            overview=data.get("overview"),
            season=_optional_int(data.get("season")),
            episode=_optional_int(data.get("episode")),
            watch_position=_number(data.get("watch_position")),
            duration=_number(data.get("duration")),
            last_watched_at=data.get("last_watched_at"),
            episodes_watched=episodes,
            preferred_source=data.get("preferred_source"),
            extra={k: v for k, v in data.items() if k not in known and k != "name"},
        )


@dataclass
class MediaRecord:
    """A favorite or watchlist entry. No progress tracking."""

    media_id: int
    media_type: MediaType
    added_at: str
    id: Optional[str] = None
    user_id: Optional[str] = None
    title: str = ""
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    overview: Optional[str] = None
    rating: Optional[float] = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = dict(self.extra)
        for f in fields(self):
            if f.name in ("extra", "media_type"):
                continue
            data[f.name] = getattr(self, f.name)
        data["media_type"] = self.media_type.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "MediaRecord":
        if not isinstance(data, dict):
            raise TypeError(f"Record must be a mapping, got {type(data).__name__}")

        media_id = _require_media_id(data.get("media_id"))
        media_type = _require_media_type(data.get("media_type"))
        added_at = data.get("added_at") or data.get("created_at")
        parse_timestamp(added_at)

        known = {f.name for f in fields(cls)}
        return cls(
            media_id=media_id,
            media_type=media_type,
            added_at=added_at,
            id=data.get("id"),
            user_id=data.get("user_id"),
            title=data.get("title") or data.get("name") or "",
            poster_path=data.get("poster_path"),
            backdrop_path=data.get("backdrop_path"),
            overview=data.get("overview"),
            rating=data.get("rating"),
            extra={
                k: v
                for k, v in data.items()
                if k not in known and k not in ("name", "created_at")
            },
        )


# Category names as they appear in backup files
WATCH_HISTORY = "watchHistory"
FAVORITES = "favorites"
WATCHLIST = "watchlist"
CATEGORIES = (WATCH_HISTORY, FAVORITES, WATCHLIST)


@dataclass
class Collections:
    """The three local collections, evaluated independently."""

    watch_history: List[WatchRecord] = field(default_factory=list)
    favorites: List[MediaRecord] = field(default_factory=list)
    watchlist: List[MediaRecord] = field(default_factory=list)

    def get(self, category: str) -> list:
        return {
            WATCH_HISTORY: self.watch_history,
            FAVORITES: self.favorites,
            WATCHLIST: self.watchlist,
        }[category]

    def counts(self) -> dict:
        return {name: len(self.get(name)) for name in CATEGORIES}
