"""Fold incoming watch events into a collection.

Everything here is a pure function: the input collection and records are
never mutated, a new list and new records are returned instead. Ordering
between updates is decided by comparing created_at, not by call order, so
late or replayed events are handled the same way as live ones.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Union

from watch_merge.identity import episode_key, identity_key
from watch_merge.models import (
    EpisodeProgress,
    MediaRecord,
    WatchRecord,
    try_parse_timestamp,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

# Progress ticks closer together than this are not worth persisting
MIN_PROGRESS_SECONDS = 60

# Kept from the stored record when a newer update leaves them empty
CARRIED_FIELDS = ("title", "poster_path", "backdrop_path", "overview")


@dataclass
class MergeResult:
    """Outcome of folding one record into a collection."""

    collection: list
    touched: Optional[Union[WatchRecord, MediaRecord]] = None


def _is_newer(candidate: Optional[str], current: Optional[str]) -> bool:
    """True when candidate is strictly later than current.

    An unparseable candidate is never newer; an unparseable current is
    always older.
    """
    candidate_ts = try_parse_timestamp(candidate)
    if candidate_ts is None:
        return False
    current_ts = try_parse_timestamp(current)
    if current_ts is None:
        return True
    return candidate_ts > current_ts


def _latest(*timestamps: Optional[str]) -> Optional[str]:
    result = None
    for value in timestamps:
        if value is not None and (result is None or _is_newer(value, result)):
            result = value
    return result


def _carried(existing, incoming, names) -> dict:
    return {
        name: getattr(existing, name)
        for name in names
        if not getattr(incoming, name) and getattr(existing, name)
    }


def _find_index(collection: list, record) -> Optional[int]:
    key = identity_key(record)
    for index, item in enumerate(collection):
        if identity_key(item) == key:
            return index
    return None


def _head_entry(record: WatchRecord) -> EpisodeProgress:
    """Episode entry describing a record's head fields."""
    season, episode = episode_key(record.season, record.episode)
    return EpisodeProgress(
        season=season,
        episode=episode,
        watch_position=record.watch_position,
        duration=record.duration,
        watched_at=record.created_at,
    )


def _unique_entries(entries: List[EpisodeProgress]) -> List[EpisodeProgress]:
    """Copy entries keeping one per (season, episode), the latest by watched_at.

    The first position of each pair is kept; on a tie the later entry wins.
    """
    slots = {}
    for entry in entries:
        key = episode_key(entry.season, entry.episode)
        current = slots.get(key)
        if current is None or not _is_newer(current.watched_at, entry.watched_at):
            slots[key] = entry
    return [replace(entry) for entry in slots.values()]


def _episode_list(record: WatchRecord) -> List[EpisodeProgress]:
    """Copy of a record's episode list.

    Records written before episode tracking have no list; one is built from
    the head fields the first time such a record is touched.
    """
    if record.episodes_watched is not None:
        return _unique_entries(record.episodes_watched)
    if record.season is None and record.episode is None:
        return []
    return [_head_entry(record)]


def _incoming_entries(incoming: WatchRecord) -> List[EpisodeProgress]:
    entries = _unique_entries(incoming.episodes_watched or [])
    head = _head_entry(incoming)
    if not any(episode_key(ep.season, ep.episode) == (head.season, head.episode) for ep in entries):
        entries.append(head)
    return entries


def _new_record(incoming: WatchRecord) -> WatchRecord:
    record = replace(incoming, extra=dict(incoming.extra))
    record.last_watched_at = _latest(incoming.last_watched_at, incoming.created_at)
    if incoming.is_tv:
        record.season, record.episode = episode_key(incoming.season, incoming.episode)
        record.episodes_watched = _incoming_entries(incoming)
    return record


def _merge_tv(existing: WatchRecord, incoming: WatchRecord) -> WatchRecord:
    episodes = _episode_list(existing)
    tracked = {episode_key(ep.season, ep.episode) for ep in episodes}

    # An episode that already has a slot keeps its original entry
    for entry in _incoming_entries(incoming):
        key = episode_key(entry.season, entry.episode)
        if key not in tracked:
            episodes.append(entry)
            tracked.add(key)

    merged = replace(existing, episodes_watched=episodes, extra=dict(existing.extra))

    if _is_newer(incoming.created_at, existing.created_at):
        merged.season, merged.episode = episode_key(incoming.season, incoming.episode)
        merged.watch_position = incoming.watch_position
        merged.duration = incoming.duration
        merged.created_at = incoming.created_at
        if incoming.preferred_source is not None:
            merged.preferred_source = incoming.preferred_source

    merged.last_watched_at = _latest(
        existing.last_watched_at, merged.created_at, incoming.created_at
    )
    return merged


def apply_update(collection: List[WatchRecord], incoming: WatchRecord) -> MergeResult:
    """Fold one incoming history record into a collection.

    Movies follow last-write-wins: a newer incoming record replaces the
    existing one, an older or equal one is discarded. Shows keep one row
    with an episode list; new episodes are appended and the head fields
    advance only when the incoming record is strictly newer.

    The touched record is moved to the front. When a stale movie update is
    discarded the collection is returned unchanged and touched is None.
    """
    index = _find_index(collection, incoming)

    if index is None:
        created = _new_record(incoming)
        return MergeResult([created] + list(collection), created)

    existing = collection[index]
    rest = list(collection[:index]) + list(collection[index + 1:])

    if incoming.is_tv:
        merged = _merge_tv(existing, incoming)
        return MergeResult([merged] + rest, merged)

    if not _is_newer(incoming.created_at, existing.created_at):
        return MergeResult(list(collection), None)

    replaced = replace(
        incoming,
        id=existing.id or incoming.id,
        extra=dict(incoming.extra),
        last_watched_at=_latest(
            existing.last_watched_at, incoming.last_watched_at, incoming.created_at
        ),
        **_carried(existing, incoming, CARRIED_FIELDS + ("preferred_source",)),
    )
    return MergeResult([replaced] + rest, replaced)


def upsert_media(collection: List[MediaRecord], incoming: MediaRecord) -> MergeResult:
    """Replace-if-newer for favorites and watchlist entries.

    A match stays in place and keeps its id. A new title is prepended.
    """
    index = _find_index(collection, incoming)

    if index is None:
        created = replace(incoming, extra=dict(incoming.extra))
        return MergeResult([created] + list(collection), created)

    existing = collection[index]
    if not _is_newer(incoming.added_at, existing.added_at):
        return MergeResult(list(collection), existing)

    replaced = replace(
        incoming,
        id=existing.id or incoming.id,
        extra=dict(incoming.extra),
        **_carried(existing, incoming, CARRIED_FIELDS),
    )
    updated = list(collection)
    updated[index] = replaced
    return MergeResult(updated, replaced)


def consolidate_history(records: List[WatchRecord]) -> List[WatchRecord]:
    """Normalize a raw stored history into one record per title.

    Unlike dedup.deduplicate this merges episode lists across duplicates.
    Records with an unparseable created_at are dropped.
    """
    dated = []
    for position, record in enumerate(records):
        timestamp = try_parse_timestamp(record.created_at)
        if timestamp is None:
            logger.debug(
                "Dropping %s:%s with invalid created_at %r",
                record.media_type.value,
                record.media_id,
                record.created_at,
            )
            continue
        dated.append((timestamp, position, record))

    dated.sort(key=lambda item: (item[0], item[1]))

    collection: List[WatchRecord] = []
    for _, _, record in dated:
        collection = apply_update(collection, record).collection

    return sorted(
        collection,
        key=lambda record: try_parse_timestamp(record.created_at),
        reverse=True,
    )


def find_episode(
    record: WatchRecord, season: int, episode: int
) -> Optional[EpisodeProgress]:
    """Return the stored progress for one episode of a show, if any."""
    for entry in record.episodes_watched or []:
        if entry.season == season and entry.episode == episode:
            return entry
    return None


def update_episode(
    record: WatchRecord,
    season: int,
    episode: int,
    watch_position: float,
    duration: float,
    now: Optional[str] = None,
) -> WatchRecord:
    """Record live playback progress for an episode.

    Unlike apply_update this always wins: the episode entry is created or
    overwritten and the head fields and timestamps move to now.
    """
    now = now or utc_now_iso()
    episodes = _episode_list(record)

    for index, entry in enumerate(episodes):
        if entry.season == season and entry.episode == episode:
            episodes[index] = replace(
                entry,
                watch_position=watch_position,
                duration=duration,
                watched_at=now,
            )
            break
    else:
        episodes.append(
            EpisodeProgress(
                season=season,
                episode=episode,
                watch_position=watch_position,
                duration=duration,
                watched_at=now,
            )
        )

    return replace(
        record,
        season=season,
        episode=episode,
        watch_position=watch_position,
        duration=duration,
        created_at=now,
        last_watched_at=_latest(record.last_watched_at, now),
        episodes_watched=episodes,
        extra=dict(record.extra),
    )


def is_significant_progress(
    old_position: float, new_position: float, min_diff: float = MIN_PROGRESS_SECONDS
) -> bool:
    """True when playback moved far enough to be worth saving."""
    return abs(new_position - old_position) >= min_diff
