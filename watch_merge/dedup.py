"""Collapse a raw list of history records to one record per title."""

import logging
from typing import Dict, List, Tuple

from watch_merge.identity import identity_key
from watch_merge.models import WatchRecord, try_parse_timestamp

logger = logging.getLogger(__name__)


def deduplicate(records: List[WatchRecord]) -> List[WatchRecord]:
    """Return the latest record per title, newest first.

    Records whose created_at does not parse are dropped. Within a title the
    record with the latest created_at wins; on a tie the later input wins.
    Episode lists are not merged here, see merge.consolidate_history.
    """
    latest: Dict[str, Tuple[object, WatchRecord]] = {}
    dropped = 0

    for record in records:
        timestamp = try_parse_timestamp(record.created_at)
        if timestamp is None:
            dropped += 1
            continue

        key = identity_key(record)
        current = latest.get(key)
        if current is None or timestamp >= current[0]:
            latest[key] = (timestamp, record)

    if dropped:
        logger.debug("Dropped %d record(s) with invalid created_at", dropped)

    ordered = sorted(latest.values(), key=lambda pair: pair[0], reverse=True)
    return [record for _, record in ordered]
