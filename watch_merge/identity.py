"""Identity keys for records."""

from typing import Tuple

# media_type values are enum words and media_id is an integer, so ":" never
# appears in either field.
KEY_SEPARATOR = ":"


def identity_key(record) -> str:
    """Return the key that identifies the title a record refers to.

    Season and episode are not part of the key: a show has one canonical
    row no matter which episode was watched.
    """
    media_type = getattr(record.media_type, "value", record.media_type)
    return f"{media_type}{KEY_SEPARATOR}{record.media_id}"


def same_media(first, second) -> bool:
    """True when both records refer to the same title."""
    return identity_key(first) == identity_key(second)


def episode_key(season, episode) -> Tuple[int, int]:
    """Key for an entry in a tv record's episode list.

    Missing season or episode numbers count as 0.
    """
    return (season or 0, episode or 0)
