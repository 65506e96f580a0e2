"""
Grouping of an author's story records into top-level works and chapters.

Records are plain mappings (``Story.to_dict()`` output or anything shaped like
it). Nothing here touches the database.
"""
import re
from datetime import datetime, timezone

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def is_top_level(record):
    """
	Tell whether a story record is a top-level work.

    A record is top-level when it is a one-time post or carries no series
    reference. Everything else is a chapter of the work named by ``series_id``.

    Args:
        record (Mapping): A story record.

    Returns:
        bool: True for standalone posts and series/novel parents.
    """
    return record.get("story_type") == "one_time" or record.get("series_id") is None


_FRACTION = re.compile(r"\.(\d+)")


def _as_datetime(value):
    if value is None or value == "":
        return None
    if isinstance(value, str):
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        # fromisoformat before 3.11 takes only 3 or 6 fractional digits
        value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def effective_date(record):
    """Publish timestamp if present, else creation timestamp, as an aware datetime."""
    return _as_datetime(record.get("published_at")) or _as_datetime(record.get("created_at")) or _EPOCH


def _chapter_key(record):
    return record.get("chapter_number") or 0


def materialize_series(records):
    """
	Partition an author's stories into top-level works with their chapters attached.

    The input is walked once. Top-level records are kept in arrival order keyed
    by id; chapters are collected per ``series_id``. Each top-level work then
    receives its chapters sorted by ``chapter_number`` under the ``chapters``
    key, and the works are ordered newest first by effective date. Both sorts
    are stable, so ties keep the order in which records arrived.

    Chapters whose ``series_id`` matches no top-level record are dropped.

    Args:
        records (Iterable[Mapping]): Story records belonging to one author.

    Returns:
        list[dict]: Copies of the top-level records, each with a ``chapters`` list.
    """
    works = {}
    chapters_by_series = {}
    for record in records:
        if is_top_level(record):
            works[record["id"]] = dict(record, chapters=[])
        else:
            chapters_by_series.setdefault(record["series_id"], []).append(dict(record))

    for work_id, work in works.items():
        chapters = chapters_by_series.get(work_id)
        if chapters:
            work["chapters"] = sorted(chapters, key=_chapter_key)

    return sorted(works.values(), key=effective_date, reverse=True)


def flatten_series(works):
    """Undo ``materialize_series``: top-level records first, then their chapters."""
    flat = []
    for work in works:
        record = dict(work)
        chapters = record.pop("chapters", None) or []
        flat.append(record)
        flat.extend(dict(chapter) for chapter in chapters)
    return flat


def next_chapter_number(records):
    """
	Chapter number to give the next chapter of a series.

    Args:
        records (Iterable[Mapping]): The series parent and its existing chapters.

    Returns:
        int: One more than the highest chapter number present, 1 when empty.
    """
    return max((_chapter_key(record) for record in records), default=0) + 1


def chapter_position(current_id, chapters):
    """
	Locate a chapter inside its series for prev/next navigation.

    Args:
        current_id: Id of the chapter being read.
        chapters (Iterable[Mapping]): Every chapter of the series, parent included.

    Returns:
        dict or None: ``previous``, ``next``, ``index`` (1-based) and ``total``,
        or None when the series has a single chapter or does not contain
        ``current_id``.
    """
    ordered = sorted(chapters, key=_chapter_key)
    if len(ordered) <= 1:
        return None
    ids = [chapter["id"] for chapter in ordered]
    if current_id not in ids:
        return None
    index = ids.index(current_id)
    return {
        "previous": ordered[index - 1] if index > 0 else None,
        "next": ordered[index + 1] if index < len(ordered) - 1 else None,
        "index": index + 1,
        "total": len(ordered),
    }
