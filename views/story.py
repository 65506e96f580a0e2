from flask import Blueprint, abort, current_app, render_template, flash, request, redirect, url_for
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from helpers import get_current_user, is_authenticated, subscribers_count
from models import db, Story, Comment, Like, Bookmark, Subscription
from series import chapter_position, next_chapter_number
from api.story import load_parent_series, series_records

bp = Blueprint('story_views', __name__)

RELATED_LIMIT = 4
RELATED_BATCH = 200

def related_stories(story, limit=RELATED_LIMIT):
    """
	Published stories by the same author or sharing a tag, newest first.

    Without tags the author match is done by the database. Tags live in a JSON
    column, so tag overlap is checked here while paging through the published
    stories until ``limit`` matches are found or the stories run out.

    Args:
        story (Story): The story being read; it is never part of the result.
        limit (int): Maximum number of stories returned.

    Returns:
        list[Story]: Up to ``limit`` related stories.
    """
    query = Story.query.filter(Story.id != story.id, Story.status == "published")\
        .order_by(Story.published_at.desc(), Story.id.desc())
    tags = set(story.tags or [])
    if not tags:
        return query.filter(Story.author_id == story.author_id).limit(limit).all()

    related = []
    offset = 0
    while len(related) < limit:
        batch = query.offset(offset).limit(RELATED_BATCH).all()
        if not batch:
            break
        for candidate in batch:
            if candidate.author_id == story.author_id or tags & set(candidate.tags or []):
                related.append(candidate)
                if len(related) == limit:
                    break
        offset += len(batch)
    return related

@bp.route('/write', methods=["GET"])
@is_authenticated
def write():
    """
	Render the story editor.

    ``storyId`` loads one of the author's stories for editing. ``seriesId``
    together with ``newChapter=true`` prepares a new chapter of one of the
    author's series or novels, prefilled with the next chapter number.

    Returns:
        str: The rendered editor, or a redirect to the dashboard when the
        requested story or series cannot be edited by the current user.
    """
    user = get_current_user()
    story = None
    parent = None
    next_number = 1

    story_id = request.args.get("storyId", type=int)
    if story_id:
        story = db.session.get(Story, story_id)
        if not story or story.author_id != user.id:
            flash("Could not load story for editing. You might not have permission.")
            return redirect(url_for("main.dashboard"))
        next_number = story.chapter_number

    series_id = request.args.get("seriesId", type=int)
    if series_id and request.args.get("newChapter") == "true" and not story:
        parent = load_parent_series(series_id, user)
        if not parent:
            flash("Could not load parent series for new chapter.")
            return redirect(url_for("main.dashboard"))
        next_number = next_chapter_number(series_records(parent))

    available_series = Story.query.filter(
        Story.author_id == user.id,
        Story.story_type.in_(("series", "novel")),
        Story.series_id.is_(None),
    ).order_by(Story.created_at.desc()).all()

    return render_template("story/write.html",
                           user=user,
                           story=story,
                           parent=parent,
                           next_chapter_number=next_number,
                           available_series=available_series)

@bp.route('/story/<int:story_id>')
def read(story_id):
    """
	Render a story with its series navigation, comments and related stories.

    Drafts are only shown to their author. For series and novels the whole
    series (parent and chapters, ordered by chapter number) is loaded for
    chapter navigation. Views by anyone but the author are counted.

    Args:
        story_id (int): The ID of the story to be read.

    Returns:
        str: The rendered story page, or 404.
    """
    viewer = get_current_user()
    story = db.session.get(Story, story_id)
    if not story:
        abort(404)
    is_author = viewer is not None and viewer.id == story.author_id
    if story.status == "draft" and not is_author:
        abort(404)

    chapters = []
    series = None
    position = None
    if story.story_type != "one_time":
        root_id = story.root_id
        query = Story.query.filter(or_(Story.id == root_id, Story.series_id == root_id))
        if not is_author:
            query = query.filter(Story.status != "draft")
        chapters = [chapter.to_dict() for chapter in query.order_by(Story.chapter_number).all()]
        position = chapter_position(story.id, chapters)
        series = next((chapter for chapter in chapters if chapter["id"] == root_id), None)

    if not is_author:
        story.views_count = (story.views_count or 0) + 1
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Failed to count view of story {story.id}: {e}")

    state = {"liked": False, "bookmarked": False, "subscribed": False}
    if viewer:
        state["liked"] = Like.query.filter_by(user_id=viewer.id, story_id=story.id).first() is not None
        state["bookmarked"] = Bookmark.query.filter_by(user_id=viewer.id, story_id=story.id).first() is not None
        if story.story_type != "one_time":
            state["subscribed"] = Subscription.query.filter_by(user_id=viewer.id, story_id=story.root_id).first() is not None

    comments = Comment.query.filter_by(story_id=story.id, parent_id=None)\
        .order_by(Comment.created_at.asc()).all()

    return render_template("story/read.html",
                           story=story,
                           viewer=viewer,
                           is_author=is_author,
                           series=series,
                           chapters=chapters,
                           position=position,
                           state=state,
                           subscribers=subscribers_count(story.root_id) if story.story_type != "one_time" else 0,
                           comments=comments,
                           related=related_stories(story))
