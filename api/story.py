from datetime import datetime
from flask import Blueprint, current_app, flash, request, redirect, url_for, jsonify
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from helpers import (
    notify, push_notifications, discard_notifications, get_current_user,
    is_authenticated, is_api_authenticated, is_story_author, is_comment_author,
    parse_tags, refresh_story_counts, refresh_profile_counts, subscribers_count, MAX_COMMENT_LENGTH
)
from models import Story, Comment, Like, Bookmark, Subscription, db
from models.Story import STORY_TYPES, STORY_STATUSES
from series import next_chapter_number

bp = Blueprint('story', __name__)

def series_records(parent):
    """Parent and every chapter of a series, as story records."""
    stories = Story.query.filter(or_(Story.id == parent.id, Story.series_id == parent.id)).all()
    return [story.to_dict() for story in stories]

def story_fields_from_form(form, action, story=None, parent=None):
    """
	Derives the column values to write for a story from the editor form.

    New one-time posts and new series/novels start as chapter 1 with no series
    reference. New chapters reference ``parent``, inherit its type and take the
    next free chapter number. Edits never move a story between series.

    Args:
        form (Mapping): Submitted editor fields.
        action (str): ``publish`` or ``draft``.
        story (Story, optional): The story being edited.
        parent (Story, optional): The series or novel a new chapter belongs to.

    Returns:
        dict: Column values for the story.

    Raises:
        ValueError: With a user-facing message when the form is not acceptable.
    """
    title = (form.get("title") or "").strip()
    content = form.get("content") or ""
    excerpt = (form.get("excerpt") or "").strip()

    if parent is not None:
        story_type = parent.story_type
    elif story is not None and not story.is_top_level:
        story_type = story.story_type
    else:
        story_type = form.get("story_type") or (story.story_type if story is not None else "one_time")
    if story_type not in STORY_TYPES:
        raise ValueError("Unknown story type.")
    if story is not None and story.is_top_level and story_type == "one_time" and story.story_type != "one_time":
        if Story.query.filter_by(series_id=story.id).first():
            raise ValueError("A series with chapters cannot become a one-time post.")

    if action == "draft":
        status = "draft"
        published_at = None
        title = title or "Untitled Draft"
    else:
        status = form.get("status") or "published"
        if status not in STORY_STATUSES or status == "draft":
            raise ValueError("Unknown status.")
        if not title:
            raise ValueError("Title is required.")
        if not content.strip():
            raise ValueError("Content is required.")
        excerpt = excerpt or content[:200]
        published_at = story.published_at if story is not None and story.published_at else datetime.utcnow()

    fields = {
        "title": title,
        "content": content,
        "excerpt": excerpt or None,
        "story_type": story_type,
        "genre": (form.get("genre") or "").strip() or None,
        "tags": parse_tags(form.get("tags")),
        "status": status,
        "published_at": published_at,
    }
    if story is None:
        if parent is not None:
            fields["series_id"] = parent.id
            fields["chapter_number"] = next_chapter_number(series_records(parent))
        else:
            fields["series_id"] = None
            fields["chapter_number"] = 1
    return fields

def load_parent_series(series_id, user):
    """Returns the series/novel parent a new chapter may be added to, or None."""
    parent = db.session.get(Story, series_id)
    if not parent or parent.author_id != user.id:
        return None
    if parent.story_type not in ("series", "novel") or parent.series_id is not None:
        return None
    return parent

def notify_subscribers(parent, chapter):
    link = url_for("story_views.read", story_id=chapter.id)
    subscriptions = Subscription.query.filter_by(story_id=parent.id).all()
    for subscription in subscriptions:
        if subscription.user_id == chapter.author_id:
            continue
        notify(f"New chapter of '{parent.title}': {chapter.title}", subscription.user_id, link=link)

@bp.route('/write', methods=["POST"])
@is_authenticated
def save_story():
    """
	Publishes or saves as draft a story, a new series/novel, or a new chapter.

    The form's ``action`` chooses between publishing and saving a draft.
    ``story_id`` selects a story to edit; ``series_id`` selects the parent of a
    new chapter. Validation and backend failures are flashed and the user is
    sent back to the editor with nothing written.

    Returns:
        Response: A redirect to the saved story, or back to the editor on failure.
    """
    user = get_current_user()
    action = request.form.get("action", "publish")
    story_id = request.form.get("story_id", type=int)
    series_id = request.form.get("series_id", type=int)
    story = None
    parent = None

    if story_id:
        story = db.session.get(Story, story_id)
        if not story or story.author_id != user.id:
            flash("Could not load story for editing. You might not have permission.")
            return redirect(url_for("main.dashboard"))
        back = url_for("story_views.write", storyId=story.id)
    elif series_id:
        parent = load_parent_series(series_id, user)
        if not parent:
            flash("Could not load parent series for new chapter.")
            return redirect(url_for("main.dashboard"))
        back = url_for("story_views.write", seriesId=parent.id, newChapter="true")
    else:
        back = url_for("story_views.write")

    try:
        fields = story_fields_from_form(request.form, action, story=story, parent=parent)
    except ValueError as e:
        flash(str(e))
        return redirect(back)

    is_new = story is None
    was_published = not is_new and story.status != "draft"
    if is_new:
        story = Story(author_id=user.id)
        db.session.add(story)
    for name, value in fields.items():
        setattr(story, name, value)

    try:
        db.session.flush()
        series = parent or (None if story.is_top_level else db.session.get(Story, story.series_id))
        if series is not None and not was_published and story.status != "draft":
            notify_subscribers(series, story)
        refresh_profile_counts(user)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        discard_notifications()
        current_app.logger.error(f"Story submission error: {e}")
        flash(f"Failed to {'publish' if is_new else 'update'} story.")
        return redirect(back)
    push_notifications()

    if story.status == "draft":
        flash("Draft saved.")
    else:
        flash(f"Story {'Published' if is_new else 'Updated'}!")
    return redirect(url_for("story_views.read", story_id=story.id))

@bp.route('/api/stories/<int:story_id>', methods=["DELETE"])
@is_story_author
def delete_story(story_id):
    """
	Deletes a story. Deleting a series or novel parent deletes its chapters too.

    Likes, bookmarks, subscriptions and comments of every deleted story go with it.

    Args:
        story_id (int): The ID of the story to be deleted.

    Returns:
        Response: ``{"deleted": true, "ids": [...]}``, or a 500 error when the
        database refuses the deletion.
    """
    user = get_current_user()
    story = db.session.get(Story, story_id)
    chapters = Story.query.filter_by(series_id=story.id).all() if story.is_top_level else []
    ids = [story.id] + [chapter.id for chapter in chapters]
    try:
        for model in (Like, Bookmark, Subscription):
            model.query.filter(model.story_id.in_(ids)).delete(synchronize_session=False)
        for chapter in chapters:
            db.session.delete(chapter)
        db.session.flush()
        db.session.delete(story)
        db.session.flush()
        refresh_profile_counts(user)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error deleting story {story_id}: {e}")
        return jsonify({"error": "Failed to delete story."}), 500
    current_app.logger.info(f"Profile {user.id} deleted stories {ids}")
    return jsonify({"deleted": True, "ids": ids})

def readable_story(story_id, user):
    story = db.session.get(Story, story_id)
    if not story or (story.status == "draft" and story.author_id != user.id):
        return None
    return story

def toggle_reaction(model, user, story):
    """Adds the user's reaction row for the story, or removes it. Returns the new state."""
    existing = model.query.filter_by(user_id=user.id, story_id=story.id).first()
    if existing:
        db.session.delete(existing)
        return False
    db.session.add(model(user_id=user.id, story_id=story.id))
    return True

def reaction_response(model, story_id, state_key, count_key, noun):
    user = get_current_user()
    story = readable_story(story_id, user)
    if not story:
        return jsonify({"error": "Story not found"}), 404
    try:
        state = toggle_reaction(model, user, story)
        db.session.flush()
        refresh_story_counts(story)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to update {noun} on story {story_id}: {e}")
        return jsonify({"error": f"Failed to update {noun} status."}), 500
    return jsonify({state_key: state, count_key: getattr(story, count_key)})

@bp.route('/api/stories/<int:story_id>/like', methods=["POST"])
@is_api_authenticated
def toggle_like(story_id):
    """
	Toggle the like of the current user on a story.

    Returns:
        flask.Response: ``liked`` and the recounted ``likes_count``.
    """
    return reaction_response(Like, story_id, "liked", "likes_count", "like")

@bp.route('/api/stories/<int:story_id>/bookmark', methods=["POST"])
@is_api_authenticated
def toggle_bookmark(story_id):
    return reaction_response(Bookmark, story_id, "bookmarked", "bookmarks_count", "bookmark")

@bp.route('/api/stories/<int:story_id>/subscribe', methods=["POST"])
@is_api_authenticated
def toggle_subscription(story_id):
    """
	Toggle the current user's subscription to a series or novel.

    Subscribing from a chapter subscribes to its series parent. One-time posts
    cannot be subscribed to.

    Returns:
        flask.Response: ``subscribed``, ``story_id`` of the subscribed series and
        the recounted ``subscribers_count``.
    """
    user = get_current_user()
    story = readable_story(story_id, user)
    if not story:
        return jsonify({"error": "Story not found"}), 404
    if story.story_type == "one_time":
        return jsonify({"error": "Only series and novels can be subscribed to."}), 400
    target = db.session.get(Story, story.root_id)
    if not target:
        return jsonify({"error": "Story not found"}), 404
    try:
        subscribed = toggle_reaction(Subscription, user, target)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to update subscription on story {target.id}: {e}")
        return jsonify({"error": "Failed to update subscription status."}), 500
    return jsonify({"subscribed": subscribed, "story_id": target.id, "subscribers_count": subscribers_count(target.id)})

def comment_content(data):
    content = (data.get("content") or "").strip()
    if not content:
        raise ValueError("Comment cannot be empty.")
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValueError(f"Comment cannot be longer than {MAX_COMMENT_LENGTH} characters.")
    return content

@bp.route('/api/stories/<int:story_id>/comments', methods=["POST"])
@is_api_authenticated
def new_comment(story_id):
    """
	Adds a comment, or a reply to a top-level comment, to a story.

    The story's author is notified of comments left by other users.

    Args:
        story_id (int): The ID of the story being commented on.

    Returns:
        tuple: The created comment with its author embedded and status 201, or
        an error message with 400/404/500.
    """
    user = get_current_user()
    story = readable_story(story_id, user)
    if not story:
        return jsonify({"error": "Story not found"}), 404
    data = request.get_json(silent=True) or request.form
    try:
        content = comment_content(data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        parent_id = int(data.get("parent_id") or 0) or None
    except (TypeError, ValueError):
        return jsonify({"error": "Invalid parent_id."}), 400
    if parent_id:
        parent = db.session.get(Comment, parent_id)
        if not parent or parent.story_id != story.id or parent.parent_id is not None:
            return jsonify({"error": "Cannot reply to that comment."}), 400

    comment = Comment(story_id=story.id, author_id=user.id, content=content, parent_id=parent_id)
    try:
        db.session.add(comment)
        db.session.flush()
        refresh_story_counts(story)
        if story.author_id != user.id:
            notify(f"{user.name} commented on your story '{story.title}'.", story.author_id,
                   link=url_for("story_views.read", story_id=story.id))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        discard_notifications()
        current_app.logger.error(f"Error posting comment on story {story_id}: {e}")
        return jsonify({"error": "Failed to post comment."}), 500
    push_notifications()
    return jsonify(comment.to_dict()), 201

@bp.route('/api/comments/<int:comment_id>/edit', methods=["POST"])
@is_comment_author
def edit_comment(comment_id):
    comment = db.session.get(Comment, comment_id)
    data = request.get_json(silent=True) or request.form
    try:
        comment.content = comment_content(data)
        db.session.commit()
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error editing comment {comment_id}: {e}")
        return jsonify({"error": "Failed to update comment."}), 500
    return jsonify(comment.to_dict())

@bp.route('/api/comments/<int:comment_id>/delete', methods=["POST"])
@is_comment_author
def delete_comment(comment_id):
    """
	Deletes a comment and, for a top-level comment, its replies.

    Returns:
        flask.Response: ``deleted`` and the story's recounted ``comments_count``.
    """
    comment = db.session.get(Comment, comment_id)
    story = comment.story
    try:
        db.session.delete(comment)
        db.session.flush()
        refresh_story_counts(story)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error deleting comment {comment_id}: {e}")
        return jsonify({"error": "Failed to delete comment."}), 500
    return jsonify({"deleted": True, "comments_count": story.comments_count})
