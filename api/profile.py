import uuid
from botocore.exceptions import BotoCoreError, ClientError
from flask import Blueprint, current_app, flash, request, redirect, url_for, jsonify
from sqlalchemy.exc import SQLAlchemyError
from models import Profile, Follow, Notification, db
from helpers import (
    get_current_user, get_storage, is_authenticated, is_api_authenticated, avatar_extension,
    refresh_profile_counts
)

bp = Blueprint('profile', __name__)

@bp.route('/api/profiles/<int:profile_id>/follow', methods=["POST"])
@is_api_authenticated
def toggle_follow(profile_id):
    """
	Follow or unfollow an author.

    The follow row is added or removed, then the follower and following
    counters of both profiles are recounted before answering.

    Args:
        profile_id (int): The ID of the profile being followed or unfollowed.

    Returns:
        flask.Response: ``following`` and the target's ``followers_count``.
    """
    user = get_current_user()
    target = db.session.get(Profile, profile_id)
    if not target:
        return jsonify({"error": "Profile not found"}), 404
    if target.id == user.id:
        return jsonify({"error": "You cannot follow yourself."}), 400
    try:
        existing = Follow.query.filter_by(follower_id=user.id, following_id=target.id).first()
        if existing:
            db.session.delete(existing)
            following = False
        else:
            db.session.add(Follow(follower_id=user.id, following_id=target.id))
            following = True
        db.session.flush()
        refresh_profile_counts(target)
        refresh_profile_counts(user)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to update follow {user.id} -> {profile_id}: {e}")
        return jsonify({"error": "Failed to update follow status."}), 500
    return jsonify({"following": following, "followers_count": target.followers_count})

@bp.route('/settings', methods=["POST"])
@is_authenticated
def update_settings():
    """
	Update the current user's profile from the settings form.

    When an avatar file is attached it is uploaded to the avatar store first
    and its public URL replaces the previous one. Upload or database failures
    leave the profile unchanged.

    Returns:
        Redirect: Back to the settings page.
    """
    user = get_current_user()
    avatar_url = user.avatar_url
    avatar = request.files.get("avatar")
    if avatar and avatar.filename:
        ext = avatar_extension(avatar.filename)
        if not ext:
            flash("Avatar must be a PNG, JPG, GIF or WEBP image.")
            return redirect(url_for("profile_views.settings"))
        key = f"avatars/{user.id}-{uuid.uuid4().hex}.{ext}"
        try:
            avatar_url = get_storage().upload(key, avatar.read(), avatar.mimetype or f"image/{ext}")
        except (BotoCoreError, ClientError) as e:
            current_app.logger.error(f"Avatar upload failed for profile {user.id}: {e}")
            flash("Error updating profile: the avatar could not be uploaded.")
            return redirect(url_for("profile_views.settings"))

    user.display_name = (request.form.get("display_name") or "").strip() or None
    user.bio = (request.form.get("bio") or "").strip() or None
    user.location = (request.form.get("location") or "").strip() or None
    user.website = (request.form.get("website") or "").strip() or None
    user.avatar_url = avatar_url
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Profile update failed for {user.id}: {e}")
        flash("Error updating profile.")
        return redirect(url_for("profile_views.settings"))
    flash("Profile updated!")
    return redirect(url_for("profile_views.settings"))

@bp.route("/notifications/mark_all_read", methods=["POST"])
@is_authenticated
def mark_all_notifications_read():
    """
	Marks all unread notifications for the current user as read.

    Returns:
        werkzeug.wrappers.Response: A redirect response to the notifications view.
    """
    user = get_current_user()
    Notification.query.filter_by(user_id=user.id, is_read=False).update({"is_read": True})
    db.session.commit()
    flash("All notifications marked as read.", "success")
    return redirect(url_for('profile_views.notifications'))

@bp.route("/notifications/clear", methods=["POST"])
@is_authenticated
def clear_notifications():
    user = get_current_user()
    Notification.query.filter_by(user_id=user.id).delete()
    db.session.commit()
    flash("Notifications cleared.", "success")
    return redirect(url_for("profile_views.notifications"))
