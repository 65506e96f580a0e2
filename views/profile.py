from flask import Blueprint, abort, render_template, request
from models import Profile, Story, Follow, Notification
from helpers import get_current_user, is_authenticated

bp = Blueprint('profile_views', __name__)

@bp.route("/profile/<username>")
def public_profile(username):
    """
	Render an author's public profile.

    Only published stories are listed, newest first. The follow button state
    reflects whether the viewer already follows the author.

    Args:
        username (str): The author's username.

    Returns:
        str: The rendered profile page, or 404 for an unknown username.
    """
    profile = Profile.query.filter_by(username=username.lower()).first()
    if not profile:
        abort(404)
    viewer = get_current_user()
    stories = Story.query.filter(Story.author_id == profile.id, Story.status == "published")\
        .order_by(Story.published_at.desc()).all()
    is_following = False
    if viewer and viewer.id != profile.id:
        is_following = Follow.query.filter_by(follower_id=viewer.id, following_id=profile.id).first() is not None
    return render_template("profile/public.html",
                           profile=profile,
                           stories=stories,
                           viewer=viewer,
                           is_following=is_following,
                           is_own_profile=viewer is not None and viewer.id == profile.id)

@bp.route("/settings")
@is_authenticated
def settings():
    user = get_current_user()
    return render_template("profile/settings.html", user=user)

@bp.route("/notifications")
@is_authenticated
def notifications():
    """
	Render the notifications view for the current user, newest first, ten per page.
    """
    user = get_current_user()
    page = request.args.get('page', 1, type=int)
    pagination = Notification.query.filter_by(user_id=user.id)\
                      .order_by(Notification.created_at.desc())\
                      .paginate(page=page, per_page=10, error_out=False)
    return render_template("profile/notifications.html", user=user, notifications=pagination.items, pagination=pagination)
