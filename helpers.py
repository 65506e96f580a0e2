import logging
import re
from datetime import datetime
from functools import wraps
from flask import g, request, redirect, url_for, jsonify, current_app
from flask_jwt_extended import decode_token
from flask_socketio import SocketIO
from sqlalchemy import func
import boto3
from models import Profile, Story, Comment, Follow, Like, Bookmark, Subscription, Notification, db

USERNAME_MIN_LENGTH = 3
PASSWORD_MIN_LENGTH = 6
MAX_TAGS = 5
MAX_COMMENT_LENGTH = 5000
AVATAR_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}

socketio = SocketIO()


class S3AvatarStorage:
    """
	Avatar store backed by an S3-compatible bucket with public read access.

    Args:
        client: A boto3 S3 client.
        bucket (str): Bucket holding the avatars.
        public_url (str): Base URL under which objects of the bucket are served.
    """

    def __init__(self, client, bucket, public_url):
        self.client = client
        self.bucket = bucket
        self.public_url = public_url.rstrip("/")

    @classmethod
    def from_config(cls, config):
        client = boto3.client('s3',
            region_name=config.get("S3_REGION"),
            endpoint_url=config.get("S3_ENDPOINT"),
            aws_access_key_id=config.get("S3_ACCESS_KEY_ID"),
            aws_secret_access_key=config.get("S3_SECRET_KEY"))
        return cls(client, config.get("S3_AVATAR_BUCKET"), config.get("S3_PUBLIC_URL", ""))

    def upload(self, key, data, content_type):
        """
		Uploads an object, replacing any object already stored under the key.

        Args:
            key (str): Object key inside the bucket.
            data (bytes): Object body.
            content_type (str): MIME type sent along with the object.

        Returns:
            str: The public URL of the stored object.

        Raises:
            botocore.exceptions.ClientError: If the upload fails.
        """
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            CacheControl="max-age=3600"
        )
        return self.url_for(key)

    def url_for(self, key):
        if self.public_url:
            return f"{self.public_url}/{key}"
        return f"{self.client.meta.endpoint_url}/{self.bucket}/{key}"


def get_storage():
    return current_app.extensions["storage"]


def avatar_extension(filename):
    """Lowercased extension of an uploaded avatar, or None when it is not an accepted image type."""
    if not filename or "." not in filename:
        return None
    ext = filename.rsplit(".", 1)[1].lower()
    return ext if ext in AVATAR_EXTENSIONS else None


def normalize_username(username):
    return re.sub(r"[^a-z0-9_]", "", (username or "").lower().strip())


def validate_signup(username, password, confirm_password):
    """
	Checks a signup form before anything is written.

    Args:
        username (str): Username after normalization.
        password (str): Chosen password.
        confirm_password (str): Password confirmation.

    Returns:
        str or None: The first problem found, or None when the form is acceptable.
    """
    if password != confirm_password:
        return "Passwords do not match"
    if len(password or "") < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
    if len(username) < USERNAME_MIN_LENGTH:
        return f"Username must be at least {USERNAME_MIN_LENGTH} characters"
    return None


def parse_tags(raw):
    """
	Turns a comma separated tag string (or a list of tags) into a clean tag list.

    Tags are trimmed, empty ones and duplicates are dropped, and at most
    ``MAX_TAGS`` are kept in the order given.
    """
    if isinstance(raw, str):
        raw = raw.split(",")
    tags = []
    for tag in raw or []:
        tag = tag.strip()
        if tag and tag not in tags:
            tags.append(tag)
        if len(tags) == MAX_TAGS:
            break
    return tags


def notify(message, user_id, link=None):
    """
	Stores a notification for a user and queues its push to their socket room.

    The notification row is added to the current session. The caller commits,
    then calls ``push_notifications``; after a rollback it calls
    ``discard_notifications`` so nothing is pushed for rows that were never stored.

    Args:
        message (str): Notification text.
        user_id (int): Recipient profile id.
        link (str, optional): Where the notification points to.
    """
    db.session.add(Notification(user_id=user_id, message=message, link=link))
    g.setdefault("pending_pushes", []).append((user_id, {"message": message, "link": link}))


def push_notifications():
    for user_id, payload in g.pop("pending_pushes", []):
        socketio.emit("notification", payload, to=str(user_id))


def discard_notifications():
    g.pop("pending_pushes", None)


def get_current_user():
    """
	Retrieves the signed-in profile from the ``access_token`` cookie.

    Returns:
        Profile or None: The current profile, or None when the cookie is missing,
        invalid, or names a profile that no longer exists.
    """
    token = request.cookies.get("access_token")
    if not token:
        return None
    try:
        decoded_token = decode_token(token)
    except Exception as e:
        logging.warning(f"Failed to decode token: {e}")
        return None
    user_id = decoded_token.get("sub")
    if not user_id:
        logging.warning("Token decoded but no user id found.")
        return None
    return db.session.get(Profile, int(user_id))


def is_unauthenticated(func):
    """Sends signed-in users to their dashboard instead of the wrapped view."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        if get_current_user():
            return redirect(url_for("main.dashboard"))
        return func(*args, **kwargs)
    return wrapper


def is_authenticated(func):
    """
	Decorator to check if a user is signed in before executing a view.

    Anonymous visitors are redirected to the sign in page.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not get_current_user():
            return redirect(url_for("auth_views.signin", next=request.path))
        return func(*args, **kwargs)
    return wrapper


def is_api_authenticated(func):
    """Like ``is_authenticated`` for JSON endpoints: answers 401 instead of redirecting."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not get_current_user():
            return jsonify({"error": "Sign in required."}), 401
        return func(*args, **kwargs)
    return wrapper


def is_story_author(func):
    """
	Restricts a JSON endpoint to the author of the story named by ``story_id``.

    Returns:
        Callable: The wrapped view, answering 401, 404 or 403 when the user is
        not signed in, the story does not exist, or the user is not its author.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({"error": "Sign in required."}), 401
        story = db.session.get(Story, kwargs.get("story_id"))
        if not story:
            return jsonify({"error": "Story not found"}), 404
        if story.author_id != user.id:
            return jsonify({"error": "Unauthorized"}), 403
        return func(*args, **kwargs)
    return wrapper


def is_comment_author(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({"error": "Sign in required."}), 401
        comment = db.session.get(Comment, kwargs.get("comment_id"))
        if not comment:
            return jsonify({"error": "Comment not found"}), 404
        if comment.author_id != user.id:
            return jsonify({"error": "Unauthorized"}), 403
        return func(*args, **kwargs)
    return wrapper


def _count(model, **criteria):
    return db.session.query(func.count(model.id)).filter_by(**criteria).scalar() or 0


def refresh_story_counts(story):
    """Recomputes a story's like, bookmark and comment counters from their rows."""
    story.likes_count = _count(Like, story_id=story.id)
    story.bookmarks_count = _count(Bookmark, story_id=story.id)
    story.comments_count = _count(Comment, story_id=story.id)
    return story


def subscribers_count(story_id):
    return _count(Subscription, story_id=story_id)


def refresh_profile_counts(profile):
    """Recomputes a profile's follower, following and published story counters."""
    profile.followers_count = _count(Follow, following_id=profile.id)
    profile.following_count = _count(Follow, follower_id=profile.id)
    profile.stories_count = db.session.query(func.count(Story.id))\
        .filter(Story.author_id == profile.id, Story.status != "draft").scalar() or 0
    return profile


def time_ago(value, now=None):
    """Renders a timestamp as a rough distance from now, such as ``3 days ago``."""
    if not value:
        return ""
    seconds = int(((now or datetime.utcnow()) - value).total_seconds())
    if seconds < 60:
        return "just now"
    for unit, size in (("year", 31536000), ("month", 2592000), ("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size:
            amount = seconds // size
            return f"{amount} {unit}{'s' if amount != 1 else ''} ago"
