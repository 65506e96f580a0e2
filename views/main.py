from flask import Blueprint, render_template, request
from models import Story, Profile, Bookmark
from helpers import get_current_user, is_authenticated
from series import materialize_series

bp = Blueprint('main', __name__)

@bp.route('/')
def index():
    """
	Render the home page with featured and recent published stories.

    Returns:
        str: The rendered home page with up to 6 featured and 8 recent stories.
    """
    published = Story.query.filter(Story.status == "published")
    featured = published.filter(Story.is_featured.is_(True)).order_by(Story.published_at.desc()).limit(6).all()
    recent = published.order_by(Story.published_at.desc()).limit(8).all()
    return render_template("index.html", featured_stories=featured, recent_stories=recent)

@bp.route('/stories')
def stories():
    page = request.args.get('page', 1, type=int)
    pagination = Story.query.filter(Story.status == "published")\
        .order_by(Story.published_at.desc())\
        .paginate(page=page, per_page=24, error_out=False)
    return render_template("stories.html", stories=pagination.items, pagination=pagination)

@bp.route('/authors')
def authors():
    authors = Profile.query.order_by(Profile.created_at.desc()).all()
    return render_template("authors.html", authors=authors)

@bp.route('/dashboard')
@is_authenticated
def dashboard():
    """
	Render the author dashboard.

    All of the author's stories, drafts included, are grouped into top-level
    works carrying their chapters, newest first. Bookmarked stories are listed
    below, most recently bookmarked first, ten per page.

    Returns:
        str: Rendered HTML of the dashboard template.
    """
    user = get_current_user()
    stories = Story.query.filter_by(author_id=user.id).order_by(Story.created_at.desc()).all()
    works = materialize_series(story.to_dict() for story in stories)

    bookmarks_page = request.args.get('bookmarks_page', 1, type=int)
    bookmarks_pagination = Story.query.join(Bookmark, Bookmark.story_id == Story.id)\
        .filter(Bookmark.user_id == user.id)\
        .order_by(Bookmark.created_at.desc())\
        .paginate(page=bookmarks_page, per_page=10, error_out=False)

    return render_template("dashboard.html",
                           user=user,
                           works=works,
                           bookmarks=bookmarks_pagination.items,
                           bookmarks_pagination=bookmarks_pagination)
