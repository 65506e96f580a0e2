from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
from .Profile import Profile
from .Story import Story
from .Comment import Comment
from .Follow import Follow
from .Like import Like
from .Bookmark import Bookmark
from .Subscription import Subscription
from .Notification import Notification
