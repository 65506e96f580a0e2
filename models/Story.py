from datetime import datetime
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy import JSON
from . import db

STORY_TYPES = ("one_time", "series", "novel")
STORY_STATUSES = ("draft", "published", "completed", "on_hold")

class Story(db.Model):
    __tablename__ = "stories"

    id = db.Column(db.Integer, primary_key=True)
    author_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    excerpt = db.Column(db.Text, nullable=True)
    cover_image_url = db.Column(db.String(500), nullable=True)
    story_type = db.Column(db.String(20), nullable=False, default="one_time")
    status = db.Column(db.String(20), nullable=False, default="draft")
    tags = db.Column(MutableList.as_mutable(JSON), nullable=False, default=list)
    genre = db.Column(db.String(80), nullable=True)
    chapter_number = db.Column(db.Integer, nullable=False, default=1)
    series_id = db.Column(db.Integer, db.ForeignKey('stories.id'), nullable=True, index=True)
    likes_count = db.Column(db.Integer, default=0, nullable=False)
    comments_count = db.Column(db.Integer, default=0, nullable=False)
    bookmarks_count = db.Column(db.Integer, default=0, nullable=False)
    views_count = db.Column(db.Integer, default=0, nullable=False)
    is_featured = db.Column(db.Boolean, default=False, nullable=False)
    published_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    comments = db.relationship('Comment', backref='story', lazy=True, cascade="all, delete-orphan")

    @property
    def is_top_level(self):
        return self.story_type == "one_time" or self.series_id is None

    @property
    def root_id(self):
        """Id of the series parent for a chapter, the story's own id otherwise."""
        if self.is_top_level:
            return self.id
        return self.series_id

    def preview(self, length=150):
        if self.excerpt:
            return self.excerpt
        content = self.content or ""
        if len(content) <= length:
            return content
        return content[:length] + "..."

    def to_dict(self, with_author=False):
        data = {
            "id": self.id,
            "author_id": self.author_id,
            "title": self.title,
            "content": self.content,
            "excerpt": self.excerpt,
            "cover_image_url": self.cover_image_url,
            "story_type": self.story_type,
            "status": self.status,
            "tags": list(self.tags or []),
            "genre": self.genre,
            "chapter_number": self.chapter_number,
            "series_id": self.series_id,
            "likes_count": self.likes_count or 0,
            "comments_count": self.comments_count or 0,
            "bookmarks_count": self.bookmarks_count or 0,
            "views_count": self.views_count or 0,
            "is_featured": bool(self.is_featured),
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if with_author and self.author:
            data["author"] = {
                "id": self.author.id,
                "username": self.author.username,
                "display_name": self.author.display_name,
                "avatar_url": self.author.avatar_url,
            }
        return data

    def __repr__(self):
        return f"<Story {self.id} {self.story_type} ch{self.chapter_number}>"
