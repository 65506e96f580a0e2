from datetime import datetime
from . import db

class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    story_id = db.Column(db.Integer, db.ForeignKey('stories.id'), nullable=False, index=True)
    author_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey('comments.id'), nullable=True)
    content = db.Column(db.Text, nullable=False)
    likes_count = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    author = db.relationship('Profile', lazy=True)
    replies = db.relationship('Comment', backref=db.backref('parent', remote_side=[id]),
                              lazy=True, cascade="all, delete-orphan",
                              order_by="Comment.created_at")

    def to_dict(self):
        return {
            "id": self.id,
            "story_id": self.story_id,
            "author_id": self.author_id,
            "parent_id": self.parent_id,
            "content": self.content,
            "likes_count": self.likes_count or 0,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "author": {
                "id": self.author.id,
                "username": self.author.username,
                "display_name": self.author.display_name,
                "avatar_url": self.author.avatar_url,
            } if self.author else None,
        }

    def __repr__(self):
        return f"<Comment {self.id} on Story {self.story_id}>"
