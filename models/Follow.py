from datetime import datetime
from . import db

class Follow(db.Model):
    __tablename__ = "follows"
    __table_args__ = (db.UniqueConstraint('follower_id', 'following_id'),)

    id = db.Column(db.Integer, primary_key=True)
    follower_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False, index=True)
    following_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
