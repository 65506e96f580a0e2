from datetime import datetime
from . import db

class Subscription(db.Model):
    __tablename__ = "subscriptions"
    __table_args__ = (db.UniqueConstraint('user_id', 'story_id'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    story_id = db.Column(db.Integer, db.ForeignKey('stories.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
