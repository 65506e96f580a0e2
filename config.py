import os

SECRET_KEY = os.environ.get("SECRET_KEY", "change-me")
JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", SECRET_KEY)
JWT_ACCESS_TOKEN_EXPIRES = int(os.environ.get("JWT_ACCESS_TOKEN_EXPIRES", 60 * 60 * 24 * 7))

SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///heartecho.db")
SQLALCHEMY_TRACK_MODIFICATIONS = False

S3_REGION = os.environ.get("S3_REGION", "us-east-1")
S3_ENDPOINT = os.environ.get("S3_ENDPOINT")
S3_ACCESS_KEY_ID = os.environ.get("S3_ACCESS_KEY_ID")
S3_SECRET_KEY = os.environ.get("S3_SECRET_KEY")
S3_AVATAR_BUCKET = os.environ.get("S3_AVATAR_BUCKET", "avatars")
S3_PUBLIC_URL = os.environ.get("S3_PUBLIC_URL", "")

SOCKETIO_MESSAGE_QUEUE = os.environ.get("SOCKETIO_MESSAGE_QUEUE")
