import logging
import os
from flask import Flask, request
from flask_jwt_extended import JWTManager, decode_token
from flask_socketio import join_room
from models import db, Notification
from models.Profile import bcrypt
from helpers import S3AvatarStorage, get_current_user, socketio, time_ago

env = os.environ.get('env')
port = 80
if env == "development":
    port = 5000

def create_app(test_config=None, storage=None):
    """
	Builds and configures the HeartEcho application.

    Configuration is read from ``config.py`` and overlaid with ``test_config``.
    The database and avatar store are bound to this application only, so each
    call yields an independent app.

    Args:
        test_config (Mapping, optional): Settings overriding ``config.py``.
        storage (optional): Avatar store to use instead of the S3 bucket from the config.

    Returns:
        Flask: The configured application with its tables created.
    """
    app = Flask(__name__)
    app.config.from_pyfile('config.py')
    if test_config:
        app.config.update(test_config)

    db.init_app(app)
    bcrypt.init_app(app)
    JWTManager(app)
    socketio.init_app(app, cors_allowed_origins='*', message_queue=app.config.get("SOCKETIO_MESSAGE_QUEUE"))
    app.extensions["storage"] = storage or S3AvatarStorage.from_config(app.config)

    from api.auth import bp as auth_bp
    from api.story import bp as story_bp
    from api.profile import bp as profile_bp
    from views.main import bp as main_views_bp
    from views.auth import bp as auth_views_bp
    from views.story import bp as story_views_bp
    from views.profile import bp as profile_views_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(story_bp)
    app.register_blueprint(profile_bp)

    app.register_blueprint(main_views_bp)
    app.register_blueprint(auth_views_bp)
    app.register_blueprint(story_views_bp)
    app.register_blueprint(profile_views_bp)

    app.jinja_env.filters["timeago"] = time_ago

    @app.context_processor
    def inject_current_user():
        """
		Injects the signed-in profile and their unread notification count into templates.

        Returns:
            dict: ``current_user`` (Profile or None) and ``unread_notifications`` (int).
        """
        user = get_current_user()
        unread_count = 0
        if user:
            unread_count = Notification.query.filter_by(user_id=user.id, is_read=False).count()
        return dict(current_user=user, unread_notifications=unread_count)

    with app.app_context():
        db.create_all()
    return app

@socketio.on("connect")
def on_connect():
    """
	Joins a connecting socket to the room of the profile named by its access token cookie.

    Sockets without a valid token stay connected but receive no notifications.
    """
    token = request.cookies.get("access_token")
    if not token:
        return
    try:
        decoded_token = decode_token(token)
    except Exception as e:
        logging.warning(f"Failed to decode token: {e}")
        return
    user_id = decoded_token.get("sub")
    if user_id:
        join_room(str(user_id))

if __name__ == '__main__':
    app = create_app()
    socketio.run(app, debug=env == "development", host='0.0.0.0', port=port)
