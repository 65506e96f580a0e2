from flask import Blueprint, current_app, flash, render_template, request, redirect, url_for
from flask_jwt_extended import create_access_token
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from models import Profile, db
from helpers import is_unauthenticated, normalize_username, validate_signup

bp = Blueprint('auth_views', __name__)

@bp.route('/auth/signup', methods=['GET', 'POST'])
@is_unauthenticated
def signup():
    """
	Registers a new author.

    On a POST request the username is normalized (lowercased, trimmed, anything
    outside ``[a-z0-9_]`` removed) and the form is validated before anything is
    written: matching passwords, password and username length, then username
    and email availability. Every failure flashes a message and returns to the
    form.

    Returns:
        Response:
            - On GET request: Renders the signup form.
            - On POST request: Redirects to sign in on success, back to the
              form otherwise.
    """
    if request.method == "POST":
        username = normalize_username(request.form.get("username"))
        display_name = (request.form.get("display_name") or "").strip()
        email = (request.form.get("email") or "").strip().lower()
        password = request.form.get("password") or ""
        confirm_password = request.form.get("confirm_password") or ""

        problem = validate_signup(username, password, confirm_password)
        if problem:
            flash(problem)
            return redirect(url_for("auth_views.signup"))
        if not display_name:
            flash("Display name is required")
            return redirect(url_for("auth_views.signup"))
        if not email:
            flash("Email is required")
            return redirect(url_for("auth_views.signup"))
        if Profile.query.filter_by(username=username).first():
            flash("Username is already taken")
            return redirect(url_for("auth_views.signup"))
        if Profile.query.filter_by(email=email).first():
            flash("Email already exists")
            return redirect(url_for("auth_views.signup"))

        profile = Profile(username=username, email=email, display_name=display_name)
        profile.set_password(password)
        try:
            db.session.add(profile)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Signup failed for {username}: {e}")
            flash("Failed to create user account.")
            return redirect(url_for("auth_views.signup"))
        current_app.logger.info(f"New profile {profile.id} ({username})")
        flash("Account created! You can now sign in.")
        return redirect(url_for("auth_views.signin"))
    return render_template("auth/signup.html")

@bp.route('/auth/signin', methods=['GET', 'POST'])
@is_unauthenticated
def signin():
    """
	Handles user sign in.

    Accepts a username or an email address. On success an ``access_token``
    cookie carrying a JWT for the profile is set and the user is sent to the
    page they came from, or to the dashboard.

    Returns:
        Response: A redirect on POST, the sign in form on GET.
    """
    if request.method == "POST":
        login = (request.form.get("login") or "").strip().lower()
        password = request.form.get("password") or ""
        profile = Profile.query.filter(or_(Profile.username == login, Profile.email == login)).first()
        if not profile or not profile.check_password(password):
            flash("Sign in failed. Please check your credentials.")
            return redirect(url_for("auth_views.signin"))

        access_token = create_access_token(identity=str(profile.id))
        next_url = request.args.get("next") or request.form.get("next")
        if not next_url or not next_url.startswith("/") or next_url.startswith("//"):
            next_url = url_for("main.dashboard")
        resp = redirect(next_url)
        resp.set_cookie("access_token", access_token, httponly=True, samesite="Lax")
        return resp
    return render_template("auth/signin.html")
