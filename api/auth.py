from flask import Blueprint, flash, redirect, url_for

bp = Blueprint('auth', __name__)

@bp.route('/auth/signout')
def signout():
    """
	Signs the user out by deleting the access token cookie.

    Returns:
        Response: A redirect response to the home page.
    """
    resp = redirect(url_for("main.index"))
    resp.delete_cookie("access_token")
    flash("You have been signed out.")
    return resp
