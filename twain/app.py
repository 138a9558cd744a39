# app.py
import io
import logging
import os
from functools import wraps
from urllib.parse import quote

from flask import Flask, jsonify, request, send_file, session
from werkzeug.exceptions import HTTPException

from twain import logconf
from twain.activity import ActivityLog
from twain.allowlist import SignupRequests, UserDirectory
from twain.bookshelf import Bookshelf
from twain.content_store import CONTENT_KINDS, ContentStore
from twain.entities import WORK_KINDS
from twain.errors import (
    ConflictError, ImportConflict, NotFoundError, StorageError, UpgradeRequired, ValidationError,
)
from twain.feedback import FeedbackInbox
from twain.models import db
from twain.plans import FREE_LIMITS, PreferencesStore
from twain.session import AuthoringSession
from twain.storage import DatabaseStorage

app = Flask(__name__)
app.config.from_object(os.getenv("TWAIN_CONFIG", "twain.config.Config"))
db.init_app(app)

logger = logging.getLogger(__name__)

DOCX_MIMETYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


# ------------- helpers -------------

def get_current_email():
    return session.get("user_email")


def user_directory():
    return UserDirectory(app.config["USERS_FILE"])


def signup_requests():
    return SignupRequests(app.config["SIGNUP_REQUESTS_FILE"], user_directory(),
                          app.config["SIGNUP_EMAIL_DOMAIN"])


def feedback_inbox():
    return FeedbackInbox(app.config["FEEDBACK_FILE"])


def preferences():
    return PreferencesStore(DatabaseStorage(db))


def bookshelf_for(email):
    return Bookshelf(
        ContentStore(DatabaseStorage(db)),
        email,
        preferences().entitlements(email),
        author_name=session.get("user_name"),
    )


def check_work_kind(kind):
    if kind not in WORK_KINDS:
        raise NotFoundError(f"Unknown work kind: {kind}")


def login_required(f):

    @wraps(f)
    def wrapper(*args, **kwargs):
        if not get_current_email():
            return jsonify(error="Unauthorized"), 401
        return f(*args, **kwargs)
    return wrapper


def admin_required(f):

    @wraps(f)
    def wrapper(*args, **kwargs):
        email = get_current_email()
        if not email:
            return jsonify(error="Unauthorized"), 401
        if not user_directory().is_admin(email):
            return jsonify(error="Admin access required"), 403
        return f(*args, **kwargs)
    return wrapper


# ------------- error handlers -------------

@app.errorhandler(ValidationError)
def handle_validation_error(e):
    return jsonify(error=str(e)), 400


@app.errorhandler(NotFoundError)
def handle_not_found(e):
    return jsonify(error=str(e)), 404


@app.errorhandler(ConflictError)
def handle_conflict(e):
    body = {"error": str(e)}
    if isinstance(e, ImportConflict):
        body["conflicts"] = [{"id": i, "title": t} for i, t in e.conflicts]
    return jsonify(body), 409


@app.errorhandler(UpgradeRequired)
def handle_upgrade_required(e):
    return jsonify(error=str(e), upgrade=True, feature=e.feature, limit=e.limit), 402


@app.errorhandler(StorageError)
def handle_storage_error(e):
    logger.error(f"Storage failure on {request.path}: {e}")
    return jsonify(error="Internal server error"), 500


@app.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return jsonify(error=e.description), e.code
    logger.exception(f"Unhandled error on {request.path}")
    return jsonify(error="Internal server error"), 500


# ------------- database & default admin -------------

def init_db():
    """
    Create the tables, and put ADMIN_EMAIL on the allow-list as an admin if
    it is configured and not there yet.
    """
    db.create_all()

    admin_email = app.config.get("ADMIN_EMAIL")
    if admin_email and not user_directory().get_user(admin_email):
        user_directory().add_user(admin_email, app.config["ADMIN_NAME"], is_admin=True)
        logger.info(f"Seeded admin {admin_email}")


# ------------- auth -------------

@app.route("/auth/callback", methods=["POST"])
def auth_callback():
    """Called with an identity the OAuth provider has already verified."""
    data = request.get_json(silent=True) or {}
    email = str(data.get("email") or "").strip().lower()
    if not email:
        raise ValidationError("Email is required")

    directory = user_directory()
    if not directory.is_allowed(email):
        logger.info(f"Sign-in refused for {email}")
        return jsonify(allowed=False, redirect=f"/auth/signup?email={quote(email)}")

    user = directory.upsert_on_login(email, data.get("name"), data.get("image"),
                                     data.get("providerId"))
    session["user_email"] = email
    session["user_name"] = user.name
    preferences().record_login(email)
    return jsonify(allowed=True, user=user.model_dump(mode="json"))


@app.route("/auth/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify(message="Signed out")


@app.route("/admin/check")
@login_required
def admin_check():
    return jsonify(isAdmin=user_directory().is_admin(get_current_email()))


# ------------- allow-list administration -------------

@app.route("/users", methods=["GET"])
@admin_required
def list_users():
    return jsonify(users=[u.model_dump(mode="json") for u in user_directory().list_users()])


@app.route("/users", methods=["POST"])
@admin_required
def add_user():
    data = request.get_json(silent=True) or {}
    user = user_directory().add_user(data.get("email"), data.get("name"),
                                     bool(data.get("isAdmin")))
    return jsonify(message="User added successfully", user=user.model_dump(mode="json")), 201


@app.route("/users", methods=["DELETE"])
@admin_required
def remove_user():
    data = request.get_json(silent=True) or {}
    email = str(data.get("email") or request.args.get("email") or "").strip().lower()
    if not email:
        raise ValidationError("Email is required")
    if email == get_current_email():
        raise ValidationError("You cannot remove yourself")
    if not user_directory().remove_user(email):
        raise NotFoundError("User not found")
    return jsonify(message="User removed successfully")


@app.route("/signup", methods=["POST"])
def signup():
    data = request.get_json(silent=True) or {}
    signup_request = signup_requests().create(data.get("name"), data.get("email"))
    return jsonify(message="Signup request submitted successfully",
                   requestId=signup_request.id), 201


@app.route("/signup-requests", methods=["GET"])
@admin_required
def list_signup_requests():
    return jsonify(requests=[r.model_dump(mode="json") for r in signup_requests().list()])


@app.route("/signup-requests", methods=["POST"])
@admin_required
def process_signup_request():
    data = request.get_json(silent=True) or {}
    action, request_id = data.get("action"), data.get("requestId")
    if not request_id:
        raise ValidationError("Request ID and action are required")

    requests = signup_requests()
    if action == "approve":
        processed = requests.approve(request_id, get_current_email(), data.get("notes"))
    elif action == "reject":
        processed = requests.reject(request_id, get_current_email(), data.get("notes"))
    else:
        raise ValidationError("Invalid action")
    return jsonify(message=f"Request {processed.status} successfully",
                   request=processed.model_dump(mode="json"))


# ------------- feedback -------------

@app.route("/feedback", methods=["POST"])
def submit_feedback():
    data = request.get_json(silent=True) or {}
    entry = feedback_inbox().submit(
        data.get("type"), data.get("area"), data.get("subject"), data.get("description"),
        user_email=get_current_email() or data.get("userEmail"),
        user_name=session.get("user_name") or data.get("userName"),
    )
    return jsonify(message="Feedback submitted successfully", id=entry.id)


@app.route("/feedback", methods=["GET"])
@admin_required
def list_feedback():
    entries = feedback_inbox().list()
    return jsonify(feedback=[f.model_dump(mode="json", by_alias=True) for f in entries])


@app.route("/feedback", methods=["PUT"])
@admin_required
def archive_feedback():
    data = request.get_json(silent=True) or {}
    if data.get("action") != "archive" or not data.get("feedbackId"):
        raise ValidationError("Invalid request")
    feedback_inbox().archive(data["feedbackId"])
    return jsonify(message="Feedback archived successfully")


# ------------- works -------------

@app.route("/works", methods=["GET"])
@login_required
def list_works():
    shelf = bookshelf_for(get_current_email())
    return jsonify(
        books=[w.to_record() for w in shelf.works("book")],
        quickstories=[w.to_record() for w in shelf.works("quickstory")],
    )


@app.route("/works", methods=["POST"])
@login_required
def create_work():
    data = request.get_json(silent=True) or {}
    kind = data.get("kind", "book")
    check_work_kind(kind)
    email = get_current_email()
    work = bookshelf_for(email).create_work(data.get("title"), kind)
    preferences().add_recent(email, kind, work.id)
    return jsonify(work=work.to_record()), 201


@app.route("/works/<kind>/<int:work_id>", methods=["DELETE"])
@login_required
def delete_work(kind, work_id):
    check_work_kind(kind)
    bookshelf_for(get_current_email()).delete_work(kind, work_id)
    return jsonify(message="Deleted")


@app.route("/works/<kind>/<int:work_id>/activity")
@login_required
def work_activity(kind, work_id):
    check_work_kind(kind)
    shelf = bookshelf_for(get_current_email())
    shelf.get(kind, work_id)
    log = ActivityLog(shelf.store, kind, work_id, shelf.user_key)
    return jsonify(activity=[e.to_record() for e in log.entries()])


@app.route("/works/<kind>/<int:work_id>/export")
@login_required
def export_work(kind, work_id):
    check_work_kind(kind)
    authoring = AuthoringSession(bookshelf_for(get_current_email()), kind, work_id)
    filename, data = authoring.export_work()
    return send_file(io.BytesIO(data), mimetype=DOCX_MIMETYPE, as_attachment=True,
                     download_name=filename)


@app.route("/works/<kind>/<int:work_id>/<content_kind>")
@login_required
def work_content(kind, work_id, content_kind):
    check_work_kind(kind)
    if content_kind not in CONTENT_KINDS or content_kind == "recent-activity":
        raise NotFoundError(f"Unknown content kind: {content_kind}")
    shelf = bookshelf_for(get_current_email())
    shelf.get(kind, work_id)
    items = shelf.store.load(content_kind, work_id, shelf.user_key, kind)
    return jsonify(items=[i.to_record() for i in items])


# ------------- plan -------------

@app.route("/plan", methods=["GET"])
@login_required
def get_plan():
    email = get_current_email()
    prefs = preferences().load(email)
    entitlements = preferences().entitlements(email)
    limits = {kind: entitlements.limit_for(kind) for kind in FREE_LIMITS}
    return jsonify(plan=prefs.plan.to_record(), paid=entitlements.paid, limits=limits)


@app.route("/plan", methods=["PUT"])
@login_required
def change_plan():
    """
    Users may cancel their own plan. Upgrades, renewals and changes to other
    accounts are made by an admin once payment has been confirmed.
    """
    data = request.get_json(silent=True) or {}
    action = data.get("action")
    current = get_current_email()
    email = str(data.get("email") or current).strip().lower()
    if (action != "cancel" or email != current) and not user_directory().is_admin(current):
        return jsonify(error="Admin access required"), 403

    store = preferences()
    if action == "upgrade":
        plan = store.upgrade(email, data.get("planType", "paid"))
    elif action == "cancel":
        plan = store.cancel(email)
    elif action == "renew":
        plan = store.renew(email)
    else:
        raise ValidationError("Invalid action")
    logger.info(f"Plan {action} for {email} by {current}")
    return jsonify(plan=plan.to_record())


# ------------- entry point -------------

if __name__ == "__main__":
    logconf.init(app.config["LOG_LEVEL"], app.config["LOG_DIR"])
    with app.app_context():
        init_db()
    app.run(debug=True)
