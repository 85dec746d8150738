"""
Flask application for the GNOA membership portal.
Public application form, admin dashboard, member lists, PDF export and user management,
all backed by Supabase.
"""

from flask import Flask, render_template, request, redirect, url_for, session, flash, jsonify, send_file
import os
import io
import base64
import logging
import time
from datetime import datetime
from functools import wraps
from typing import Optional, Dict, Any

from dotenv import load_dotenv

from auth.events import AuthEvent, auth_events, enforce_account_lock
from auth.supabase_client import get_supabase_client, sign_in, sign_out
from auth.user_admin import UserAdminClient, UserAdminError, filter_users
from membership.activity_log import get_user_logs
from membership.config import get_settings
from membership.export_pdf import render_membership_form, export_filename
from membership.filters import MemberFilters
from membership.mapping import map_record_to_member, prefill_from_record, search_members_in_memory
from membership.reference_data import get_reference_store
from membership.schema import MemberStatus, UserRole
from membership.selection import RECORD_COLUMNS, SelectionEngine
from membership.supabase_db import (
    init_database,
    insert_member_record,
    get_member_by_id,
    search_members,
    set_member_status,
    delete_member_record,
    get_status_counts,
)
from membership.validate import validate_application, describe_problems

# Load environment variables from .env file (for local development)
load_dotenv()

app = Flask(__name__)
app.secret_key = os.environ.get("FLASK_SECRET_KEY", os.urandom(32))
app.logger.setLevel(logging.INFO)
app.config["MAX_CONTENT_LENGTH"] = 4 * 1024 * 1024  # signatures travel as data URLs

# Verify Supabase is reachable (logs a warning otherwise)
init_database()

SESSION_RECHECK_SECONDS = 60
LOCKED_MESSAGE = "Administrator has locked this account. Please contact support."
REQUIRED_MESSAGE = "Please fill in all required fields marked with *"
SUBMIT_FAILED_MESSAGE = "Failed to submit. Please check your connection or try again."

# form_responses columns accepted from the application forms
FORM_FIELDS = [
    "name_in_full", "email", "nic_number", "dob", "phone_number_personal", "whatsapp_number",
    "gender", "marital_status", "official_address", "personal_address",
    "category", "designation", "province_work_place", "district_work_place", "rdhs",
    "type_of_organization_hospital", "first_appointment_date", "employment_number_salary_number",
    "college_of_nursing_university", "nursing_council_registration_number",
    "educational_qualifications", "specialties_special_trainings", "signature",
]

OPTION_SETS = ("categories", "provinces", "districts", "institutions", "designations")


def _force_sign_out() -> None:
    sign_out(get_supabase_client(access_token=session.get("supabase_access_token")))
    session.clear()
    flash(LOCKED_MESSAGE, "error")


# Locked accounts are signed out whenever an auth event reaches them.
lock_subscription = auth_events.subscribe(enforce_account_lock(_force_sign_out))


def require_auth() -> bool:
    """Check if user is authenticated."""
    return bool(session.get("user_id"))


def is_admin() -> bool:
    return (session.get("user_metadata") or {}).get("role") == UserRole.ADMIN.value


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not require_auth():
            return redirect(url_for("login"))
        return view(*args, **kwargs)
    return wrapped


def admin_required(view):
    """Non-admins are sent back to the dashboard rather than shown an error page."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not require_auth():
            return redirect(url_for("login"))
        if not is_admin():
            flash("Only administrators can manage users.", "error")
            return redirect(url_for("dashboard"))
        return view(*args, **kwargs)
    return wrapped


def session_payload() -> Dict[str, Any]:
    return {
        "user_id": session.get("user_id"),
        "email": session.get("user_email"),
        "user_metadata": session.get("user_metadata") or {},
    }


def store_user_in_session(user, access_token: Optional[str] = None, refresh_token: Optional[str] = None) -> None:
    session["user_id"] = user.id
    session["user_email"] = user.email
    session["user_metadata"] = dict(user.user_metadata or {})
    session["user_checked_at"] = time.time()
    if access_token:
        session["supabase_access_token"] = access_token
    if refresh_token:
        session["supabase_refresh_token"] = refresh_token


def refresh_session_user() -> None:
    """
    Re-read the signed-in user's metadata from Supabase and announce it.
    A rejected access token is exchanged for a new one using the refresh token.
    """
    token = session.get("supabase_access_token")
    supabase = get_supabase_client()
    if not supabase or not token:
        return
    try:
        response = supabase.auth.get_user(token)
    except Exception as e:
        app.logger.info(f"Access token rejected, refreshing session: {e}")
        refresh_access_token(supabase)
        return
    if response and response.user:
        store_user_in_session(response.user)
        auth_events.publish(AuthEvent.USER_UPDATED, session_payload())


def refresh_access_token(supabase) -> None:
    refresh_token = session.get("supabase_refresh_token")
    session["user_checked_at"] = time.time()
    if not refresh_token:
        return
    try:
        response = supabase.auth.refresh_session(refresh_token)
    except Exception as e:
        app.logger.warning(f"Could not refresh session: {e}")
        return
    if response and response.user and response.session:
        store_user_in_session(response.user, response.session.access_token, response.session.refresh_token)
        auth_events.publish(AuthEvent.TOKEN_REFRESHED, session_payload())


@app.before_request
def check_account_state():
    if not require_auth():
        return None
    if time.time() - session.get("user_checked_at", 0) < SESSION_RECHECK_SECONDS:
        return None
    refresh_session_user()
    if not require_auth():
        return redirect(url_for("login"))
    return None


def access_token() -> Optional[str]:
    return session.get("supabase_access_token")


def build_selection(values: Dict[str, Any]) -> SelectionEngine:
    """Selection engine seeded from form column values."""
    return SelectionEngine.from_record(get_reference_store(), values)


def collect_form() -> Dict[str, Any]:
    form = {field: request.form.get(field, "") for field in FORM_FIELDS}
    upload = request.files.get("signature_file")
    if upload and upload.filename:
        encoded = base64.b64encode(upload.read()).decode("ascii")
        form["signature"] = f"data:{upload.mimetype or 'image/png'};base64,{encoded}"
    return form


def submit_application(form: Dict[str, Any], engine: SelectionEngine) -> Optional[str]:
    """
    Validate and insert an application.

    Returns:
        None on success, otherwise the message to show
    """
    # Keep the cleared values from the cascade, not what the browser posted.
    for field, column in RECORD_COLUMNS.items():
        form[column] = getattr(engine.state, field)

    record, problems = validate_application(form, engine.category)
    if problems:
        app.logger.info(f"Application rejected, problems: {problems}")
        return f"{REQUIRED_MESSAGE} ({describe_problems(problems)})"

    out_of_scope = engine.validate()
    if out_of_scope:
        labels = describe_problems([RECORD_COLUMNS[f] for f in out_of_scope])
        return f"Please re-select: {labels}"

    record.timestamp = datetime.now().isoformat()
    result = insert_member_record(record, access_token=access_token())
    if not result["success"]:
        return SUBMIT_FAILED_MESSAGE
    return None


@app.route("/")
def index():
    if not require_auth():
        return redirect(url_for("login"))
    return redirect(url_for("dashboard"))


@app.route("/login", methods=["GET", "POST"])
def login():
    """Email/password login."""
    if require_auth():
        return redirect(url_for("dashboard"))

    supabase = get_supabase_client()
    if not supabase:
        flash("Authentication is not configured. Please set SUPABASE_URL and SUPABASE_ANON_KEY.", "error")
        return render_template("login.html")

    if request.method == "POST":
        email = request.form.get("email", "").strip()
        password = request.form.get("password", "")

        if not email or not password:
            flash("Please enter both email and password.", "error")
            return render_template("login.html", email=email)

        try:
            response = sign_in(supabase, email, password)
        except Exception as e:
            app.logger.warning(f"Login failed for {email}: {e}")
            flash("Invalid email or password.", "error")
            return render_template("login.html", email=email)

        if not response or not response.user or not response.session:
            flash("Invalid email or password.", "error")
            return render_template("login.html", email=email)

        store_user_in_session(response.user, response.session.access_token, response.session.refresh_token)
        auth_events.publish(AuthEvent.SIGNED_IN, session_payload())
        if not require_auth():
            return render_template("login.html", email=email)

        app.logger.info(f"User signed in: {email}")
        return redirect(url_for("dashboard"))

    return render_template("login.html")


@app.route("/logout")
def logout():
    """Logout user."""
    payload = session_payload()
    sign_out(get_supabase_client(access_token=access_token()))
    session.clear()
    auth_events.publish(AuthEvent.SIGNED_OUT, payload)
    flash("Logged out successfully!", "success")
    return redirect(url_for("login"))


@app.route("/form", methods=["GET", "POST"])
def public_form():
    """Public membership application form."""
    if request.method == "POST":
        # Bots fill the hidden field; report success without saving.
        if request.form.get("website_url"):
            flash("Application submitted successfully!", "success")
            return redirect(url_for("public_form"))

        form = collect_form()
        engine = build_selection(form)
        error = submit_application(form, engine)
        if error:
            flash(error, "error")
            return render_template("application_form.html", form=form, selection=engine.snapshot(),
                                   public=True), 400
        flash("Application submitted successfully!", "success")
        return redirect(url_for("public_form"))

    engine = build_selection({})
    return render_template("application_form.html", form={}, selection=engine.snapshot(), public=True)


@app.route("/api/options/<option_set>")
def api_options(option_set: str):
    """
    Option list for one cascading field.
    The caller's generation number is echoed so it can drop responses to superseded requests.
    """
    if option_set not in OPTION_SETS:
        return jsonify({"error": f"Unknown option set: {option_set}"}), 404

    values = {
        "category": request.args.get("category", ""),
        "province_work_place": request.args.get("province", ""),
        "district_work_place": request.args.get("district", ""),
    }
    engine = build_selection(values)
    snapshot = engine.snapshot()
    return jsonify({
        "option_set": option_set,
        "options": snapshot[option_set],
        "designation_mode": snapshot["designation_mode"],
        "visible": snapshot["visible"],
        "generation": request.args.get("generation", type=int),
    })


@app.route("/dashboard")
@login_required
def dashboard():
    hour = datetime.now().hour
    if hour < 12:
        greeting = "Good morning"
    elif hour < 17:
        greeting = "Good afternoon"
    elif hour < 21:
        greeting = "Good evening"
    else:
        greeting = "Good night"

    metadata = session.get("user_metadata") or {}
    name = metadata.get("full_name") or metadata.get("name") or (session.get("user_email") or "User").split("@")[0]
    return render_template(
        "dashboard.html",
        greeting=greeting,
        user_name=name.split(" ")[0],
        today=datetime.now().strftime("%A, %B %d, %Y"),
        counts=get_status_counts(access_token=access_token()),
        is_admin=is_admin(),
    )


@app.route("/applied")
@login_required
def applied_members():
    """
    Applications list with load-more paging. `pages` is the number of pages loaded;
    changing the status or search term drops it back to one page.
    """
    settings = get_settings()
    status = request.args.get("status", "all")
    term = request.args.get("q", "")
    pages = max(1, request.args.get("pages", 1, type=int))

    filters = MemberFilters(status="" if status == "all" else status)
    result = search_members(filters, settings.applications_page_size * pages, access_token=access_token())
    if result.error:
        flash(f"Error loading applications: {result.error}", "error")

    members = [map_record_to_member(row) for row in result.records]
    shown = search_members_in_memory(members, term)
    return render_template(
        "applied.html",
        members=shown,
        loaded_count=len(members),
        has_more=result.has_more,
        pages=pages,
        status=status,
        q=term,
        statuses=[s.value for s in MemberStatus],
    )


@app.route("/applied/<member_id>/verify")
@login_required
def verify_member(member_id):
    """Open the admin form pre-filled from an application (amend and resubmit)."""
    return redirect(url_for("add_member", source=member_id))


@app.route("/add", methods=["GET", "POST"])
@login_required
def add_member():
    if request.method == "POST":
        form = collect_form()
        engine = build_selection(form)
        error = submit_application(form, engine)
        if error:
            flash(error, "error")
            return render_template("application_form.html", form=form, selection=engine.snapshot(),
                                   public=False), 400
        flash("Member added successfully!", "success")
        return redirect(url_for("add_member"))

    form: Dict[str, Any] = {}
    source_id = request.args.get("source")
    if source_id:
        row = get_member_by_id(source_id, access_token=access_token())
        if row:
            form = prefill_from_record(row)
        else:
            flash("Application not found.", "error")
    engine = build_selection(form)
    return render_template("application_form.html", form=form, selection=engine.snapshot(), public=False)


@app.route("/members/<member_id>/status", methods=["POST"])
@login_required
def update_status(member_id):
    status = MemberStatus.normalize(request.form.get("status") or (request.get_json(silent=True) or {}).get("status"))
    if set_member_status(member_id, status, access_token=access_token()):
        flash(f"Status changed to {status.value}.", "success")
        ok = True
    else:
        flash("Failed to update status.", "error")
        ok = False
    if request.is_json:
        return jsonify({"success": ok, "status": status.value}), (200 if ok else 500)
    return redirect(request.referrer or url_for("applied_members"))


@app.route("/members/<member_id>/delete", methods=["POST"])
@login_required
def delete_member(member_id):
    if delete_member_record(member_id, access_token=access_token()):
        flash("Member deleted.", "success")
    else:
        flash("Failed to delete member.", "error")
    return redirect(request.referrer or url_for("applied_members"))


@app.route("/members/<member_id>/pdf")
@login_required
def member_pdf(member_id):
    row = get_member_by_id(member_id, access_token=access_token())
    if not row:
        flash("Member not found.", "error")
        return redirect(url_for("applied_members"))

    pdf_bytes = render_membership_form(row)
    return send_file(
        io.BytesIO(pdf_bytes),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=export_filename(row),
    )


def member_filters_from_args(args) -> MemberFilters:
    """
    Filters for /ex. The search form sends the filters it was rendered with as
    was_* fields (always including was_page); editing any of them returns to page 1.
    Plain links carry only the filters and page.
    """
    requested = MemberFilters.from_args(args)
    previous = {key[len("was_"):]: value for key, value in args.items() if key.startswith("was_")}
    if not previous:
        return requested
    return MemberFilters.from_args(previous).changed(**requested.filter_values())


@app.route("/ex")
@login_required
def members():
    """Member search with the full filter set, server-side paging."""
    settings = get_settings()
    filters = member_filters_from_args(request.args)

    # Location filters follow the same cascade as the form.
    engine = build_selection({
        "category": filters.category,
        "province_work_place": filters.province,
        "district_work_place": filters.district,
        "type_of_organization_hospital": filters.institution,
    })
    filters = filters.model_copy(update={
        "province": engine.state.province,
        "district": engine.state.district,
        "institution": engine.state.institution,
    })

    result = search_members(filters, settings.members_page_size, access_token=access_token(),
                            category=engine.category)
    if result.error:
        flash(f"Error loading members: {result.error}", "error")

    return render_template(
        "members.html",
        page=result,
        members=[map_record_to_member(row) for row in result.records],
        filters=filters,
        filtered=not filters.is_empty(),
        query_args=filters.query_args(),
        selection=engine.snapshot(),
        statuses=[s.value for s in MemberStatus],
    )


# --- User management ---------------------------------------------------------

def user_admin_client() -> UserAdminClient:
    return UserAdminClient(access_token() or "", timeout=get_settings().http_timeout_seconds)


def find_user(client: UserAdminClient, user_id: str):
    user = next((u for u in client.list_users() if u.id == user_id), None)
    if user is None:
        raise UserAdminError("User not found.")
    return user


@app.route("/manage")
@admin_required
def manage_users():
    term = request.args.get("q", "")
    users = []
    try:
        users = user_admin_client().list_users()
    except UserAdminError as e:
        flash(str(e), "error")
    return render_template("users.html", users=filter_users(users, term), q=term,
                           roles=[r.value for r in UserRole])


@app.route("/manage/create", methods=["POST"])
@admin_required
def create_user():
    try:
        role = UserRole(request.form.get("role", UserRole.USER.value))
        user_admin_client().create_user(
            email=request.form.get("email", "").strip(),
            password=request.form.get("password", ""),
            name=request.form.get("name", "").strip(),
            role=role,
        )
        flash("User created successfully.", "success")
    except ValueError:
        flash("Unknown role.", "error")
    except UserAdminError as e:
        flash(str(e), "error")
    return redirect(url_for("manage_users"))


@app.route("/manage/<user_id>/role", methods=["POST"])
@admin_required
def change_role(user_id):
    try:
        user_admin_client().update_role(user_id, UserRole(request.form.get("role", "")))
        flash("User role updated successfully.", "success")
    except ValueError:
        flash("Unknown role.", "error")
    except UserAdminError as e:
        flash(str(e), "error")
    return redirect(url_for("manage_users"))


@app.route("/manage/<user_id>/lock", methods=["POST"])
@admin_required
def toggle_lock(user_id):
    try:
        client = user_admin_client()
        user = find_user(client, user_id)
        locked = not user.is_locked
        client.set_locked(user, locked)
        flash("Account locked successfully." if locked else "Account unlocked successfully.", "success")
    except UserAdminError as e:
        flash(str(e), "error")
    return redirect(url_for("manage_users"))


@app.route("/manage/<user_id>/delete", methods=["POST"])
@admin_required
def delete_user(user_id):
    if user_id == session.get("user_id"):
        flash("You cannot delete your own account.", "error")
        return redirect(url_for("manage_users"))
    try:
        user_admin_client().delete_user(user_id)
        flash("User deleted successfully.", "success")
    except UserAdminError as e:
        flash(str(e), "error")
    return redirect(url_for("manage_users"))


@app.route("/manage/<user_id>/logs")
@admin_required
def user_logs(user_id):
    logs = get_user_logs(user_id, access_token=access_token())
    return render_template("user_logs.html", logs=logs, user_id=user_id)


@app.route("/profile", methods=["GET", "POST"])
@login_required
def profile():
    if request.method == "POST":
        action = request.form.get("action")
        client = user_admin_client()
        try:
            if action == "name":
                new_name = request.form.get("name", "").strip()
                if not new_name:
                    raise UserAdminError("Name is required.")
                user = find_user(client, session["user_id"])
                merged = client.update_metadata(user, {"name": new_name})
                session["user_metadata"] = {**(session.get("user_metadata") or {}), **merged.model_dump(mode="json")}
                auth_events.publish(AuthEvent.USER_UPDATED, session_payload())
                flash("Name updated successfully!", "success")
            elif action == "password":
                password = request.form.get("password", "")
                if password != request.form.get("password_confirm", ""):
                    raise UserAdminError("Passwords do not match.")
                client.change_password(session["user_id"], password)
                flash("Password changed successfully! You may need to log in again.", "success")
            else:
                flash("Unknown action.", "error")
        except UserAdminError as e:
            flash(str(e), "error")
        return redirect(url_for("profile"))

    metadata = session.get("user_metadata") or {}
    return render_template(
        "profile.html",
        email=session.get("user_email"),
        name=metadata.get("name") or "",
        role=(metadata.get("role") or UserRole.USER.value).capitalize(),
    )


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=os.environ.get("FLASK_DEBUG") == "1")
