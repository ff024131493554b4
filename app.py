import io
import json
import logging
import os
from datetime import date
from pathlib import Path

from flask import Flask, Response, request, redirect, url_for, send_file, jsonify
from flask_login import LoginManager, login_user, login_required, logout_user, current_user
from werkzeug.exceptions import HTTPException
from cryptography.fernet import Fernet

from auth import (
    SessionUser, capability_required, capabilities_for,
    VIEW_DOCUMENTS, DOWNLOAD_DOCUMENTS, FORWARD_DOCUMENTS, UPLOAD_DOCUMENTS, DELETE_DOCUMENTS,
    MANAGE_CATEGORIES, MANAGE_USERS, VIEW_LOGS, MANAGE_BRANDING, MANAGE_BACKUPS,
)
from backup import create_backup, restore_backup
from config import Config, INSTANCE_DIR
from errors import DocuSafeError, NotFoundError, RestoreError, ValidationError
from files import read_upload
from forwarding import draft_forward_email
from models import db
from utils import (
    generate_csrf_token, validate_csrf_token, request_csrf_token, request_data, read_logo_upload,
)
from workspace import Workspace, get_workspace

logger = logging.getLogger(__name__)

SEARCH_FILTERS = ("title", "category", "date", "keywords")


def _ensure_encryption_key(app):
    # Ensure ENCRYPTION_KEY is available; generate and persist to instance if missing
    enc_key = app.config.get("ENCRYPTION_KEY") or os.environ.get("ENCRYPTION_KEY")
    if not enc_key:
        INSTANCE_DIR.mkdir(exist_ok=True)
        key_path = INSTANCE_DIR / "fernet.key"
        if key_path.exists():
            enc_key = key_path.read_text().strip()
        else:
            enc_key = Fernet.generate_key().decode("utf-8")
            key_path.write_text(enc_key)
            logger.info("Generated new encryption key at %s", key_path)
    app.config["ENCRYPTION_KEY"] = enc_key


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))

    _ensure_encryption_key(app)

    # Init extensions
    db.init_app(app)
    login_manager = LoginManager(app)

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///"):
        Path(app.config["SQLALCHEMY_DATABASE_URI"][len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    with app.app_context():
        db.create_all()

    app.extensions["docusafe"] = Workspace.from_config(app.config)

    @login_manager.user_loader
    def load_user(user_id):
        # Only the user held in the store session is signed in
        profile = get_workspace().session.current_user()
        if profile and profile["id"] == user_id:
            return SessionUser(profile)
        return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify(error="You must be logged in."), 401

    @app.before_request
    def check_csrf():
        if request.method != "POST" or not app.config.get("CSRF_ENABLED", True):
            return None
        if not validate_csrf_token(request_csrf_token()):
            return jsonify(error="Security check failed. Please try again."), 400
        return None

    @app.errorhandler(DocuSafeError)
    def handle_docusafe_error(e):
        logger.debug("%s: %s", type(e).__name__, e.message)
        return jsonify(error=e.message), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        if e.code is None or e.code < 400:
            return e
        return jsonify(error=e.description), e.code

    # Security headers (basic)
    @app.after_request
    def set_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "SAMEORIGIN"
        resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Store state changes on every write; views must always re-read it
        if resp.mimetype == "application/json":
            resp.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return resp

    # Session

    @app.route("/")
    def index():
        if current_user.is_authenticated:
            return redirect(url_for("dashboard"))
        return jsonify(branding=get_workspace().branding.get())

    @app.route("/csrf-token")
    def csrf_token():
        return jsonify(csrf_token=generate_csrf_token())

    @app.route("/login", methods=["POST"])
    def login():
        data = request_data()
        profile = get_workspace().session.login(data.get("email") or "", data.get("password") or "")
        if profile is None:
            return jsonify(error="Invalid credentials."), 401
        login_user(SessionUser(profile))
        return jsonify(user=profile)

    @app.route("/logout", methods=["POST"])
    @login_required
    def logout():
        get_workspace().session.logout()
        logout_user()
        return jsonify(ok=True)

    @app.route("/session")
    @login_required
    def session_info():
        return jsonify(user=current_user.profile, capabilities=sorted(capabilities_for(current_user.role)))

    # Documents

    @app.route("/dashboard")
    @capability_required(VIEW_DOCUMENTS)
    def dashboard():
        ws = get_workspace()
        filters = {name: request.args.get(name, "") for name in ("title", "category", "date")}
        docs = ws.documents.search(request.args.get("q", ""), filters)
        tab = request.args.get("tab", "all")
        return jsonify(
            documents=ws.documents.in_tab(docs, tab),
            tab=tab,
            totalDocuments=len(ws.documents.list()),
            categoryCounts=ws.documents.category_counts(),
            categories=ws.categories.list(),
            branding=ws.branding.get(),
            canUpload=current_user.can(UPLOAD_DOCUMENTS),
            isAdmin=current_user.can(MANAGE_USERS),
        )

    @app.route("/documents", methods=["POST"])
    @capability_required(UPLOAD_DOCUMENTS)
    def upload_document():
        ws = get_workspace()
        fields = request.form.to_dict()
        upload = None
        if not fields.get("fileUrl"):
            upload = read_upload(request.files.get("file"), app.config["ALLOWED_EXTENSIONS"])
        doc = ws.upload_document(fields, upload)
        return jsonify(document=doc), 201

    @app.route("/documents/<doc_id>/delete", methods=["POST"])
    @capability_required(DELETE_DOCUMENTS)
    def delete_document(doc_id):
        get_workspace().delete_document(doc_id)
        return jsonify(deleted=[doc_id])

    @app.route("/documents/bulk-delete", methods=["POST"])
    @capability_required(DELETE_DOCUMENTS)
    def bulk_delete_documents():
        if request.is_json:
            body = request.get_json(silent=True)
            ids = body.get("ids", []) if isinstance(body, dict) else body
        else:
            ids = request.form.getlist("ids")
        removed = get_workspace().delete_documents(ids)
        return jsonify(deleted=removed)

    def _send_document(doc_id, inline):
        ws = get_workspace()
        doc = ws.documents.get(doc_id)
        stored = ws.files.get(doc_id)
        if stored is not None:
            ws.activity.append("Document Downloaded", {"documentId": doc["id"], "documentTitle": doc["title"]})
            return send_file(
                io.BytesIO(stored.data),
                mimetype=stored.mimetype,
                as_attachment=not (inline and stored.previewable),
                download_name=doc.get("fileName") or stored.filename,
            )
        if doc.get("fileUrl"):
            ws.activity.append("Document Downloaded", {"documentId": doc["id"], "documentTitle": doc["title"]})
            return redirect(doc["fileUrl"])
        if inline:
            return jsonify(document=doc)
        raise NotFoundError("This document does not have a file available for download.")

    @app.route("/documents/<doc_id>/download")
    @capability_required(DOWNLOAD_DOCUMENTS)
    def download_document(doc_id):
        return _send_document(doc_id, inline=False)

    @app.route("/documents/<doc_id>/view")
    @capability_required(DOWNLOAD_DOCUMENTS)
    def view_document(doc_id):
        return _send_document(doc_id, inline=True)

    @app.route("/documents/<doc_id>/forward", methods=["POST"])
    @capability_required(FORWARD_DOCUMENTS)
    def forward_document(doc_id):
        ws = get_workspace()
        doc = ws.documents.get(doc_id)
        data = request_data()
        draft = draft_forward_email(
            doc,
            data.get("recipientEmail"),
            data.get("message"),
            sender_name=current_user.profile.get("name"),
        )
        ws.activity.append("Document Forwarded", {"documentId": doc_id, "recipientEmail": draft["recipientEmail"]})
        return jsonify(draft)

    @app.route("/search")
    @capability_required(VIEW_DOCUMENTS)
    def search():
        ws = get_workspace()
        filters = {name: request.args.get(name, "") for name in SEARCH_FILTERS}
        if filters["category"] == "all":
            filters["category"] = ""
        results = ws.documents.search(request.args.get("q", ""), filters)
        return jsonify(documents=results, filters=filters, categories=ws.categories.list())

    # Categories

    @app.route("/categories")
    @capability_required(VIEW_DOCUMENTS)
    def categories():
        ws = get_workspace()
        return jsonify(categories=ws.categories.list(), counts=ws.documents.category_counts())

    @app.route("/categories", methods=["POST"])
    @capability_required(MANAGE_CATEGORIES)
    def add_category():
        ws = get_workspace()
        name = (request_data().get("name") or "").strip()
        categories = ws.categories.add(name)
        ws.activity.append("Category Added", {"category": name})
        return jsonify(categories=categories), 201

    @app.route("/categories/<name>/delete", methods=["POST"])
    @capability_required(MANAGE_CATEGORIES)
    def remove_category(name):
        ws = get_workspace()
        categories = ws.categories.remove(name)
        ws.activity.append("Category Removed", {"category": name})
        return jsonify(categories=categories)

    # Settings

    @app.route("/branding")
    def branding():
        return jsonify(branding=get_workspace().branding.get())

    @app.route("/settings/branding", methods=["POST"])
    @capability_required(MANAGE_BRANDING)
    def update_branding():
        ws = get_workspace()
        data = request_data()
        partial = {"departmentName": data.get("departmentName")}
        if request.files.get("logo"):
            partial["logoUrl"] = read_logo_upload(request.files["logo"])
        elif "logoUrl" in data:
            partial["logoUrl"] = data["logoUrl"]
        settings = ws.branding.merge(partial)
        ws.activity.append("Branding Updated", {"departmentName": settings["departmentName"]})
        return jsonify(branding=settings)

    @app.route("/settings/password", methods=["POST"])
    @login_required
    def change_password():
        ws = get_workspace()
        data = request_data()
        new_password = data.get("newPassword") or ""
        if new_password != (data.get("confirmPassword") or ""):
            raise ValidationError("The new passwords do not match.")
        ws.session.change_own_password(data.get("currentPassword") or "", new_password)
        ws.activity.append("Password Changed", {"userId": current_user.id})
        return jsonify(ok=True)

    @app.route("/settings/backup")
    @capability_required(MANAGE_BACKUPS)
    def download_backup():
        ws = get_workspace()
        ws.activity.append("Backup Created")
        payload = json.dumps(create_backup(ws), indent=2)
        filename = f"docusafe-backup-{date.today().isoformat()}.json"
        return Response(
            payload,
            mimetype="application/json",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    @app.route("/settings/restore", methods=["POST"])
    @capability_required(MANAGE_BACKUPS)
    def restore():
        ws = get_workspace()
        upload = request.files.get("backup")
        if upload is not None:
            try:
                payload = json.loads(upload.read())
            except ValueError:
                raise RestoreError("Invalid backup file format.")
        else:
            payload = request.get_json(silent=True)
        data = restore_backup(ws, payload)
        ws.activity.append("Backup Restored")
        return jsonify(restored={section: len(value) for section, value in data.items()})

    # Users

    @app.route("/users")
    @capability_required(MANAGE_USERS)
    def users():
        return jsonify(users=get_workspace().users.list())

    @app.route("/users", methods=["POST"])
    @capability_required(MANAGE_USERS)
    def add_user():
        ws = get_workspace()
        data = request_data()
        user = ws.users.add(data.get("name"), data.get("email"), data.get("password"), data.get("role") or "viewer")
        ws.activity.append("User Added", {"userId": user["id"], "email": user["email"], "role": user["role"]})
        return jsonify(user=user), 201

    @app.route("/users/<user_id>/delete", methods=["POST"])
    @capability_required(MANAGE_USERS)
    def remove_user(user_id):
        ws = get_workspace()
        user = ws.users.remove(user_id, acting_user_id=current_user.id)
        ws.activity.append("User Removed", {"userId": user_id, "email": user["email"]})
        return jsonify(user=user)

    @app.route("/users/<user_id>/status", methods=["POST"])
    @capability_required(MANAGE_USERS)
    def toggle_user_status(user_id):
        ws = get_workspace()
        user = ws.users.toggle_status(user_id, acting_user_id=current_user.id)
        ws.activity.append("User Status Changed", {"userId": user_id, "status": user["status"]})
        return jsonify(user=user)

    @app.route("/users/<user_id>/password", methods=["POST"])
    @capability_required(MANAGE_USERS)
    def reset_user_password(user_id):
        ws = get_workspace()
        user = ws.users.change_password(user_id, request_data().get("newPassword") or "")
        ws.activity.append("Password Reset", {"userId": user_id})
        return jsonify(user=user)

    # Activity log

    @app.route("/logs")
    @capability_required(VIEW_LOGS)
    def logs():
        return jsonify(logs=get_workspace().activity.entries())

    @app.route("/logs/clear", methods=["POST"])
    @capability_required(VIEW_LOGS)
    def clear_logs():
        get_workspace().activity.clear()
        return jsonify(logs=[])

    # Sync

    @app.route("/events")
    @login_required
    def events():
        keys = [k for k in request.args.get("keys", "").split(",") if k]
        changes = get_workspace().channel.listen(keys, timeout=app.config.get("EVENTS_KEEPALIVE", 15))

        def stream():
            for change in changes:
                if change is None:
                    yield ": keep-alive\n\n"
                else:
                    yield f"event: change\ndata: {json.dumps(change.to_dict())}\n\n"

        response = Response(stream(), mimetype="text/event-stream", headers={"Cache-Control": "no-cache"})
        response.call_on_close(changes.close)
        return response

    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5005))
    create_app().run(host="0.0.0.0", port=port, threaded=True)
