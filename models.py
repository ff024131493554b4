from datetime import datetime
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

class StoreEntry(db.Model):
    """One persisted Store key holding its JSON-encoded value."""

    key = db.Column(db.String(255), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class FileBlob(db.Model):
    id = db.Column(db.String(64), primary_key=True)
    filename = db.Column(db.String(255), nullable=False)
    mimetype = db.Column(db.String(255), nullable=False, default="application/octet-stream")
    size = db.Column(db.Integer, nullable=False, default=0)
    enc_content = db.Column(db.LargeBinary, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
