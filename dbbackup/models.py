from datetime import datetime
from dbbackup import db


class StoredCredential(db.Model):
    """Database login kept for unattended backups"""
    __tablename__ = 'stored_credentials'

    id = db.Column(db.Integer, primary_key=True)
    target = db.Column(db.String(255), unique=True, nullable=False)
    username = db.Column(db.String(255), nullable=False)
    password_encrypted = db.Column(db.Text, nullable=False)  # Fernet token, see CredentialCipher
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<StoredCredential {self.target} user={self.username}>'
