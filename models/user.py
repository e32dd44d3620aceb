"""
User Model - Principal Directory

EXPLANATION FOR VIVA:
=====================
Registration, passwords and tokens belong to the authentication service, not
to this system. We only need to remember WHICH email belongs to WHICH user id
so that a document can be shown together with its author's email.

A row is written (or refreshed) whenever an authenticated principal creates a
document. The principal resolver is trusted completely, so no password or
profile data is stored here.
"""

from sqlalchemy import Column, String, DateTime
from datetime import datetime

from .database import Base


class User(Base):
    """
    Known principal: id and email as supplied by the principal resolver.

    EXPLANATION FOR VIVA:
    ====================
    The id is the identity used for authorship; the email is the identity used
    for sharing. Keeping both here lets a document join its author's email
    without the document table duplicating it.
    """

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
