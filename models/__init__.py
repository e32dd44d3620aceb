# Database Models Module
# SQLAlchemy ORM models plus the pure rules that operate on them

from .database import Base, init_db, AsyncSessionLocal
from .access import Capabilities, Principal, can_access, normalize_email
from .user import User
from .document import Document, Mention
from .share import AccessLevel, ShareEntry
from .version import VersionSnapshot
from .store import DocumentFilter, DocumentStore

__all__ = [
    'Base', 'init_db', 'AsyncSessionLocal',
    'Capabilities', 'Principal', 'can_access', 'normalize_email',
    'User', 'Document', 'Mention', 'AccessLevel', 'ShareEntry',
    'VersionSnapshot', 'DocumentFilter', 'DocumentStore'
]
