"""ORM Models — SQLAlchemy declarative models for durable local storage.

Invariants:
    - All models inherit from Base (db/base.py)

Design Decisions:
    - All models imported here so Base.metadata knows every table before create_all
"""

from chatengine.models.chat_snapshot import ChatSnapshotRecord  # noqa: F401
from chatengine.models.attachment_blob import AttachmentBlob  # noqa: F401
