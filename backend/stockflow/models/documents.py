from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Durable counter per sequence key ("PO:2026", "TRX:2026").

    WHY: Document numbers are allocated by incrementing this row inside the
    same DB transaction that inserts the document, so a rolled-back document
    never burns a number and two writers can never read the same value.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("sequence_key", name="uq_document_sequences_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sequence_key = db.Column(db.String(64), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence_key": self.sequence_key,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
