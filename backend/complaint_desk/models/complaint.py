from __future__ import annotations
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship, attribute_keyed_dict, validates
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, Index, event

from complaint_desk.constants import complaints as C
from complaint_desk.config.limits import OVERDUE_AFTER_DAYS
from .base import Base, utcnow, new_id, as_utc


class Complaint(Base):
    __tablename__ = 'complaints'
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    ticket_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default=C.DEFAULT_CATEGORY, index=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=C.DEFAULT_PRIORITY, index=True)
    department: Mapped[str] = mapped_column(String(100), nullable=False, default=C.DEFAULT_DEPARTMENT)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=C.STATUS_PENDING, index=True)

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    contact_name: Mapped[str] = mapped_column(String(100), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(254), nullable=False, index=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    assigned_to: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    resolution_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Sub-collections are keyed by sub-entity id; removal never depends on position.
    attachments: Mapped[Dict[str, 'Attachment']] = relationship(
        back_populates='complaint',
        collection_class=attribute_keyed_dict('id'),
        cascade='all, delete-orphan',
        order_by=lambda: [Attachment.uploaded_at, Attachment.id],
    )
    comments: Mapped[Dict[str, 'Comment']] = relationship(
        back_populates='complaint',
        collection_class=attribute_keyed_dict('id'),
        cascade='all, delete-orphan',
        order_by=lambda: [Comment.created_at, Comment.id],
    )
    status_history: Mapped[List['StatusHistoryEntry']] = relationship(
        back_populates='complaint',
        cascade='all, delete-orphan',
        order_by='StatusHistoryEntry.seq',
    )

    __mapper_args__ = {'version_id_col': version_id}
    __table_args__ = (
        Index('ix_complaints_owner_status', 'owner_id', 'status'),
        Index('ix_complaints_deleted_created', 'is_deleted', 'created_at'),
    )

    @validates('owner_id')
    def _freeze_owner(self, key, value):
        if self.owner_id is not None and value != self.owner_id:
            raise ValueError('owner_id is immutable')
        return value

    @validates('contact_email')
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    @property
    def is_open(self) -> bool:
        return self.status in C.OPEN_STATUSES

    @property
    def is_overdue(self) -> bool:
        if self.status != C.STATUS_PENDING or self.created_at is None:
            return False
        return utcnow() - as_utc(self.created_at) > timedelta(days=OVERDUE_AFTER_DAYS)

    def touch(self):
        """Mark the aggregate row dirty so every mutation bumps version_id."""
        self.updated_at = utcnow()

    def __repr__(self):
        return f'<Complaint {self.ticket_code} {self.status}>'


class Attachment(Base):
    __tablename__ = 'complaint_attachments'
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    complaint_id: Mapped[str] = mapped_column(ForeignKey('complaints.id', ondelete='CASCADE'), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    locator: Mapped[str] = mapped_column(String(512), nullable=False)
    mimetype: Mapped[str] = mapped_column(String(128), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    complaint = relationship('Complaint', back_populates='attachments')


class Comment(Base):
    __tablename__ = 'complaint_comments'
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    complaint_id: Mapped[str] = mapped_column(ForeignKey('complaints.id', ondelete='CASCADE'), nullable=False, index=True)
    author_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    text: Mapped[str] = mapped_column(String(500), nullable=False)
    # frozen at creation from the author's role at that time
    is_staff_comment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    edited_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    complaint = relationship('Complaint', back_populates='comments')


class StatusHistoryEntry(Base):
    """Append-only audit ledger of status transitions."""
    __tablename__ = 'complaint_status_history'
    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    complaint_id: Mapped[str] = mapped_column(ForeignKey('complaints.id', ondelete='CASCADE'), nullable=False, index=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_status: Mapped[str] = mapped_column(String(32), nullable=False)
    new_status: Mapped[str] = mapped_column(String(32), nullable=False)
    changed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    complaint = relationship('Complaint', back_populates='status_history')

    __table_args__ = (UniqueConstraint('complaint_id', 'seq', name='uq_history_complaint_seq'),)


@event.listens_for(StatusHistoryEntry, 'before_update')
def _history_is_immutable(mapper, connection, target):
    raise ValueError('status history entries are immutable')
