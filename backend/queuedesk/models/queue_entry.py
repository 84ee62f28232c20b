from datetime import datetime
from queuedesk import db


class QueueEntry(db.Model):
    """A customer's place in the wait line.

    Entries are never deleted. ``position`` is only meaningful while the entry
    is waiting; it is the dense 1-based rank among all waiting entries.
    """

    __tablename__ = 'queue_entries'

    STATUS_WAITING = 'waiting'
    STATUS_CONNECTED = 'connected'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'

    ACTIVE_STATUSES = (STATUS_WAITING, STATUS_CONNECTED)

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    position = db.Column(db.Integer, default=0, nullable=False)
    status = db.Column(db.String(20), default=STATUS_WAITING, nullable=False, index=True)
    is_callback = db.Column(db.Boolean, default=False, nullable=False)
    callback_phone = db.Column(db.String(50))

    # Priority-aware routing
    priority = db.Column(db.Integer, default=0, nullable=False)
    estimated_handle_time = db.Column(db.Integer)
    customer_value = db.Column(db.Integer)
    skills_required = db.Column(db.JSON)
    preferred_agent_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    # At most one waiting/connected entry per user
    __table_args__ = (
        db.Index(
            'uq_queue_entries_active_user',
            'user_id',
            unique=True,
            sqlite_where=db.text("status IN ('waiting', 'connected')"),
            postgresql_where=db.text("status IN ('waiting', 'connected')"),
        ),
    )

    def __repr__(self):
        return f'<QueueEntry {self.id} user={self.user_id} {self.status}#{self.position}>'

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    @property
    def is_waiting(self):
        return self.status == self.STATUS_WAITING

    def waited_minutes(self, now=None):
        now = now or datetime.utcnow()
        return int((now - self.joined_at).total_seconds() // 60)

    def to_dict(self):
        """Convert queue entry to dictionary."""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'position': self.position,
            'status': self.status,
            'is_callback': self.is_callback,
            'callback_phone': self.callback_phone,
            'priority': self.priority,
            'skills_required': self.skills_required or [],
            'preferred_agent_id': self.preferred_agent_id,
            'joined_at': self.joined_at.isoformat() if self.joined_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }
