from datetime import datetime
from queuedesk import db


class Call(db.Model):
    """A customer/representative conversation created by queue matching."""

    __tablename__ = 'calls'

    STATUS_ACTIVE = 'active'
    STATUS_COMPLETED = 'completed'
    STATUS_MISSED = 'missed'
    STATUS_CANCELLED = 'cancelled'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    representative_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    queue_entry_id = db.Column(db.Integer, db.ForeignKey('queue_entries.id'), nullable=True)
    status = db.Column(db.String(20), default=STATUS_ACTIVE, nullable=False)
    notes = db.Column(db.Text)
    started_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    ended_at = db.Column(db.DateTime)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # One active call per representative
    __table_args__ = (
        db.Index(
            'uq_calls_active_representative',
            'representative_id',
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
    )

    # Relationships
    customer = db.relationship('User', foreign_keys=[customer_id])
    representative = db.relationship('User', foreign_keys=[representative_id])
    queue_entry = db.relationship('QueueEntry', foreign_keys=[queue_entry_id])

    def __repr__(self):
        return f'<Call {self.id} {self.status}>'

    @property
    def is_active(self):
        return self.status == self.STATUS_ACTIVE

    def calculate_duration(self):
        """Duration in seconds, zero while the call is still running."""
        if not self.ended_at or not self.started_at:
            return 0
        return int((self.ended_at - self.started_at).total_seconds())

    def to_dict(self):
        """Convert call to dictionary."""
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'representative_id': self.representative_id,
            'queue_entry_id': self.queue_entry_id,
            'status': self.status,
            'notes': self.notes,
            'duration': self.calculate_duration(),
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'ended_at': self.ended_at.isoformat() if self.ended_at else None
        }

    @classmethod
    def find_active_for_user(cls, user_id):
        """Active call where the user is either party."""
        return db.session.query(cls).filter(
            cls.status == cls.STATUS_ACTIVE,
            db.or_(cls.customer_id == user_id, cls.representative_id == user_id)
        ).first()

    @classmethod
    def find_active(cls):
        """All active calls, newest first."""
        return db.session.query(cls).filter_by(status=cls.STATUS_ACTIVE).order_by(
            cls.started_at.desc(), cls.id.desc()).all()

    @classmethod
    def find_history(cls, user_id, as_representative=False, limit=50):
        """Calls a user took part in, newest first."""
        column = cls.representative_id if as_representative else cls.customer_id
        return db.session.query(cls).filter(column == user_id).order_by(
            cls.started_at.desc(), cls.id.desc()).limit(limit).all()
