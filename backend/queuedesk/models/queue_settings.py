from datetime import datetime
from queuedesk import db


class QueueSettings(db.Model):
    """Admin-editable queue settings. A single row; absent until first saved."""

    __tablename__ = 'queue_settings'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    # 0 means no limit
    max_queue_size = db.Column(db.Integer, default=0, nullable=False)
    enable_auto_assignment = db.Column(db.Boolean, default=True, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<QueueSettings max={self.max_queue_size} auto={self.enable_auto_assignment}>'

    def to_dict(self):
        return {
            'max_queue_size': self.max_queue_size,
            'enable_auto_assignment': self.enable_auto_assignment,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    @classmethod
    def current(cls):
        return db.session.query(cls).order_by(cls.id.asc()).first()
