from datetime import datetime
from queuedesk import db


class User(db.Model):
    """Customer, representative or admin account.

    Credentials live with the external identity provider; this table only
    carries what the queue needs to route and display people.
    """

    __tablename__ = 'users'

    ROLE_CUSTOMER = 'customer'
    ROLE_REPRESENTATIVE = 'representative'
    ROLE_ADMIN = 'admin'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(50), default=ROLE_CUSTOMER, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_available = db.Column(db.Boolean, default=False, nullable=False)
    skills = db.Column(db.JSON, nullable=True)
    customer_value = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    queue_entries = db.relationship('QueueEntry', backref='user', lazy='dynamic',
                                    foreign_keys='QueueEntry.user_id')

    def __repr__(self):
        return f'<User {self.email}>'

    @property
    def is_representative(self):
        return self.role == self.ROLE_REPRESENTATIVE

    @property
    def is_admin(self):
        return self.role == self.ROLE_ADMIN

    def to_dict(self):
        """Convert user to dictionary."""
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'is_active': self.is_active,
            'is_available': self.is_available,
            'skills': self.skills or [],
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    @classmethod
    def find_by_email(cls, email):
        """Find user by email."""
        return db.session.query(cls).filter_by(email=email).first()

    @classmethod
    def find_by_id(cls, user_id):
        """Find user by ID."""
        return db.session.get(cls, user_id)

    @classmethod
    def find_representatives(cls):
        """All representatives, available first."""
        return db.session.query(cls).filter_by(role=cls.ROLE_REPRESENTATIVE).order_by(
            cls.is_available.desc(), cls.id.asc()).all()
