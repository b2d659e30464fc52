from app.extensions import db
from app.services.clock import utcnow

class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False)
    name = db.Column(db.String(64))
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    role = db.Column(db.String(20), default='user')  # user, admin

    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def is_admin(self):
        return self.role == 'admin'

    @property
    def display_name(self):
        return self.name or self.username

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'name': self.display_name,
            'email': self.email,
            'role': self.role
        }
