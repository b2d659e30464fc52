from app.extensions import db

class Room(db.Model):
    __tablename__ = 'rooms'
    __table_args__ = (db.CheckConstraint('capacity > 0', name='check_room_capacity_positive'),)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    capacity = db.Column(db.Integer, nullable=False)
    location = db.Column(db.String(200))
    amenities = db.Column(db.JSON, default=list) # e.g. ["projector", "whiteboard"]
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'capacity': self.capacity,
            'location': self.location,
            'amenities': self.amenities or [],
            'description': self.description,
            'is_active': self.is_active
        }
