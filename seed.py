from app import create_app, db
from app.models import User, Room
from werkzeug.security import generate_password_hash

app = create_app()

with app.app_context():
    db.create_all()

    # Create Admin and a few colleagues
    users_data = [
        {"username": "admin", "name": "Admin", "email": "admin@boardroom.local", "role": "admin"},
        {"username": "thandi", "name": "Thandi", "email": "thandi@boardroom.local", "role": "user"},
        {"username": "pieter", "name": "Pieter", "email": "pieter@boardroom.local", "role": "user"},
    ]
    for u_data in users_data:
        if not User.query.filter_by(username=u_data['username']).first():
            user = User(password_hash=generate_password_hash('password', method='pbkdf2:sha256'), **u_data)
            db.session.add(user)
            print(f"User {u_data['username']} created ({u_data['username']}/password)")

    # Create Rooms
    rooms_data = [
        {"name": "Boardroom A", "capacity": 12, "location": "Floor 1", "amenities": ["projector", "whiteboard"]},
        {"name": "Boardroom B", "capacity": 8, "location": "Floor 2", "amenities": ["tv"]},
        {"name": "Executive Suite", "capacity": 20, "location": "Floor 5", "amenities": ["video_conference"]},
    ]

    for r_data in rooms_data:
        if not Room.query.filter_by(name=r_data['name']).first():
            room = Room(**r_data)
            db.session.add(room)
            print(f"Room {room.name} created.")

    db.session.commit()
    print("Database seeded successfully.")
