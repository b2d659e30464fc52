from datetime import timedelta
from werkzeug.security import generate_password_hash
from app import db
from app.models import Booking, Notification, AuditLog
from app.services.clock import BusinessClock


def create_payload(room, at, start=10, end=11, **extra):
    payload = {
        'room_id': room.id,
        'start_time': at(start).isoformat(),
        'end_time': at(end).isoformat(),
        'purpose': 'Quarterly review'
    }
    payload.update(extra)
    return payload


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json['status'] == 'ok'

def test_create_booking(client, init_data, auth_headers, at):
    d = init_data
    response = client.post('/api/bookings/', headers=auth_headers(d['organizer']),
                           json=create_payload(d['r1'], at, attendees=[d['u1'].id],
                                               external_invitees=['guest@partner.com']))
    assert response.status_code == 201
    data = response.json
    assert data['status'] == 'confirmed'
    assert data['organizer_id'] == d['organizer'].id
    assert data['attendees'] == [d['organizer'].id, d['u1'].id]
    assert data['external_invitees'] == [{'email': 'guest@partner.com', 'name': 'guest'}]
    assert AuditLog.query.filter_by(booking_id=data['id'], action='create').count() == 1

def test_create_requires_token(client, init_data, at):
    response = client.post('/api/bookings/', json=create_payload(init_data['r1'], at))
    assert response.status_code == 401

def test_conflict_explains_the_blocking_booking(client, init_data, auth_headers, at):
    d = init_data
    first = client.post('/api/bookings/', headers=auth_headers(d['organizer']),
                        json=create_payload(d['r1'], at, 10, 11)).json

    response = client.post('/api/bookings/', headers=auth_headers(d['u1']),
                           json=create_payload(d['r1'], at, 10, 12, purpose='Clash'))
    assert response.status_code == 400
    assert response.json['reason'] == 'conflict'
    assert response.json['message'] == 'slot already booked'
    assert response.json['conflictingBooking']['id'] == first['id']
    assert response.json['conflictingBooking']['purpose'] == 'Quarterly review'

def test_past_start_is_rejected(client, init_data, auth_headers, at, clock):
    d = init_data
    yesterday = clock.today() - timedelta(days=1)
    payload = {
        'room_id': d['r1'].id,
        'start_time': at(10, day=yesterday).isoformat(),
        'end_time': at(11, day=yesterday).isoformat(),
        'purpose': 'Too late'
    }
    response = client.post('/api/bookings/', headers=auth_headers(d['organizer']), json=payload)
    assert response.status_code == 400
    assert response.json['reason'] == 'pastStart'
    assert response.json['message'] == 'start time must be in the future'

def test_naive_times_are_read_as_business_local(client, init_data, auth_headers, at, tomorrow):
    d = init_data
    payload = {
        'room_id': d['r1'].id,
        'start_time': f'{tomorrow.isoformat()}T10:00:00',
        'end_time': f'{tomorrow.isoformat()}T11:00:00',
        'purpose': 'Local time'
    }
    response = client.post('/api/bookings/', headers=auth_headers(d['organizer']), json=payload)
    assert response.status_code == 201
    booking = db.session.get(Booking, response.json['id'])
    assert BusinessClock.from_storage(booking.start_time) == at(10)

def test_invalid_payloads(client, init_data, auth_headers, at):
    d = init_data
    headers = auth_headers(d['organizer'])

    bad_time = create_payload(d['r1'], at)
    bad_time['start_time'] = 'tomorrow morning'
    response = client.post('/api/bookings/', headers=headers, json=bad_time)
    assert response.status_code == 400
    assert response.json['error'] == 'validation_error'

    response = client.post('/api/bookings/', headers=headers, json=create_payload(d['r1'], at, room_id='one'))
    assert response.status_code == 400

    response = client.post('/api/bookings/', headers=headers, json=create_payload(d['r1'], at, purpose='x'))
    assert response.status_code == 400

    # Wrong JSON types are validation errors, not server errors
    malformed = [
        create_payload(d['r1'], at, start_time=12345),
        create_payload(d['r1'], at, purpose=123),
        create_payload(d['r1'], at, notes=['a', 'b']),
        create_payload(d['r1'], at, external_invitees=[7]),
        create_payload(d['r1'], at, external_invitees=[{'email': 'guest@partner.com', 'name': 5}]),
        create_payload(d['r1'], at, external_invitees='guest@partner.com'),
        [1],
    ]
    for body in malformed:
        response = client.post('/api/bookings/', headers=headers, json=body)
        assert response.status_code == 400, body
        assert response.json['error'] == 'validation_error', body
    assert Booking.query.count() == 0

def test_invalid_update_payloads(client, init_data, auth_headers, at):
    d = init_data
    headers = auth_headers(d['organizer'])
    created = client.post('/api/bookings/', headers=headers, json=create_payload(d['r1'], at)).json
    url = f"/api/bookings/{created['id']}"

    for body in ([1], {'end_time': 42}, {'purpose': {'text': 'x'}}, {'start_time': None}):
        response = client.put(url, headers=headers, json=body)
        assert response.status_code == 400, body
        assert response.json['error'] == 'validation_error', body

def test_invalid_room_payloads(client, init_data, auth_headers):
    admin = auth_headers(init_data['admin'])
    for body in ([1], {'name': 42, 'capacity': 4}):
        assert client.post('/api/admin/rooms', headers=admin, json=body).status_code == 400

def test_get_booking_visibility(client, init_data, auth_headers, at):
    d = init_data
    created = client.post('/api/bookings/', headers=auth_headers(d['organizer']),
                          json=create_payload(d['r1'], at, attendees=[d['u1'].id])).json
    url = f"/api/bookings/{created['id']}"

    assert client.get(url, headers=auth_headers(d['u1'])).status_code == 200
    assert client.get(url, headers=auth_headers(d['admin'])).status_code == 200
    assert client.get(url, headers=auth_headers(d['u2'])).status_code == 403
    assert client.get('/api/bookings/9999', headers=auth_headers(d['organizer'])).status_code == 404

def test_opt_out_routes(client, init_data, auth_headers, at):
    d = init_data
    created = client.post('/api/bookings/', headers=auth_headers(d['organizer']),
                          json=create_payload(d['r1'], at, attendees=[d['u1'].id])).json
    url = f"/api/bookings/{created['id']}/opt-out"

    response = client.patch(url, headers=auth_headers(d['organizer']))
    assert response.status_code == 400
    assert response.json['error'] == 'organizer_cannot_opt_out'

    assert client.patch(url, headers=auth_headers(d['u2'])).status_code == 403

    response = client.patch(url, headers=auth_headers(d['u1']))
    assert response.status_code == 200
    assert response.json['booking']['attendees'] == [d['organizer'].id]

    # Repeating it changes nothing
    assert client.patch(url, headers=auth_headers(d['u1'])).status_code == 200

def test_cancel_routes(client, init_data, auth_headers, at):
    d = init_data
    created = client.post('/api/bookings/', headers=auth_headers(d['organizer']),
                          json=create_payload(d['r1'], at, attendees=[d['u1'].id])).json
    url = f"/api/bookings/{created['id']}/cancel"

    assert client.put(url, headers=auth_headers(d['u1'])).status_code == 403
    assert client.put(url, headers=auth_headers(d['u2'])).status_code == 403

    response = client.put(url, headers=auth_headers(d['admin']))
    assert response.status_code == 200
    assert response.json['booking']['status'] == 'cancelled'
    audit = AuditLog.query.filter_by(booking_id=created['id'], action='cancel').one()
    assert audit.admin_initiated is True

    # The slot is free again
    response = client.post('/api/bookings/', headers=auth_headers(d['u2']),
                           json=create_payload(d['r1'], at, purpose='Takeover'))
    assert response.status_code == 201

def test_update_routes(client, init_data, auth_headers, at):
    d = init_data
    headers = auth_headers(d['organizer'])
    first = client.post('/api/bookings/', headers=headers, json=create_payload(d['r1'], at, 9, 10)).json
    second = client.post('/api/bookings/', headers=headers, json=create_payload(d['r1'], at, 11, 12)).json

    response = client.put(f"/api/bookings/{second['id']}", headers=headers,
                          json={'start_time': at(9, 30).isoformat()})
    assert response.status_code == 400
    assert response.json['reason'] == 'conflict'
    assert response.json['conflictingBooking']['id'] == first['id']

    response = client.put(f"/api/bookings/{second['id']}", headers=headers,
                          json={'start_time': at(10).isoformat(), 'purpose': 'Moved up'})
    assert response.status_code == 200
    assert response.json['purpose'] == 'Moved up'

    assert client.put(f"/api/bookings/{second['id']}", headers=auth_headers(d['u1']),
                      json={'purpose': 'Hijack'}).status_code == 403

    client.put(f"/api/bookings/{first['id']}/cancel", headers=headers)
    response = client.put(f"/api/bookings/{first['id']}", headers=headers, json={'purpose': 'Revive'})
    assert response.status_code == 409

def test_delete_route(client, init_data, auth_headers, at):
    d = init_data
    created = client.post('/api/bookings/', headers=auth_headers(d['organizer']),
                          json=create_payload(d['r1'], at)).json
    url = f"/api/bookings/{created['id']}"

    assert client.delete(url, headers=auth_headers(d['u1'])).status_code == 403
    assert client.delete(url, headers=auth_headers(d['organizer'])).status_code == 200
    assert db.session.get(Booking, created['id']) is None
    assert client.delete(url, headers=auth_headers(d['organizer'])).status_code == 404

def test_my_bookings_hides_opted_out_meetings(client, init_data, auth_headers, at):
    d = init_data
    headers = auth_headers(d['organizer'])
    kept = client.post('/api/bookings/', headers=headers,
                       json=create_payload(d['r1'], at, 9, 10, attendees=[d['u1'].id])).json
    left = client.post('/api/bookings/', headers=headers,
                       json=create_payload(d['r1'], at, 11, 12, attendees=[d['u1'].id])).json
    client.patch(f"/api/bookings/{left['id']}/opt-out", headers=auth_headers(d['u1']))

    response = client.get('/api/bookings/my-bookings', headers=auth_headers(d['u1']))
    assert [b['id'] for b in response.json] == [kept['id']]

def test_all_bookings_is_admin_only(client, init_data, auth_headers, at):
    d = init_data
    client.post('/api/bookings/', headers=auth_headers(d['organizer']), json=create_payload(d['r1'], at))

    assert client.get('/api/bookings/all', headers=auth_headers(d['organizer'])).status_code == 403
    response = client.get('/api/bookings/all?status=confirmed', headers=auth_headers(d['admin']))
    assert response.status_code == 200
    assert len(response.json) == 1

def test_availability_route(client, init_data, auth_headers, at, tomorrow):
    d = init_data
    created = client.post('/api/bookings/', headers=auth_headers(d['organizer']),
                          json=create_payload(d['r1'], at, 10, 11)).json

    response = client.get(f"/api/bookings/availability/{d['r1'].id}?date={tomorrow.isoformat()}")
    assert response.status_code == 200
    data = response.json
    assert data['timezone'] == 'Africa/Johannesburg'
    assert [b['id'] for b in data['bookings']] == [created['id']]
    # 18 half hour slots in the day, two of them taken
    assert len(data['free_slots']) == 16

    assert client.get(f"/api/bookings/availability/{d['r1'].id}").status_code == 400
    assert client.get(f"/api/bookings/availability/{d['r1'].id}?date=soon").status_code == 400

def test_login(client, init_data):
    user = init_data['organizer']
    user.password_hash = generate_password_hash('s3cret')
    db.session.commit()

    response = client.post('/api/auth/login', json={'username': 'olivia', 'password': 's3cret'})
    assert response.status_code == 200
    token = response.json['token']

    response = client.get('/api/bookings/my-bookings', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 200

    response = client.post('/api/auth/login', json={'username': 'olivia', 'password': 'wrong'})
    assert response.status_code == 401

def test_notification_routes(client, init_data, auth_headers, at):
    d = init_data
    client.post('/api/bookings/', headers=auth_headers(d['organizer']),
                json=create_payload(d['r1'], at, attendees=[d['u1'].id]))
    headers = auth_headers(d['u1'])

    notes = client.get('/api/notifications/', headers=headers).json
    assert len(notes) == 1
    assert notes[0]['kind'] == 'created'
    assert notes[0]['read'] is False

    response = client.patch(f"/api/notifications/{notes[0]['id']}/read", headers=headers)
    assert response.json['read'] is True

    # Other users cannot touch it
    assert client.delete(f"/api/notifications/{notes[0]['id']}",
                         headers=auth_headers(d['u2'])).status_code == 404

    assert client.delete('/api/notifications/', headers=headers).status_code == 200
    assert Notification.query.filter_by(user_id=d['u1'].id).count() == 0
    assert Notification.query.filter_by(user_id=d['organizer'].id).count() == 1

def test_admin_room_management(client, init_data, auth_headers, at):
    d = init_data
    admin = auth_headers(d['admin'])

    assert client.get('/api/admin/rooms', headers=auth_headers(d['u1'])).status_code == 403

    response = client.post('/api/admin/rooms', headers=admin,
                           json={'name': 'Boardroom', 'capacity': 12, 'amenities': ['projector']})
    assert response.status_code == 201
    room_id = response.json['room']['id']

    assert client.post('/api/admin/rooms', headers=admin,
                       json={'name': 'Boardroom', 'capacity': 12}).status_code == 400
    assert client.post('/api/admin/rooms', headers=admin,
                       json={'name': 'Tiny', 'capacity': 0}).status_code == 400

    response = client.put(f'/api/admin/rooms/{room_id}', headers=admin, json={'is_active': False})
    assert response.json['room']['is_active'] is False

    # An inactive room takes no bookings
    payload = create_payload(d['r1'], at)
    payload['room_id'] = room_id
    response = client.post('/api/bookings/', headers=auth_headers(d['organizer']), json=payload)
    assert response.status_code == 400
    assert response.json['reason'] == 'roomInactive'

    assert client.delete(f'/api/admin/rooms/{room_id}', headers=admin).status_code == 200
    assert client.delete(f"/api/admin/rooms/{d['r1'].id}", headers=admin).status_code == 200

    client.post('/api/bookings/', headers=auth_headers(d['organizer']), json=create_payload(d['r2'], at))
    assert client.delete(f"/api/admin/rooms/{d['r2'].id}", headers=admin).status_code == 400
