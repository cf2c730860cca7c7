import json
from io import BytesIO
from flask import Flask
from complaint_desk import get_db
from complaint_desk.models.audit import AuditLog
from tests.helpers import PNG_BYTES, admin, complaint_payload, jwt_headers, staff, user


def _create(client, headers, **overrides):
    resp = client.post('/complaints/', json=complaint_payload(**overrides), headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_complaint_lifecycle_over_http(app_context: Flask):
    client = app_context.test_client()
    owner_h = jwt_headers(user())
    s = staff()
    staff_h = jwt_headers(s)
    body = _create(client, owner_h)
    cid = body['id']
    assert body['status'] == 'pending'
    assert body['contact_info']['email'] == 'asha.rao@example.com'
    assert body['attachments'] == [] and body['status_history'] == []

    resp = client.post(f'/complaints/{cid}/status', json={'status': 'in_progress'}, headers=staff_h)
    assert resp.status_code == 200
    assert resp.get_json()['assigned_to'] == s.id
    assert resp.get_json()['changed'] is True

    resp = client.post(f'/complaints/{cid}/status', json={'status': 'in_progress'}, headers=staff_h)
    assert resp.status_code == 200
    assert resp.get_json()['changed'] is False

    resp = client.post(f'/complaints/{cid}/status', json={'status': 'resolved', 'note': 'Fixed'}, headers=staff_h)
    assert resp.get_json()['resolution_note'] == 'Fixed'
    resp = client.post(f'/complaints/{cid}/status', json={'status': 'closed'}, headers=staff_h)
    assert resp.get_json()['is_open'] is False

    resp = client.get(f'/complaints/{cid}/history', headers=owner_h)
    assert resp.status_code == 200
    assert [h['new_status'] for h in resp.get_json()['data']] == ['closed', 'resolved', 'in_progress']


def test_create_requires_jwt(client):
    resp = client.post('/complaints/', json=complaint_payload())
    assert resp.status_code == 401


def test_create_validation_error_shape(client):
    resp = client.post('/complaints/', json=complaint_payload(description='short'), headers=jwt_headers(user()))
    assert resp.status_code == 400
    err = resp.get_json()['error']
    assert err['status'] == 400
    assert err['title'] == 'Validation Error'
    assert err['errors'] == [{'field': 'description', 'message': 'Description must be at least 10 characters'}]


def test_invalid_transition_is_400(client):
    body = _create(client, jwt_headers(user()))
    resp = client.post(f"/complaints/{body['id']}/status", json={'status': 'closed'}, headers=jwt_headers(staff()))
    assert resp.status_code == 400
    assert resp.get_json()['error']['errors'][0]['field'] == 'status'
    resp = client.post(f"/complaints/{body['id']}/status", json={}, headers=jwt_headers(staff()))
    assert resp.status_code == 400


def test_multipart_create_with_attachments(client):
    data = {
        'title': 'Damaged parcel delivered',
        'description': 'The box arrived crushed and the item is broken.',
        'category': 'product',
        'contact_info.name': 'Meera',
        'contact_info.email': 'meera@example.com',
        'attachments': [
            (BytesIO(PNG_BYTES), 'box.png', 'image/png'),
            (BytesIO(b'order 1234'), 'receipt.txt', 'text/plain'),
        ],
    }
    resp = client.post('/complaints/', data=data, headers=jwt_headers(user()), content_type='multipart/form-data')
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['attachment_count'] == 2
    assert sorted(a['original_name'] for a in body['attachments']) == ['box.png', 'receipt.txt']


def test_multipart_contact_info_as_json_string(client):
    data = {
        'title': 'Rude behaviour at counter',
        'description': 'The clerk at counter 3 refused to help.',
        'contact_info': json.dumps({'name': 'Kiran', 'email': 'kiran@example.com'}),
    }
    resp = client.post('/complaints/', data=data, headers=jwt_headers(user()), content_type='multipart/form-data')
    assert resp.status_code == 201
    assert resp.get_json()['contact_info']['name'] == 'Kiran'


def test_attachment_endpoints_and_limit(client):
    owner_h = jwt_headers(user())
    body = _create(client, owner_h)
    cid = body['id']
    files = [(BytesIO(PNG_BYTES), f'p{i}.png', 'image/png') for i in range(10)]
    resp = client.post(f'/complaints/{cid}/attachments', data={'attachments': files}, headers=owner_h,
                       content_type='multipart/form-data')
    assert resp.status_code == 201
    added = resp.get_json()['data']
    assert len(added) == 10

    resp = client.post(f'/complaints/{cid}/attachments', data={'attachments': [(BytesIO(PNG_BYTES), 'x.png', 'image/png')]},
                       headers=owner_h, content_type='multipart/form-data')
    assert resp.status_code == 400
    assert resp.get_json()['error']['title'] == 'Limit Exceeded'

    resp = client.delete(f"/complaints/{cid}/attachments/{added[0]['id']}", headers=owner_h)
    assert resp.status_code == 200
    assert client.get(f'/complaints/{cid}', headers=owner_h).get_json()['attachment_count'] == 9

    resp = client.delete(f'/complaints/{cid}/attachments/missing', headers=owner_h)
    assert resp.status_code == 404

    resp = client.post(f'/complaints/{cid}/attachments', data={}, headers=owner_h, content_type='multipart/form-data')
    assert resp.status_code == 400


def test_stranger_and_missing_complaint_responses(client):
    body = _create(client, jwt_headers(user()))
    stranger_h = jwt_headers(user())
    assert client.get(f"/complaints/{body['id']}", headers=stranger_h).status_code == 403
    assert client.get('/complaints/nope', headers=stranger_h).status_code == 403
    assert client.get('/complaints/nope', headers=jwt_headers(staff())).status_code == 404
    resp = client.post(f"/complaints/{body['id']}/comments", json={'text': 'hi'}, headers=stranger_h)
    assert resp.status_code == 403


def test_owner_edit_rules(client):
    owner_h = jwt_headers(user())
    body = _create(client, owner_h)
    cid = body['id']
    resp = client.patch(f'/complaints/{cid}', json={'department': 'Electrical'}, headers=owner_h)
    assert resp.status_code == 200
    assert resp.get_json()['department'] == 'Electrical'
    resp = client.patch(f'/complaints/{cid}', json={'status': 'closed'}, headers=owner_h)
    assert resp.status_code == 400
    client.post(f'/complaints/{cid}/status', json={'status': 'in_progress'}, headers=jwt_headers(staff()))
    resp = client.patch(f'/complaints/{cid}', json={'title': 'New title please'}, headers=owner_h)
    assert resp.status_code == 403


def test_comment_endpoints(client):
    owner_h = jwt_headers(user())
    cid = _create(client, owner_h)['id']
    resp = client.post(f'/complaints/{cid}/comments', json={'text': 'Please hurry'}, headers=owner_h)
    assert resp.status_code == 201
    comment = resp.get_json()
    assert comment['is_staff_comment'] is False
    resp = client.patch(f"/complaints/{cid}/comments/{comment['id']}", json={'text': 'Please hurry up'}, headers=owner_h)
    assert resp.get_json()['is_edited'] is True
    staff_h = jwt_headers(staff())
    resp = client.delete(f"/complaints/{cid}/comments/{comment['id']}", headers=staff_h)
    assert resp.status_code == 403
    resp = client.delete(f"/complaints/{cid}/comments/{comment['id']}", headers=jwt_headers(admin()))
    assert resp.status_code == 200
    assert client.get(f'/complaints/{cid}', headers=owner_h).get_json()['comment_count'] == 0


def test_assign_writes_audit_entry(client):
    cid = _create(client, jwt_headers(user()))['id']
    lead = staff()
    resp = client.post(f'/complaints/{cid}/assign', json={'assignee_id': 'staff-42'}, headers=jwt_headers(lead))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['assigned_to'] == 'staff-42'
    assert body['status'] == 'in_progress'
    assert body['status_history'][0]['note'] == 'assignment'
    log = get_db().query(AuditLog).filter_by(entity_id=cid, action='COMPLAINT.ASSIGN').one()
    assert log.actor_id == lead.id
    assert log.meta == {'from': None, 'to': 'staff-42'}


def test_soft_delete_and_purge(client):
    owner = user()
    owner_h = jwt_headers(owner)
    cid = _create(client, owner_h)['id']
    resp = client.delete(f'/complaints/{cid}', headers=owner_h)
    assert resp.status_code == 200
    assert resp.get_json()['deleted'] is True
    assert client.get(f'/complaints/{cid}', headers=jwt_headers(staff())).status_code == 404

    assert client.post(f'/complaints/{cid}/purge', headers=jwt_headers(staff())).status_code == 403
    boss = admin()
    resp = client.post(f'/complaints/{cid}/purge', headers=jwt_headers(boss))
    assert resp.status_code == 200
    assert resp.get_json()['purged'] is True
    actions = [l.action for l in get_db().query(AuditLog).filter_by(entity_id=cid).order_by(AuditLog.id)]
    assert actions == ['COMPLAINT.DELETE', 'COMPLAINT.PURGE']
