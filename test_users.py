"""
User Administration Test Suite
Tests user listing, creation, membership changes and privilege changes
"""

import pytest

from admin_dashboard import ActionCancelled, USERS_KEY, UserAdmin, ValidationError

USERS = [
    {'id': 'u1', 'firstName': 'Alice', 'lastName': 'Admin', 'email': 'alice@chadlaw.co.uk',
     'isAdmin': True, 'organisationIds': [1, 2]},
    {'id': 'u2', 'firstName': 'Bob', 'lastName': 'Client', 'email': 'bob@acme.com',
     'organisationId': 1},
    {'id': 'u3', 'firstName': 'Carol', 'lastName': 'Staff', 'email': 'carol@chadlaw.co.uk'},
]


@pytest.fixture
def users(client, backend):
    backend.on('GET', USERS_KEY, USERS)
    return UserAdmin(client, page_size=2)


def test_list_users_paginates_and_reports_memberships(users):
    page = users.list_users(page=1)

    assert page['total'] == 3
    assert page['totalPages'] == 2
    assert [u['id'] for u in page['items']] == ['u1', 'u2']
    assert page['items'][0]['organisationIds'] == [1, 2]
    assert page['items'][1]['organisationIds'] == [1]


def test_list_users_does_not_modify_cached_data(users):
    users.list_users()
    assert 'organisationIds' not in USERS[1]


def test_list_users_page_is_clamped(users):
    assert users.list_users(page=9)['page'] == 2
    assert users.list_users(page='x')['page'] == 1


def test_search_matches_name_and_email(users):
    assert [u['id'] for u in users.list_users(search='acme')['items']] == ['u2']
    assert [u['id'] for u in users.list_users(search='CAROL')['items']] == ['u3']


def test_create_user_rejects_admin_outside_domain(users, backend):
    with pytest.raises(ValidationError, match='@chadlaw.co.uk'):
        users.create_user({'firstName': 'Eve', 'lastName': 'X', 'email': 'eve@gmail.com', 'isAdmin': True})
    assert backend.count('POST', USERS_KEY) == 0


def test_create_user_does_not_send_legacy_organisation_field(users, backend):
    backend.on('POST', USERS_KEY, {'id': 'u4'})
    users.create_user({'firstName': 'Dan', 'lastName': 'New', 'email': 'dan@acme.com', 'organisationId': 1})
    assert 'organisationId' not in backend.last('POST', USERS_KEY)[3]


def test_create_user_refreshes_user_list(users, backend):
    users.all_users()
    backend.on('POST', USERS_KEY, {'id': 'u4'})
    users.create_user({'firstName': 'Dan', 'lastName': 'New', 'email': 'dan@acme.com'})
    users.all_users()
    assert backend.count('GET', USERS_KEY) == 2


def test_add_and_remove_organisation_use_junction_endpoints(users, backend):
    backend.on('POST', f'{USERS_KEY}/u2/organisations', {})
    backend.on('DELETE', f'{USERS_KEY}/u2/organisations/1', {})

    users.add_to_organisation('u2', 2)
    users.remove_from_organisation('u2', 1)

    assert backend.last('POST', f'{USERS_KEY}/u2/organisations')[3] == {'organisationId': 2}
    assert backend.count('DELETE', f'{USERS_KEY}/u2/organisations/1') == 1


def test_grant_admin_requires_domain(users, backend):
    with pytest.raises(ValidationError):
        users.set_admin('u2', True, confirm=True)
    assert backend.count('PUT', f'{USERS_KEY}/u2/make-admin') == 0


def test_grant_admin_requires_confirmation(users, backend):
    backend.on('PUT', f'{USERS_KEY}/u3/make-admin', {})

    with pytest.raises(ActionCancelled):
        users.set_admin('u3', True, confirm=lambda prompt: False)
    assert backend.count('PUT', f'{USERS_KEY}/u3/make-admin') == 0

    users.set_admin('u3', True, confirm=True)
    assert backend.count('PUT', f'{USERS_KEY}/u3/make-admin') == 1


def test_remove_admin_needs_no_confirmation(users, backend):
    backend.on('PUT', f'{USERS_KEY}/u1/remove-admin', {})
    users.set_admin('u1', False)
    assert backend.count('PUT', f'{USERS_KEY}/u1/remove-admin') == 1


def test_super_admin_requires_admin_first(users):
    with pytest.raises(ValidationError, match='must be an admin'):
        users.set_super_admin('u3', True, confirm=True)


def test_delete_user_cancelled_sends_nothing(users, backend):
    with pytest.raises(ActionCancelled):
        users.delete_user('u2', confirm=False)
    assert backend.count('DELETE', f'{USERS_KEY}/u2') == 0


def test_reset_password_returns_temporary_password(users, backend):
    backend.on('POST', f'{USERS_KEY}/u2/reset-password', {'tempPassword': 'Tmp-1234'})
    assert users.reset_password('u2')['tempPassword'] == 'Tmp-1234'


def test_update_notifications_requires_a_setting(users, backend):
    with pytest.raises(ValidationError):
        users.update_notifications('u2')

    backend.on('PUT', f'{USERS_KEY}/u2/notifications', {})
    users.update_notifications('u2', email=False)
    assert backend.last('PUT', f'{USERS_KEY}/u2/notifications')[3] == {'emailNotifications': False}
