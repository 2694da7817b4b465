import pytest

from org_settings import NotOrganisationOwner, OrgSettings, is_restricted


@pytest.fixture
def org_backend(backend):
    restrictions = []

    def toggle(params=None, json=None):
        entry = {'userId': json['userId'], 'caseId': json['caseId']}
        if entry in restrictions:
            restrictions.remove(entry)
            return {'restricted': False, 'message': 'User can now see this case'}
        restrictions.append(entry)
        return {'restricted': True, 'message': 'User can no longer see this case'}

    backend.on('GET', '/api/org-owner/ownerships', [3])
    backend.on('GET', '/api/organisations', [{'id': 3, 'name': 'Acme Lending'}, {'id': 4, 'name': 'Other'}])
    backend.on('GET', '/api/org-owner/3/users', [
        {'id': 'u1', 'firstName': 'Bob', 'lastName': 'Client', 'email': 'bob@acme.com'},
        {'id': 'u9', 'firstName': 'Ann', 'lastName': 'Admin', 'email': 'ann@chadlaw.co.uk', 'isAdmin': True},
    ])
    backend.on('GET', '/api/org-owner/3/cases', [
        {'id': 10, 'caseName': 'Smith Ltd', 'status': 'active'},
        {'id': 11, 'caseName': 'Jones Builders', 'status': 'new'},
    ])
    backend.on('GET', '/api/org-owner/3/restrictions', lambda params=None, json=None: list(restrictions))
    backend.on('POST', '/api/org-owner/3/toggle-restriction', toggle)
    return backend


def test_is_restricted_compares_ids_loosely():
    assert is_restricted([{'userId': 'u1', 'caseId': '10'}], 'u1', 10)
    assert not is_restricted([], 'u1', 10)


def test_owned_organisations(client, org_backend):
    assert [o['id'] for o in OrgSettings(client).owned_organisations()] == [3]


def test_access_matrix_excludes_admins(client, org_backend):
    matrix = OrgSettings(client).access_matrix(3)

    assert [u['id'] for u in matrix['users']] == ['u1']
    assert matrix['users'][0]['name'] == 'Bob Client'
    assert matrix['users'][0]['access'] == {'10': True, '11': True}
    assert [c['id'] for c in matrix['cases']] == [10, 11]


def test_access_matrix_requires_ownership(client, org_backend):
    with pytest.raises(NotOrganisationOwner):
        OrgSettings(client).access_matrix(4)


def test_toggle_reports_new_state(client, org_backend):
    settings = OrgSettings(client)
    settings.access_matrix(3)

    result = settings.toggle_restriction(3, 'u1', 10)

    assert result == {'restricted': True, 'title': 'Access Restricted',
                      'message': 'User can no longer see this case'}
    assert settings.access_matrix(3)['users'][0]['access'] == {'10': False, '11': True}


def test_toggle_twice_restores_original_state(client, org_backend):
    settings = OrgSettings(client)
    before = settings.access_matrix(3)

    settings.toggle_restriction(3, 'u1', 11)
    second = settings.toggle_restriction(3, 'u1', 11)

    assert second['title'] == 'Access Restored'
    assert settings.access_matrix(3) == before
    assert org_backend.count('GET', '/api/org-owner/3/restrictions') == 2


def test_toggle_requires_ownership(client, org_backend):
    with pytest.raises(NotOrganisationOwner):
        OrgSettings(client).toggle_restriction(4, 'u1', 10)
    assert org_backend.count('POST', '/api/org-owner/4/toggle-restriction') == 0
