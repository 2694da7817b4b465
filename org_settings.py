import logging

logger = logging.getLogger(__name__)

OWNERSHIPS_KEY = '/api/org-owner/ownerships'
ORGANISATIONS_KEY = '/api/organisations'
ORG_OWNER_KEY = '/api/org-owner'


class NotOrganisationOwner(Exception):
    pass


def is_restricted(restrictions, user_id, case_id):
    return any(
        str(r.get('userId')) == str(user_id) and str(r.get('caseId')) == str(case_id)
        for r in restrictions or []
    )


class OrgSettings:
    """Organisation owners toggling per-user case visibility."""

    def __init__(self, client):
        self.client = client

    def owned_organisations(self):
        owned_ids = {str(i) for i in self.client.fetch(OWNERSHIPS_KEY) or []}
        organisations = self.client.fetch(ORGANISATIONS_KEY) or []
        return [org for org in organisations if str(org.get('id')) in owned_ids]

    def _check_owner(self, organisation_id):
        owned = [str(org['id']) for org in self.owned_organisations()]
        if str(organisation_id) not in owned:
            raise NotOrganisationOwner(f'You are not an owner of organisation {organisation_id}')

    def members(self, organisation_id):
        users = self.client.fetch((ORG_OWNER_KEY, organisation_id, 'users')) or []
        return [u for u in users if not u.get('isAdmin')]

    def cases(self, organisation_id):
        return self.client.fetch((ORG_OWNER_KEY, organisation_id, 'cases')) or []

    def restrictions(self, organisation_id):
        return self.client.fetch((ORG_OWNER_KEY, organisation_id, 'restrictions')) or []

    def access_matrix(self, organisation_id):
        """Non-admin members by cases, each cell blocked or allowed."""
        self._check_owner(organisation_id)
        members = self.members(organisation_id)
        cases = self.cases(organisation_id)
        restrictions = self.restrictions(organisation_id)
        return {
            'organisationId': organisation_id,
            'cases': [{'id': c['id'], 'caseName': c.get('caseName'), 'status': c.get('status')}
                      for c in cases],
            'users': [{
                'id': u['id'],
                'name': f"{u.get('firstName') or ''} {u.get('lastName') or ''}".strip(),
                'email': u.get('email'),
                'access': {str(c['id']): not is_restricted(restrictions, u['id'], c['id'])
                           for c in cases},
            } for u in members],
        }

    def toggle_restriction(self, organisation_id, user_id, case_id):
        """Flip a (user, case) restriction and report the resulting state."""
        self._check_owner(organisation_id)
        result = self.client.mutate('POST', f'{ORG_OWNER_KEY}/{organisation_id}/toggle-restriction',
                                    {'userId': user_id, 'caseId': case_id}) or {}
        self.client.invalidate((ORG_OWNER_KEY, organisation_id, 'restrictions'))
        restricted = bool(result.get('restricted'))
        logger.info('Case %s %s for user %s', case_id,
                    'restricted' if restricted else 'restored', user_id)
        return {
            'restricted': restricted,
            'title': 'Access Restricted' if restricted else 'Access Restored',
            'message': result.get('message', ''),
        }
