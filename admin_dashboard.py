"""
Admin Dashboard
CRUD and bulk operations for users, organisations, cases, case submissions
and email broadcasts. Scheduled reports live in scheduled_reports.py.
"""

import logging
import math
import re

from case_summary import filter_cases

logger = logging.getLogger(__name__)

USERS_KEY = '/api/admin/users'
USERS_WITH_ORGS_KEY = '/api/admin/users/with-organisations'
ORGS_KEY = '/api/admin/organisations'
ALL_CASES_KEY = '/api/admin/cases/all'
CLOSED_CASES_KEY = '/api/admin/closed-cases'
CASES_KEY = '/api/cases'
SUBMISSIONS_KEY = '/api/admin/case-submissions'
BROADCAST_PATH = '/api/admin/email-broadcast'

DEFAULT_PAGE_SIZE = 10
SUBMISSION_STATUSES = ('pending', 'processed', 'rejected')

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class ValidationError(Exception):
    pass


class ActionCancelled(Exception):
    """The confirmation step was declined; nothing was sent."""

    def __init__(self, prompt):
        super().__init__(prompt)
        self.prompt = prompt


def require_confirmation(prompt, confirm):
    """
    Gate a destructive or privilege-changing action.

    ``confirm`` is either a bool or a callable that receives the prompt and
    returns a bool. Declining raises ActionCancelled.
    """
    approved = confirm(prompt) if callable(confirm) else bool(confirm)
    if not approved:
        logger.info('Action cancelled at confirmation: %s', prompt)
        raise ActionCancelled(prompt)


def paginate(items, page=1, page_size=DEFAULT_PAGE_SIZE):
    total = len(items)
    total_pages = max(1, math.ceil(total / page_size))
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    page = min(max(page, 1), total_pages)
    start = (page - 1) * page_size
    return {
        'items': items[start:start + page_size],
        'page': page,
        'pageSize': page_size,
        'total': total,
        'totalPages': total_pages,
    }


def search_filter(items, term, fields):
    if not term:
        return list(items)
    term = term.strip().lower()
    return [
        item for item in items
        if any(term in str(item.get(field) or '').lower() for field in fields)
    ]


def user_organisation_ids(user):
    """Organisation memberships, junction relation first, legacy field second."""
    ids = user.get('organisationIds')
    if ids:
        return list(ids)
    if user.get('organisationId') is not None:
        return [user['organisationId']]
    return []


def external_reference_codes(organisation):
    ref = organisation.get('externalRef') or ''
    return [code.strip() for code in ref.split(',') if code.strip()]


def validate_email(email):
    if not email or not EMAIL_RE.match(email):
        raise ValidationError('A valid email address is required')


class UserAdmin:

    def __init__(self, client, page_size=DEFAULT_PAGE_SIZE, admin_domain='@chadlaw.co.uk'):
        self.client = client
        self.page_size = page_size
        self.admin_domain = admin_domain.lower()

    def can_hold_admin(self, user_or_email):
        email = user_or_email if isinstance(user_or_email, str) else user_or_email.get('email')
        return bool(email) and email.lower().endswith(self.admin_domain)

    def all_users(self):
        return self.client.fetch(USERS_KEY) or []

    def get_user(self, user_id):
        for user in self.all_users():
            if str(user.get('id')) == str(user_id):
                return user
        raise ValidationError(f'User {user_id} not found')

    def list_users(self, page=1, search=''):
        users = search_filter(self.all_users(), search, ('firstName', 'lastName', 'email'))
        result = paginate(users, page, self.page_size)
        result['items'] = [dict(u, organisationIds=user_organisation_ids(u)) for u in result['items']]
        return result

    def _changed(self):
        self.client.invalidate(USERS_KEY, USERS_WITH_ORGS_KEY)

    def create_user(self, data):
        validate_email(data.get('email'))
        if not data.get('firstName') or not data.get('lastName'):
            raise ValidationError('First and last name are required')
        if (data.get('isAdmin') or data.get('isSuperAdmin')) and not self.can_hold_admin(data['email']):
            raise ValidationError(
                f'Admin privileges can only be assigned to {self.admin_domain} email addresses')

        payload = {k: v for k, v in data.items() if k != 'organisationId'}
        result = self.client.mutate('POST', USERS_KEY, payload)
        self._changed()
        self.client.invalidate(ORGS_KEY)
        return result

    def update_user(self, user_id, data):
        if 'email' in data:
            validate_email(data['email'])
        payload = {k: v for k, v in data.items() if k != 'organisationId'}
        result = self.client.mutate('PUT', f'{USERS_KEY}/{user_id}', payload)
        self._changed()
        return result

    def delete_user(self, user_id, confirm):
        require_confirmation(f'Delete user {user_id}? This cannot be undone.', confirm)
        result = self.client.mutate('DELETE', f'{USERS_KEY}/{user_id}')
        self._changed()
        self.client.invalidate(ORGS_KEY)
        return result

    def add_to_organisation(self, user_id, organisation_id):
        result = self.client.mutate('POST', f'{USERS_KEY}/{user_id}/organisations',
                                    {'organisationId': organisation_id})
        self._changed()
        self.client.invalidate(ORGS_KEY)
        return result

    def remove_from_organisation(self, user_id, organisation_id):
        result = self.client.mutate('DELETE', f'{USERS_KEY}/{user_id}/organisations/{organisation_id}')
        self._changed()
        self.client.invalidate(ORGS_KEY)
        return result

    def reset_password(self, user_id):
        """Returns the backend response holding ``tempPassword``."""
        return self.client.mutate('POST', f'{USERS_KEY}/{user_id}/reset-password')

    def set_admin(self, user_id, grant, confirm=False):
        user = self.get_user(user_id)
        if grant:
            if not self.can_hold_admin(user):
                raise ValidationError(
                    f'Admin privileges can only be assigned to {self.admin_domain} email addresses')
            require_confirmation(f"Grant admin privileges to {user.get('email')}?", confirm)
        endpoint = 'make-admin' if grant else 'remove-admin'
        result = self.client.mutate('PUT', f'{USERS_KEY}/{user_id}/{endpoint}')
        self._changed()
        return result

    def set_super_admin(self, user_id, grant, confirm=False):
        user = self.get_user(user_id)
        if grant:
            if not self.can_hold_admin(user):
                raise ValidationError(
                    f'Super admin privileges can only be assigned to {self.admin_domain} email addresses')
            if not user.get('isAdmin'):
                raise ValidationError('User must be an admin before becoming a super admin')
            require_confirmation(f"Grant super admin privileges to {user.get('email')}?", confirm)
        endpoint = 'make-super-admin' if grant else 'remove-super-admin'
        result = self.client.mutate('PUT', f'{USERS_KEY}/{user_id}/{endpoint}')
        self._changed()
        return result

    def set_case_submission_permission(self, user_id, enabled):
        result = self.client.mutate('PUT', f'{USERS_KEY}/{user_id}/case-submission-permission',
                                    {'canSubmitCases': bool(enabled)})
        self._changed()
        return result

    def update_notifications(self, user_id, email=None, push=None):
        payload = {}
        if email is not None:
            payload['emailNotifications'] = bool(email)
        if push is not None:
            payload['pushNotifications'] = bool(push)
        if not payload:
            raise ValidationError('No notification settings supplied')
        result = self.client.mutate('PUT', f'{USERS_KEY}/{user_id}/notifications', payload)
        self._changed()
        return result


class OrganisationAdmin:

    def __init__(self, client, page_size=DEFAULT_PAGE_SIZE):
        self.client = client
        self.page_size = page_size

    def all_organisations(self):
        return self.client.fetch(ORGS_KEY) or []

    def list_organisations(self, page=1, search=''):
        orgs = self.all_organisations()
        if search:
            term = search.strip().lower()
            orgs = [
                org for org in orgs
                if term in (org.get('name') or '').lower()
                or any(term in code.lower() for code in external_reference_codes(org))
            ]
        result = paginate(orgs, page, self.page_size)
        result['items'] = [dict(o, externalRefCodes=external_reference_codes(o)) for o in result['items']]
        return result

    def _changed(self):
        self.client.invalidate(ORGS_KEY, USERS_WITH_ORGS_KEY)

    def create_organisation(self, name, external_ref=None):
        if not name or not name.strip():
            raise ValidationError('Organisation name is required')
        payload = {'name': name.strip()}
        if external_ref:
            payload['externalRef'] = external_ref
        result = self.client.mutate('POST', ORGS_KEY, payload)
        self._changed()
        return result

    def update_organisation(self, organisation_id, data):
        if 'name' in data and not (data['name'] or '').strip():
            raise ValidationError('Organisation name is required')
        result = self.client.mutate('PUT', f'{ORGS_KEY}/{organisation_id}', data)
        self._changed()
        return result

    def delete_organisation(self, organisation_id, confirm):
        require_confirmation(
            f'Delete organisation {organisation_id}? Its users will lose access to its cases.', confirm)
        result = self.client.mutate('DELETE', f'{ORGS_KEY}/{organisation_id}')
        self._changed()
        self.client.invalidate(USERS_KEY)
        return result

    def set_scheduled_reports(self, organisation_id, enabled):
        result = self.client.mutate('PUT', f'{ORGS_KEY}/{organisation_id}/scheduled-reports',
                                    {'scheduledReportsEnabled': bool(enabled)})
        self._changed()
        return result


class CaseAdmin:

    def __init__(self, client, page_size=DEFAULT_PAGE_SIZE):
        self.client = client
        self.page_size = page_size

    def list_cases(self, page=1, search='', organisation_id=None, status=None):
        cases = self.client.fetch(ALL_CASES_KEY) or []
        cases = filter_cases(cases, organisation_id, status)
        cases = search_filter(cases, search, ('accountNumber', 'caseName', 'debtorName'))
        return paginate(cases, page, self.page_size)

    def list_closed_cases(self, start_date=None, end_date=None):
        return self.client.fetch(
            (CLOSED_CASES_KEY, start_date or '', end_date or ''),
            path=CLOSED_CASES_KEY,
            params={'startDate': start_date, 'endDate': end_date},
        ) or []

    def _changed(self):
        self.client.invalidate(ALL_CASES_KEY, CLOSED_CASES_KEY, CASES_KEY)

    def archive_case(self, case_id):
        result = self.client.mutate('PUT', f'/api/admin/cases/{case_id}/archive')
        self._changed()
        return result

    def unarchive_case(self, case_id):
        result = self.client.mutate('PUT', f'/api/admin/cases/{case_id}/unarchive')
        self._changed()
        return result

    def delete_case(self, case_id, confirm):
        require_confirmation(f'Delete case {case_id}? This cannot be undone.', confirm)
        result = self.client.mutate('DELETE', f'/api/admin/cases/{case_id}')
        self._changed()
        return result

    def bulk_archive(self, case_ids):
        case_ids = self._ids(case_ids)
        result = self.client.mutate('POST', '/api/admin/cases/bulk-archive', {'caseIds': case_ids})
        self._changed()
        return result

    def bulk_delete(self, case_ids, confirm):
        case_ids = self._ids(case_ids)
        require_confirmation(f'Permanently delete {len(case_ids)} case(s)?', confirm)
        result = self.client.mutate('POST', '/api/admin/cases/bulk-delete', {'caseIds': case_ids})
        self._changed()
        return result

    def _ids(self, case_ids):
        ids = list(dict.fromkeys(case_ids or []))
        if not ids:
            raise ValidationError('Select at least one case')
        return ids


class SubmissionAdmin:

    def __init__(self, client, page_size=DEFAULT_PAGE_SIZE):
        self.client = client
        self.page_size = page_size

    def list_submissions(self, page=1, search='', status=None):
        submissions = self.client.fetch(SUBMISSIONS_KEY) or []
        if status:
            if status not in SUBMISSION_STATUSES:
                raise ValidationError(f'Unknown submission status: {status}')
            submissions = [s for s in submissions if s.get('status', 'pending') == status]
        submissions = search_filter(
            submissions, search,
            ('clientName', 'clientEmail', 'debtorName', 'organisationName', 'caseName'))
        return paginate(submissions, page, self.page_size)

    def set_status(self, submission_id, status):
        if status not in SUBMISSION_STATUSES:
            raise ValidationError(f'Unknown submission status: {status}')
        result = self.client.mutate('PUT', f'{SUBMISSIONS_KEY}/{submission_id}/status',
                                    {'status': status})
        self.client.invalidate(SUBMISSIONS_KEY)
        return result

    def delete_submission(self, submission_id, confirm):
        require_confirmation(f'Delete case submission {submission_id}?', confirm)
        result = self.client.mutate('DELETE', f'{SUBMISSIONS_KEY}/{submission_id}')
        self.client.invalidate(SUBMISSIONS_KEY)
        return result


def resolve_recipients(users, all_users=False, admins=False, super_admins=False,
                       organisation_ids=None, individual_ids=None):
    """Unique recipient ids for a broadcast, in first-selected order."""
    active = [u for u in users if u.get('email') and not u.get('mustChangePassword')]
    selected = []

    def add(user_ids):
        for user_id in user_ids:
            if user_id not in selected:
                selected.append(user_id)

    if all_users:
        add(u['id'] for u in active)
    if admins:
        add(u['id'] for u in active if u.get('isAdmin'))
    if super_admins:
        add(u['id'] for u in active if u.get('isSuperAdmin'))
    if organisation_ids:
        wanted = {str(org_id) for org_id in organisation_ids}
        add(u['id'] for u in active
            if wanted.intersection(str(org_id) for org_id in user_organisation_ids(u)))
    if individual_ids:
        by_id = {str(u['id']): u['id'] for u in active}
        add(by_id[str(user_id)] for user_id in individual_ids if str(user_id) in by_id)
    return selected


class BroadcastAdmin:

    def __init__(self, client):
        self.client = client

    def directory(self):
        data = self.client.fetch(USERS_WITH_ORGS_KEY) or {}
        return data.get('users', []), data.get('organisations', [])

    def preview(self, **selection):
        users, _ = self.directory()
        ids = resolve_recipients(users, **selection)
        by_id = {u['id']: u for u in users}
        return {'recipientIds': ids, 'emails': [by_id[i]['email'] for i in ids]}

    def send(self, subject, body, confirm, **selection):
        if not (subject or '').strip():
            raise ValidationError('Subject is required')
        if not (body or '').strip():
            raise ValidationError('Message body is required')

        recipient_ids = self.preview(**selection)['recipientIds']
        if not recipient_ids:
            raise ValidationError('Select at least one recipient')

        require_confirmation(f'Send "{subject}" to {len(recipient_ids)} recipient(s)?', confirm)
        result = self.client.mutate('POST', BROADCAST_PATH, {
            'subject': subject,
            'body': body,
            'recipientIds': recipient_ids,
        })
        logger.info('Broadcast sent to %s recipient(s)', result.get('sentCount', len(recipient_ids)))
        return result

