import logging
import re

from admin_dashboard import (
    ValidationError, require_confirmation, user_organisation_ids, validate_email,
)

logger = logging.getLogger(__name__)

USER_REPORTS_KEY = '/api/admin/scheduled-reports'
ORG_REPORTS_KEY = '/api/admin/organisation-scheduled-reports'
SCOPES = {
    'user': USER_REPORTS_KEY,
    'organisation': ORG_REPORTS_KEY,
}

FREQUENCIES = ('daily', 'weekly', 'monthly')
CASE_STATUS_FILTERS = ('all', 'active', 'closed')
WEEKDAYS = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']
TIME_RE = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')

DEFAULTS = {
    'frequency': 'weekly',
    'dayOfWeek': 1,
    'dayOfMonth': None,
    'timeOfDay': '09:00',
    'includeCaseSummary': True,
    'includeActivityReport': True,
    'caseStatusFilter': 'all',
    'enabled': True,
}


def _as_int(value, field):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a whole number')


def normalize_schedule(data):
    """Validate frequency, day and time selectors and content toggles.

    Returns a new dict; selectors that do not apply to the frequency are
    cleared.
    """
    report = dict(DEFAULTS)
    report.update({k: v for k, v in data.items() if v is not None})

    if report['frequency'] not in FREQUENCIES:
        raise ValidationError(f"Frequency must be one of: {', '.join(FREQUENCIES)}")

    if report['frequency'] == 'weekly':
        day = _as_int(report.get('dayOfWeek'), 'dayOfWeek')
        if not 0 <= day <= 6:
            raise ValidationError('dayOfWeek must be between 0 (Sunday) and 6 (Saturday)')
        report['dayOfWeek'], report['dayOfMonth'] = day, None
    elif report['frequency'] == 'monthly':
        day = _as_int(report.get('dayOfMonth'), 'dayOfMonth')
        if not 1 <= day <= 28:
            raise ValidationError('dayOfMonth must be between 1 and 28')
        report['dayOfWeek'], report['dayOfMonth'] = None, day
    else:
        report['dayOfWeek'] = report['dayOfMonth'] = None

    if not TIME_RE.match(str(report.get('timeOfDay') or '')):
        raise ValidationError('timeOfDay must use the HH:MM format')

    if report['caseStatusFilter'] not in CASE_STATUS_FILTERS:
        raise ValidationError(f"caseStatusFilter must be one of: {', '.join(CASE_STATUS_FILTERS)}")

    report['includeCaseSummary'] = bool(report['includeCaseSummary'])
    report['includeActivityReport'] = bool(report['includeActivityReport'])
    if not (report['includeCaseSummary'] or report['includeActivityReport']):
        raise ValidationError('Select at least one report section')

    report['enabled'] = bool(report['enabled'])
    return report


def describe_schedule(report):
    time_of_day = report.get('timeOfDay') or DEFAULTS['timeOfDay']
    if report.get('frequency') == 'weekly' and report.get('dayOfWeek') is not None:
        return f"Weekly on {WEEKDAYS[int(report['dayOfWeek'])]} at {time_of_day}"
    if report.get('frequency') == 'monthly' and report.get('dayOfMonth') is not None:
        return f"Monthly on day {report['dayOfMonth']} at {time_of_day}"
    return f'Daily at {time_of_day}'


class ScheduledReportAdmin:
    """Per-user and per-organisation scheduled report configuration."""

    def __init__(self, client, user_admin):
        self.client = client
        self.user_admin = user_admin

    def _base(self, scope):
        if scope not in SCOPES:
            raise ValidationError(f'Unknown report scope: {scope}')
        return SCOPES[scope]

    def list_reports(self, scope='user'):
        reports = self.client.fetch(self._base(scope)) or []
        return [dict(r, schedule=describe_schedule(r)) for r in reports]

    def get_report(self, scope, report_id):
        for report in self.client.fetch(self._base(scope)) or []:
            if str(report.get('id')) == str(report_id):
                return report
        raise ValidationError(f'Scheduled report {report_id} not found')

    def _validate_scope_fields(self, scope, report):
        if scope == 'user':
            if not report.get('userId'):
                raise ValidationError('userId is required')
            organisation_id = report.get('organisationId')
            if organisation_id is not None:
                user = self.user_admin.get_user(report['userId'])
                memberships = [str(i) for i in user_organisation_ids(user)]
                if str(organisation_id) not in memberships:
                    raise ValidationError('The user is not a member of that organisation')
        else:
            if report.get('organisationId') is None:
                raise ValidationError('organisationId is required')
            validate_email(report.get('recipientEmail'))

    def _payload(self, scope, report):
        keys = list(DEFAULTS) + (
            ['userId', 'organisationId'] if scope == 'user'
            else ['organisationId', 'recipientEmail', 'recipientName'])
        return {k: report.get(k) for k in keys}

    def create_report(self, scope, data):
        base = self._base(scope)
        report = normalize_schedule(data)
        self._validate_scope_fields(scope, report)
        result = self.client.mutate('POST', base, self._payload(scope, report))
        self.client.invalidate(base)
        logger.info('Created %s scheduled report (%s)', scope, describe_schedule(report))
        return result

    def update_report(self, scope, report_id, data):
        base = self._base(scope)
        existing = self.get_report(scope, report_id)
        merged = dict(existing)
        merged.update(data)
        report = normalize_schedule(merged)
        self._validate_scope_fields(scope, report)
        result = self.client.mutate('PUT', f'{base}/{report_id}', self._payload(scope, report))
        self.client.invalidate(base, f'{base}/{report_id}/audit')
        return result

    def delete_report(self, scope, report_id, confirm):
        base = self._base(scope)
        require_confirmation(f'Delete scheduled report {report_id}?', confirm)
        result = self.client.mutate('DELETE', f'{base}/{report_id}')
        self.client.invalidate(base)
        return result

    def send_test(self, scope, report_id):
        """Deliver the report now through the same path the schedule uses."""
        base = self._base(scope)
        result = self.client.mutate('POST', f'{base}/{report_id}/test')
        self.client.invalidate(base, f'{base}/{report_id}/audit')
        return result

    def audit_log(self, scope, report_id):
        return self.client.fetch(f'{self._base(scope)}/{report_id}/audit') or []
