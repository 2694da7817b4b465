"""
Advanced Reports
Cross-organisation analytics, user activity, system health and the
custom report builder. All aggregates are computed by the backend.
"""

import json
import logging
from datetime import date

from admin_dashboard import ValidationError
from report_exporter import format_currency

logger = logging.getLogger(__name__)

CROSS_ORG_KEY = '/api/admin/reports/cross-organisation'
USER_ACTIVITY_KEY = '/api/admin/reports/user-activity'
SYSTEM_HEALTH_KEY = '/api/admin/reports/system-health'
CUSTOM_REPORT_PATH = '/api/admin/reports/custom'

CUSTOM_TABLE_SETS = [
    ['cases'],
    ['users'],
    ['cases', 'organisations'],
    ['users', 'organisations'],
]
CUSTOM_STATUS_FILTERS = ('all', 'new', 'in_progress', 'resolved', 'closed')
DEFAULT_CUSTOM_LIMIT = 100
MAX_CUSTOM_LIMIT = 1000
HEALTH_STATUSES = ('healthy', 'warning', 'critical')


class AdvancedReports:

    def __init__(self, client):
        self.client = client

    def cross_organisation_performance(self):
        rows = self.client.fetch(CROSS_ORG_KEY) or []
        return [dict(
            row,
            totalOutstandingDisplay=format_currency(row.get('totalOutstanding')),
            totalRecoveredDisplay=format_currency(row.get('totalRecovered')),
            recoveryRateDisplay=f"{round(float(row.get('recoveryRate') or 0))}%",
            averageCaseAgeDisplay=f"{round(float(row.get('averageCaseAge') or 0))} days",
        ) for row in rows]

    def user_activity(self, start_date=None, end_date=None):
        if start_date and end_date and start_date > end_date:
            raise ValidationError('Start date must be on or before end date')
        rows = self.client.fetch(
            (USER_ACTIVITY_KEY, start_date or '', end_date or ''),
            path=USER_ACTIVITY_KEY,
            params={'startDate': start_date, 'endDate': end_date},
        ) or []
        return [dict(row, lastLoginDisplay=(row.get('lastLogin') or '')[:10] or 'Never')
                for row in rows]

    def system_health(self):
        metrics = self.client.fetch(SYSTEM_HEALTH_KEY) or []
        return [dict(m, status=m.get('status') if m.get('status') in HEALTH_STATUSES else 'unknown')
                for m in metrics]

    def build_custom_report(self, tables, filters=None, limit=DEFAULT_CUSTOM_LIMIT):
        """
        Run a whitelisted ad-hoc report.

        Args:
            tables: list of table names or a comma-separated string
            filters: optional filters; only ``status`` is recognised
            limit: row limit between 1 and MAX_CUSTOM_LIMIT

        Returns:
            dict with ``columns`` (keys of the first row) and ``rows``
        """
        if isinstance(tables, str):
            tables = [t.strip() for t in tables.split(',') if t.strip()]
        if list(tables or []) not in CUSTOM_TABLE_SETS:
            raise ValidationError('Unsupported table selection')

        filters = dict(filters or {})
        unknown = set(filters) - {'status'}
        if unknown:
            raise ValidationError(f"Unsupported filters: {', '.join(sorted(unknown))}")
        status = filters.get('status')
        if status is not None and status not in CUSTOM_STATUS_FILTERS:
            raise ValidationError(f'Unsupported status filter: {status}')
        if status in (None, 'all'):
            filters.pop('status', None)

        try:
            limit = int(limit if limit not in (None, '') else DEFAULT_CUSTOM_LIMIT)
        except (TypeError, ValueError):
            raise ValidationError('Limit must be a whole number')
        if not 1 <= limit <= MAX_CUSTOM_LIMIT:
            raise ValidationError(f'Limit must be between 1 and {MAX_CUSTOM_LIMIT}')

        rows = self.client.mutate('POST', CUSTOM_REPORT_PATH, {
            'tables': list(tables),
            'filters': filters,
            'limit': limit,
        }) or []
        logger.info('Custom report on %s returned %d rows', ','.join(tables), len(rows))
        return {'columns': list(rows[0].keys()) if rows else [], 'rows': rows}

    def export_json(self, data, name, today=None):
        today = today or date.today()
        return json.dumps(data, indent=2, default=str), f'{name}-{today.isoformat()}.json'
