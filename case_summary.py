"""
Case summary derivation
Derived figures per case, list filtering and totals shared by every export.
"""

import logging

from report_exporter import report_exporter as default_exporter

logger = logging.getLogger(__name__)

CASES_KEY = '/api/cases'

CLOSED_STATUSES = ('closed', 'resolved')

# Totals row fields, in export column order
TOTAL_FIELDS = [
    'originalAmount', 'costsAdded', 'interestAdded', 'feesAdded',
    'totalDebt', 'totalPayments', 'outstanding',
]


class NoDataError(Exception):
    """Raised when an export is requested for an empty case list."""

    def __init__(self, message='No cases available to export.'):
        super().__init__(message)


def to_amount(value):
    """parseFloat semantics: missing or unparseable values count as 0."""
    if value is None or value == '':
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def total_debt(case):
    return (to_amount(case.get('originalAmount')) + to_amount(case.get('costsAdded'))
            + to_amount(case.get('interestAdded')) + to_amount(case.get('feesAdded')))


def total_payments(case):
    """Server-calculated payments, else the sum of the payments list."""
    if case.get('totalPayments') not in (None, ''):
        return to_amount(case['totalPayments'])
    return sum(to_amount(p.get('amount')) for p in case.get('payments') or [])


def outstanding(case):
    if case.get('outstandingAmount') not in (None, ''):
        return to_amount(case['outstandingAmount'])
    return total_debt(case) - total_payments(case)


def recovery_rate(case):
    original = to_amount(case.get('originalAmount'))
    if original <= 0:
        return 0.0
    return min(total_payments(case) / original * 100, 100.0)


def is_closed(case):
    return (case.get('status') or '').lower() in CLOSED_STATUSES


def status_label(status):
    status = (status or '').strip()
    if status.lower() in CLOSED_STATUSES:
        return 'Closed'
    return status[:1].upper() + status[1:]


def stage_label(stage):
    if not stage:
        return 'Not specified'
    return stage.replace('_', ' ').title()


def filter_cases(cases, organisation_id=None, status=None):
    """
    Narrow a case list without a server round-trip.

    Args:
        cases: list of case dicts
        organisation_id: keep only this organisation's cases
        status: 'live', 'closed' or None/'all'
    """
    if status not in (None, '', 'all', 'live', 'closed'):
        raise ValueError(f'Unknown status filter: {status}')

    result = []
    for case in cases:
        if organisation_id is not None and str(case.get('organisationId')) != str(organisation_id):
            continue
        if status == 'closed' and not is_closed(case):
            continue
        if status == 'live' and is_closed(case):
            continue
        result.append(case)
    return result


def derive_row(case):
    costs = to_amount(case.get('costsAdded'))
    interest = to_amount(case.get('interestAdded'))
    fees = to_amount(case.get('feesAdded'))
    return {
        'id': case.get('id'),
        'accountNumber': case.get('accountNumber') or '',
        'caseName': case.get('caseName') or '',
        'debtorName': case.get('debtorName') or '',
        'organisationName': case.get('organisationName') or '',
        'status': status_label(case.get('status')),
        'stage': stage_label(case.get('stage')),
        'closed': is_closed(case),
        'originalAmount': to_amount(case.get('originalAmount')),
        'costsAdded': costs,
        'interestAdded': interest,
        'feesAdded': fees,
        'totalDebt': total_debt(case),
        'totalPayments': total_payments(case),
        'outstanding': outstanding(case),
        'recoveryRate': round(recovery_rate(case)),
    }


def summarise(cases):
    """Derived rows plus totals for an already-filtered case list."""
    rows = [derive_row(case) for case in cases]
    totals = {field: sum(row[field] for row in rows) for field in TOTAL_FIELDS}
    closed_count = len([row for row in rows if row['closed']])
    totals.update({
        'totalCases': len(rows),
        'liveCases': len(rows) - closed_count,
        'closedCases': closed_count,
        'recoveryRate': (min(totals['totalPayments'] / totals['originalAmount'] * 100, 100.0)
                         if totals['originalAmount'] > 0 else 0.0),
    })
    return {'rows': rows, 'totals': totals}


class CaseSummaryReport:
    """Case summary view: fetch the case list, filter, derive and export."""

    def __init__(self, client, exporter=None):
        self.client = client
        self.exporter = exporter or default_exporter

    def load_cases(self):
        return self.client.fetch(CASES_KEY) or []

    def build(self, organisation_id=None, status=None):
        cases = filter_cases(self.load_cases(), organisation_id, status)
        return summarise(cases)

    def export(self, export_format, organisation_id=None, status=None):
        """Return (payload, mimetype, filename) for the requested format."""
        summary = self.build(organisation_id, status)
        if not summary['rows']:
            raise NoDataError()

        logger.info('Exporting %d cases as %s', len(summary['rows']), export_format)
        if export_format == 'csv':
            return self.exporter.to_csv(summary), 'text/csv', self.exporter.filename('csv')
        if export_format == 'xlsx':
            return (self.exporter.to_workbook(summary),
                    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
                    self.exporter.filename('xlsx'))
        if export_format in ('pdf', 'html'):
            return self.exporter.to_print_html(summary), 'text/html', self.exporter.filename('html')
        raise ValueError(f'Unsupported export format: {export_format}')
