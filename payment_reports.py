"""
Payment Reports
Payment performance (method breakdown, monthly trends, 30/60/90-day
windows) and the monthly statement. Amounts follow the same rules as the
case summary; per-case outstanding uses the canonical formula.
"""

import logging
import re
from datetime import datetime, timedelta, timezone

from admin_dashboard import ValidationError
from case_summary import CASES_KEY, NoDataError, is_closed, outstanding, status_label, to_amount
from report_exporter import report_exporter as default_exporter

logger = logging.getLogger(__name__)

PAYMENTS_KEY = '/api/payments'

RECENT_WINDOWS = (30, 60, 90)
MONTH_RE = re.compile(r'^(\d{4})-(0[1-9]|1[0-2])$')

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def parse_timestamp(value):
    """ISO date or timestamp as an aware UTC datetime; None when unparseable."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def display_date(value):
    parsed = parse_timestamp(value)
    return parsed.strftime('%d/%m/%Y') if parsed else ''


def month_bounds(month):
    """Start (inclusive) and end (exclusive) of a 'YYYY-MM' month in UTC."""
    match = MONTH_RE.match(month or '')
    if not match:
        raise ValidationError('Month must use the YYYY-MM format')
    year, number = int(match.group(1)), int(match.group(2))
    start = datetime(year, number, 1, tzinfo=timezone.utc)
    end = datetime(year + number // 12, number % 12 + 1, 1, tzinfo=timezone.utc)
    return start, end


def payment_metrics(payments, now=None):
    now = now or datetime.now(timezone.utc)
    amounts = [to_amount(p.get('amount')) for p in payments]
    created = [parse_timestamp(p.get('createdAt')) for p in payments]
    total = sum(amounts)

    metrics = {
        'totalPayments': total,
        'totalPaymentCount': len(payments),
        'avgPaymentAmount': total / len(payments) if payments else 0.0,
    }
    for days in RECENT_WINDOWS:
        since = now - timedelta(days=days)
        recent = [amount for amount, at in zip(amounts, created) if at is not None and at >= since]
        metrics[f'last{days}DaysTotal'] = sum(recent)
        metrics[f'last{days}DaysCount'] = len(recent)
    return metrics


def method_breakdown(payments):
    totals = {}
    for payment in payments:
        method = payment.get('paymentMethod') or 'Not Specified'
        totals[method] = totals.get(method, 0.0) + to_amount(payment.get('amount'))
    return [{'method': method, 'total': total} for method, total in totals.items()]


def monthly_trends(payments):
    months = {}
    for payment in payments:
        created = parse_timestamp(payment.get('createdAt'))
        if created is None:
            continue
        bucket = months.setdefault((created.year, created.month), {'total': 0.0, 'count': 0})
        bucket['total'] += to_amount(payment.get('amount'))
        bucket['count'] += 1
    return [{
        'month': datetime(year, month, 1).strftime('%b %Y'),
        'total': bucket['total'],
        'count': bucket['count'],
        'average': bucket['total'] / bucket['count'],
    } for (year, month), bucket in sorted(months.items())]


def payment_detail_rows(payments, cases):
    cases_by_id = {str(c.get('id')): c for c in cases}
    rows = []
    for payment in payments:
        case = cases_by_id.get(str(payment.get('caseId')))
        rows.append({
            'accountNumber': (case or {}).get('accountNumber') or 'N/A',
            'debtorName': (case or {}).get('debtorName') or 'N/A',
            'amount': to_amount(payment.get('amount')),
            'paymentDate': display_date(payment.get('createdAt')),
            'paymentMethod': payment.get('paymentMethod') or 'Not Specified',
            'reference': payment.get('reference') or 'N/A',
            'caseStatus': status_label(case.get('status')) if case else 'N/A',
            'originalAmount': to_amount(case.get('originalAmount')) if case else 0.0,
            'outstanding': outstanding(case) if case else 0.0,
        })
    return rows


def _in_range(value, start, end):
    parsed = parse_timestamp(value)
    return parsed is not None and start <= parsed < end


def monthly_statement(cases, month):
    """New cases, closed cases and payments received within one month."""
    start, end = month_bounds(month)

    new_cases = [{
        'accountNumber': c.get('accountNumber') or '',
        'debtorName': c.get('debtorName') or '',
        'originalAmount': to_amount(c.get('originalAmount')),
        'outstanding': outstanding(c),
        'status': status_label(c.get('status')),
        'createdDate': display_date(c.get('createdAt')),
    } for c in cases if _in_range(c.get('createdAt'), start, end)]

    payments = []
    for case in cases:
        for payment in case.get('payments') or []:
            paid_at = payment.get('paymentDate') or payment.get('createdAt')
            if _in_range(paid_at, start, end):
                payments.append({
                    'accountNumber': case.get('accountNumber') or '',
                    'debtorName': case.get('debtorName') or '',
                    'amount': to_amount(payment.get('amount')),
                    'date': display_date(paid_at),
                    'paymentMethod': payment.get('paymentMethod') or 'N/A',
                    'reference': payment.get('reference') or 'N/A',
                })

    closed_count = len([c for c in cases if is_closed(c) and _in_range(c.get('updatedAt'), start, end)])
    return {
        'month': month,
        'monthName': start.strftime('%B %Y'),
        'newCases': new_cases,
        'payments': payments,
        'totals': {
            'newCasesCount': len(new_cases),
            'closedCasesCount': closed_count,
            'totalPayments': sum(p['amount'] for p in payments),
        },
    }


class PaymentPerformanceReport:

    def __init__(self, client, exporter=None):
        self.client = client
        self.exporter = exporter or default_exporter

    def build(self, now=None):
        payments = self.client.fetch(PAYMENTS_KEY) or []
        cases = self.client.fetch(CASES_KEY) or []
        return {
            'metrics': payment_metrics(payments, now),
            'methodBreakdown': method_breakdown(payments),
            'monthlyTrends': monthly_trends(payments),
            'payments': payment_detail_rows(payments, cases),
        }

    def export(self, export_format, now=None):
        """Return (payload, mimetype, filename) for the requested format."""
        report = self.build(now)
        if not report['payments']:
            raise NoDataError('No payment data available to export.')

        logger.info('Exporting %d payments as %s', len(report['payments']), export_format)
        name = 'payment-performance-report'
        if export_format == 'csv':
            return self.exporter.payments_to_csv(report), 'text/csv', self.exporter.filename('csv', name=name)
        if export_format == 'xlsx':
            return self.exporter.payments_to_workbook(report), XLSX_MIMETYPE, self.exporter.filename('xlsx', name=name)
        if export_format in ('pdf', 'html'):
            return self.exporter.payments_to_print_html(report), 'text/html', self.exporter.filename('html', name=name)
        raise ValueError(f'Unsupported export format: {export_format}')


class MonthlyStatementReport:

    def __init__(self, client, exporter=None):
        self.client = client
        self.exporter = exporter or default_exporter

    def build(self, month):
        month_bounds(month)
        return monthly_statement(self.client.fetch(CASES_KEY) or [], month)

    def export(self, export_format, month):
        month_bounds(month)
        cases = self.client.fetch(CASES_KEY) or []
        if not cases:
            raise NoDataError('No cases available for this statement.')
        statement = monthly_statement(cases, month)

        filename = f'monthly-statement-{month}'
        if export_format == 'csv':
            return self.exporter.statement_to_csv(statement), 'text/csv', f'{filename}.csv'
        if export_format == 'xlsx':
            return self.exporter.statement_to_workbook(statement), XLSX_MIMETYPE, f'{filename}.xlsx'
        if export_format in ('pdf', 'html'):
            return self.exporter.statement_to_print_html(statement), 'text/html', f'{filename}.html'
        raise ValueError(f'Unsupported export format: {export_format}')
