import csv
import io
from datetime import datetime, timezone

import pytest
from openpyxl import load_workbook

from admin_dashboard import ValidationError
from case_summary import CASES_KEY, NoDataError
from payment_reports import (
    PAYMENTS_KEY, MonthlyStatementReport, PaymentPerformanceReport, method_breakdown, month_bounds,
    monthly_statement, monthly_trends, parse_timestamp, payment_metrics,
)

NOW = datetime(2024, 4, 15, tzinfo=timezone.utc)

PAYMENTS = [
    {'caseId': 1, 'amount': '50', 'createdAt': '2024-04-10T09:00:00Z',
     'paymentMethod': 'Bank Transfer', 'reference': 'REF1'},
    {'caseId': 2, 'amount': 30, 'createdAt': '2024-03-01T12:00:00Z', 'paymentMethod': 'Card'},
    {'caseId': 99, 'amount': '20', 'createdAt': '2024-01-20T00:00:00Z'},
    {'amount': 'abc', 'createdAt': 'not a date', 'paymentMethod': 'Card'},
]

STATEMENT_CASES = [
    {'id': 1, 'accountNumber': 'ACC-001', 'debtorName': 'John Smith', 'status': 'active',
     'originalAmount': '100', 'costsAdded': '10',
     'createdAt': '2024-03-05T10:00:00Z', 'updatedAt': '2024-03-20T10:00:00Z',
     'payments': [
         {'amount': '20', 'paymentDate': '2024-03-31T23:30:00Z', 'paymentMethod': 'Card'},
         {'amount': '15', 'createdAt': '2024-04-01T00:00:00Z'},
     ]},
    {'id': 2, 'accountNumber': 'ACC-002', 'debtorName': 'Amy Jones', 'status': 'closed',
     'originalAmount': '200', 'outstandingAmount': '0',
     'createdAt': '2024-01-10', 'updatedAt': '2024-03-15T09:00:00Z',
     'payments': [{'amount': '200', 'paymentDate': '2024-03-15', 'createdAt': '2024-05-01'}]},
    {'id': 3, 'status': 'resolved', 'createdAt': '2024-02-28T23:59:59Z', 'updatedAt': '2024-04-02'},
]


class TestTimestamps:

    def test_parse_timestamp(self):
        assert parse_timestamp('2024-04-10T09:00:00Z') == datetime(2024, 4, 10, 9, tzinfo=timezone.utc)
        assert parse_timestamp('2024-04-10') == datetime(2024, 4, 10, tzinfo=timezone.utc)
        assert parse_timestamp('not a date') is None
        assert parse_timestamp(None) is None

    def test_month_bounds_wrap_year(self):
        start, end = month_bounds('2024-12')
        assert start == datetime(2024, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2025, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize('month', ['2024-13', '2024-3', 'March', '', None])
    def test_month_bounds_rejects_bad_input(self, month):
        with pytest.raises(ValidationError):
            month_bounds(month)


class TestPaymentMetrics:

    def test_totals_and_average(self):
        metrics = payment_metrics(PAYMENTS, NOW)
        assert metrics['totalPayments'] == 100
        assert metrics['totalPaymentCount'] == 4
        assert metrics['avgPaymentAmount'] == 25

    def test_recent_windows(self):
        metrics = payment_metrics(PAYMENTS, NOW)
        assert (metrics['last30DaysTotal'], metrics['last30DaysCount']) == (50, 1)
        assert metrics['last60DaysTotal'] == 80
        assert metrics['last90DaysTotal'] == 100

    def test_no_payments(self):
        metrics = payment_metrics([], NOW)
        assert metrics['totalPayments'] == 0
        assert metrics['avgPaymentAmount'] == 0

    def test_method_breakdown_defaults_missing_method(self):
        assert method_breakdown(PAYMENTS) == [
            {'method': 'Bank Transfer', 'total': 50},
            {'method': 'Card', 'total': 30},
            {'method': 'Not Specified', 'total': 20},
        ]

    def test_monthly_trends_are_chronological(self):
        trends = monthly_trends(PAYMENTS)
        assert [t['month'] for t in trends] == ['Jan 2024', 'Mar 2024', 'Apr 2024']
        assert trends[-1] == {'month': 'Apr 2024', 'total': 50, 'count': 1, 'average': 50}


class TestPaymentPerformanceReport:

    @pytest.fixture
    def report(self, client, backend, two_cases):
        backend.on('GET', PAYMENTS_KEY, PAYMENTS)
        backend.on('GET', CASES_KEY, two_cases)
        return PaymentPerformanceReport(client)

    def test_detail_rows_use_case_outstanding(self, report):
        rows = report.build(NOW)['payments']
        assert rows[0]['accountNumber'] == 'ACC-001'
        assert rows[0]['caseStatus'] == 'Active'
        assert rows[0]['outstanding'] == 90
        assert rows[0]['paymentDate'] == '10/04/2024'
        assert rows[2]['accountNumber'] == 'N/A'

    def test_workbook_sheets(self, report):
        payload, mimetype, filename = report.export('xlsx', NOW)
        wb = load_workbook(payload)

        assert wb.sheetnames == ['Summary', 'Payment Details', 'Payment Methods', 'Monthly Trends']
        assert wb['Summary'].cell(row=2, column=2).value == 100
        details = wb['Payment Details']
        assert details.cell(row=1, column=1).fill.start_color.rgb.endswith('366092')
        assert details.max_row == 5
        assert details.cell(row=2, column=3).value == 50
        assert filename.startswith('payment-performance-report-') and filename.endswith('.xlsx')
        assert mimetype.endswith('spreadsheetml.sheet')

    def test_csv_has_one_row_per_payment(self, report):
        payload, mimetype, _ = report.export('csv', NOW)
        rows = list(csv.reader(io.StringIO(payload)))
        assert mimetype == 'text/csv'
        assert len(rows) == 5
        assert rows[1][:3] == ['ACC-001', 'John Smith', '50.00']

    def test_print_page(self, report):
        payload, mimetype, _ = report.export('pdf', NOW)
        assert mimetype == 'text/html'
        assert 'window.print()' in payload
        assert '£100.00' in payload

    def test_no_payments(self, client, backend):
        backend.on('GET', PAYMENTS_KEY, [])
        backend.on('GET', CASES_KEY, [])
        with pytest.raises(NoDataError, match='No payment data'):
            PaymentPerformanceReport(client).export('xlsx')

    def test_unknown_format(self, report):
        with pytest.raises(ValueError):
            report.export('docx', NOW)


class TestMonthlyStatement:

    def test_new_cases_in_month(self):
        statement = monthly_statement(STATEMENT_CASES, '2024-03')
        assert statement['monthName'] == 'March 2024'
        assert [c['accountNumber'] for c in statement['newCases']] == ['ACC-001']
        assert statement['newCases'][0]['outstanding'] == 75

    def test_payment_date_wins_over_created_at(self):
        statement = monthly_statement(STATEMENT_CASES, '2024-03')
        assert [(p['accountNumber'], p['amount']) for p in statement['payments']] == [
            ('ACC-001', 20), ('ACC-002', 200)]
        assert statement['payments'][0]['date'] == '31/03/2024'
        assert statement['payments'][1]['paymentMethod'] == 'N/A'

    def test_totals(self):
        totals = monthly_statement(STATEMENT_CASES, '2024-03')['totals']
        assert totals == {'newCasesCount': 1, 'closedCasesCount': 1, 'totalPayments': 220}

    def test_empty_month(self):
        totals = monthly_statement(STATEMENT_CASES, '2023-07')['totals']
        assert totals == {'newCasesCount': 0, 'closedCasesCount': 0, 'totalPayments': 0}

    def test_workbook_layout(self, client, backend):
        backend.on('GET', CASES_KEY, STATEMENT_CASES)

        payload, _, filename = MonthlyStatementReport(client).export('xlsx', '2024-03')
        ws = load_workbook(payload)['Monthly Statement']

        assert filename == 'monthly-statement-2024-03.xlsx'
        assert ws['A1'].value == 'Monthly Statement Report'
        assert ws['B2'].value == 'March 2024'
        assert (ws['B6'].value, ws['B7'].value, ws['B8'].value) == (1, 1, 220)
        assert ws['A11'].value == 'Account Number'
        assert ws['A11'].fill.start_color.rgb.endswith('366092')
        assert ws['A12'].value == 'ACC-001'
        assert ws['A14'].value == 'Payments Received This Month'
        assert ws['A17'].value == 'ACC-002'

    def test_export_without_cases(self, client, backend):
        backend.on('GET', CASES_KEY, [])
        with pytest.raises(NoDataError):
            MonthlyStatementReport(client).export('csv', '2024-03')

    def test_bad_month_makes_no_request(self, client, backend):
        with pytest.raises(ValidationError):
            MonthlyStatementReport(client).build('2024/03')
        assert backend.calls == []
