import pytest

from case_summary import (
    CaseSummaryReport, NoDataError, derive_row, filter_cases, outstanding, recovery_rate,
    stage_label, status_label, summarise, to_amount, total_debt, total_payments,
)


class TestAmounts:

    def test_to_amount_parses_strings_and_defaults_to_zero(self):
        assert to_amount('12.50') == 12.5
        assert to_amount(None) == 0.0
        assert to_amount('') == 0.0
        assert to_amount('n/a') == 0.0

    def test_total_debt_treats_missing_addends_as_zero(self):
        assert total_debt({'originalAmount': '100'}) == 100.0
        assert total_debt({'originalAmount': '100', 'costsAdded': '10', 'interestAdded': '2.5',
                           'feesAdded': '7.5'}) == 120.0

    def test_derived_row_is_stable_when_recomputed(self, two_cases):
        assert derive_row(two_cases[0]) == derive_row(two_cases[0])
        assert derive_row(two_cases[0])['totalDebt'] == 110.0

    def test_server_total_payments_wins_over_payments_list(self):
        case = {'originalAmount': '100', 'totalPayments': '40', 'payments': [{'amount': '5'}]}
        assert total_payments(case) == 40.0

    def test_payments_list_is_summed_without_server_total(self):
        case = {'payments': [{'amount': '5'}, {'amount': '7.25'}, {}]}
        assert total_payments(case) == 12.25

    def test_outstanding_falls_back_to_debt_minus_payments(self):
        assert outstanding({'originalAmount': '100', 'costsAdded': '10',
                            'payments': [{'amount': '20'}]}) == 90.0
        assert outstanding({'originalAmount': '100', 'outstandingAmount': '55'}) == 55.0

    def test_recovery_rate_is_capped(self):
        assert recovery_rate({'originalAmount': '100', 'totalPayments': '150'}) == 100.0
        assert recovery_rate({'originalAmount': '0', 'totalPayments': '10'}) == 0.0


class TestLabels:

    def test_status_label(self):
        assert status_label('resolved') == 'Closed'
        assert status_label('closed') == 'Closed'
        assert status_label('active') == 'Active'

    def test_stage_label(self):
        assert stage_label('payment_plan') == 'Payment Plan'
        assert stage_label('pre-legal') == 'Pre-Legal'
        assert stage_label(None) == 'Not specified'


class TestFilterCases:

    def test_live_and_closed_partition_the_list(self, two_cases):
        extra = dict(two_cases[0], id=3, status='resolved')
        cases = two_cases + [extra]

        live = filter_cases(cases, status='live')
        closed = filter_cases(cases, status='closed')

        assert len(live) + len(closed) == len(cases)
        assert not {c['id'] for c in live} & {c['id'] for c in closed}
        assert [c['id'] for c in closed] == [2, 3]

    def test_all_keeps_everything(self, two_cases):
        assert filter_cases(two_cases, status='all') == two_cases
        assert filter_cases(two_cases) == two_cases

    def test_organisation_filter_accepts_string_ids(self, two_cases):
        assert [c['id'] for c in filter_cases(two_cases, organisation_id='2')] == [2]

    def test_unknown_status_is_rejected(self, two_cases):
        with pytest.raises(ValueError):
            filter_cases(two_cases, status='archived')


def test_summarise_two_cases(two_cases):
    summary = summarise(two_cases)
    totals = summary['totals']

    assert len(summary['rows']) == 2
    assert totals['originalAmount'] == 300.0
    assert totals['totalDebt'] == 315.0
    assert totals['totalPayments'] == 225.0
    assert totals['outstanding'] == 90.0
    assert totals['totalCases'] == 2
    assert totals['liveCases'] == 1
    assert totals['closedCases'] == 1
    assert totals['recoveryRate'] == 75.0


def test_summarise_empty_list():
    totals = summarise([])['totals']
    assert totals['totalCases'] == 0
    assert totals['recoveryRate'] == 0.0


class TestCaseSummaryReport:

    def test_build_fetches_cases_once(self, client, backend, two_cases):
        backend.on('GET', '/api/cases', two_cases)
        report = CaseSummaryReport(client)

        report.build(status='live')
        report.build(status='closed')

        assert backend.count('GET', '/api/cases') == 1

    def test_export_formats(self, client, backend, two_cases):
        backend.on('GET', '/api/cases', two_cases)
        report = CaseSummaryReport(client)

        _, mimetype, filename = report.export('csv')
        assert mimetype == 'text/csv'
        assert filename.startswith('case-summary-report-') and filename.endswith('.csv')

        payload, mimetype, filename = report.export('xlsx')
        assert mimetype == 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        assert payload.read(2) == b'PK'

        _, mimetype, filename = report.export('pdf')
        assert mimetype == 'text/html'
        assert filename.endswith('.html')

    def test_export_with_no_cases_raises(self, client, backend, two_cases):
        backend.on('GET', '/api/cases', two_cases)
        report = CaseSummaryReport(client)

        with pytest.raises(NoDataError, match='No cases available to export.'):
            report.export('csv', organisation_id=99)

    def test_unsupported_export_format(self, client, backend, two_cases):
        backend.on('GET', '/api/cases', two_cases)
        with pytest.raises(ValueError):
            CaseSummaryReport(client).export('docx')
