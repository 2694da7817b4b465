import csv
import html
import io
from datetime import date
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill

# (header, row field, is amount)
CASE_COLUMNS = [
    ('Account Number', 'accountNumber', False),
    ('Case Name', 'caseName', False),
    ('Debtor Name', 'debtorName', False),
    ('Status', 'status', False),
    ('Stage', 'stage', False),
    ('Original Amount', 'originalAmount', True),
    ('Costs Added', 'costsAdded', True),
    ('Interest Added', 'interestAdded', True),
    ('Fees Added', 'feesAdded', True),
    ('Total Debt', 'totalDebt', True),
    ('Total Payments', 'totalPayments', True),
    ('Outstanding Amount', 'outstanding', True),
]

STATUS_COLORS = {
    'Closed': 'C8E6C9',
    'Active': 'FFF9C4',
    'New': 'BBDEFB',
}

# Checked in order against the stage label
STAGE_COLORS = [
    ('Pre-Legal', 'BBDEFB'),
    ('Payment', 'C8E6C9'),
    ('Paid', 'C8E6C9'),
    ('Claim', 'FFF9C4'),
    ('Judgment', 'FFCC80'),
    ('Enforcement', 'FFCDD2'),
    ('Legal Action', 'FFCDD2'),
]

LEGEND = [
    ('Status Colors', 'Closed', 'Light Green', 'C8E6C9'),
    ('', 'Active', 'Light Yellow', 'FFF9C4'),
    ('', 'New', 'Light Blue', 'BBDEFB'),
    ('', '', '', None),
    ('Stage Colors', 'Pre-Legal', 'Light Blue', 'BBDEFB'),
    ('', 'Payment Plan/Paid', 'Light Green', 'C8E6C9'),
    ('', 'Claim', 'Light Yellow', 'FFF9C4'),
    ('', 'Judgment', 'Light Orange', 'FFCC80'),
    ('', 'Enforcement', 'Light Red', 'FFCDD2'),
]

TOTALS_LABEL = 'TOTALS'

PAYMENT_COLUMNS = [
    ('Account Number', 'accountNumber', False),
    ('Debtor Name', 'debtorName', False),
    ('Payment Amount', 'amount', True),
    ('Payment Date', 'paymentDate', False),
    ('Payment Method', 'paymentMethod', False),
    ('Reference', 'reference', False),
    ('Case Status', 'caseStatus', False),
    ('Original Amount', 'originalAmount', True),
    ('Outstanding Amount', 'outstanding', True),
]

METHOD_COLUMNS = [
    ('Payment Method', 'method', False),
    ('Total Amount', 'total', True),
]

TREND_COLUMNS = [
    ('Month', 'month', False),
    ('Total Amount', 'total', True),
    ('Payment Count', 'count', False),
    ('Average Amount', 'average', True),
]

STATEMENT_CASE_COLUMNS = [
    ('Account Number', 'accountNumber', False),
    ('Debtor Name', 'debtorName', False),
    ('Original Amount', 'originalAmount', True),
    ('Outstanding Amount', 'outstanding', True),
    ('Status', 'status', False),
    ('Created Date', 'createdDate', False),
]

STATEMENT_PAYMENT_COLUMNS = [
    ('Account Number', 'accountNumber', False),
    ('Debtor Name', 'debtorName', False),
    ('Amount', 'amount', True),
    ('Date', 'date', False),
    ('Method', 'paymentMethod', False),
    ('Reference', 'reference', False),
]



def format_currency(amount):
    amount = float(amount or 0)
    sign = '-' if amount < 0 else ''
    return f'{sign}£{abs(amount):,.2f}'


def stage_color(stage):
    for marker, color in STAGE_COLORS:
        if marker in (stage or ''):
            return color
    return None


def _solid(color):
    return PatternFill(start_color=color, end_color=color, fill_type='solid')


class ReportExporter:
    """Formats reports as CSV, spreadsheet or printable HTML.

    Every case summary target writes the same derived rows followed by one totals row.
    """

    def filename(self, extension, today=None, name='case-summary-report'):
        today = today or date.today()
        return f'{name}-{today.isoformat()}.{extension}'

    def table_rows(self, summary):
        """Header, data rows and totals row as plain values."""
        header = [title for title, _, _ in CASE_COLUMNS]
        rows = [[row[field] for _, field, _ in CASE_COLUMNS] for row in summary['rows']]
        totals = summary['totals']
        totals_row = [TOTALS_LABEL] + [
            totals[field] if is_amount else '' for _, field, is_amount in CASE_COLUMNS[1:]
        ]
        return header, rows, totals_row

    def to_csv(self, summary):
        header, rows, totals_row = self.table_rows(summary)
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator='\n')
        writer.writerow(header)
        for row in rows:
            writer.writerow([f'{value:.2f}' if isinstance(value, float) else value for value in row])
        writer.writerow([f'{value:.2f}' if isinstance(value, float) else value for value in totals_row])
        return output.getvalue()

    def build_workbook(self, summary):
        header, rows, totals_row = self.table_rows(summary)

        wb = Workbook()
        ws = wb.active
        ws.title = 'Case Summary'

        self._write_header(ws, header)

        status_col = header.index('Status') + 1
        stage_col = header.index('Stage') + 1
        for row_idx, values in enumerate(rows, 2):
            for col, value in enumerate(values, 1):
                cell = ws.cell(row=row_idx, column=col, value=value)
                if CASE_COLUMNS[col - 1][2]:
                    cell.number_format = '#,##0.00'

            status_fill = STATUS_COLORS.get(values[status_col - 1])
            if status_fill:
                ws.cell(row=row_idx, column=status_col).fill = _solid(status_fill)
            color = stage_color(values[stage_col - 1])
            if color:
                ws.cell(row=row_idx, column=stage_col).fill = _solid(color)

        totals_idx = len(rows) + 2
        for col, value in enumerate(totals_row, 1):
            cell = ws.cell(row=totals_idx, column=col, value=value)
            cell.font = Font(bold=True)
            if CASE_COLUMNS[col - 1][2]:
                cell.number_format = '#,##0.00'

        ws.freeze_panes = 'A2'
        self._autosize(ws)
        self._add_legend(wb)
        return wb

    def to_workbook(self, summary):
        return self._save(self.build_workbook(summary))

    def _add_legend(self, wb):
        ws = wb.create_sheet('Color Legend')
        self._write_header(ws, ['Category', 'Item', 'Color'], color='6A1B9A')

        for row_idx, (category, item, color_name, color) in enumerate(LEGEND, 2):
            ws.cell(row=row_idx, column=1, value=category or None)
            item_cell = ws.cell(row=row_idx, column=2, value=item or None)
            ws.cell(row=row_idx, column=3, value=color_name or None)
            if color:
                item_cell.fill = _solid(color)
                item_cell.alignment = Alignment(horizontal='center')
        self._autosize(ws)

    def _write_header(self, ws, titles, row=1, color='366092'):
        fill = _solid(color)
        for col, title in enumerate(titles, 1):
            cell = ws.cell(row=row, column=col, value=title)
            cell.fill = fill
            cell.font = Font(bold=True, color='FFFFFF')
            cell.alignment = Alignment(horizontal='center')

    def _write_table(self, ws, columns, records, start_row=1):
        """Header plus one row per record. Returns the first row after the table."""
        self._write_header(ws, [title for title, _, _ in columns], row=start_row)
        for row_idx, record in enumerate(records, start_row + 1):
            for col, (_, field, is_amount) in enumerate(columns, 1):
                cell = ws.cell(row=row_idx, column=col, value=record[field])
                if is_amount:
                    cell.number_format = '#,##0.00'
        return start_row + len(records) + 1

    def _save(self, wb):
        output = BytesIO()
        wb.save(output)
        output.seek(0)
        return output

    def _autosize(self, ws):

        for column in ws.columns:
            max_length = 0
            column_letter = column[0].column_letter
            for cell in column:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))
            ws.column_dimensions[column_letter].width = min(max_length + 2, 50)

    def to_print_html(self, summary, generated_on=None):
        """Self-contained page for the browser's print dialog (save as PDF)."""
        generated_on = generated_on or date.today()
        header, rows, totals_row = self.table_rows(summary)
        totals = summary['totals']

        def cell(value, is_amount):
            if is_amount:
                return f'<td class="currency">{format_currency(value)}</td>'
            return f'<td>{html.escape(str(value))}</td>'

        body_rows = []
        for values in rows + [totals_row]:
            css = ' class="totals"' if values is totals_row else ''
            cells = ''.join(cell(v, CASE_COLUMNS[i][2]) for i, v in enumerate(values))
            body_rows.append(f'<tr{css}>{cells}</tr>')

        stats = [
            ('Total Cases', totals['totalCases']),
            ('Live Cases', totals['liveCases']),
            ('Closed Cases', totals['closedCases']),
            ('Total Original Amount', format_currency(totals['originalAmount'])),
            ('Total Payments Received', format_currency(totals['totalPayments'])),
            ('Total Outstanding', format_currency(totals['outstanding'])),
        ]
        stat_cards = ''.join(
            f'<div class="stat-card"><div class="stat-label">{label}</div>'
            f'<div class="stat-value">{value}</div></div>'
            for label, value in stats
        )
        head_cells = ''.join(f'<th>{html.escape(title)}</th>' for title in header)

        return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Case Summary Report</title>
  <style>
    body {{ font-family: Arial, sans-serif; margin: 20px; }}
    .header {{ text-align: center; margin-bottom: 30px; }}
    .stats-grid {{ display: grid; grid-template-columns: repeat(3, 1fr); gap: 15px; }}
    .stat-card {{ padding: 15px; border: 1px solid #ddd; border-radius: 5px; }}
    .stat-label {{ font-size: 12px; color: #666; }}
    .stat-value {{ font-size: 18px; font-weight: bold; }}
    table {{ width: 100%; border-collapse: collapse; margin-top: 10px; }}
    th, td {{ padding: 8px; text-align: left; border: 1px solid #ddd; font-size: 10px; }}
    th {{ background-color: #f5f5f5; }}
    .currency {{ text-align: right; }}
    .totals td {{ font-weight: bold; }}
    @media print {{ body {{ margin: 0; }} }}
  </style>
</head>
<body onload="window.print()">
  <div class="header">
    <h1>Case Summary Report</h1>
    <p>Generated on: {generated_on.strftime('%d/%m/%Y')}</p>
  </div>
  <h2>Summary Statistics</h2>
  <div class="stats-grid">{stat_cards}</div>
  <h2>Detailed Case Information</h2>
  <table>
    <thead><tr>{head_cells}</tr></thead>
    <tbody>
{chr(10).join(body_rows)}
    </tbody>
  </table>
  <p style="text-align: center; color: #666; font-size: 12px; margin-top: 40px;">
    All amounts are in GBP. Outstanding amounts include interest and recovery costs.
  </p>
</body>
</html>
"""

    # Payment performance and monthly statement

    def _csv(self, columns, records):
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator='\n')
        writer.writerow([title for title, _, _ in columns])
        for record in records:
            writer.writerow([
                f'{record[field]:.2f}' if is_amount else record[field] for _, field, is_amount in columns
            ])
        return output.getvalue()

    def payments_to_csv(self, report):
        return self._csv(PAYMENT_COLUMNS, report['payments'])

    def payments_to_workbook(self, report):
        metrics = report['metrics']
        wb = Workbook()
        ws = wb.active
        ws.title = 'Summary'

        self._write_header(ws, ['Metric', 'Value'])
        summary_rows = [
            ('Total Payments Received', metrics['totalPayments']),
            ('Number of Payments', metrics['totalPaymentCount']),
            ('Average Payment', metrics['avgPaymentAmount']),
            ('Last 30 Days', metrics['last30DaysTotal']),
            ('Last 60 Days', metrics['last60DaysTotal']),
            ('Last 90 Days', metrics['last90DaysTotal']),
        ]
        for row_idx, (label, value) in enumerate(summary_rows, 2):
            ws.cell(row=row_idx, column=1, value=label)
            cell = ws.cell(row=row_idx, column=2, value=value)
            if label != 'Number of Payments':
                cell.number_format = '#,##0.00'
        self._autosize(ws)

        sheets = [
            ('Payment Details', PAYMENT_COLUMNS, report['payments']),
            ('Payment Methods', METHOD_COLUMNS, report['methodBreakdown']),
            ('Monthly Trends', TREND_COLUMNS, report['monthlyTrends']),
        ]
        for title, columns, records in sheets:
            if not records:
                continue
            sheet = wb.create_sheet(title)
            self._write_table(sheet, columns, records)
            sheet.freeze_panes = 'A2'
            self._autosize(sheet)
        return self._save(wb)

    def payments_to_print_html(self, report, generated_on=None):
        metrics = report['metrics']
        stats = [
            ('Total Payments Received', format_currency(metrics['totalPayments'])),
            ('Number of Payments', metrics['totalPaymentCount']),
            ('Average Payment', format_currency(metrics['avgPaymentAmount'])),
            ('Last 30 Days', format_currency(metrics['last30DaysTotal'])),
            ('Last 60 Days', format_currency(metrics['last60DaysTotal'])),
            ('Last 90 Days', format_currency(metrics['last90DaysTotal'])),
        ]
        sections = [
            ('Payment Methods', METHOD_COLUMNS, report['methodBreakdown']),
            ('Monthly Trends', TREND_COLUMNS, report['monthlyTrends']),
            ('Payment Details', PAYMENT_COLUMNS, report['payments']),
        ]
        generated_on = generated_on or date.today()
        return self._print_page('Payment Performance Report',
                                f"Generated on: {generated_on.strftime('%d/%m/%Y')}", stats, sections)

    def statement_to_csv(self, statement):
        return self._csv(STATEMENT_CASE_COLUMNS, statement['newCases']) + '\n' + \
            self._csv(STATEMENT_PAYMENT_COLUMNS, statement['payments'])

    def statement_to_workbook(self, statement, generated_on=None):
        generated_on = generated_on or date.today()
        totals = statement['totals']
        wb = Workbook()
        ws = wb.active
        ws.title = 'Monthly Statement'

        ws.cell(row=1, column=1, value='Monthly Statement Report').font = Font(bold=True, size=14)
        ws.cell(row=2, column=1, value='Month:')
        ws.cell(row=2, column=2, value=statement['monthName'])
        ws.cell(row=3, column=1, value='Generated:')
        ws.cell(row=3, column=2, value=generated_on.strftime('%d/%m/%Y'))

        ws.cell(row=5, column=1, value='Summary').font = Font(bold=True)
        ws.cell(row=6, column=1, value='New Cases')
        ws.cell(row=6, column=2, value=totals['newCasesCount'])
        ws.cell(row=7, column=1, value='Closed Cases')
        ws.cell(row=7, column=2, value=totals['closedCasesCount'])
        ws.cell(row=8, column=1, value='Total Payments')
        ws.cell(row=8, column=2, value=totals['totalPayments']).number_format = '#,##0.00'

        ws.cell(row=10, column=1, value='Cases Created This Month').font = Font(bold=True)
        next_row = self._write_table(ws, STATEMENT_CASE_COLUMNS, statement['newCases'], start_row=11)
        if statement['payments']:
            ws.cell(row=next_row + 1, column=1, value='Payments Received This Month').font = Font(bold=True)
            self._write_table(ws, STATEMENT_PAYMENT_COLUMNS, statement['payments'], start_row=next_row + 2)

        self._autosize(ws)
        return self._save(wb)

    def statement_to_print_html(self, statement):
        totals = statement['totals']
        stats = [
            ('New Cases', totals['newCasesCount']),
            ('Closed Cases', totals['closedCasesCount']),
            ('Total Payments', format_currency(totals['totalPayments'])),
        ]
        sections = [
            ('Cases Created This Month', STATEMENT_CASE_COLUMNS, statement['newCases']),
            ('Payments Received This Month', STATEMENT_PAYMENT_COLUMNS, statement['payments']),
        ]
        return self._print_page('Monthly Statement Report', statement['monthName'], stats, sections)

    def _print_page(self, title, subtitle, stats, sections):
        stat_cards = ''.join(
            f'<div class="stat-card"><div class="stat-label">{label}</div>'
            f'<div class="stat-value">{value}</div></div>'
            for label, value in stats
        )
        tables = []
        for heading, columns, records in sections:
            if not records:
                continue
            head_cells = ''.join(f'<th>{html.escape(column_title)}</th>' for column_title, _, _ in columns)
            body_rows = ''.join(
                '<tr>' + ''.join(
                    f'<td class="currency">{format_currency(record[field])}</td>' if is_amount
                    else f'<td>{html.escape(str(record[field]))}</td>'
                    for _, field, is_amount in columns
                ) + '</tr>\n'
                for record in records
            )
            tables.append(f'<h2>{html.escape(heading)}</h2>\n<table>\n<thead><tr>{head_cells}</tr></thead>\n'
                          f'<tbody>\n{body_rows}</tbody>\n</table>')

        return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{html.escape(title)}</title>
  <style>
    body {{ font-family: Arial, sans-serif; margin: 20px; }}
    .header {{ text-align: center; margin-bottom: 30px; }}
    .stats-grid {{ display: grid; grid-template-columns: repeat(3, 1fr); gap: 15px; }}
    .stat-card {{ padding: 15px; border: 1px solid #ddd; border-radius: 5px; }}
    .stat-label {{ font-size: 12px; color: #666; }}
    .stat-value {{ font-size: 18px; font-weight: bold; }}
    table {{ width: 100%; border-collapse: collapse; margin-top: 10px; }}
    th, td {{ padding: 8px; text-align: left; border: 1px solid #ddd; font-size: 10px; }}
    th {{ background-color: #f5f5f5; }}
    .currency {{ text-align: right; }}
    @media print {{ body {{ margin: 0; }} }}
  </style>
</head>
<body onload="window.print()">
  <div class="header">
    <h1>{html.escape(title)}</h1>
    <p>{html.escape(subtitle)}</p>
  </div>
  <div class="stats-grid">{stat_cards}</div>
{chr(10).join(tables)}
</body>
</html>
"""


report_exporter = ReportExporter()

