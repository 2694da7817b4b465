import click

from api_client import ApiError
from app import create_app, services
from case_summary import NoDataError


def console():
    return create_app().app_context()


@click.group()
def cli():
    """Admin console commands"""
    pass


@cli.command()
def status():
    """Show backend connection status"""
    with console():
        try:
            users = services('users').all_users()
            organisations = services('organisations').all_organisations()
            summary = services('case_summary').build()
            click.echo("✅ Backend connection: OK")

            counts = {
                'Users': len(users),
                'Organisations': len(organisations),
                'Cases': summary['totals']['totalCases'],
                'Live cases': summary['totals']['liveCases'],
                'Closed cases': summary['totals']['closedCases'],
            }

            click.echo("\n📊 Record counts:")
            for name, count in counts.items():
                click.echo(f"  {name}: {count}")

        except ApiError as e:
            click.echo(f"❌ Backend error: {e.user_message}")
            raise SystemExit(1)


@cli.command('export-case-summary')
@click.option('--format', 'export_format', type=click.Choice(['csv', 'xlsx', 'pdf']), default='xlsx')
@click.option('--organisation', 'organisation_id', default=None, help='Organisation id to filter by')
@click.option('--status', type=click.Choice(['all', 'live', 'closed']), default='all')
@click.option('--output', type=click.Path(dir_okay=False), default=None,
              help='Output file (defaults to the dated report name)')
def export_case_summary(export_format, organisation_id, status, output):
    """Write the case summary report to a file"""
    with console():
        try:
            payload, _, filename = services('case_summary').export(export_format, organisation_id, status)
        except NoDataError as e:
            click.echo(f"❌ {e}")
            raise SystemExit(1)

    output = output or filename
    if export_format == 'xlsx':
        with open(output, 'wb') as f:
            f.write(payload.getvalue())
    else:
        with open(output, 'w', encoding='utf-8') as f:
            f.write(payload)
    click.echo(f"✅ Report written to {output}")


@cli.command('send-test-report')
@click.argument('report_id', type=int)
@click.option('--scope', type=click.Choice(['user', 'organisation']), default='user')
def send_test_report(report_id, scope):
    """Send a scheduled report immediately"""
    with console():
        try:
            result = services('scheduled_reports').send_test(scope, report_id)
        except ApiError as e:
            click.echo(f"❌ Failed to send test report: {e.user_message}")
            raise SystemExit(1)
    click.echo(f"✅ {result.get('message', 'Test report sent')}")


if __name__ == '__main__':
    cli()
