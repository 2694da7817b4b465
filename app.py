import logging
from datetime import datetime

from flask import Flask, Response, current_app, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from admin_dashboard import (
    ActionCancelled, BroadcastAdmin, CaseAdmin, OrganisationAdmin, SubmissionAdmin,
    UserAdmin, ValidationError,
)
from advanced_reports import AdvancedReports
from api_client import ApiError, RemoteDataClient, UnauthorizedError
from case_summary import CaseSummaryReport, NoDataError
from config import Config
from org_settings import NotOrganisationOwner, OrgSettings
from payment_reports import MonthlyStatementReport, PaymentPerformanceReport
from scheduled_reports import ScheduledReportAdmin

logger = logging.getLogger(__name__)


def create_response(success=True, data=None, error=None, status=200):
    response = {'success': success, 'metadata': {'timestamp': datetime.utcnow().isoformat()}}
    if data is not None: response['data'] = data
    if error is not None: response['error'] = error
    return jsonify(response), status


def build_services(client, config):
    users = UserAdmin(client, config['ADMIN_PAGE_SIZE'], config['ADMIN_EMAIL_DOMAIN'])
    return {
        'client': client,
        'users': users,
        'organisations': OrganisationAdmin(client, config['ADMIN_PAGE_SIZE']),
        'cases': CaseAdmin(client, config['ADMIN_PAGE_SIZE']),
        'submissions': SubmissionAdmin(client, config['ADMIN_PAGE_SIZE']),
        'scheduled_reports': ScheduledReportAdmin(client, users),
        'broadcast': BroadcastAdmin(client),
        'advanced_reports': AdvancedReports(client),
        'org_settings': OrgSettings(client),
        'case_summary': CaseSummaryReport(client),
        'payment_performance': PaymentPerformanceReport(client),
        'monthly_statement': MonthlyStatementReport(client),
    }


def services(name):
    return current_app.extensions['admin_console'][name]


def body():
    return request.get_json(silent=True) or {}


def confirmed():
    return body().get('confirm') is True


def create_app(config_object=Config, session=None):
    app = Flask(__name__)
    app.config.from_object(config_object)
    logging.basicConfig(level=app.config['LOG_LEVEL'])
    CORS(app)

    client = RemoteDataClient.from_config(app.config, session=session)
    app.extensions['admin_console'] = build_services(client, app.config)

    register_error_handlers(app)
    register_routes(app)
    return app


def register_error_handlers(app):

    @app.errorhandler(UnauthorizedError)
    def handle_unauthorized(e):
        return create_response(success=False, error={
            'code': 'UNAUTHORIZED',
            'message': 'You are logged out. Logging in again...',
            'redirect': {
                'url': current_app.config['LOGIN_URL'],
                'delayMs': current_app.config['LOGIN_REDIRECT_DELAY_MS'],
            },
        }, status=401)

    @app.errorhandler(ApiError)
    def handle_api_error(e):
        status = e.status if e.status and 400 <= e.status < 500 else 502
        return create_response(success=False, error={
            'code': 'API_ERROR', 'message': e.user_message,
        }, status=status)

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return create_response(success=False, error={
            'code': 'VALIDATION_ERROR', 'message': str(e),
        }, status=400)

    @app.errorhandler(ActionCancelled)
    def handle_confirmation_required(e):
        return create_response(success=False, error={
            'code': 'CONFIRMATION_REQUIRED', 'message': e.prompt,
        }, status=409)

    @app.errorhandler(NoDataError)
    def handle_no_data(e):
        return create_response(success=False, error={
            'code': 'NO_DATA', 'message': str(e),
        }, status=404)

    @app.errorhandler(NotOrganisationOwner)
    def handle_not_owner(e):
        return create_response(success=False, error={
            'code': 'FORBIDDEN', 'message': str(e),
        }, status=403)

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception('Unhandled error on %s %s', request.method, request.path)
        return create_response(success=False, error={
            'code': 'INTERNAL_ERROR', 'message': 'An unexpected error occurred',
        }, status=500)


def status_filter():
    status = request.args.get('status') or None
    if status not in (None, 'all', 'live', 'closed'):
        raise ValidationError('status must be one of: all, live, closed')
    return status


def check_export_format(export_format):
    if export_format not in ('csv', 'xlsx', 'pdf'):
        raise ValidationError('Export format must be csv, xlsx or pdf')


def selected_month():
    return request.args.get('month') or datetime.utcnow().strftime('%Y-%m')


def send_export(export_format, payload, mimetype, filename):
    if export_format == 'xlsx':
        return send_file(payload, mimetype=mimetype, as_attachment=True, download_name=filename)
    if export_format == 'csv':
        return Response(payload, mimetype=mimetype,
                        headers={'Content-Disposition': f'attachment; filename={filename}'})
    # Printable page; the browser's print dialog saves it as PDF
    return Response(payload, mimetype=mimetype)


def register_routes(app):

    @app.route('/health', methods=['GET'])
    def health():
        return create_response(data={'status': 'ok'})

    # Users
    @app.route('/admin/users', methods=['GET'])
    def list_users():
        return create_response(data=services('users').list_users(
            page=request.args.get('page', 1), search=request.args.get('search', '')))

    @app.route('/admin/users', methods=['POST'])
    def create_user():
        services('users').create_user(body())
        return create_response(data={'message': 'User created successfully'})

    @app.route('/admin/users/<user_id>', methods=['PUT'])
    def update_user(user_id):
        services('users').update_user(user_id, body())
        return create_response(data={'message': 'User updated successfully'})

    @app.route('/admin/users/<user_id>', methods=['DELETE'])
    def delete_user(user_id):
        services('users').delete_user(user_id, confirmed())
        return create_response(data={'message': 'User deleted successfully'})

    @app.route('/admin/users/<user_id>/organisations', methods=['POST'])
    def add_user_organisation(user_id):
        organisation_id = body().get('organisationId')
        if organisation_id is None:
            raise ValidationError('organisationId is required')
        services('users').add_to_organisation(user_id, organisation_id)
        return create_response(data={'message': 'User assigned to organisation successfully'})

    @app.route('/admin/users/<user_id>/organisations/<int:organisation_id>', methods=['DELETE'])
    def remove_user_organisation(user_id, organisation_id):
        services('users').remove_from_organisation(user_id, organisation_id)
        return create_response(data={'message': 'User removed from organisation'})

    @app.route('/admin/users/<user_id>/reset-password', methods=['POST'])
    def reset_password(user_id):
        result = services('users').reset_password(user_id)
        return create_response(data={
            'message': 'Password reset successfully',
            'tempPassword': result.get('tempPassword'),
        })

    @app.route('/admin/users/<user_id>/admin', methods=['PUT'])
    def set_admin(user_id):
        grant = bool(body().get('grant'))
        services('users').set_admin(user_id, grant, confirmed())
        return create_response(data={
            'message': 'Admin privileges granted' if grant else 'Admin privileges removed'})

    @app.route('/admin/users/<user_id>/super-admin', methods=['PUT'])
    def set_super_admin(user_id):
        grant = bool(body().get('grant'))
        services('users').set_super_admin(user_id, grant, confirmed())
        return create_response(data={
            'message': 'Super admin privileges granted' if grant else 'Super admin privileges removed'})

    @app.route('/admin/users/<user_id>/case-submission', methods=['PUT'])
    def set_case_submission(user_id):
        services('users').set_case_submission_permission(user_id, body().get('enabled'))
        return create_response(data={'message': 'Case submission permission updated'})

    @app.route('/admin/users/<user_id>/notifications', methods=['PUT'])
    def update_notifications(user_id):
        data = body()
        services('users').update_notifications(
            user_id, email=data.get('emailNotifications'), push=data.get('pushNotifications'))
        return create_response(data={'message': 'Notification settings updated'})

    # Organisations
    @app.route('/admin/organisations', methods=['GET'])
    def list_organisations():
        return create_response(data=services('organisations').list_organisations(
            page=request.args.get('page', 1), search=request.args.get('search', '')))

    @app.route('/admin/organisations', methods=['POST'])
    def create_organisation():
        data = body()
        services('organisations').create_organisation(data.get('name'), data.get('externalRef'))
        return create_response(data={'message': 'Organisation created successfully'})

    @app.route('/admin/organisations/<int:organisation_id>', methods=['PUT'])
    def update_organisation(organisation_id):
        services('organisations').update_organisation(organisation_id, body())
        return create_response(data={'message': 'Organisation updated successfully'})

    @app.route('/admin/organisations/<int:organisation_id>', methods=['DELETE'])
    def delete_organisation(organisation_id):
        services('organisations').delete_organisation(organisation_id, confirmed())
        return create_response(data={'message': 'Organisation deleted successfully'})

    @app.route('/admin/organisations/<int:organisation_id>/scheduled-reports', methods=['PUT'])
    def set_organisation_scheduled_reports(organisation_id):
        enabled = bool(body().get('enabled'))
        services('organisations').set_scheduled_reports(organisation_id, enabled)
        return create_response(data={
            'message': 'Scheduled reports enabled' if enabled else 'Scheduled reports disabled'})

    # Cases
    @app.route('/admin/cases', methods=['GET'])
    def list_cases():
        return create_response(data=services('cases').list_cases(
            page=request.args.get('page', 1),
            search=request.args.get('search', ''),
            organisation_id=request.args.get('organisationId'),
            status=status_filter(),
        ))

    @app.route('/admin/cases/<int:case_id>', methods=['DELETE'])
    def delete_case(case_id):
        services('cases').delete_case(case_id, confirmed())
        return create_response(data={'message': 'Case deleted successfully'})

    @app.route('/admin/cases/<int:case_id>/archive', methods=['PUT'])
    def archive_case(case_id):
        services('cases').archive_case(case_id)
        return create_response(data={'message': 'Case archived successfully'})

    @app.route('/admin/cases/<int:case_id>/unarchive', methods=['PUT'])
    def unarchive_case(case_id):
        services('cases').unarchive_case(case_id)
        return create_response(data={'message': 'Case restored successfully'})

    @app.route('/admin/closed-cases', methods=['GET'])
    def list_closed_cases():
        return create_response(data=services('cases').list_closed_cases(
            request.args.get('startDate'), request.args.get('endDate')))

    @app.route('/admin/cases/bulk-archive', methods=['POST'])
    def bulk_archive_cases():
        result = services('cases').bulk_archive(body().get('caseIds'))
        return create_response(data={'message': result.get('message', 'Cases archived')})

    @app.route('/admin/cases/bulk-delete', methods=['POST'])
    def bulk_delete_cases():
        result = services('cases').bulk_delete(body().get('caseIds'), confirmed())
        return create_response(data={'message': result.get('message', 'Cases deleted')})

    # Case submissions
    @app.route('/admin/case-submissions', methods=['GET'])
    def list_submissions():
        return create_response(data=services('submissions').list_submissions(
            page=request.args.get('page', 1),
            search=request.args.get('search', ''),
            status=request.args.get('status') or None,
        ))

    @app.route('/admin/case-submissions/<int:submission_id>/status', methods=['PUT'])
    def set_submission_status(submission_id):
        status = body().get('status')
        services('submissions').set_status(submission_id, status)
        return create_response(data={'message': f'Submission marked as {status}'})

    @app.route('/admin/case-submissions/<int:submission_id>', methods=['DELETE'])
    def delete_submission(submission_id):
        services('submissions').delete_submission(submission_id, confirmed())
        return create_response(data={'message': 'Submission deleted successfully'})

    # Scheduled reports
    def report_scope():
        return request.args.get('scope', 'user')

    @app.route('/admin/scheduled-reports', methods=['GET'])
    def list_scheduled_reports():
        return create_response(data=services('scheduled_reports').list_reports(report_scope()))

    @app.route('/admin/scheduled-reports', methods=['POST'])
    def create_scheduled_report():
        services('scheduled_reports').create_report(report_scope(), body())
        return create_response(data={'message': 'Scheduled report created'})

    @app.route('/admin/scheduled-reports/<int:report_id>', methods=['PUT'])
    def update_scheduled_report(report_id):
        services('scheduled_reports').update_report(report_scope(), report_id, body())
        return create_response(data={'message': 'Scheduled report updated'})

    @app.route('/admin/scheduled-reports/<int:report_id>', methods=['DELETE'])
    def delete_scheduled_report(report_id):
        services('scheduled_reports').delete_report(report_scope(), report_id, confirmed())
        return create_response(data={'message': 'Scheduled report deleted'})

    @app.route('/admin/scheduled-reports/<int:report_id>/test', methods=['POST'])
    def send_test_report(report_id):
        result = services('scheduled_reports').send_test(report_scope(), report_id)
        return create_response(data={'message': result.get('message', 'Test report sent')})

    @app.route('/admin/scheduled-reports/<int:report_id>/audit', methods=['GET'])
    def scheduled_report_audit(report_id):
        return create_response(data=services('scheduled_reports').audit_log(report_scope(), report_id))

    # Email broadcast
    def broadcast_selection(data):
        return {
            'all_users': bool(data.get('allUsers')),
            'admins': bool(data.get('allAdmins')),
            'super_admins': bool(data.get('allSuperAdmins')),
            'organisation_ids': data.get('organisationIds') or [],
            'individual_ids': data.get('userIds') or [],
        }

    @app.route('/admin/email-broadcast/preview', methods=['POST'])
    def preview_broadcast():
        return create_response(data=services('broadcast').preview(**broadcast_selection(body())))

    @app.route('/admin/email-broadcast', methods=['POST'])
    def send_broadcast():
        data = body()
        result = services('broadcast').send(
            data.get('subject'), data.get('body'), confirmed(), **broadcast_selection(data))
        return create_response(data={
            'message': f"Email successfully sent to {result.get('sentCount', 0)} recipient(s).",
            'sentCount': result.get('sentCount', 0),
        })

    # Advanced reports
    @app.route('/reports/cross-organisation', methods=['GET'])
    def cross_organisation_report():
        return create_response(data=services('advanced_reports').cross_organisation_performance())

    @app.route('/reports/user-activity', methods=['GET'])
    def user_activity_report():
        return create_response(data=services('advanced_reports').user_activity(
            request.args.get('startDate'), request.args.get('endDate')))

    @app.route('/reports/system-health', methods=['GET'])
    def system_health_report():
        return create_response(data=services('advanced_reports').system_health())

    @app.route('/reports/custom', methods=['POST'])
    def custom_report():
        data = body()
        return create_response(data=services('advanced_reports').build_custom_report(
            data.get('tables'), data.get('filters'), data.get('limit')))

    @app.route('/reports/<name>/export-json', methods=['GET'])
    def export_report_json(name):
        reports = services('advanced_reports')
        loaders = {
            'cross-organisation-performance': reports.cross_organisation_performance,
            'user-activity-report': lambda: reports.user_activity(
                request.args.get('startDate'), request.args.get('endDate')),
            'system-health-metrics': reports.system_health,
        }
        if name not in loaders:
            return create_response(success=False, error={
                'code': 'NOT_FOUND', 'message': f'Unknown report: {name}'}, status=404)
        payload, filename = reports.export_json(loaders[name](), name)
        return Response(payload, mimetype='application/json',
                        headers={'Content-Disposition': f'attachment; filename={filename}'})

    # Organisation owner settings
    @app.route('/org-owner/organisations', methods=['GET'])
    def owned_organisations():
        return create_response(data=services('org_settings').owned_organisations())

    @app.route('/org-owner/<int:organisation_id>/access', methods=['GET'])
    def access_matrix(organisation_id):
        return create_response(data=services('org_settings').access_matrix(organisation_id))

    @app.route('/org-owner/<int:organisation_id>/toggle-restriction', methods=['POST'])
    def toggle_restriction(organisation_id):
        data = body()
        if not data.get('userId') or data.get('caseId') is None:
            raise ValidationError('userId and caseId are required')
        return create_response(data=services('org_settings').toggle_restriction(
            organisation_id, data['userId'], data['caseId']))

    # Case summary report
    @app.route('/reports/case-summary', methods=['GET'])
    def case_summary():
        return create_response(data=services('case_summary').build(
            request.args.get('organisationId'), status_filter()))

    @app.route('/reports/case-summary/export/<export_format>', methods=['GET'])
    def export_case_summary(export_format):
        check_export_format(export_format)
        return send_export(export_format, *services('case_summary').export(
            export_format, request.args.get('organisationId'), status_filter()))

    # Payment performance and monthly statement
    @app.route('/reports/payment-performance', methods=['GET'])
    def payment_performance():
        return create_response(data=services('payment_performance').build())

    @app.route('/reports/payment-performance/export/<export_format>', methods=['GET'])
    def export_payment_performance(export_format):
        check_export_format(export_format)
        return send_export(export_format, *services('payment_performance').export(export_format))

    @app.route('/reports/monthly-statement', methods=['GET'])
    def monthly_statement():
        return create_response(data=services('monthly_statement').build(selected_month()))

    @app.route('/reports/monthly-statement/export/<export_format>', methods=['GET'])
    def export_monthly_statement(export_format):
        check_export_format(export_format)
        return send_export(export_format, *services('monthly_statement').export(export_format, selected_month()))


app = create_app()

if __name__ == '__main__':
    app.run(debug=True)
