# ==============================================================================
# commission_admin/main/routes.py
# ------------------------------------------------------------------------------
# JSON endpoints of the commission matrix editor. Each view validates its input,
# hands the work to the product's MatrixEditSession and returns the resulting
# matrix so the client can redraw.
# ==============================================================================

from datetime import datetime
from flask import request, jsonify, current_app, Response

from commission_admin.main import bp
from commission_admin.main.forms import CellEditForm, BulkEntryForm, CommissionRecordForm
from commission_admin.main.sessions import get_edit_session, close_edit_session, run_async
from commission_admin.matrix.exceptions import (BulkEntryError, EditSessionError, MatrixError,
                                                MatrixFullError, MatrixValidationError, StoreError,
                                                UnknownTermError)
from commission_admin.matrix.export import matrix_frame
from commission_admin.models import Product

# --- Helper Functions ---

def _load_session(product_id):
    product = Product.query.get_or_404(product_id)
    return product, get_edit_session(product.id)


def _matrix_response(session, status=200, **extra):
    body = session.matrix()
    body.update(extra)
    return jsonify(body), status


def _form_errors(form):
    return jsonify({'error': 'Invalid input', 'fields': form.errors}), 400


@bp.errorhandler(MatrixError)
def handle_matrix_error(e):
    """Maps editor errors to JSON error bodies."""
    if isinstance(e, StoreError):
        status = e.status
    elif isinstance(e, UnknownTermError):
        status = 404
    elif isinstance(e, EditSessionError):
        status = 409
    elif isinstance(e, (MatrixValidationError, MatrixFullError, BulkEntryError)):
        status = 400
    else:
        status = 500
    current_app.logger.warning(f"Matrix request failed ({status}): {e}")
    body = {'error': str(e)}
    summary = getattr(e, 'summary', None)
    if summary is not None:
        body.update(success_count=summary.success_count, failure_count=summary.failure_count,
                    errors=summary.errors)
    return jsonify(body), status

# --- Matrix Routes ---

@bp.route('/products/<product_id>/commissions', methods=['GET'])
def view_matrix(product_id):
    product, session = _load_session(product_id)
    return _matrix_response(session, product_name=product.name, provider=product.provider)


@bp.route('/products/<product_id>/commissions/reload', methods=['POST'])
def reload_matrix(product_id):
    """Throws the current session away and starts a fresh one from the store."""
    Product.query.get_or_404(product_id)
    close_edit_session(product_id)
    _, session = _load_session(product_id)
    return _matrix_response(session)


@bp.route('/products/<product_id>/commissions/edit', methods=['POST'])
def enter_edit_mode(product_id):
    _, session = _load_session(product_id)
    session.enter_edit_mode()
    return _matrix_response(session)


@bp.route('/products/<product_id>/commissions/cancel', methods=['POST'])
def cancel_edit(product_id):
    _, session = _load_session(product_id)
    session.cancel()
    return _matrix_response(session)


@bp.route('/products/<product_id>/commissions/cells', methods=['POST'])
def edit_cell(product_id):
    _, session = _load_session(product_id)
    form = CellEditForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    session.set_cell(form.premium_term.data, form.commission_year.data,
                     form.role_id.data, form.commission_rate.data)
    return _matrix_response(session)


@bp.route('/products/<product_id>/commissions/terms/<premium_term>/years', methods=['POST'])
def add_year(product_id, premium_term):
    _, session = _load_session(product_id)
    year = session.add_year(premium_term)
    return _matrix_response(session, 201, year=year)


@bp.route('/products/<product_id>/commissions/terms/<premium_term>/years/<int:year>', methods=['DELETE'])
def delete_year(product_id, premium_term, year):
    _, session = _load_session(product_id)
    summary = run_async(session.remove_year(premium_term, year))
    return _matrix_response(session, deleted=summary.success_count,
                            failed=summary.failure_count, errors=summary.errors)


@bp.route('/products/<product_id>/commissions/terms/<premium_term>', methods=['DELETE'])
def delete_term(product_id, premium_term):
    _, session = _load_session(product_id)
    summary = run_async(session.remove_term(premium_term))
    return _matrix_response(session, deleted=summary.success_count,
                            failed=summary.failure_count, errors=summary.errors)


@bp.route('/products/<product_id>/commissions/save', methods=['POST'])
def save_matrix(product_id):
    _, session = _load_session(product_id)
    summary = run_async(session.save())
    if summary.ok:
        current_app.logger.info(f"Saved {summary.success_count} commission rate(s) for product '{product_id}'")
    else:
        current_app.logger.warning(
            f"Saved {summary.success_count} commission rate(s) for product '{product_id}', "
            f"but {summary.failure_count} failed")
    return _matrix_response(session, success_count=summary.success_count,
                            failure_count=summary.failure_count, errors=summary.errors)


@bp.route('/products/<product_id>/commissions/bulk', methods=['POST'])
def bulk_entry(product_id):
    """
    Creates a new premium term from a draft sent in one request:

        {"premium_term": "10-14 yr",
         "sections": [{"year": 1, "rates": {"3": 5, "4": 2}},
                      {"year": 2, "copy_from": 1}],
         "include_zero_rates": true}

    When some rate is 0 and include_zero_rates is missing, nothing is created
    and the response asks the client to decide.
    """
    _, session = _load_session(product_id)
    form = BulkEntryForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    payload = request.get_json(silent=True) or {}
    sections = payload.get('sections') or [{'year': 1}]
    if not isinstance(sections, list) or not all(isinstance(s, dict) for s in sections):
        raise BulkEntryError("sections must be a list of objects")

    builder = session.start_bulk_entry(form.premium_term.data)
    for position, section in enumerate(sections):
        year = section.get('year')
        current = builder.sections[0] if position == 0 else builder.add_year_section()
        builder.renumber_year_section(current.year, year)
        for role_id, rate in (section.get('rates') or {}).items():
            builder.set_rate(year, _role_key(role_id), rate)
    for section in sections:
        if section.get('copy_from') is not None:
            builder.copy_rates_from(section['copy_from'], section['year'])

    include_zero_rates = payload.get('include_zero_rates')
    if include_zero_rates is not None and not isinstance(include_zero_rates, bool):
        raise BulkEntryError("include_zero_rates must be true or false")
    if include_zero_rates is None and builder.has_zero_rates():
        return jsonify({
            'needs_confirmation': True,
            'error': 'Some commission rates are 0%. Send include_zero_rates to keep or skip them.',
        }), 409

    result = run_async(session.commit_bulk_entry(lambda: include_zero_rates))
    status = 201 if result.ok else 207
    return _matrix_response(
        session, status,
        created=result.success_count,
        skipped_zero_rates=result.skipped_zero_rates,
        failures=[{'year': f.year, 'role_id': f.role_id, 'error': f.error} for f in result.failures],
    )


def _role_key(role_id):
    try:
        return int(role_id)
    except (TypeError, ValueError):
        raise BulkEntryError(f"Unknown role id {role_id!r}")


@bp.route('/products/<product_id>/commissions/export.csv', methods=['GET'])
def export_matrix(product_id):
    """Downloads the persisted matrix as CSV."""
    _, session = _load_session(product_id)
    csv_text = matrix_frame(session.records).to_csv(index=False)
    filename = f"{current_app.config['EXPORT_FILENAME_PREFIX']}-{product_id}-{datetime.utcnow():%Y%m%d}.csv"
    return Response(csv_text, mimetype='text/csv',
                    headers={'Content-Disposition': f'attachment; filename={filename}'})

# --- Single Record Routes ---

@bp.route('/products/<product_id>/commissions/records', methods=['POST'])
def add_record(product_id):
    _, session = _load_session(product_id)
    form = CommissionRecordForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    record = run_async(session.add_record(form.premium_term.data, form.commission_year.data,
                                          form.role_id.data, form.commission_rate.data))
    current_app.logger.info(f"Added commission {record.commission_id} to product '{product_id}'")
    return _matrix_response(session, 201, record=record.to_dict())


@bp.route('/products/<product_id>/commissions/records/<commission_id>', methods=['PUT'])
def replace_record(product_id, commission_id):
    _, session = _load_session(product_id)
    form = CommissionRecordForm()
    if not form.validate_on_submit():
        return _form_errors(form)
    record = run_async(session.replace_record(commission_id, form.premium_term.data, form.commission_year.data,
                                              form.role_id.data, form.commission_rate.data))
    return _matrix_response(session, record=record.to_dict())


@bp.route('/products/<product_id>/commissions/records/<commission_id>', methods=['DELETE'])
def delete_record(product_id, commission_id):
    _, session = _load_session(product_id)
    run_async(session.delete_record(commission_id))
    current_app.logger.info(f"Deleted commission {commission_id} of product '{product_id}'")
    return _matrix_response(session)
