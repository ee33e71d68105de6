# ==============================================================================
# commission_admin/main/forms.py
# ------------------------------------------------------------------------------
# Flask-WTF forms validating the JSON bodies sent by the matrix editor.
# ==============================================================================

from flask_wtf import FlaskForm
from wtforms import StringField, FloatField, IntegerField
from wtforms.validators import DataRequired, NumberRange, AnyOf, ValidationError

from commission_admin.matrix.schema import MAX_RATE, MAX_YEAR, MIN_RATE, MIN_YEAR, ROLE_IDS


def whole_number(form, field):
    """IntegerField truncates a JSON 1.5 to 1; reject it instead, and booleans too."""
    raw = field.raw_data[0] if field.raw_data else None
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        raise ValidationError("Must be a whole number.")


class JSONForm(FlaskForm):
    """Base for forms filled from a JSON request body; the API does not use CSRF tokens."""
    class Meta:
        csrf = False


class CellEditForm(JSONForm):
    """One cell edit. NumberRange also rejects missing values, so a rate of 0 is accepted."""
    premium_term = StringField('Premium Term', validators=[DataRequired(message="Premium term is required.")])
    commission_year = IntegerField('Year', validators=[whole_number, NumberRange(min=MIN_YEAR, max=MAX_YEAR)])
    role_id = IntegerField('Role', validators=[whole_number,
                                               AnyOf([int(r) for r in ROLE_IDS], message="Unknown role.")])
    commission_rate = FloatField('Rate (%)', validators=[NumberRange(min=MIN_RATE, max=MAX_RATE)])


class CommissionRecordForm(CellEditForm):
    """A whole commission record, for adding or replacing one record directly."""


class BulkEntryForm(JSONForm):
    """Header of a bulk entry; the year sections are read by the route."""
    premium_term = StringField('Premium Term', validators=[DataRequired(message="Premium term is required.")])
