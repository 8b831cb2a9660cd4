from flask_wtf import FlaskForm
from wtforms import Form, StringField, IntegerField, SelectField, FormField
from wtforms.validators import DataRequired, Length, NumberRange, Optional

from foodshare.models.food import QUANTITY_UNITS
from foodshare.utils.forms import IsoDateTimeField

REQUEST_STATUSES = ('accepted', 'rejected', 'cancelled', 'completed')


class RequestedQuantityForm(Form):
    amount = IntegerField('Amount', validators=[DataRequired(), NumberRange(min=1)])
    unit = SelectField('Unit', choices=[(u, u) for u in QUANTITY_UNITS])


class PickupDetailsForm(Form):
    preferredTime = IsoDateTimeField('Preferred Time', validators=[DataRequired()])
    alternativeTime = IsoDateTimeField('Alternative Time', validators=[Optional()])
    specialInstructions = StringField('Special Instructions', validators=[Optional(), Length(max=500)])


class CreateRequestForm(FlaskForm):
    foodItem = IntegerField('Food Item', validators=[DataRequired()])
    message = StringField('Message', validators=[Optional(), Length(max=500)])
    requestedQuantity = FormField(RequestedQuantityForm)
    pickupDetails = FormField(PickupDetailsForm)


class ActualQuantityForm(Form):
    amount = IntegerField('Amount', validators=[Optional(), NumberRange(min=0)])
    unit = SelectField('Unit', choices=[(u, u) for u in QUANTITY_UNITS], validators=[Optional()])


class StatusForm(FlaskForm):
    status = SelectField('Status', choices=[(s, s) for s in REQUEST_STATUSES])
    message = StringField('Message', validators=[Optional(), Length(max=500)])
    proposedPickupTime = IsoDateTimeField('Proposed Pickup Time', validators=[Optional()])
    actualQuantity = FormField(ActualQuantityForm)
    notes = StringField('Notes', validators=[Optional(), Length(max=500)])


class ConfirmPickupForm(FlaskForm):
    confirmedPickupTime = IsoDateTimeField('Confirmed Pickup Time', validators=[Optional()])
    pickupInstructions = StringField('Pickup Instructions', validators=[Optional(), Length(max=500)])
