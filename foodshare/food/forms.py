from flask_wtf import FlaskForm
from wtforms import Form, StringField, IntegerField, FloatField, SelectField, FormField, FieldList
from wtforms.validators import DataRequired, Length, NumberRange, Optional, URL, ValidationError

from foodshare.models.food import CATEGORIES, FOOD_TYPES, QUANTITY_UNITS
from foodshare.utils.forms import IsoDateTimeField


def _choices(values):
    return [(v, v) for v in values]


class QuantityForm(Form):
    amount = IntegerField('Amount', validators=[DataRequired(), NumberRange(min=1)])
    unit = SelectField('Unit', choices=_choices(QUANTITY_UNITS))


class LocationForm(Form):
    latitude = FloatField('Latitude', validators=[DataRequired(), NumberRange(min=-90, max=90)])
    longitude = FloatField('Longitude', validators=[DataRequired(), NumberRange(min=-180, max=180)])
    address = StringField('Address', validators=[Optional(), Length(max=255)])
    pickupInstructions = StringField('Pickup Instructions', validators=[Optional(), Length(max=255)])


class AvailabilityForm(Form):
    pickupStart = IsoDateTimeField('Pickup Start', validators=[DataRequired()])
    pickupEnd = IsoDateTimeField('Pickup End', validators=[DataRequired()])
    expiryTime = IsoDateTimeField('Expiry Time', validators=[DataRequired()])

    def validate_pickupEnd(self, field):
        if self.pickupStart.data and field.data and field.data <= self.pickupStart.data:
            raise ValidationError('Pickup end must be after pickup start')


class FoodForm(FlaskForm):
    title = StringField('Title', validators=[DataRequired(), Length(max=100)])
    description = StringField('Description', validators=[DataRequired(), Length(max=500)])
    foodType = SelectField('Food Type', choices=_choices(FOOD_TYPES), default='other')
    category = SelectField('Category', choices=_choices(CATEGORIES), default='other')
    quantity = FormField(QuantityForm)
    location = FormField(LocationForm)
    availability = FormField(AvailabilityForm)
    tags = FieldList(StringField('Tag', validators=[Length(max=30)]), max_entries=10)
    imageUrl = StringField('Image URL', validators=[Optional(), URL(), Length(max=255)])


class QuantityUpdateForm(Form):
    amount = IntegerField('Amount', validators=[Optional(), NumberRange(min=1)])
    unit = SelectField('Unit', choices=_choices(QUANTITY_UNITS), validators=[Optional()])


class LocationUpdateForm(Form):
    address = StringField('Address', validators=[Optional(), Length(max=255)])
    pickupInstructions = StringField('Pickup Instructions', validators=[Optional(), Length(max=255)])


class AvailabilityUpdateForm(Form):
    pickupStart = IsoDateTimeField('Pickup Start', validators=[Optional()])
    pickupEnd = IsoDateTimeField('Pickup End', validators=[Optional()])
    expiryTime = IsoDateTimeField('Expiry Time', validators=[Optional()])


class FoodUpdateForm(FlaskForm):
    """Every field optional; only keys present in the body are applied"""
    title = StringField('Title', validators=[Optional(), Length(max=100)])
    description = StringField('Description', validators=[Optional(), Length(max=500)])
    foodType = SelectField('Food Type', choices=_choices(FOOD_TYPES), validators=[Optional()])
    category = SelectField('Category', choices=_choices(CATEGORIES), validators=[Optional()])
    quantity = FormField(QuantityUpdateForm)
    location = FormField(LocationUpdateForm)
    availability = FormField(AvailabilityUpdateForm)
    tags = FieldList(StringField('Tag', validators=[Length(max=30)]), max_entries=10)
    imageUrl = StringField('Image URL', validators=[Optional(), URL(), Length(max=255)])
