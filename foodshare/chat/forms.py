from flask_wtf import FlaskForm
from wtforms import Form, StringField, FloatField, IntegerField, SelectField, FormField
from wtforms.validators import DataRequired, Length, NumberRange, Optional

from foodshare.models.chat import MESSAGE_TYPES


class MessageLocationForm(Form):
    latitude = FloatField('Latitude', validators=[Optional(), NumberRange(min=-90, max=90)])
    longitude = FloatField('Longitude', validators=[Optional(), NumberRange(min=-180, max=180)])
    address = StringField('Address', validators=[Optional(), Length(max=255)])


class MessageForm(FlaskForm):
    # content length is checked by the messaging engine
    content = StringField('Content')
    messageType = SelectField('Message Type', choices=[(t, t) for t in MESSAGE_TYPES], default='text')
    mediaUrl = StringField('Media URL', validators=[Optional(), Length(max=255)])
    mediaCaption = StringField('Media Caption', validators=[Optional(), Length(max=255)])
    location = FormField(MessageLocationForm)

    def location_data(self):
        loc = self.location.form
        if loc.latitude.data is None and loc.longitude.data is None:
            return None
        return {'latitude': loc.latitude.data, 'longitude': loc.longitude.data,
                'address': loc.address.data or None}


class StartChatForm(FlaskForm):
    participantId = IntegerField('Participant', validators=[DataRequired()])
    foodItem = IntegerField('Food Item', validators=[DataRequired()])
