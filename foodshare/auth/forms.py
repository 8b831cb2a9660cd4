from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField, FloatField, SelectField
from wtforms.validators import DataRequired, Email, Length, NumberRange, Optional, Regexp


class RegisterForm(FlaskForm):
    name = StringField('Name', validators=[DataRequired(), Length(max=50)])
    email = StringField('Email', validators=[DataRequired(), Email()])
    password = PasswordField('Password', validators=[DataRequired(), Length(min=6)])
    role = SelectField('Role', choices=[('receiver', 'Receiver'), ('donor', 'Donor')], default='receiver')
    phone = StringField('Phone', validators=[Optional(), Regexp(r'^\+?[1-9]\d{0,15}$')])
    latitude = FloatField('Latitude', validators=[Optional(), NumberRange(min=-90, max=90)])
    longitude = FloatField('Longitude', validators=[Optional(), NumberRange(min=-180, max=180)])


class LoginForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired(), Email()])
    password = PasswordField('Password', validators=[DataRequired()])


class ProfileForm(FlaskForm):
    name = StringField('Name', validators=[Optional(), Length(min=2, max=50)])
    phone = StringField('Phone', validators=[Optional(), Regexp(r'^\+?[1-9]\d{0,15}$')])
    avatar = StringField('Avatar', validators=[Optional(), Length(max=255)])
    latitude = FloatField('Latitude', validators=[Optional(), NumberRange(min=-90, max=90)])
    longitude = FloatField('Longitude', validators=[Optional(), NumberRange(min=-180, max=180)])


class PasswordForm(FlaskForm):
    currentPassword = PasswordField('Current Password', validators=[DataRequired()])
    newPassword = PasswordField('New Password', validators=[DataRequired(), Length(min=6)])
