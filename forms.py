from datetime import datetime, timezone
from flask_wtf import FlaskForm
from flask import request
from wtforms import Field, IntegerField, FloatField
from wtforms import StringField as BaseStringField, TextAreaField as BaseTextAreaField
from wtforms import PasswordField as BasePasswordField
from wtforms.validators import DataRequired, Length, Optional, Regexp
from wtforms.validators import ValidationError as FieldError
from wtforms.widgets import TextInput
from utils.error_handling import ValidationError

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
GITHUB_URL_PATTERN = r'^https?://(www\.)?github\.com/.+'


def parse_iso_datetime(value):
    """Parse an ISO-8601 timestamp into a naive UTC datetime"""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class IsoDateTimeField(Field):
    """Accepts an ISO-8601 string from a JSON body"""
    widget = TextInput()

    def process_formdata(self, valuelist):
        if valuelist and valuelist[0] not in (None, ''):
            try:
                self.data = parse_iso_datetime(valuelist[0])
            except (TypeError, ValueError):
                self.data = None
                raise ValueError(self.gettext('Must be a valid ISO-8601 date'))

    def _value(self):
        return self.data.isoformat() if self.data else ''


class IdListField(Field):
    """A JSON array of integer ids"""
    widget = TextInput()

    def process_formdata(self, valuelist):
        self.data = []
        for value in valuelist:
            try:
                self.data.append(int(value))
            except (TypeError, ValueError):
                raise ValueError(self.gettext('Must be a list of valid ids'))


class TextOnlyMixin:
    """JSON bodies can carry numbers, lists or objects; text fields only take strings"""

    def process_formdata(self, valuelist):
        if valuelist and valuelist[0] is not None and not isinstance(valuelist[0], str):
            self.data = None
            raise ValueError(self.gettext('Must be a string'))
        super().process_formdata(valuelist)


class StringField(TextOnlyMixin, BaseStringField):
    pass


class TextAreaField(TextOnlyMixin, BaseTextAreaField):
    pass


class PasswordField(TextOnlyMixin, BasePasswordField):
    pass


class JsonListField(Field):
    """A JSON array of objects, kept as dicts"""
    widget = TextInput()

    def process_formdata(self, valuelist):
        self.data = [value for value in valuelist if isinstance(value, dict)]


def positive_number(form, field):
    if field.data is None or field.data <= 0:
        raise FieldError('Must be a positive number')


def not_blank_if_present(form, field):
    """Absent is fine, present-but-empty is not"""
    if field.raw_data and isinstance(field.raw_data[0], str) and not field.raw_data[0].strip():
        raise FieldError('Cannot be empty')


def optional_min_length(minimum):
    def _validate(form, field):
        if field.data and len(field.data.strip()) < minimum:
            raise FieldError(f'Must be at least {minimum} characters')
    return _validate


class ApiForm(FlaskForm):
    """JSON request schema; CSRF is enforced app-wide by CSRFProtect"""

    class Meta:
        csrf = False


# Users

class RegisterForm(ApiForm):
    first_name = StringField('First name', validators=[
        DataRequired('First name is required'),
        Regexp(r'^[A-Za-z]+$', message='First name must contain only alphabets')])
    last_name = StringField('Last name', validators=[
        DataRequired('Last name is required'),
        Regexp(r'^[A-Za-z]+$', message='Last name must contain only alphabets')])
    email = StringField('Email', validators=[
        DataRequired('Please include a valid email'), Regexp(EMAIL_PATTERN, message='Please include a valid email')])
    password = PasswordField('Password', validators=[
        DataRequired('Password is required'), Length(min=6, message='Password must be at least 6 characters long')])
    expertise = IdListField('Expertise')


class LoginForm(ApiForm):
    email = StringField('Email', validators=[
        DataRequired('Please include a valid email'), Regexp(EMAIL_PATTERN, message='Please include a valid email')])
    password = PasswordField('Password', validators=[DataRequired('Password is required')])


class ProfileForm(ApiForm):
    first_name = StringField('First name', validators=[
        DataRequired('First name is required'),
        Regexp(r'^[A-Za-z\s]+$', message='First name must contain only letters and spaces')])
    last_name = StringField('Last name', validators=[
        DataRequired('Last name is required'),
        Regexp(r'^[A-Za-z\s]+$', message='Last name must contain only letters and spaces')])
    email = StringField('Email', validators=[
        DataRequired('Please include a valid email'), Regexp(EMAIL_PATTERN, message='Please include a valid email')])
    password = PasswordField('Password', validators=[
        Optional(), Length(min=6, message='Password must be at least 6 characters long')])
    expertise = IdListField('Expertise')
    bio = TextAreaField('Bio', validators=[Optional(), Length(max=500)])
    location = StringField('Location', validators=[Optional(), Length(max=100)])
    website = StringField('Website', validators=[Optional(), Length(max=200)])

    def validate_expertise(self, field):
        if not field.data:
            raise FieldError('Select at least one expertise')


class ExpertiseForm(ApiForm):
    expertise = IdListField('Expertise')

    def validate_expertise(self, field):
        if not field.data:
            raise FieldError('Select at least one expertise')


class VerifyOtpForm(ApiForm):
    email = StringField('Email', validators=[
        DataRequired('Please include a valid email'), Regexp(EMAIL_PATTERN, message='Please include a valid email')])
    otp = StringField('OTP', validators=[
        DataRequired('OTP must be provided'), Length(min=6, max=6, message='OTP must be 6 digits')])


class ResendOtpForm(ApiForm):
    email = StringField('Email', validators=[
        DataRequired('Please include a valid email'), Regexp(EMAIL_PATTERN, message='Please include a valid email')])


class EnhanceProfileForm(ApiForm):
    github_url = StringField('GitHub URL', validators=[
        Optional(), Regexp(GITHUB_URL_PATTERN, message='Invalid GitHub URL format'), Length(max=200)])
    twitter_username = StringField('Twitter username', validators=[Optional(), Length(max=50)])

    def validate(self, extra_validators=None):
        if not super().validate(extra_validators):
            return False
        if not self.github_url.data and not self.twitter_username.data:
            self.github_url.errors.append('Provide a GitHub URL or a Twitter username')
            return False
        return True


# Help requests

class HelpRequestForm(ApiForm):
    title = StringField('Title', validators=[DataRequired('Title is required'), Length(max=200)])
    description = TextAreaField('Description', validators=[DataRequired('Description is required')])
    type_of_help = IntegerField('Type of help', validators=[DataRequired('Type of Help ID is required')])
    offered_amount = FloatField('Offered amount', validators=[
        DataRequired('Offered Amount must be a number'), positive_number])
    response_deadline = IsoDateTimeField('Response deadline', validators=[
        DataRequired('Response Deadline must be a valid date')])
    work_deadline = IsoDateTimeField('Work deadline', validators=[
        DataRequired('Work Deadline must be a valid date')])


class HelpRequestUpdateForm(ApiForm):
    title = StringField('Title', validators=[not_blank_if_present, Length(max=200)])
    description = TextAreaField('Description', validators=[not_blank_if_present])
    type_of_help = IntegerField('Type of help', validators=[Optional()])
    offered_amount = FloatField('Offered amount', validators=[Optional(), positive_number])
    response_deadline = IsoDateTimeField('Response deadline', validators=[Optional()])
    work_deadline = IsoDateTimeField('Work deadline', validators=[Optional()])

    def changes(self):
        """Only the fields the caller actually supplied"""
        fields = ('title', 'description', 'type_of_help', 'offered_amount', 'response_deadline', 'work_deadline')
        return {name: getattr(self, name).data for name in fields if getattr(self, name).data}


class ResponseDeadlineForm(ApiForm):
    new_response_deadline = IsoDateTimeField('New response deadline', validators=[
        DataRequired('Invalid new response deadline.')])


class CancelRequestForm(ApiForm):
    reason = TextAreaField('Reason', validators=[Optional(), Length(max=1000)])


# Bids

class BidForm(ApiForm):
    help_request_id = IntegerField('Help request', validators=[DataRequired('Help Request ID is required')])
    bid_amount = FloatField('Bid amount', validators=[
        DataRequired('Bid Amount must be a positive number'), positive_number])
    message = TextAreaField('Message', validators=[optional_min_length(10)])


class BidUpdateForm(ApiForm):
    bid_amount = FloatField('Bid amount', validators=[
        DataRequired('Bid Amount must be a positive number'), positive_number])


# Conversations

class ConversationForm(ApiForm):
    participants = IdListField('Participants')

    def validate_participants(self, field):
        if len(field.data or []) != 2 or len(set(field.data)) != 2:
            raise FieldError('Exactly two distinct participants are required')


class MessageForm(ApiForm):
    message = TextAreaField('Message', validators=[DataRequired('Message content is required')])


# AI assistance

class EnhanceDescriptionForm(ApiForm):
    description = TextAreaField('Description', validators=[
        DataRequired('Description is required'),
        Length(min=10, message='Description must be at least 10 characters')])


class RiskAnalysisForm(ApiForm):
    title = StringField('Title', validators=[DataRequired('Title is required')])
    description = TextAreaField('Description', validators=[
        DataRequired('Description is required'),
        Length(min=10, message='Description must be at least 10 characters')])


class ChatbotForm(ApiForm):
    message = TextAreaField('Message', validators=[
        DataRequired('Message is required.'), Length(max=5000, message='Message is too long')])
    history = JsonListField('History')


# Payments

class PaymentIntentForm(ApiForm):
    bid_id = IntegerField('Bid', validators=[DataRequired('bid_id is required')])


def load_form(form_class):
    """Build a form from the current request body and validate it"""
    if request.is_json:
        body = request.get_json(silent=True)
        if body is not None and not isinstance(body, dict):
            raise ValidationError('Request body must be a JSON object',
                                  errors={'form': ['Request body must be a JSON object']})
    form = form_class()
    if not form.validate():
        errors = {name or 'form': list(messages) for name, messages in form.errors.items()}
        first = next((messages[0] for messages in errors.values() if messages), 'Invalid input')
        raise ValidationError(first, errors=errors)
    return form
