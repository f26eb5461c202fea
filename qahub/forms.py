from werkzeug.datastructures import MultiDict
from wtforms import Form, StringField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, Optional, URL

from .errors import ValidationError


class UserForm(Form):
    external_id = StringField('External ID', validators=[DataRequired(), Length(max=128)])
    name = StringField('Name', validators=[DataRequired(), Length(max=100)])
    username = StringField('Username', validators=[DataRequired(), Length(min=3, max=30)])
    email = StringField('Email', validators=[DataRequired(), Email()])
    picture = StringField('Picture', validators=[Optional(), URL()])
    bio = TextAreaField('About Me (Bio)', validators=[Optional(), Length(max=500)])
    location = StringField('Location', validators=[Optional(), Length(max=100)])
    portfolio_website = StringField('Portfolio Website', validators=[Optional(), URL()])


class EditProfileForm(UserForm):
    # The identity provider's id never changes once the user exists.
    external_id = None


class QuestionForm(Form):
    title = StringField('Title', validators=[DataRequired(), Length(min=5, max=200)])
    content = TextAreaField('Body (Details)', validators=[DataRequired(), Length(min=20)])


class AnswerForm(Form):
    content = TextAreaField('Your Answer', validators=[DataRequired(), Length(min=15)])


def _as_formdata(fields):
    return MultiDict({key: '' if value is None else str(value) for key, value in fields.items()})


def validate_fields(form_class, fields, partial=False):
    """Run form_class over a plain dict and return the cleaned values.

    With partial=True only the submitted keys are checked and returned, which
    is how profile edits arrive. Keys the form does not declare are rejected.
    """
    form = form_class(formdata=_as_formdata(fields))
    form.validate()
    errors = {name: list(messages) for name, messages in form.errors.items()
              if name is not None and (not partial or name in fields)}
    for key in fields:
        if key not in form._fields:
            errors[key] = ['This field cannot be set.']
    if errors:
        raise ValidationError(errors)
    names = [name for name in form._fields if name in fields] if partial else list(form._fields)
    return {name: form[name].data or '' for name in names}
