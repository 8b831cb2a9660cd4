from datetime import timezone, datetime

from flask import request
from werkzeug.datastructures import MultiDict
from wtforms import DateTimeField

from foodshare.errors import ValidationError


class IsoDateTimeField(DateTimeField):
    """Accepts ISO 8601 timestamps; aware values are stored as naive UTC"""

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        try:
            value = datetime.fromisoformat(valuelist[0].replace('Z', '+00:00'))
        except ValueError:
            self.data = None
            raise ValueError(self.gettext('Not a valid ISO 8601 datetime value.'))
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        self.data = value


def _flatten(payload, prefix=''):
    items = []
    for key, value in payload.items():
        name = f'{prefix}{key}'
        if value is None:
            continue
        if isinstance(value, dict):
            items.extend(_flatten(value, name + '-'))
        elif isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                if isinstance(item, dict):
                    items.extend(_flatten(item, f'{name}-{i}-'))
                elif item is not None:
                    items.append((f'{name}-{i}', str(item)))
        elif isinstance(value, bool):
            if value:
                items.append((name, 'y'))
        else:
            items.append((name, str(value)))
    return items


def json_form(form_class, payload=None):
    """Bind a JSON body to a form (nested objects map onto FormFields) and validate it"""
    if payload is None:
        payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('Expected a JSON object body')
    form = form_class(formdata=MultiDict(_flatten(payload)), meta={'csrf': False})
    if not form.validate():
        raise ValidationError('Invalid input', fields=form.errors)
    return form
