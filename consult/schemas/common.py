from marshmallow import ValidationError

from consult.utils.exceptions import ValidationFailed


def load_body(schema, data):
    """Validate a request body, turning marshmallow errors into VALIDATION_ERROR."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    try:
        return schema.load(data)
    except ValidationError as err:
        raise ValidationFailed("Invalid request body", err.messages)
