from .errors import ValidationError


def skip_amount(page, page_size):
    """Offset of the first row of a 1-based page."""
    errors = {}
    if not isinstance(page, int) or page < 1:
        errors['page'] = ['Page must be a positive integer.']
    if not isinstance(page_size, int) or page_size < 1:
        errors['page_size'] = ['Page size must be a positive integer.']
    if errors:
        raise ValidationError(errors)
    return (page - 1) * page_size


def has_more(total, page, page_size):
    return total > (page - 1) * page_size + page_size
