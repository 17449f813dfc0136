"""Project-wide DRF exception handler."""

from rest_framework.views import exception_handler


def api_exception_handler(exc, context):
    """Render API errors with a stable machine-readable ``code``.

    DRF puts the code on ``exc.detail`` for simple errors; field validation
    errors keep their per-field shape and get ``code = 'invalid'``.
    """
    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(response.data, dict) and 'code' not in response.data:
        code = getattr(getattr(exc, 'detail', None), 'code', None)
        if code is None:
            code = getattr(exc, 'default_code', 'error')
        if not isinstance(code, str):
            code = 'invalid'
        response.data['code'] = code
    return response
