"""
Returns Module - Error Taxonomy

Every error the admin API raises carries a `kind` so the panel can tell
"you are not allowed" from "the courier said no":

    validation      400  missing/invalid input, missing rejection note
    permission      401/403  not signed in, not an admin, not the order owner
    not_found       404  order or refund request does not exist
    not_configured  503  courier credentials missing
    upstream        502  courier / messaging API failure
"""

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger('returns')


class BackofficeError(APIException):
    kind = 'internal'


class ValidationFailed(BackofficeError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'invalid'
    kind = 'validation'


class RecordNotFound(BackofficeError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'
    kind = 'not_found'


class NotConfigured(BackofficeError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Service not configured.'
    default_code = 'not_configured'
    kind = 'not_configured'


class UpstreamError(BackofficeError):
    """An external API answered with an error (or not at all)."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Upstream service failed.'
    default_code = 'upstream'
    kind = 'upstream'

    def __init__(self, detail=None, upstream_status=None):
        super().__init__(detail)
        self.upstream_status = upstream_status


class CourierError(UpstreamError):
    default_detail = 'Courier request failed.'


class MessagingError(UpstreamError):
    default_detail = 'Messaging request failed.'


# DRF's own exceptions don't know about kinds; classify them by status
KIND_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: 'validation',
    status.HTTP_401_UNAUTHORIZED: 'permission',
    status.HTTP_403_FORBIDDEN: 'permission',
    status.HTTP_404_NOT_FOUND: 'not_found',
    status.HTTP_405_METHOD_NOT_ALLOWED: 'validation',
    status.HTTP_429_TOO_MANY_REQUESTS: 'throttled',
}


def backoffice_exception_handler(exc, context):
    """Render every API error as {"kind", "error", "details"?}."""
    response = exception_handler(exc, context)
    if response is None:
        return None

    kind = getattr(exc, 'kind', None) or KIND_BY_STATUS.get(response.status_code, 'internal')
    body = {'kind': kind}

    data = response.data
    if isinstance(data, dict) and set(data) == {'detail'}:
        body['error'] = str(data['detail'])
    elif isinstance(data, list) and len(data) == 1:
        body['error'] = str(data[0])
    else:
        body['error'] = 'Invalid input.' if kind == 'validation' else str(exc)
        body['details'] = data

    if kind == 'upstream':
        logger.error(f'Upstream failure: {body["error"]}')

    response.data = body
    return response
