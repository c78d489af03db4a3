"""
Returns Module - Token Authentication

Admin panel calls send `Authorization: Bearer <token>`. Invoice links are
opened in a new browser tab, where no header can be set, so they may carry
the same token as `?token=<token>` instead.
"""

from rest_framework.authentication import TokenAuthentication


class BearerTokenAuthentication(TokenAuthentication):
    keyword = 'Bearer'


class QueryStringTokenAuthentication(TokenAuthentication):
    """Reads the token from the `token` query parameter."""

    keyword = 'Bearer'
    query_param = 'token'

    def authenticate(self, request):
        token = request.query_params.get(self.query_param, '').strip()
        if not token:
            return None
        return self.authenticate_credentials(token)
