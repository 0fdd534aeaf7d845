from rest_framework import status
from rest_framework.exceptions import APIException


class Conflict(APIException):
    """Raised when a row changed under a concurrent update"""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The resource was modified by another request. Please refresh and try again.'
    default_code = 'conflict'
