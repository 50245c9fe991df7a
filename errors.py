class ApiError(Exception):
    """Error carrying the HTTP status it should be answered with"""

    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message}


class ValidationError(ApiError):
    status_code = 400


class Unauthorized(ApiError):
    status_code = 401

    def __init__(self, message='Unauthorized'):
        super().__init__(message)


class Forbidden(ApiError):
    status_code = 403

    def __init__(self, message='Forbidden'):
        super().__init__(message)


class NotFound(ApiError):
    status_code = 404

    def __init__(self, message='Not found'):
        super().__init__(message)


class Conflict(ApiError):
    status_code = 409
