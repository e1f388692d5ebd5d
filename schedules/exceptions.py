"""
Error taxonomy for scheduling operations.

Every error carries the HTTP status the API answers with and a payload the
portal can render without parsing the message.
"""


class SchedulingError(Exception):
    """Base class for failures of a single scheduling request."""
    status_code = 400
    error = 'Scheduling error'

    def to_dict(self):
        return {'error': self.error, 'message': str(self)}


class ValidationError(SchedulingError):
    """Raised when input is malformed or violates a schedule rule."""
    status_code = 400
    error = 'Validation error'

    def __init__(self, field, message):
        super().__init__(message)
        self.field = field
        self.message = message

    def to_dict(self):
        return {'error': self.error, 'field': self.field, 'message': self.message}


class NotFoundError(SchedulingError):
    """Raised when a referenced id does not exist in the caller's scope."""
    status_code = 404
    error = 'Not found'

    def __init__(self, resource_type, resource_id):
        super().__init__(f"{resource_type.capitalize()} {resource_id} not found.")
        self.resource_type = resource_type
        self.resource_id = resource_id

    def to_dict(self):
        return {
            'error': self.error,
            'message': str(self),
            'resource_type': self.resource_type,
            'resource_id': self.resource_id,
        }


class ResourceUnavailableError(SchedulingError):
    """Raised when a resource exists but cannot take new assignments."""
    status_code = 409
    error = 'Resource unavailable'

    def __init__(self, resource_type, resource_id, state=None):
        detail = f" (currently {state})" if state else ''
        super().__init__(f"{resource_type.capitalize()} {resource_id} is not available for assignment{detail}.")
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.state = state

    def to_dict(self):
        return {
            'error': self.error,
            'message': str(self),
            'resource_type': self.resource_type,
            'resource_id': self.resource_id,
        }


class ConflictError(SchedulingError):
    """Raised when a resource is already committed to an overlapping window."""
    status_code = 409
    error = 'Scheduling conflict'

    def __init__(self, conflicts):
        super().__init__('; '.join(conflicts) or 'A scheduling conflict occurred')
        self.conflicts = list(conflicts)

    def to_dict(self):
        return {'error': self.error, 'conflicts': self.conflicts}


class ConcurrentUpdateError(SchedulingError):
    """Raised when a write lost a lock race and can be retried as is."""
    status_code = 409
    error = 'Concurrent update'

    def __init__(self, message=None):
        super().__init__(message or 'The record was being changed by another request. Please try again.')


# MySQL lock wait timeout and deadlock codes
MYSQL_LOCK_ERRORS = (1205, 1213)


def is_lock_error(exc):
    """Tell row/table lock contention apart from other OperationalErrors."""
    if exc.args and exc.args[0] in MYSQL_LOCK_ERRORS:
        return True
    return 'locked' in str(exc).lower()
