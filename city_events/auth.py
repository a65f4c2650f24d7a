# city_events/auth.py

import logging
from functools import wraps

from city_events.models import FailureReason, OperationResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def require_session(func):
    """
    Guards an EventApp method that acts on behalf of the logged-in user.
    The session user is passed to the method as the `user` keyword argument.
    """
    @wraps(func)
    def wrapper(app, *args, **kwargs):
        user = app.users.current_user
        if user is None:
            logger.warning("%s called without a logged-in user", func.__name__)
            return OperationResult.failure(FailureReason.NOT_LOGGED_IN, "Please log in first")

        return func(app, *args, user=user, **kwargs)
    return wrapper
