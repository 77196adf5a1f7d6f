"""Decorators shared by the channel and the coordinator"""

import functools
import logging
import time


def retry(n, errors, wait=0.0, logger_name=None):
    """Decorator calling the function again if it raises one of `errors`.

    :param n: Number of retries after the first call, so at most `n + 1` calls
    :param errors: Exception class or tuple of classes that trigger a retry
    :param wait: Seconds to sleep before every retry
    :param logger_name: Logger reporting the retries, `None` to stay silent

    The last error is reraised once the retries are used up.

    """
    def wrapper(func):
        @functools.wraps(func)
        def new_func(*args, **kwargs):
            logger = logging.getLogger(logger_name) if logger_name else None
            for attempt in range(n + 1):
                try:
                    result = func(*args, **kwargs)
                except errors:
                    if attempt == n:
                        if logger is not None:
                            logger.exception('I could not execute `%s` after %d retries, '
                                             'giving up.' % (func.__name__, n))
                        raise
                    if logger is not None:
                        logger.debug('I could not execute `%s`, '
                                     'starting try %d.' % (func.__name__, attempt + 2))
                    if wait:
                        time.sleep(wait)
                else:
                    if attempt and logger is not None:
                        logger.debug('Retry %d of `%s` successful' % (attempt, func.__name__))
                    return result
        return new_func

    return wrapper


def with_status(func):
    """Decorator for sweep callbacks that logs and swallows errors of a single callback.

    The coordinator must keep consuming the channel even if one update fails.
    Returns `True` if the callback succeeded and `False` otherwise.

    """
    @functools.wraps(func)
    def new_func(*args, **kwargs):
        try:
            func(*args, **kwargs)
            return True
        except Exception:
            logger = logging.getLogger('livesweep.callback')
            logger.exception('ERROR in callback `%s`, the sweep continues.' %
                             getattr(func, '__name__', repr(func)))
            return False
    return new_func
