import datetime
import logging
import os
import socket

try:
    import zmq
except ImportError:
    zmq = None


class _Progressbar(object):
    """Progress bar that emits a new statement only every `percentage_step` percent.

    Keeps state between calls, use the module level :func:`progressbar`
    which shares a single instance.

    """
    def __init__(self):
        self._started = None  # Wall clock time of the last restart
        self._first = None  # Index at the last restart
        self._last = float('inf')  # Index of the previous call
        self._total = None
        self._step_size = None  # Number of items per bar update
        self._interval = None  # Number of completed bar updates

    def _restart(self, index, total, percentage_step):
        self._started = datetime.datetime.now()
        self._first = index
        self._total = total
        self._step_size = total * percentage_step / 100.0
        self._interval = int((index + 1.0) / self._step_size)

    def _remaining(self, index):
        done = index - self._first
        if done <= 0:
            return ''
        elapsed = (datetime.datetime.now() - self._started).total_seconds()
        remaining = elapsed / done * (self._total - 1 - index)
        return ', remaining: %s' % str(datetime.timedelta(seconds=int(remaining)))

    def _render(self, index, length, show_time):
        if index >= self._total - 1:
            return '[%s]100.0%%' % ('=' * length)
        fraction = (index + 1.0) / self._total
        bars = int(fraction * length)
        statement = '[%s%s] %4.1f%%' % ('=' * bars, ' ' * (length - bars), fraction * 100.0)
        if show_time:
            statement += self._remaining(index)
        return statement

    @staticmethod
    def _emit(statement, logger, log_level, reprint):
        if logger == 'print':
            if reprint:
                print('\r' + statement, end='', flush=True)
            else:
                print(statement)
        elif logger is not None:
            if isinstance(logger, str):
                logger = logging.getLogger(logger)
            logger.log(log_level, statement)

    def __call__(self, index, total, percentage_step=5, logger='print', log_level=logging.INFO,
                 reprint=False, time=True, length=20, fmt_string=None, reset=False):
        restarted = reset or index <= self._last or total != self._total
        if restarted:
            self._restart(index, total, percentage_step)

        interval = int((index + 1.0) / self._step_size)
        statement = None
        if restarted or interval > self._interval or index >= total - 1:
            statement = self._render(index, length, time and not restarted)
            if fmt_string:
                statement = fmt_string % statement
            self._emit(statement, logger, log_level, reprint)

        self._interval = interval
        self._last = index
        return statement


_progressbar = _Progressbar()


def progressbar(index, total, percentage_step=10, logger='print', log_level=logging.INFO,
                reprint=True, time=True, length=20, fmt_string=None, reset=False):
    """Plots a progress bar to the given `logger`.

    Results of a sweep arrive in arbitrary order, so `index` counts the
    results received so far rather than a grid position:

    .. code-block:: python

        for n, result in enumerate(results_as_they_arrive):
            progressbar(index=n, total=42, reprint=True)

    The progressbar is reset automatically if it is called with a lower `index`
    than before or with a different `total`.

    :param index: Number of finished items minus one, `-1` signals the start
    :param total: Total number of items
    :param percentage_step: Steps with which the bar should be plotted
    :param logger:

        Logger to write to. If string 'print' is given, the print statement is
        used. Use ``None`` if you don't want to print or log the progressbar statement.

    :param log_level: Log level with which to log.
    :param reprint:

        If no new line should be plotted but carriage return (works only for printing)

    :param time: If the remaining time should be estimated and displayed
    :param length: Length of the bar in `=` signs.
    :param fmt_string:

        A string which contains exactly one `%s` in order to incorporate the progressbar.

    :param reset: If the progressbar should be restarted.

    :return:

        The progressbar string or `None` if the string has not been updated.

    """
    return _progressbar(index=index, total=total, percentage_step=percentage_step,
                        logger=logger, log_level=log_level, reprint=reprint,
                        time=time, length=length, fmt_string=fmt_string, reset=reset)


def format_time(timestamp):
    """Formats timestamp to human readable format, e.g. ``2024_05_01_13h37m00s``"""
    return datetime.datetime.fromtimestamp(timestamp).strftime('%Y_%m_%d_%Hh%Mm%Ss')


def convert_ipv6(host):
    """Puts ipv6 addresses in brackets and strips their zone index"""
    if ':' in host:
        host = '[%s]' % host.split('%')[0]
    return host


def is_ipv6(url):
    return '[' in url


def local_host():
    """Address of this machine under its fully qualified domain name"""
    try:
        addr_list = socket.getaddrinfo(socket.getfqdn(), None)
    except socket.gaierror:
        addr_list = socket.getaddrinfo('127.0.0.1', None)
    sockaddr = addr_list[0][4]
    return convert_ipv6(sockaddr[0])


def _free_port(address, port_range=()):
    """Lets zmq pick a free port of `address`, optionally within `(min, max)`"""
    if zmq is None:
        raise RuntimeError('You need `pyzmq` to pick a free port automatically.')
    context = zmq.Context()
    probe = context.socket(zmq.REP)
    try:
        probe.ipv6 = is_ipv6(address)
        return probe.bind_to_random_port(address, *port_range)
    except zmq.ZMQError:
        logging.getLogger('livesweep').exception('Could not bind to %s' % address)
        raise
    finally:
        probe.close()
        context.term()


def port_to_tcp(port=None):
    """Returns the tcp url of this machine for a given `port`.

    :param port:

        Port number, `None` for any free port, or a tuple `(min_port, max_port)`
        to pick a free port within that range

    """
    address = 'tcp://' + local_host()
    if not isinstance(port, int):
        port = _free_port(address, () if port is None else tuple(port))
    return '%s:%d' % (address, port)


def racedirs(path):
    """Like os.makedirs but tolerates other processes creating the same folders"""
    if os.path.isfile(path):
        raise IOError('Path `%s` is already a file not a directory' % path)
    os.makedirs(path, exist_ok=True)
