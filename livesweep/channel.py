"""Module containing the channel that streams results from the workers to the coordinator.

A channel has many senders, one per task, and exactly one receiver owned by the
coordinating process. Three flavours exist:

* :const:`~livesweep.sweepconstants.CHANNEL_LOCAL`, a plain in-process queue for
  serial and threaded sweeps,

* :const:`~livesweep.sweepconstants.CHANNEL_QUEUE`, a queue hosted by a
  multiprocessing manager for local worker processes,

* :const:`~livesweep.sweepconstants.CHANNEL_NETQUEUE`, a zmq socket the coordinator
  listens on so workers on other hosts can report back.

Results are handed to a single callback by the :class:`ResultDispatcher`,
one after the other in the coordinator's thread.

"""

import multiprocessing as multip
import os
import queue
import threading
import time

try:
    import zmq
except ImportError:
    zmq = None

import livesweep.sweepconstants as sweepconstants
from livesweep.sweeplogging import HasLogger
from livesweep.sweepexceptions import ChannelDeliveryError, NoSuchVenueError
from livesweep.utils.decorators import retry, with_status
from livesweep.utils.helpful_functions import is_ipv6, port_to_tcp


def _unpack(message):
    """Extracts the sweep result of a channel `message`"""
    tag, payload = message
    if tag != sweepconstants.MSG_RESULT:
        raise RuntimeError('You sent something that was not intended to be sent. '
                           'I did not understand message `%s`.' % str(tag))
    return payload


class ResultSender(object):
    """Abstract class definition of the worker side of a channel.

    ABSTRACT: Needs to be defined in subclass

    """
    def send(self, result):
        raise NotImplementedError('Implement this!')


class QueueResultSender(ResultSender, HasLogger):
    """Puts results on a queue, either a local one or a manager's queue proxy."""

    def __init__(self, result_queue):
        self.queue = result_queue
        self._set_logger()

    @retry(9, Exception, 0.01, 'livesweep.retry')
    def _put_on_queue(self, to_put):
        self.queue.put(to_put, block=True)

    def send(self, result):
        """Sends a single `result`.

        :raises: :class:`~livesweep.sweepexceptions.ChannelDeliveryError` if the queue
                 cannot be reached, e.g. because the coordinator is gone

        """
        try:
            self._put_on_queue((sweepconstants.MSG_RESULT, result))
        except Exception as exc:
            raise ChannelDeliveryError('Could not put result #%d on the queue: %s' %
                                       (result.index, repr(exc)))


class ReliableClient(HasLogger):
    """zmq request client that waits for an acknowledgement of every message.

    A request without a reply within :const:`TIMEOUT` milliseconds is sent
    again over a fresh socket, up to :const:`RETRIES` times. A REQ socket that
    missed its reply cannot be reused, so it is discarded without lingering.

    """

    SLEEP = 0.01  # Pause before reconnecting in seconds
    RETRIES = 9  # Number of resends after the first attempt
    TIMEOUT = 2222  # Waiting time for a reply in milliseconds

    def __init__(self, url):
        self.url = url
        self._context = None
        self._socket = None
        self._set_logger()
        if zmq is None:
            raise RuntimeError('You need `pyzmq` to use a network channel.')

    def __getstate__(self):
        state_dict = super(ReliableClient, self).__getstate__()
        state_dict['_context'] = None
        state_dict['_socket'] = None
        return state_dict

    def __del__(self):
        self.finalize()

    def _connect(self):
        if self._context is None:
            self._logger.debug('Connecting to `%s`' % self.url)
            self._context = zmq.Context()
        if self._socket is None:
            self._socket = self._context.socket(zmq.REQ)
            self._socket.ipv6 = is_ipv6(self.url)
            self._socket.connect(self.url)

    def _discard_socket(self):
        self._socket.close(linger=0)
        self._socket = None

    def finalize(self):
        """Closes the socket and terminates the context, NO-OP if already closed"""
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        if self._context is not None:
            self._context.term()
            self._context = None

    def request(self, message):
        """Sends `message` and returns the reply of the server.

        :raises: :class:`~livesweep.sweepexceptions.ChannelDeliveryError` if the
                 server did not reply to any attempt

        """
        for attempt in range(self.RETRIES + 1):
            if attempt > 0:
                time.sleep(self.SLEEP)
            self._connect()
            self._socket.send_pyobj(message)
            if self._socket.poll(self.TIMEOUT, zmq.POLLIN):
                return self._socket.recv_string()
            self._logger.debug('No reply from `%s` (%d retries left)' %
                               (self.url, self.RETRIES - attempt))
            self._discard_socket()
        raise ChannelDeliveryError('Server `%s` seems to be offline!' % self.url)

    def ping(self):
        """Checks that the server at `url` is listening"""
        if self.request(NetQueueResultReceiver.PING) != NetQueueResultReceiver.PONG:
            raise ChannelDeliveryError('Connection Error to `%s`' % self.url)

    def put(self, data):
        """Sends `data` and waits for the acknowledgement"""
        response = self.request(data)
        if response != NetQueueResultReceiver.RECEIVED:
            raise ChannelDeliveryError('Server `%s` did not accept data: %s' %
                                       (self.url, response))


class NetQueueResultSender(ResultSender, HasLogger):
    """Sends results over the network to a :class:`NetQueueResultReceiver`.

    zmq sockets must neither be shared between threads nor survive a fork,
    hence every thread of every process gets a client of its own.

    """

    def __init__(self, url):
        self.url = url
        self._pid = None
        self._local = threading.local()
        self._set_logger()

    def __getstate__(self):
        result_dict = super(NetQueueResultSender, self).__getstate__()
        result_dict['_local'] = None
        result_dict['_pid'] = None
        return result_dict

    def _get_client(self):
        current_pid = os.getpid()
        if self._local is None or self._pid != current_pid:
            if self._pid is not None:
                self._logger.debug('Process %d was forked from %d, opening new connections' %
                                   (current_pid, self._pid))
            self._local = threading.local()
            self._pid = current_pid
        client = getattr(self._local, 'client', None)
        if client is None:
            client = ReliableClient(self.url)
            self._local.client = client
        return client

    def send(self, result):
        """Sends a single `result` and blocks until the coordinator acknowledged it"""
        self._get_client().put((sweepconstants.MSG_RESULT, result))


class ResultReceiver(HasLogger):
    """Abstract class definition of the coordinator side of a channel.

    ABSTRACT: Needs to be defined in subclass

    """
    def receive(self, timeout=None):
        """Returns the next result or `None` if nothing arrived within `timeout` seconds"""
        raise NotImplementedError('Implement this!')

    def close(self):
        pass


class QueueResultReceiver(ResultReceiver):
    """Takes results from a queue"""

    def __init__(self, result_queue):
        self.queue = result_queue
        self._set_logger()

    def receive(self, timeout=None):
        try:
            if timeout is not None and timeout <= 0:
                message = self.queue.get(block=False)
            else:
                message = self.queue.get(block=True, timeout=timeout)
        except queue.Empty:
            return None
        return _unpack(message)


class NetQueueResultReceiver(ResultReceiver):
    """Listens for results on a zmq reply socket.

    Every result is acknowledged before it is handed on, so a worker only
    finishes its task once the coordinator holds the result.

    """

    PING = 'PING'  # for connection testing
    PONG = 'PONG'  # for connection testing
    RECEIVED = 'RECEIVED'  # acknowledges a result
    MSG_ERROR = 'MSG_ERROR'  # signals a request that was not understood

    def __init__(self, url):
        if zmq is None:
            raise RuntimeError('You need `pyzmq` to use a network channel.')
        self.url = url
        self._context = None
        self._socket = None
        self._set_logger()

    def start(self):
        self._logger.info('Starting result server at `%s`' % self.url)
        self._context = zmq.Context()
        self._socket = self._context.socket(zmq.REP)
        self._socket.ipv6 = is_ipv6(self.url)
        self._socket.bind(self.url)

    def close(self):
        if self._context is not None:
            self._logger.info('Closing result server')
            self._socket.close(linger=0)
            self._context.term()
            self._socket = None
            self._context = None

    def _handle_request(self, request):
        """Replies to `request` and returns the contained result, if any"""
        if request == self.PING:
            self._socket.send_string(self.PONG)
            return None
        try:
            result = _unpack(request)
        except (RuntimeError, TypeError, ValueError) as exc:
            response = self.MSG_ERROR + ': ' + str(exc)
            self._logger.error(response)
            self._socket.send_string(response)
            return None
        self._socket.send_string(self.RECEIVED)
        return result

    def receive(self, timeout=None):
        if timeout is None:
            deadline = None
        else:
            deadline = time.time() + max(timeout, 0.0)
        while True:
            if deadline is None:
                poll_ms = None
            else:
                poll_ms = max(int((deadline - time.time()) * 1000), 0)
            if self._socket.poll(poll_ms, zmq.POLLIN):
                result = self._handle_request(self._socket.recv_pyobj())
                if result is not None:
                    return result
            elif deadline is not None and time.time() >= deadline:
                return None


class ResultChannel(HasLogger):
    """Owns both ends of a result channel.

    :param mode:

        One of :const:`~livesweep.sweepconstants.CHANNEL_LOCAL`,
        :const:`~livesweep.sweepconstants.CHANNEL_QUEUE`, or
        :const:`~livesweep.sweepconstants.CHANNEL_NETQUEUE`.

    :param url:

        Address the coordinator listens on in case of a network channel,
        e.g. ``'tcp://10.0.0.1:22334'``. Leave `None` to pick a free port
        on the current host.

    :param maxsize:

        Maximum number of results waiting in a queue, 0 means unbounded.
        Network channels are always unbounded.

    Can be used as a context manager.

    """
    def __init__(self, mode=sweepconstants.CHANNEL_LOCAL, url=None, maxsize=0):
        if mode not in sweepconstants.CHANNELS:
            raise NoSuchVenueError('Channel `%s` is not understood, choose one of %s.' %
                                   (str(mode), str(sweepconstants.CHANNELS)))
        self.mode = mode
        self.url = url
        self.maxsize = maxsize
        self.sender = None
        self.receiver = None
        self._manager = None
        self._set_logger()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finalize()

    def start(self):
        """Creates the queue or binds the socket"""
        if self.mode == sweepconstants.CHANNEL_LOCAL:
            result_queue = queue.Queue(maxsize=self.maxsize)
            self.sender = QueueResultSender(result_queue)
            self.receiver = QueueResultReceiver(result_queue)
        elif self.mode == sweepconstants.CHANNEL_QUEUE:
            self._manager = multip.Manager()
            result_queue = self._manager.Queue(maxsize=self.maxsize)
            self.sender = QueueResultSender(result_queue)
            self.receiver = QueueResultReceiver(result_queue)
        else:
            if self.url is None:
                self.url = port_to_tcp()
            self.receiver = NetQueueResultReceiver(self.url)
            self.receiver.start()
            self.sender = NetQueueResultSender(self.url)
        self._logger.debug('Started `%s` channel' % self.mode)

    def finalize(self):
        """Closes the receiving end, undelivered results are dropped"""
        if self.receiver is not None:
            self.receiver.close()
        if self._manager is not None:
            self._manager.shutdown()
        self._manager = None
        self.receiver = None
        self.sender = None


class ResultDispatcher(HasLogger):
    """Hands every received result to a single callback.

    The callback is called as ``callback(context, result)`` in the thread that
    calls :func:`dispatch`, hence invocations never overlap.

    """
    def __init__(self, receiver):
        self._receiver = receiver
        self._callback = None
        self._context = None
        self.n_dispatched = 0
        self._set_logger()

    def after_each(self, callback, context=None):
        """Registers the callback, replaces a previously registered one"""
        if self._callback is not None:
            self._logger.debug('Replacing callback `%s`' % repr(self._callback))
        self._callback = with_status(callback)
        self._context = context

    def dispatch(self, timeout=None):
        """Waits at most `timeout` seconds for a result and hands it to the callback.

        :return: The dispatched result or `None`

        """
        result = self._receiver.receive(timeout)
        if result is not None:
            self.n_dispatched += 1
            if self._callback is not None:
                self._callback(self._context, result)
        return result

    def drain(self):
        """Dispatches all results that already arrived and returns them"""
        results = []
        while True:
            result = self.dispatch(timeout=0)
            if result is None:
                return results
            results.append(result)


def make_channel(mode=sweepconstants.CHANNEL_LOCAL, url=None, maxsize=0):
    """Creates and starts a :class:`ResultChannel`.

    The matched ends are available as ``channel.sender`` and ``channel.receiver``.

    """
    channel = ResultChannel(mode, url=url, maxsize=maxsize)
    channel.start()
    return channel
