import pickle
import queue
import threading

try:
    import zmq
except ImportError:
    zmq = None

from livesweep.tests.testutils.ioutils import run_suite, parse_args, unittest, \
    get_random_port_url
import livesweep.sweepconstants as sweepconstants
from livesweep.channel import QueueResultSender, QueueResultReceiver, ResultDispatcher, \
    ResultChannel, make_channel, NetQueueResultSender, ReliableClient
from livesweep.results import SweepResult
from livesweep.sweepexceptions import ChannelDeliveryError, NoSuchVenueError
from livesweep.sweeplogging import DisableAllLogging


class BrokenQueue(object):
    """Queue whose coordinator is gone"""
    def __init__(self):
        self.puts = 0

    def put(self, item, block=True):
        self.puts += 1
        raise EOFError('Connection closed')


class QueueChannelTest(unittest.TestCase):

    tags = 'unittest', 'channel'

    def setUp(self):
        self.queue = queue.Queue()
        self.sender = QueueResultSender(self.queue)
        self.receiver = QueueResultReceiver(self.queue)

    def test_send_and_receive(self):
        result = SweepResult.from_value(1, 42.0)
        self.sender.send(result)
        self.assertEqual(self.receiver.receive(timeout=1.0), result)

    def test_receive_timeout(self):
        self.assertIsNone(self.receiver.receive(timeout=0.01))
        self.assertIsNone(self.receiver.receive(timeout=0))

    def test_fifo_per_producer(self):
        for index in range(1, 6):
            self.sender.send(SweepResult.from_value(index, index))
        received = [self.receiver.receive(0).index for _ in range(5)]
        self.assertEqual(received, [1, 2, 3, 4, 5])

    def test_unknown_message(self):
        self.queue.put(('GARBAGE', None))
        with self.assertRaises(RuntimeError):
            self.receiver.receive(0)

    def test_delivery_failure(self):
        broken = BrokenQueue()
        sender = QueueResultSender(broken)
        with DisableAllLogging():
            with self.assertRaises(ChannelDeliveryError):
                sender.send(SweepResult.from_value(3, 1.0))
        # First try plus nine retries
        self.assertEqual(broken.puts, 10)

    def test_many_producers(self):
        def produce(start):
            for index in range(start, start + 25):
                self.sender.send(SweepResult.from_value(index, index))

        threads = [threading.Thread(target=produce, args=(1 + 25 * n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        indices = []
        while True:
            result = self.receiver.receive(0)
            if result is None:
                break
            indices.append(result.index)
        self.assertEqual(sorted(indices), list(range(1, 101)))


class ResultDispatcherTest(unittest.TestCase):

    tags = 'unittest', 'channel'

    def setUp(self):
        self.queue = queue.Queue()
        self.sender = QueueResultSender(self.queue)
        self.dispatcher = ResultDispatcher(QueueResultReceiver(self.queue))

    def test_callback_gets_context(self):
        calls = []
        context = object()
        self.dispatcher.after_each(lambda ctx, res: calls.append((ctx, res.index)), context)
        self.sender.send(SweepResult.from_value(2, 1.0))
        self.assertEqual(self.dispatcher.dispatch(timeout=1.0).index, 2)
        self.assertEqual(calls, [(context, 2)])
        self.assertEqual(self.dispatcher.n_dispatched, 1)

    def test_nothing_to_dispatch(self):
        self.dispatcher.after_each(lambda ctx, res: self.fail('No result expected'))
        self.assertIsNone(self.dispatcher.dispatch(timeout=0.01))
        self.assertEqual(self.dispatcher.drain(), [])

    def test_second_registration_replaces_first(self):
        first = []
        second = []
        self.dispatcher.after_each(lambda ctx, res: first.append(res.index))
        self.dispatcher.after_each(lambda ctx, res: second.append(res.index))
        self.sender.send(SweepResult.from_value(1, 1.0))
        self.dispatcher.drain()
        self.assertEqual(first, [])
        self.assertEqual(second, [1])

    def test_callback_errors_do_not_stop_dispatching(self):
        seen = []

        def callback(context, result):
            seen.append(result.index)
            if result.index == 2:
                raise ValueError('Broken plot')

        self.dispatcher.after_each(callback)
        for index in (1, 2, 3):
            self.sender.send(SweepResult.from_value(index, 1.0))
        with DisableAllLogging():
            drained = self.dispatcher.drain()
        self.assertEqual([res.index for res in drained], [1, 2, 3])
        self.assertEqual(seen, [1, 2, 3])

    def test_callbacks_never_overlap(self):
        state = {'active': 0, 'max_active': 0, 'count': 0}

        def callback(context, result):
            state['active'] += 1
            state['max_active'] = max(state['max_active'], state['active'])
            state['count'] += 1
            state['active'] -= 1

        self.dispatcher.after_each(callback)

        def produce(start):
            for index in range(start, start + 50):
                self.sender.send(SweepResult.from_value(index, index))

        threads = [threading.Thread(target=produce, args=(1 + 50 * n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        while state['count'] < 200:
            self.dispatcher.dispatch(timeout=1.0)
        for thread in threads:
            thread.join()
        self.assertEqual(state['max_active'], 1)


class ResultChannelTest(unittest.TestCase):

    tags = 'unittest', 'channel'

    def test_local_channel(self):
        with ResultChannel(sweepconstants.CHANNEL_LOCAL) as channel:
            channel.sender.send(SweepResult.from_value(1, 3.0))
            self.assertEqual(channel.receiver.receive(1.0).value, 3.0)
        self.assertIsNone(channel.sender)
        self.assertIsNone(channel.receiver)

    def test_manager_queue_channel(self):
        channel = make_channel(sweepconstants.CHANNEL_QUEUE)
        try:
            # The sender travels to worker processes
            sender = pickle.loads(pickle.dumps(channel.sender))
            sender.send(SweepResult.from_value(4, 2.0))
            self.assertEqual(channel.receiver.receive(5.0).index, 4)
        finally:
            channel.finalize()

    def test_unknown_channel(self):
        with self.assertRaises(NoSuchVenueError):
            ResultChannel('CARRIER_PIGEON')


@unittest.skipIf(zmq is None, 'Can only be run with zmq')
class NetQueueChannelTest(unittest.TestCase):

    tags = 'unittest', 'channel', 'zmq'

    def setUp(self):
        self.channel = make_channel(sweepconstants.CHANNEL_NETQUEUE,
                                    url=get_random_port_url())

    def tearDown(self):
        self.channel.finalize()

    def _send_in_thread(self, sender, results):
        def send():
            for result in results:
                sender.send(result)
        thread = threading.Thread(target=send)
        thread.start()
        return thread

    def test_send_and_receive(self):
        sender = pickle.loads(pickle.dumps(self.channel.sender))
        thread = self._send_in_thread(sender, [SweepResult.from_value(idx, idx * 2.0)
                                               for idx in (1, 2, 3)])
        received = [self.channel.receiver.receive(5.0) for _ in range(3)]
        thread.join()
        self.assertEqual([res.index for res in received], [1, 2, 3])
        self.assertEqual([res.value for res in received], [2.0, 4.0, 6.0])

    def test_receive_timeout(self):
        self.assertIsNone(self.channel.receiver.receive(timeout=0.05))

    def test_sender_is_picklable_after_use(self):
        sender = self.channel.sender
        thread = self._send_in_thread(sender, [SweepResult.from_value(1, 1.0)])
        self.assertEqual(self.channel.receiver.receive(5.0).index, 1)
        thread.join()
        new_sender = pickle.loads(pickle.dumps(sender))
        self.assertIsInstance(new_sender, NetQueueResultSender)
        self.assertEqual(new_sender.url, sender.url)

    def test_ping(self):
        client = ReliableClient(self.channel.url)
        thread = threading.Thread(target=client.ping)
        thread.start()
        # A ping is answered but does not count as a result
        self.assertIsNone(self.channel.receiver.receive(timeout=1.0))
        thread.join()
        client.finalize()


@unittest.skipIf(zmq is None, 'Can only be run with zmq')
class OfflineServerTest(unittest.TestCase):

    tags = 'unittest', 'channel', 'zmq'

    def test_gives_up_without_server(self):
        class ImpatientClient(ReliableClient):
            RETRIES = 1
            TIMEOUT = 50

        client = ImpatientClient(get_random_port_url())
        with self.assertRaises(ChannelDeliveryError):
            client.put((sweepconstants.MSG_RESULT, SweepResult.from_value(1, 1.0)))
        client.finalize()


if __name__ == '__main__':
    opt_args = parse_args()
    run_suite(**opt_args)
