import os

import numpy as np

try:
    import matplotlib
    matplotlib.use('Agg')
except ImportError:
    matplotlib = None

from livesweep.tests.testutils.ioutils import run_suite, parse_args, unittest, make_temp_dir
from livesweep.grid import ParameterGrid
from livesweep.plotting import Throttle, NullSink, SurfaceSink, SweepContext, update_buffer
from livesweep.results import ResultBuffer, SweepResult


class FakeClock(object):
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class ThrottleTest(unittest.TestCase):

    tags = 'unittest', 'plotting'

    def test_rate_limit(self):
        clock = FakeClock()
        throttle = Throttle(0.2, clock=clock)
        self.assertTrue(throttle.ready())
        clock.now = 0.1
        self.assertFalse(throttle.ready())
        clock.now = 0.2
        self.assertTrue(throttle.ready())
        clock.now = 0.3
        self.assertFalse(throttle.ready())
        throttle.reset()
        self.assertTrue(throttle.ready())

    def test_no_throttling(self):
        throttle = Throttle(0)
        self.assertTrue(all(throttle.ready() for _ in range(10)))

    def test_negative_interval(self):
        with self.assertRaises(ValueError):
            Throttle(-1)


class NullSinkTest(unittest.TestCase):

    tags = 'unittest', 'plotting'

    def setUp(self):
        self.grid = ParameterGrid((0.5, 2.0, 2), (100.0, 150.0, 2))
        self.buffer = ResultBuffer(self.grid.shape)

    def test_skips_intermediate_but_renders_final_state(self):
        sink = NullSink(min_interval=3600)
        context = SweepContext(self.grid, self.buffer, sink)
        sink.initialize(self.grid, self.buffer)
        for index in (3, 1, 4, 2):
            update_buffer(context, SweepResult.from_value(index, 42.0))
        self.assertEqual(sink.n_updates, 4)
        # Only the first update got through the throttle
        self.assertEqual(sink.n_draws, 1)
        self.assertTrue(sink.dirty)
        self.assertEqual(int(np.count_nonzero(np.isnan(sink.rendered))), 3)
        sink.flush(self.buffer)
        self.assertFalse(sink.dirty)
        self.assertEqual(sink.rendered.tolist(), [[42.0, 42.0], [42.0, 42.0]])

    def test_no_throttling_draws_every_update(self):
        sink = NullSink()
        context = SweepContext(self.grid, self.buffer, sink)
        sink.initialize(self.grid, self.buffer)
        for index in range(1, 5):
            update_buffer(context, SweepResult.from_value(index, float(index)))
        self.assertEqual(sink.n_draws, 4)
        self.assertEqual(sink.rendered.tolist(), [[1.0, 2.0], [3.0, 4.0]])

    def test_update_buffer_rejects_duplicates(self):
        sink = NullSink()
        context = SweepContext(self.grid, self.buffer, sink)
        update_buffer(context, SweepResult.from_value(1, 1.0))
        with self.assertRaises(ValueError):
            update_buffer(context, SweepResult.from_value(1, 2.0))
        self.assertEqual(sink.n_updates, 1)


@unittest.skipIf(matplotlib is None, 'Can only be run with matplotlib')
class SurfaceSinkTest(unittest.TestCase):

    tags = 'unittest', 'plotting'

    def setUp(self):
        self.grid = ParameterGrid.from_size(3)
        self.buffer = ResultBuffer(self.grid.shape)
        self.sink = SurfaceSink(min_interval=0)

    def tearDown(self):
        self.sink.close()

    def test_empty_and_partial_buffer(self):
        self.sink.initialize(self.grid, self.buffer)
        self.assertIsNone(self.sink._surface)
        context = SweepContext(self.grid, self.buffer, self.sink)
        update_buffer(context, SweepResult.from_value(5, 250.0))
        update_buffer(context, SweepResult.from_value(6, 260.0))
        self.assertIsNotNone(self.sink._surface)
        self.assertEqual(self.sink.axes.get_zlim(), (0.0, 500.0))
        self.sink.flush(self.buffer)
        self.assertEqual(self.sink.n_draws, 4)

    def test_autoscale_and_savefig(self):
        sink = SurfaceSink(min_interval=0, zlim=None)
        try:
            sink.initialize(self.grid, self.buffer)
            for index in range(1, self.grid.size + 1):
                self.buffer.record(SweepResult.from_value(index, 0.5 + index / 100.0))
            sink.flush(self.buffer)
            filename = make_temp_dir(os.path.join('plots', 'surface.png'))
            os.makedirs(os.path.dirname(filename), exist_ok=True)
            sink.savefig(filename)
            self.assertTrue(os.path.isfile(filename))
        finally:
            sink.close()


if __name__ == '__main__':
    opt_args = parse_args()
    run_suite(**opt_args)
