import logging
import os
import pickle

from livesweep.tests.testutils.ioutils import run_suite, parse_args, unittest, \
    make_temp_dir, get_log_config
from livesweep.sweeplogging import LoggingManager, HasLogger, rename_log_file, \
    DisableAllLogging, use_simple_logging, simple_logging_config, NoInterpolationParser, \
    make_simple_log_config, StdoutToLogger
import livesweep.sweepconstants as sweepconstants


class Dummy(HasLogger):
    def __init__(self):
        self._set_logger()


class FakeSweep(object):
    name = 'fake_sweep'


class ConfigTaker(object):
    @simple_logging_config
    def __init__(self, **kwargs):
        self.kwargs = kwargs


class LoggingUtilsTest(unittest.TestCase):

    tags = 'unittest', 'logging'

    def test_rename_log_file(self):
        filename = os.path.join('logs', '$sweep', '$host_$proc.txt')
        new_name = rename_log_file(filename, sweep_name='mysweep', process_name='proc7',
                                   host_name='myhost')
        self.assertEqual(new_name, os.path.join('logs', 'mysweep', 'myhost_proc7.txt'))

    def test_rename_defaults(self):
        new_name = rename_log_file('$sweep/$proc.txt')
        self.assertTrue(new_name.startswith('sweep/'))
        self.assertNotIn('$', new_name)

    def test_has_logger_pickling(self):
        dummy = Dummy()
        new_dummy = pickle.loads(pickle.dumps(dummy))
        self.assertEqual(new_dummy._logger.name, dummy._logger.name)
        self.assertTrue(dummy._logger.name.endswith('.Dummy'))

    def test_disable_all_logging(self):
        logger = logging.getLogger('livesweep.test')
        with DisableAllLogging():
            self.assertFalse(logger.isEnabledFor(logging.CRITICAL))
        self.assertTrue(logger.isEnabledFor(logging.CRITICAL))

    def test_simple_logging_kwargs(self):
        self.assertTrue(use_simple_logging({'log_folder': 'logs'}))
        self.assertFalse(use_simple_logging({'log_config': None}))
        taker = ConfigTaker(log_folder='mylogs', logger_names=('livesweep', 'foo'),
                            log_levels=(logging.INFO, logging.DEBUG))
        log_config = taker.kwargs['log_config']
        self.assertEqual(log_config['loggers']['foo']['level'], logging.DEBUG)
        self.assertEqual(log_config['loggers']['livesweep']['level'], logging.INFO)
        filename = log_config['handlers']['file_main']['filename']
        self.assertTrue(filename.startswith('mylogs'))
        self.assertIn('multiproc_handlers', log_config)

    def test_simple_config_without_workers(self):
        log_config = make_simple_log_config(log_folder='mylogs', log_multiproc=False)
        self.assertNotIn('multiproc_handlers', log_config)
        self.assertEqual(log_config['loggers']['']['level'], logging.INFO)
        with self.assertRaises(ValueError):
            make_simple_log_config(logger_names=('a', 'b', 'c'),
                                   log_levels=(logging.INFO, logging.DEBUG))

    def test_stdout_to_logger(self):
        redirection = StdoutToLogger('livesweep.stdout')
        with self.assertLogs('livesweep.stdout', level='INFO') as captured:
            redirection.start()
            try:
                print('Van der Pol')
            finally:
                redirection.finalize()
        self.assertIn('Van der Pol', '\n'.join(captured.output))
        self.assertFalse(redirection.redirecting)

    def test_simple_logging_and_log_config_exclude_each_other(self):
        with self.assertRaises(ValueError):
            ConfigTaker(log_folder='mylogs', log_config=None)


class LoggingManagerTest(unittest.TestCase):

    tags = 'unittest', 'logging'

    def tearDown(self):
        LoggingManager.tabula_rasa()

    def test_default_config_is_found(self):
        manager = LoggingManager(log_config=sweepconstants.DEFAULT_LOGGING)
        manager.check_log_config()
        self.assertTrue(manager.log_config.endswith('default.ini'))
        self.assertIsNotNone(manager._main_config)
        self.assertIsNotNone(manager._worker_config)
        manager.finalize()

    def test_missing_file(self):
        manager = LoggingManager(log_config='does_not_exist.ini')
        with self.assertRaises(ValueError):
            manager.check_log_config()

    def test_report_progress_defaults(self):
        manager = LoggingManager(report_progress=True)
        manager.check_log_config()
        self.assertEqual(manager.report_progress, (5, 'livesweep', logging.INFO))
        manager = LoggingManager(report_progress=10)
        manager.check_log_config()
        self.assertEqual(manager.report_progress, (10, 'livesweep', logging.INFO))

    def test_pickling_with_parser(self):
        manager = LoggingManager(log_config=get_log_config(), log_stdout=False)
        manager.extract_replacements(FakeSweep())
        manager.check_log_config()
        new_manager = pickle.loads(pickle.dumps(manager))
        self.assertEqual(new_manager.sweep_name, 'fake_sweep')
        self.assertTrue(new_manager.log_config)
        new_manager.make_logging_handlers_and_tools(multiproc=False)
        new_manager.finalize()
        manager.finalize()

    def test_file_handlers_are_created(self):
        folder = make_temp_dir(os.path.join('logging_manager', 'logs'))
        parser = NoInterpolationParser()
        parser.read_string(u'''
[loggers]
keys=root

[logger_root]
handlers=file
level=INFO

[formatters]
keys=file

[formatter_file]
format=%(name)s %(levelname)-8s %(message)s

[handlers]
keys=file

[handler_file]
class=FileHandler
level=INFO
formatter=file
args=('FOLDER/$sweep/LOG.txt',)
'''.replace('FOLDER', folder.replace('\\', '/')))
        manager = LoggingManager(log_config=parser)
        manager.extract_replacements(FakeSweep())
        manager.check_log_config()
        manager.make_logging_handlers_and_tools()
        logging.getLogger('livesweep.test').info('Hello from the test')
        manager.finalize()
        with open(os.path.join(folder, 'fake_sweep', 'LOG.txt')) as fh:
            self.assertIn('Hello from the test', fh.read())

    def test_progress_to_logger(self):
        manager = LoggingManager(report_progress=(50, 'livesweep.progress', logging.INFO))
        manager.check_log_config()
        with self.assertLogs('livesweep.progress', level='INFO') as captured:
            manager.show_progress(-1, 4)
            for n in range(4):
                manager.show_progress(n, 4)
        self.assertTrue(any('Received 4/4 results' in line for line in captured.output))


if __name__ == '__main__':
    opt_args = parse_args()
    run_suite(**opt_args)
