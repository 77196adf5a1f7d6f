import getopt
import logging
import os
import random
import shutil
import sys
import tempfile
import time
import unittest

from livesweep.sweeplogging import HasLogger, NoInterpolationParser, rename_log_file, \
    rename_parser_files
from livesweep.utils.helpful_functions import port_to_tcp


TEMP_WILDCARD = '$temp'
"""Placeholder for the temporary test folder in logging configs"""

TEST_IMPORT_ERROR = '_FailedTest'
"""Class name unittest gives to the tests of modules that could not be imported"""

testParams = dict(
    # Name of the temporary folder if it has to be put into `tempfile.gettempdir()`
    tempdir='tmp_livesweep_tests',
    # Remove the temporary folder after the tests
    remove=True,
    # Folder requested by the user, empty for automatic choice
    user_tempdir='',
    # Folder actually in use, determined on first use
    actual_tempdir='',
    # Logging config of the tests, 'test' is turned into a parser on import
    log_config='test',
    # Folder of the `$sweep` log folders, determined by the log config
    log_folder=None,
)


def errwrite(text):
    """Writes to stderr with linebreak"""
    sys.__stderr__.write(text + '\n')


def get_log_config():
    return testParams['log_config']


def get_log_path(sweep_name, process_name=None):
    """Folder the test logging config writes the logs of `sweep_name` to"""
    return rename_log_file(testParams['log_folder'], sweep_name=sweep_name,
                           process_name=process_name)


def get_random_port_url():
    """Determines the local server url with a random port"""
    url = port_to_tcp()
    errwrite('USING URL: %s \n' % url)
    return url


def _temp_log_file(filename):
    """Moves a log file starting with `$temp` into the temporary test folder"""
    if not filename.startswith(TEMP_WILDCARD):
        raise ValueError('%s must be at the beginning of the filename!' % TEMP_WILDCARD)
    relative = filename[len(TEMP_WILDCARD):].lstrip('/\\')
    new_filename = os.path.normpath(os.path.join(make_temp_dir('logs'), relative))
    if testParams['log_folder'] is None:
        testParams['log_folder'] = os.path.dirname(new_filename)
    return new_filename


def load_test_log_config(config_file):
    """Parses a logging `.ini` file and puts all `$temp` files into the temporary folder"""
    parser = NoInterpolationParser()
    parser.read(config_file)
    rename_parser_files(parser, _temp_log_file, make_dirs=False)
    return parser


def prepare_log_config():
    """Turns the `'test'` log config into a parser of the bundled `test.ini`"""
    if testParams['log_config'] == 'test':
        package_path = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))
        testParams['log_config'] = load_test_log_config(
            os.path.join(package_path, 'logging', 'test.ini'))


def _use_folder(folder):
    os.makedirs(folder, exist_ok=True)
    testParams['actual_tempdir'] = folder
    return folder


def make_temp_dir(filename, signal=False):
    """Joins `filename` to the temporary test folder, creating the folder if needed.

    The folder requested by the user is preferred, otherwise or if it cannot
    be created the folder is placed in `tempfile.gettempdir()`.

    """
    folder = testParams['actual_tempdir'] or testParams['user_tempdir']
    if folder:
        try:
            return os.path.join(_use_folder(folder), filename)
        except OSError as exc:
            errwrite('Cannot use folder `%s`: %s' % (folder, repr(exc)))
    folder = _use_folder(os.path.join(tempfile.gettempdir(), testParams['tempdir']))
    if signal:
        errwrite('I used `tempfile.gettempdir()` to create the temporary folder '
                 '`%s`.' % folder)
    return os.path.join(folder, filename)


def remove_data():
    """Removes all data from temporary folder"""
    if testParams['remove'] and testParams['actual_tempdir']:
        logging.getLogger().log(21, 'REMOVING ALL TEMPORARY DATA')
        shutil.rmtree(testParams['actual_tempdir'], True)


def run_suite(remove=None, folder=None, suite=None):
    """Runs a particular test suite or simply unittest.main.

    Takes care that all temporary data in `folder` is removed if `remove=True`.
    Exits with 1 if a suite was given and failed.

    """
    if remove is not None:
        testParams['remove'] = remove
    testParams['user_tempdir'] = folder

    prepare_log_config()
    make_temp_dir('tmp.txt', signal=True)

    success = False
    try:
        if suite is None:
            unittest.main(verbosity=2)
        else:
            result = unittest.TextTestRunner(verbosity=2).run(suite)
            success = result.wasSuccessful()
    finally:
        remove_data()

    if not success:
        sys.exit(1)


def make_sweep_name(testcase):
    """Creates a unique sweep name from the name of the running test"""
    test_name = testcase.id().split('.')[-1]
    rng = random.Random(len(testcase.id()) + int(10 * time.time()))
    return 'T__%s__%d' % (test_name, rng.randint(0, 10 ** 5))


class LambdaTestDiscoverer(unittest.TestLoader, HasLogger):
    """ Discovers tests and keeps the ones accepted by a `predicate`.

    The `predicate` takes the name of the test class, the name of the test,
    and the set of `tags` of the test class:

         >>> only_fast = lambda class_name, test_name, tags: 'multiproc' not in tags
         >>> loader = LambdaTestDiscoverer(only_fast)

    Tests are instantiated before they are filtered.

    """
    def __init__(self, predicate=None):
        super(LambdaTestDiscoverer, self).__init__()
        self.predicate = predicate if predicate is not None else lambda x, y, z: True
        self._set_logger()

    @staticmethod
    def _tags_of(case):
        tags = getattr(case, 'tags', None)
        if tags is None:
            return set()
        if isinstance(tags, str):
            return set([tags])
        return set(tags)

    @staticmethod
    def _flatten_suite(suite):
        for case in suite:
            if isinstance(case, unittest.TestSuite):
                for inner in LambdaTestDiscoverer._flatten_suite(case):
                    yield inner
            else:
                yield case

    def discover(self, start_dir, pattern='*test.py', top_level_dir=None):
        """Discovers tests like :func:`unittest.TestLoader.discover` and filters them"""
        discovered = super(LambdaTestDiscoverer, self).discover(start_dir=start_dir,
                                                                pattern=pattern,
                                                                top_level_dir=top_level_dir)
        selected = {}
        for case in self._flatten_suite(discovered):
            test_name = str(case).split(' ')[0]
            class_name = case.__class__.__name__
            tags = self._tags_of(case)
            key = (class_name, test_name)
            if key in selected:
                continue
            if class_name == TEST_IMPORT_ERROR:
                self._logger.error('Could not import `%s`, I will skip the tests.' % test_name)
            elif class_name == 'LoadTestsFailure':
                self._logger.error('Could not load test `%s`, maybe this is an ERROR. '
                                   'I will skip the test.' % test_name)
            if self.predicate(class_name, test_name, tags):
                selected[key] = case

        return unittest.TestSuite([selected[key] for key in sorted(selected)])


def discover_tests(predicate=None):
    """Discovers all livesweep tests accepted by `predicate`"""
    start_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
    return LambdaTestDiscoverer(predicate).discover(start_dir=start_dir)


def parse_args():
    """Parses ``-k`` (keep files) and ``--folder=`` and returns kwargs of :func:`run_suite`"""
    opt_list, _ = getopt.getopt(sys.argv[1:], 'k', ['folder='])
    opt_dict = {}
    for opt, arg in opt_list:
        if opt == '-k':
            opt_dict['remove'] = False
            errwrite('I will keep all files.')
        elif opt == '--folder':
            opt_dict['folder'] = arg
            errwrite('I will put all data into folder `%s`.' % arg)
    # Leave unittest.main only the script name
    sys.argv = [sys.argv[0]]
    return opt_dict


# Prepare config on loading, just in case tests are not called via run_suite()
prepare_log_config()
