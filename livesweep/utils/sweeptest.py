"""Exposes the test suite as ``livesweep.test()``"""

from livesweep.tests.testutils.ioutils import TEST_IMPORT_ERROR, discover_tests, run_suite


def _importable(class_name, test_name, tags):
    return class_name != TEST_IMPORT_ERROR


def test(folder=None, remove=True, predicate=None):
    """Discovers and runs the unit and integration tests of livesweep

    :param folder: Where logs of the test sweeps go, `None` picks a temporary folder
    :param remove: Whether the temporary folder is deleted afterwards
    :param predicate:

        Callable ``predicate(class_name, test_name, tags)`` selecting the tests
        to run, e.g. ``lambda c, t, tags: 'multiproc' not in tags``.
        By default all tests whose module could be imported are run.

    """
    suite = discover_tests(predicate=predicate if predicate is not None else _importable)
    run_suite(suite=suite, remove=remove, folder=folder)
