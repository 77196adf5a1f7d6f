import re
try:
    from setuptools import setup
except ImportError:
    from distutils.core import setup

install_requires=[
    'numpy',
    'scipy',
    'matplotlib',
]

extras_require={
    # Sweeping on a dask cluster needs the network channel
    'cluster': ['dask[distributed]', 'pyzmq'],
    'netqueue': ['pyzmq'],
    'niceness': ['psutil'],
    'test': ['pytest'],
}

# For versioning, Version found in livesweep._version.py
verstrline = open('livesweep/_version.py', "rt").read()

VSRE = r"^__version__ = ['\"]([^'\"]*)['\"]"
mo = re.search(VSRE, verstrline, re.M)
if mo:
    verstr = mo.group(1)
else:
    raise RuntimeError('Unable to find version in livesweep/_version.py')

description = ('Parallel parameter sweeps of the Van der Pol oscillator '
               'with a live view on the incoming results.')

setup(
    name='livesweep',
    version=verstr,
    packages=['livesweep',
              'livesweep.utils',
              'livesweep.tests',
              'livesweep.tests.unittests',
              'livesweep.tests.integration',
              'livesweep.tests.testutils',
              ],
    package_data={'livesweep': ['logging/*.ini']},
    license='BSD',
    description=description,
    long_description=description,
    install_requires=install_requires,
    extras_require=extras_require,
    classifiers=[
        'Development Status :: 4 - Beta',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Intended Audience :: Science/Research',
        'Natural Language :: English',
        'Operating System :: OS Independent',
        'Topic :: Scientific/Engineering',
        'License :: OSI Approved :: BSD License',
        'Topic :: Utilities'],
    python_requires='>=3.8',
)
