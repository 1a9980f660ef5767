"""
Provides project-level commands. Commands are run via `python setup.py <command> [args]`

Commands available:

- doctest: runs the examples embedded in the module docstrings
"""

from setuptools import setup, Command

import os


class RunInRootCommand(Command):
    user_options = []

    def initialize_options(self):
        self.cwd = None

    def finalize_options(self):
        self.cwd = os.getcwd()

    def run(self):
        assert os.getcwd() == self.cwd, 'Must be in package root: %s' % self.cwd
        self.runcmd()

    def runcmd(self):
        pass


class DocTestCommand(RunInRootCommand):
    description = "runs the docstring examples"

    def runcmd(self):
        os.system('"pytest" --doctest-modules src/relayhub')


setup(
    name='relayhub',
    version='0.0.1',
    description='Message routing between the isolated contexts of one host application, through a single hub.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=['relayhub', 'relayhub.channel', 'relayhub.config', 'relayhub.support'],
    package_data={'relayhub': ['*.cfg'], 'relayhub.config': ['*.cfg']},
    install_requires=['configobj'],
    extras_require={
        'test': ['PyHamcrest', 'pytest', 'timeout-decorator']
    },
    zip_safe=False,
    cmdclass={
        'doctest': DocTestCommand
    }
)
