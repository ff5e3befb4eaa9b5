#!/usr/bin/env python

# Project skeleton maintained at https://github.com/jaraco/skeleton

import setuptools

name = 'irclink'
description = 'Threaded IRC client connection and protocol engine for Python'

params = dict(
    name=name,
    version='1.0.0',
    description=description or name,
    packages=setuptools.find_packages(),
    include_package_data=True,
    python_requires='>=3.8',
    install_requires=[
        'jaraco.collections',
        'jaraco.logging',
        'jaraco.stream',
        'more_itertools',
        'tempora>=1.6',
    ],
    extras_require={
        'testing': [
            # upstream
            'pytest>=3.5,!=3.7.3',

            # local
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
    ],
    entry_points={
        'console_scripts': [
            'irclink = irclink.cli:main',
        ],
    },
)
if __name__ == '__main__':
    setuptools.setup(**params)
