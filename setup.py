#!/usr/bin/env python

from setuptools import find_packages, setup

setup(
    name='shellflow',
    # This tag is automatically updated by bumpversion
    version='0.4.0',
    description='File-oriented dataflow workflows of shell commands',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    license='MIT',
    packages=find_packages(include=['shellflow', 'shellflow.*']),
    python_requires='>=3.10',
    install_requires=[
        'cpg-utils>=5.1.1',
        'networkx>=2.8.3',
        'coloredlogs',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-xdist',
            'pytest-mock',
            'coverage',
            'toml',
        ],
    },
    package_data={
        'shellflow': ['defaults.toml'],
    },
    keywords='bioinformatics',
    classifiers=[
        'Environment :: Console',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Natural Language :: English',
        'Operating System :: MacOS :: MacOS X',
        'Operating System :: POSIX',
        'Operating System :: Unix',
        'Programming Language :: Python',
        'Topic :: Scientific/Engineering',
        'Topic :: Scientific/Engineering :: Bio-Informatics',
    ],
)
