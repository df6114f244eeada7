#!/usr/bin/env python
# coding: utf-8

from setuptools import setup
from pathlib import Path
import os
import re

version_file = Path("update_manager/version.py").read_text()
version = re.search(r'__version__ = "([^"]+)"', version_file).group(1)
author = re.search(r'__author__ = "([^"]+)"', version_file).group(1)
requirements = [
    line.strip()
    for line in Path(os.path.join(os.path.dirname(__file__), "requirements.txt"))
    .read_text()
    .splitlines()
    if line.strip() and not line.startswith("#")
]
readme = Path('README.md').read_text()
readme = re.sub(r"Version: [0-9]*\.[0-9]*\.[0-9][0-9]*", f"Version: {version}", readme)
with open("README.md", "w") as readme_file:
    readme_file.write(readme)
description = 'Route pending updates between agent sessions'

setup(
    name='update-manager',
    version=f"{version}",
    description=description,
    long_description=f'{readme}',
    long_description_content_type='text/markdown',
    author=author,
    license='MIT',
    packages=['update_manager'],
    include_package_data=True,
    install_requires=requirements,
    extras_require={'tests': ['pytest']},
    python_requires='>=3.10',
    classifiers=[
        'Development Status :: 4 - Beta',
        'License :: OSI Approved :: MIT License',
        'Environment :: Console',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],
    entry_points={
        'console_scripts': [
            'update-manager = update_manager.update_manager:main',
            'update-manager-mcp = update_manager.update_manager_mcp:update_manager_mcp',
        ]
    },
)
