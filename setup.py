#    Copyright 2025 FAO
#
#    Licensed under the Apache License, Version 2.0 (the "License");
#    you may not use this file except in compliance with the License.
#    You may obtain a copy of the License at
#
#        http://www.apache.org/licenses/LICENSE-2.0
#
#    Unless required by applicable law or agreed to in writing, software
#    distributed under the License is distributed on an "AS IS" BASIS,
#    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#    See the License for the specific language governing permissions and
#    limitations under the License.
#
#    Author: Carlo Cancellieri (ccancellieri@gmail.com)
#    Company: FAO, Viale delle Terme di Caracalla, 00100 Rome, Italy
#    Contact: copyright@fao.org - http://fao.org/contact-us/terms/en/

import os
from setuptools import setup, find_packages
from typing import Set

# The project root is the directory containing this setup.py file.
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))


def parse_requirements(file_path: str, processed_files: Set[str] = None) -> Set[str]:
    """Reads a requirements file, following `-r` includes."""
    if processed_files is None:
        processed_files = set()

    path = file_path if os.path.isabs(file_path) else os.path.join(PROJECT_ROOT, file_path)
    if path in processed_files or not os.path.exists(path):
        return set()
    processed_files.add(path)

    packages = set()
    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            if line.startswith('-r'):
                _, included = line.split(maxsplit=1)
                packages.update(parse_requirements(os.path.join(os.path.dirname(path), included), processed_files))
            else:
                packages.add(line)
    return packages


install_requires = sorted(parse_requirements('requirements.txt'))
test_requires = sorted(parse_requirements('requirements-test.txt'))

setup(
    name="postgis-mixin",
    version="0.1.0",
    description="PostGIS geometry fields, filters and validation for record services",
    python_requires=">=3.10",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=install_requires,
    extras_require={"test": test_requires, "all": test_requires},
)
