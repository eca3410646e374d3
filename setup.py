#!/usr/bin/env python

import os
import re
from setuptools import setup

version_file = os.path.join('formtree', '__init__.py')
with open(version_file, 'rb') as f:
    version_data = f.read().strip().decode('ascii')

version_re = re.compile(r'((?:\d+)\.(?:\d+)\.(?:\d+))')
version = version_re.search(version_data).group(0)

install_requires = [
    'python-multipart>=0.0.13',
    'orjson>=3.6',
]

tests_require = [
    'pytest',
    'pytest-cov',
    'PyYAML',
]

setup(name='formtree',
      version=version,
      description='PHP-style form and upload trees from raw request bodies',
      license='Apache',
      platforms='any',
      zip_safe=False,
      install_requires=install_requires,
      extras_require={
          'test': tests_require,
          'dev': tests_require + ['invoke', 'atheris', 'build', 'twine'],
      },
      packages=[
          'formtree',
      ],
      python_requires='>=3.8',
      classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Web Environment',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: Apache Software License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3 :: Only',
        'Programming Language :: Python :: 3',
        'Topic :: Internet :: WWW/HTTP',
        'Topic :: Software Development :: Libraries :: Python Modules'
      ],
     )
