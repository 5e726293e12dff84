#!/usr/bin/python3

from setuptools import setup


with open("README.md", "r") as f:
    long_description = f.read()


setup(name='fastslice',
      version='0.3.0',
      description='NVMe namespace and partition provisioning for Ceph DB/WAL devices',
      long_description=long_description,
      long_description_content_type="text/markdown",
      author='fastslice developers',
      packages=['fastslice', 'fastslice.devicelibs', 'fastslice.tasks'],
      install_requires=['pyudev', 'bitmath'],
      extras_require={'tests': ['pytest']},
      entry_points={'console_scripts': ['fastslice = fastslice.cli:main']},
      python_requires='>=3.6',
      classifiers=["Development Status :: 4 - Beta",
                   "Intended Audience :: System Administrators",
                   "License :: OSI Approved :: GNU General Public License v2 or later (GPLv2+)",
                   "Programming Language :: Python :: 3",
                   "Operating System :: POSIX :: Linux"]
     )
