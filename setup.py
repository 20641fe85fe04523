# -*- coding: utf-8 -*-
"""gcp_secret_lifecycle a module for managing the lifecycle of encrypted secrets.

Rotates secret values through pluggable strategies, warns owners of secrets about to
expire and consumes notification events from Google Cloud Pub/Sub idempotently.

"""

import setuptools
import re
from io import open

VERSIONFILE="gcp_secret_lifecycle/_version.py"
verstrline = open(VERSIONFILE, "rt").read()
VSRE = r"^__version__ = ['\"]([^'\"]*)['\"]"
mo = re.search(VSRE, verstrline, re.M)
if mo:
    verstr = mo.group(1)
else:
    raise RuntimeError("Unable to find version string in %s." % (VERSIONFILE,))

with open("README.md", "r", encoding='utf-8') as fh:
    long_description = fh.read()

setuptools.setup(
    name='gcp_secret_lifecycle',
    version=verstr,
    author="Mike Moore",
    author_email="z_z_zebra@yahoo.com",
    description="Rotation, expiry warnings and at-least-once notification handling for encrypted secrets on google cloud platform",
    long_description_content_type="text/markdown",
    long_description=long_description,
    url="https://github.com/Mikemoore63/gcp-secret-lifecycle",
    packages=setuptools.find_packages(exclude=["*.tests", "*.tests.*"]),
    python_requires=">=3.8",
    extras_require={
        "test": ["pytest"],
    },
    include_package_data=True,
    license="MIT",
    scripts=[],
    install_requires=[
        "google-cloud-secret-manager~=2.0",
        "google-cloud-pubsub~=2.0",
        "google-cloud-storage>1.0,<4.0",
        "google-auth>=2.0,<3.0",
        "grpcio~=1.0",
        "python-dateutil~=2.0",
        "pytz>=2022.0",
        "cryptography>=41.0",
        "prometheus-client>=0.17,<1.0",
        "requests>=2.28,<3.0",
        "APScheduler>=3.10,<4.0"
    ],
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],

)
