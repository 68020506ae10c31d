# -*- coding: utf-8 -*-
"""uaa-credhub-rotator a module for rotating UAA client secrets mirrored in CredHub.

This module authenticates to a UAA as an admin client, replaces the secret of a target
client, stores the new secret in CredHub and verifies the new secret authenticates.

"""

import setuptools
import re
from io import open

VERSIONFILE="uaa_credhub_rotator/_version.py"
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
    name='uaa_credhub_rotator',
    version=verstr,
    description="Rotate a UAA OAuth2 client secret, mirror it into CredHub and verify the new secret",
    long_description_content_type="text/markdown",
    long_description=long_description,
    packages=setuptools.find_packages(),
    python_requires=">=3.8",
    extras_require={
        "test": ["pytest"],
    },
    include_package_data=True,
    license="MIT",
    entry_points={
        "console_scripts": [
            "rotate-uaa-credentials=uaa_credhub_rotator.cli:main",
        ],
    },
    install_requires=[
        "requests>=2.25,<3.0",
        "urllib3>=1.26,<3.0",
    ],
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],

)
