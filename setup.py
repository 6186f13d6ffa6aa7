#!/usr/bin/env python3
"""
Setup script for mailcraft.

Install with `pip install .` or, for development, `pip install -e '.[dev]'`.
"""

import sys

if sys.version_info < (3, 11):
    sys.exit("Error: mailcraft requires Python 3.11 or higher.")

try:
    from setuptools import find_packages, setup
except ImportError:
    sys.exit("Error: setuptools is required. Install it with: pip install setuptools")

import re
from pathlib import Path

# Read version from __version__.py for consistency
version_file = Path(__file__).parent / "src" / "mailcraft" / "__version__.py"
version_content = version_file.read_text(encoding="utf-8")
version_match = re.search(r'^__version__\s*=\s*["\']([^"\']+)["\']', version_content, re.M)
version = version_match.group(1) if version_match else "0.1.0"

long_description = "E-mail composition (RFC 5322/2045/2047) and SMTP delivery"
long_description_content_type = "text/plain"

# Core dependencies
install_requires = [
    "pydantic>=2.5.0",
    "pydantic-settings>=2.1.0",
    "dnspython>=2.4.0",
    "email-validator>=2.1.0",
    "idna>=3.6",
]

# Test and development dependencies
extras_require = {
    "test": [
        "pytest>=7.4.0",
        "pytest-cov>=4.1.0",
        "aiosmtpd>=1.4.4",
    ],
}
extras_require["dev"] = extras_require["test"] + [
    "black>=23.0.0",
    "flake8>=6.1.0",
    "mypy>=1.7.0",
]

setup(
    name="mailcraft",
    version=version,
    description="E-mail composition and SMTP delivery",
    long_description=long_description,
    long_description_content_type=long_description_content_type,
    author="mailcraft developers",
    license="BSD-3-Clause",
    python_requires=">=3.11",
    packages=find_packages("src"),
    package_dir={"": "src"},
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "mailcraft=mailcraft.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Communications :: Email",
    ],
    keywords=["email", "mime", "smtp", "rfc5322", "rfc2047"],
)
