"""
tabpilot - Setup Configuration

Browser automation orchestrator: drives a browser tab toward a natural-language
goal with a vision model, a reasoning model and the Chrome DevTools Protocol.

License: Apache-2.0
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Core dependencies
core_deps = [
    # Framework core
    "pydantic>=2.11.9",
    "aiohttp>=3.12.15",
    # Browser automation
    "playwright>=1.55.0",
    # CLI / Terminal
    "click>=8.1.7",
    "rich>=14.1.0",
]

# Development dependencies
dev_deps = [
    # Testing
    "pytest>=8.4.1",
    "pytest-asyncio>=1.0.0",
    "pytest-cov>=6.2.1",
    # Code quality
    "black>=25.0.0",
    "flake8>=7.1.0",
    "mypy>=1.13.0",
]

setup(
    name="tabpilot",
    version="0.1.0",

    # Package description
    description="Browser automation orchestrator driven by a vision model and a reasoning model",
    long_description=long_description,
    long_description_content_type="text/markdown",

    # Package discovery
    packages=find_packages(where="src"),
    package_dir={"": "src"},

    # Python version requirement
    python_requires=">=3.11",

    # Dependencies
    install_requires=core_deps,

    # Optional dependencies (extras)
    extras_require={
        "dev": dev_deps,
    },

    # PyPI classifiers
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Programming Language :: Python :: 3 :: Only",
        "Topic :: Internet :: WWW/HTTP :: Browsers",
        "Topic :: Software Development :: Testing",
        "Framework :: AsyncIO",
    ],

    keywords=[
        "browser", "automation", "cdp", "playwright", "vision",
        "llm", "agent", "tool-calling",
    ],

    # License
    license="Apache-2.0",

    include_package_data=True,
    zip_safe=False,

    entry_points={
        "console_scripts": [
            "tabpilot=tabpilot.cli:main",
        ],
    },
)
