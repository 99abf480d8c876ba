"""
Setup configuration for the crypto importer.
"""

import os

from setuptools import setup, find_packages

TEST_REQUIRES = [
    "pytest>=7.0.0",
    "pytest-asyncio>=0.21.0",
    "hypothesis>=6.0.0",
    "fakeredis>=2.20.0",
    "httpx>=0.24.0",
]

setup(
    name="crypto-importer",
    version="1.0.0",
    packages=find_packages(include=["crypto_importer", "crypto_importer.*"]),
    python_requires=">=3.11",

    entry_points={
        "console_scripts": [
            "crypto-importer = crypto_importer.app:main",
        ],
    },

    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        "pydantic>=2.0.0",
        "python-binance>=1.0.19",
        "redis>=5.0.1",
    ],

    extras_require={
        "test": TEST_REQUIRES,
        "dev": TEST_REQUIRES + [
            "pytest-cov>=4.0.0",
            "flake8>=6.0.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
        ],
    },

    author="Crypto Importer Team",
    description="Historical exchange kline importer with overlap-aware span tracking",
    long_description=open("README.md").read() if os.path.exists("README.md") else "",
    long_description_content_type="text/markdown",
)
