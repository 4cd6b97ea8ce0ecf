# setup.py
from setuptools import setup, find_packages

setup(
    name="pesaledger",
    version="0.1.0",
    description="Turn mobile-money SMS notifications into a reconciled wallet ledger",
    author="Your Name",
    author_email="you@example.com",
    url="https://github.com/yourusername/pesaledger",
    packages=find_packages(include=["sms_ledger", "sms_ledger.*"]),
    python_requires=">=3.8",
    install_requires=[
        "click>=7.0",
        "pyyaml>=5.3",
        "pandas>=1.1",
        "python-dotenv>=0.19",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "pesaledger=sms_ledger.cli:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
