"""
Setup script for http_handle.
"""

import sys
from setuptools import setup, find_packages


def get_long_description():
    """Get long description from README."""
    try:
        with open("README.md", "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        return "Handle-based asyncio HTTP client with cookies, streaming and connection reuse"


def main():
    """Main setup function."""
    # StreamWriter.start_tls is needed for TLS upgrades
    if sys.version_info < (3, 11):
        raise RuntimeError("Python 3.11 or higher is required")

    setup(
        name="http_handle",
        version="0.1.0",
        description="Handle-based asyncio HTTP client with cookies, streaming and connection reuse",
        long_description=get_long_description(),
        long_description_content_type="text/markdown",
        author="Developer",
        author_email="dev@example.com",
        packages=find_packages(where="src"),
        package_dir={"": "src"},
        python_requires=">=3.11",
        install_requires=[
            "h11>=0.14.0",
            "typing-extensions>=4.0.0",
            "certifi>=2023.7.22",
        ],
        extras_require={
            "dev": [
                "pytest>=7.0.0",
                "pytest-asyncio>=0.21.0",
                "black>=22.0.0",
                "mypy>=1.0.0",
                "pre-commit>=2.20.0",
                "pytest-cov>=4.0.0",
            ],
        },
        classifiers=[
            "Development Status :: 3 - Alpha",
            "Intended Audience :: Developers",
            "License :: OSI Approved :: MIT License",
            "Operating System :: OS Independent",
            "Programming Language :: Python :: 3",
            "Programming Language :: Python :: 3.11",
            "Programming Language :: Python :: 3.12",
            "Topic :: Internet :: WWW/HTTP",
            "Topic :: Software Development :: Libraries :: Python Modules",
        ],
        keywords=["http", "async", "client", "cookies", "streaming"],
        zip_safe=False,
        include_package_data=True,
    )


if __name__ == "__main__":
    main()
