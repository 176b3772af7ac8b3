"""Setup script for the pps-survey package following Cosmic Python pattern."""

from setuptools import setup, find_namespace_packages

setup(
    name="pps-survey",
    version="1.0.0",
    description="Point Prevalence Survey - CSV ingestion and antimicrobial use indicators",
    author="PPS Data Team",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["pps", "pps.*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        "fastapi",
        "uvicorn[standard]",
        "pydantic",
        "sqlalchemy>=2.0,<2.1",
        "psycopg2-binary",
        "redis",
        "python-multipart",
    ],
    extras_require={
        "test": [
            "pytest>=7",
            "pytest-cov",
            "httpx",
            "fakeredis",
        ],
        "dev": [
            "black",
            "flake8",
            "mypy",
            "pre-commit",
        ],
    },
    entry_points={
        "console_scripts": [
            "pps-import=pps.entrypoints.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Healthcare Industry",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
    ],
)
